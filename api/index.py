from __future__ import annotations

import secrets
import time
from functools import lru_cache

from fastapi import Depends, FastAPI, Header, Query
from fastapi.responses import ORJSONResponse
from mangum import Mangum

from newsroom import __version__
from newsroom.config import Settings, get_settings
from newsroom.http_client import shutdown_http_client
from newsroom.logging import configure_logging, get_logger
from newsroom.models import AggregateResponse, RefreshSummary
from newsroom.services import CacheStore, IncrementalUpdater
from newsroom.services.updater import DATA_UPDATING

_settings = get_settings()
configure_logging(level=_settings.log_level, log_format=_settings.log_format)
logger = get_logger("api")

app = FastAPI(
    title="Newsroom HR News API",
    version=__version__,
    description=(
        "Aggregated HR, payroll and employee-benefits news with AI summaries, "
        "refreshed incrementally for serverless deployment."
    ),
    default_response_class=ORJSONResponse,
)


@lru_cache
def get_cache_store() -> CacheStore:
    return CacheStore(settings=get_settings())


@lru_cache
def get_updater() -> IncrementalUpdater:
    return IncrementalUpdater(cache=get_cache_store(), settings=get_settings())


def _is_authorized(
    settings: Settings, cron_secret: str | None, authorization: str | None
) -> bool:
    expected = settings.cron_secret
    if not expected:
        return False
    if cron_secret and secrets.compare_digest(cron_secret, expected):
        return True
    if authorization and authorization.startswith("Bearer "):
        return secrets.compare_digest(authorization[len("Bearer ") :], expected)
    return False


async def _run_refresh(updater: IncrementalUpdater, force: bool) -> ORJSONResponse:
    started = time.perf_counter()
    try:
        response = await updater.refresh(force_refresh=force)
    except Exception as exc:
        logger.exception("refresh_endpoint_failed")
        return ORJSONResponse(
            status_code=500,
            content={"message": "Failed to update news data", "error": str(exc)},
        )
    summary = RefreshSummary(
        message="News data updated successfully",
        articles_processed=len(response.all_articles),
        categories=len(response.feeds_by_category),
        duration=f"{time.perf_counter() - started:.2f}s",
    )
    return ORJSONResponse(content=summary.model_dump(mode="json", by_alias=True))


def _unauthorized() -> ORJSONResponse:
    return ORJSONResponse(status_code=401, content={"message": "Unauthorized"})


@app.get("/health", tags=["system"])
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/news/aggregate", tags=["news"])
async def news_aggregate(cache: CacheStore = Depends(get_cache_store)):
    if cache.current is None:
        await cache.hydrate()
    else:
        await cache.reload_if_stale()
    current = cache.current or AggregateResponse(master_summary=DATA_UPDATING)
    return ORJSONResponse(content=current.model_dump(mode="json", by_alias=True))


@app.get("/news/refresh", tags=["news"])
async def news_refresh(
    cron_secret: str | None = Query(None, description="Shared scheduler secret"),
    force: bool = Query(False, description="Refresh every source regardless of staleness"),
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
    updater: IncrementalUpdater = Depends(get_updater),
):
    if not _is_authorized(settings, cron_secret, authorization):
        logger.warning("refresh_unauthorized")
        return _unauthorized()
    return await _run_refresh(updater, force)


@app.post("/news/refresh", tags=["news"])
async def news_refresh_post(
    force: bool = Query(False, description="Refresh every source regardless of staleness"),
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
    updater: IncrementalUpdater = Depends(get_updater),
):
    if not _is_authorized(settings, None, authorization):
        logger.warning("refresh_unauthorized")
        return _unauthorized()
    return await _run_refresh(updater, force)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await shutdown_http_client()


handler = Mangum(app)
