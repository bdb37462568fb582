from datetime import datetime, timedelta, timezone

import httpx
import pytest

from api.index import app, get_cache_store, get_updater
from newsroom.config import get_settings
from newsroom.models import AggregateResponse, CacheSnapshot, EnrichedArticle
from newsroom.services.cache import CacheStore, NullSink
from newsroom.services.updater import DATA_UPDATING, IncrementalUpdater


class StaticUpdater(IncrementalUpdater):
    async def refresh(self, force_refresh: bool = False) -> AggregateResponse:
        self.cache.commit(self.response, [])
        return self.response


class FailingUpdater(IncrementalUpdater):
    async def refresh(self, force_refresh: bool = False) -> AggregateResponse:
        raise RuntimeError("kv unavailable")


class MemorySink(NullSink):
    def __init__(self) -> None:
        self.payload: str | None = None

    async def load(self, key: str) -> str | None:
        return self.payload


def sample_response() -> AggregateResponse:
    article = EnrichedArticle(
        title="Holiday pay ruling",
        link="https://hr.example/holiday-pay",
        published_at=datetime(2024, 5, 20, 9, 0, tzinfo=timezone.utc),
        summary="Tribunal clarifies holiday pay.",
        source="HR Daily",
        category="UK HR",
        topics=["holiday"],
    )
    return AggregateResponse(all_articles=[article], master_summary="Overview")


@pytest.fixture
def wired(settings):
    cache = CacheStore(settings=settings, sink=NullSink())
    updater = StaticUpdater(cache=cache, registry=[], settings=settings)
    updater.response = sample_response()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_cache_store] = lambda: cache
    app.dependency_overrides[get_updater] = lambda: updater
    yield cache, updater
    app.dependency_overrides.clear()


def client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health(wired) -> None:
    async with client() as http:
        response = await http.get("/health")
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_aggregate_degrades_when_cache_empty(wired) -> None:
    async with client() as http:
        response = await http.get("/news/aggregate")

    assert response.status_code == 200
    body = response.json()
    assert body["allArticles"] == []
    assert body["masterSummary"] == DATA_UPDATING


@pytest.mark.asyncio
async def test_aggregate_serves_camel_case_snapshot(wired) -> None:
    cache, _ = wired
    cache.commit(sample_response(), [])

    async with client() as http:
        body = (await http.get("/news/aggregate")).json()

    article = body["allArticles"][0]
    assert article["publishedAt"].startswith("2024-05-20T09:00:00")
    assert article["sentimentScore"] == 0.5
    assert body["masterSummary"] == "Overview"


@pytest.mark.asyncio
async def test_refresh_rejects_bad_secret(wired) -> None:
    async with client() as http:
        response = await http.get("/news/refresh", params={"cron_secret": "wrong"})
        missing = await http.post("/news/refresh")

    assert response.status_code == 401
    assert response.json() == {"message": "Unauthorized"}
    assert missing.status_code == 401


@pytest.mark.asyncio
async def test_refresh_rejects_everything_without_configured_secret(wired, make_settings) -> None:
    app.dependency_overrides[get_settings] = lambda: make_settings(CRON_SECRET=None)
    async with client() as http:
        response = await http.get("/news/refresh", params={"cron_secret": ""})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_with_query_secret(wired) -> None:
    cache, _ = wired
    async with client() as http:
        response = await http.get(
            "/news/refresh", params={"cron_secret": "cron-secret", "force": "true"}
        )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "News data updated successfully"
    assert body["articlesProcessed"] == 1
    assert body["categories"] == 0
    assert body["duration"].endswith("s")
    assert cache.current is not None


@pytest.mark.asyncio
async def test_refresh_with_bearer_header(wired) -> None:
    async with client() as http:
        response = await http.post(
            "/news/refresh", headers={"Authorization": "Bearer cron-secret"}
        )
    assert response.status_code == 200
    assert response.json()["articlesProcessed"] == 1


@pytest.mark.asyncio
async def test_refresh_failure_returns_500(wired, settings) -> None:
    cache, _ = wired
    app.dependency_overrides[get_updater] = lambda: FailingUpdater(
        cache=cache, registry=[], settings=settings
    )
    async with client() as http:
        response = await http.post(
            "/news/refresh", headers={"Authorization": "Bearer cron-secret"}
        )

    assert response.status_code == 500
    assert response.json() == {
        "message": "Failed to update news data",
        "error": "kv unavailable",
    }


@pytest.mark.asyncio
async def test_aggregate_picks_up_newer_snapshot_once_local_copy_ages(
    wired, settings, clock
) -> None:
    sink = MemorySink()
    cache = CacheStore(settings=settings, sink=sink, clock=clock)
    cache.commit(AggregateResponse(master_summary="Served since startup"), [])
    app.dependency_overrides[get_cache_store] = lambda: cache
    sink.payload = CacheSnapshot(
        current=sample_response(), snapshot_at=clock() + timedelta(hours=2)
    ).model_dump_json(by_alias=True)

    async with client() as http:
        fresh = (await http.get("/news/aggregate")).json()
        clock.advance(hours=2, seconds=1)
        aged = (await http.get("/news/aggregate")).json()

    assert fresh["masterSummary"] == "Served since startup"
    assert aged["masterSummary"] == "Overview"
    assert aged["allArticles"][0]["title"] == "Holiday pay ruling"
