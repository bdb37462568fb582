"""Run one refresh pass from the command line (cron, local debugging)."""

from __future__ import annotations

import argparse
import asyncio
import sys
import time

import orjson

from .config import get_settings
from .http_client import shutdown_http_client
from .logging import configure_logging, get_logger
from .models import RefreshSummary
from .services import CacheStore, IncrementalUpdater


async def run_once(force: bool) -> RefreshSummary:
    settings = get_settings()
    updater = IncrementalUpdater(cache=CacheStore(settings=settings), settings=settings)
    started = time.perf_counter()
    try:
        response = await updater.refresh(force_refresh=force)
    finally:
        await shutdown_http_client()
    return RefreshSummary(
        message="News data updated successfully",
        articles_processed=len(response.all_articles),
        categories=len(response.feeds_by_category),
        duration=f"{time.perf_counter() - started:.2f}s",
    )


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="newsroom", description="Refresh the aggregated HR news cache once"
    )
    parser.add_argument(
        "--force", action="store_true", help="Refresh every source regardless of staleness"
    )
    parser.add_argument(
        "--log-level", default=settings.log_level, help="DEBUG, INFO, WARNING or ERROR"
    )
    args = parser.parse_args(argv)

    configure_logging(service_name="newsroom-cli", level=args.log_level, log_format=settings.log_format)
    logger = get_logger("cli")

    try:
        summary = asyncio.run(run_once(args.force))
    except Exception:
        logger.exception("cli_refresh_failed")
        return 1
    sys.stdout.write(orjson.dumps(summary.model_dump(by_alias=True)).decode() + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
