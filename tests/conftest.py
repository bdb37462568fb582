from datetime import datetime, timedelta, timezone

import pytest

from newsroom.config import Settings

FAST_SETTINGS = {
    "FEED_FETCH_DELAY": 0,
    "UPDATE_BATCH_DELAY": 0,
    "UPDATE_ITEM_DELAY": 0,
    "AI_RATE_LIMIT_BACKOFF": 0,
    "AI_API_KEY": None,
    "KV_REST_API_URL": None,
    "KV_REST_API_TOKEN": None,
    "CRON_SECRET": "cron-secret",
}


class FakeClock:
    """Settable UTC clock for staleness tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        return Settings(**{**FAST_SETTINGS, **overrides})

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
