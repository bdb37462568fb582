from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, Protocol

import httpx

from ..config import Settings, get_settings
from ..http_client import get_http_client
from ..logging import get_logger
from ..models.news import AggregateResponse, CacheSnapshot, utcnow

logger = get_logger("cache")


class PersistenceSink(Protocol):
    async def save(self, key: str, payload: str) -> None: ...

    async def load(self, key: str) -> str | None: ...


class NullSink:
    async def save(self, key: str, payload: str) -> None:
        return None

    async def load(self, key: str) -> str | None:
        return None


@dataclass(slots=True)
class RestKVSink:
    # Upstash style REST API: POST {base_url}/set/{key}, GET {base_url}/get/{key} -> {"result": ...}
    base_url: str
    token: str
    timeout: float = 10.0
    client: httpx.AsyncClient | None = None

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    def _url(self, op: str, key: str) -> str:
        return f"{self.base_url.rstrip('/')}/{op}/{key}"

    async def save(self, key: str, payload: str) -> None:
        client = self.client or await get_http_client()
        response = await client.post(
            self._url("set", key),
            content=payload.encode("utf-8"),
            headers={**self._headers(), "Content-Type": "application/json"},
            timeout=self.timeout,
        )
        response.raise_for_status()

    async def load(self, key: str) -> str | None:
        client = self.client or await get_http_client()
        response = await client.get(
            self._url("get", key), headers=self._headers(), timeout=self.timeout
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        result = response.json().get("result")
        if result is None:
            return None
        return result if isinstance(result, str) else json.dumps(result)


def build_sink(settings: Settings | None = None) -> PersistenceSink:
    settings = settings or get_settings()
    if not settings.persistence_enabled:
        return NullSink()
    return RestKVSink(
        base_url=str(settings.kv_rest_api_url),
        token=settings.kv_rest_api_token,
        timeout=settings.http_timeout,
    )


@dataclass(slots=True)
class CacheStore:
    # writers hold `lock` for a whole refresh pass; readers use `current` directly
    settings: Settings | None = None
    sink: PersistenceSink | None = None
    clock: Callable[[], datetime] = utcnow
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    current: AggregateResponse | None = None
    snapshot_at: datetime | None = None
    per_source_last_refresh: dict[str, datetime] = field(default_factory=dict)
    _hydrated: bool = field(default=False, init=False, repr=False)
    _hydrate_lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()
        if self.sink is None:
            self.sink = build_sink(self.settings)

    def is_stale(self, url: str, force_refresh: bool = False) -> bool:
        if force_refresh:
            return True
        last = self.per_source_last_refresh.get(url)
        if last is None:
            return True
        return self.clock() - last > timedelta(seconds=self.settings.cache_stale_after)

    def expired(self) -> bool:
        if self.snapshot_at is None:
            return True
        return self.clock() - self.snapshot_at > timedelta(seconds=self.settings.cache_ttl)

    def snapshot(self) -> CacheSnapshot:
        return CacheSnapshot(
            current=self.current,
            snapshot_at=self.snapshot_at,
            per_source_last_refresh=dict(self.per_source_last_refresh),
        )

    def commit(self, response: AggregateResponse, refreshed_urls: Iterable[str]) -> None:
        now = self.clock()
        self.current = response
        self.snapshot_at = now
        for url in refreshed_urls:
            self.per_source_last_refresh[url] = now

    async def persist(self) -> bool:
        if self.current is None:
            return False
        try:
            payload = self.snapshot().model_dump_json(by_alias=True)
            await self.sink.save(self.settings.cache_key, payload)
        except Exception as exc:
            logger.warning("cache_persist_failed", error=str(exc) or repr(exc))
            return False
        return True

    def snapshot_stale(self) -> bool:
        if self.snapshot_at is None:
            return True
        return self.clock() - self.snapshot_at > timedelta(seconds=self.settings.cache_stale_after)

    async def _load(self) -> CacheSnapshot | None:
        try:
            raw = await self.sink.load(self.settings.cache_key)
            if not raw:
                return None
            stored = CacheSnapshot.model_validate_json(raw)
        except Exception as exc:
            logger.warning("cache_load_failed", error=str(exc) or repr(exc))
            return None
        return stored if stored.current is not None else None

    def _apply(self, stored: CacheSnapshot, event: str) -> None:
        self.current = stored.current
        self.snapshot_at = stored.snapshot_at
        self.per_source_last_refresh.update(stored.per_source_last_refresh)
        logger.info(
            event,
            articles=len(stored.current.all_articles),
            sources=len(stored.per_source_last_refresh),
        )

    async def hydrate(self) -> bool:
        """Fill an empty store from the sink; concurrent callers share one load."""
        async with self._hydrate_lock:
            if self._hydrated or self.current is not None:
                return False
            stored = await self._load()
            self._hydrated = True
            if stored is None:
                return False
            self._apply(stored, "cache_hydrated")
            return True

    async def reload_if_stale(self) -> bool:
        # another instance may have refreshed the shared store since we loaded it
        if self.current is None or not self.snapshot_stale() or self.lock.locked():
            return False
        async with self._hydrate_lock:
            if not self.snapshot_stale():
                return False
            stored = await self._load()
            if stored is None or stored.snapshot_at is None:
                return False
            if self.snapshot_at is not None and stored.snapshot_at <= self.snapshot_at:
                return False
            self._apply(stored, "cache_reloaded")
            return True
