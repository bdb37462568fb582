import json
from datetime import timedelta

import httpx
import pytest
import respx

from newsroom.models import AggregateResponse, CacheSnapshot
from newsroom.services.cache import CacheStore, NullSink, RestKVSink, build_sink

KV_URL = "https://kv.example"


def test_force_refresh_is_always_stale(settings, clock) -> None:
    store = CacheStore(settings=settings, sink=NullSink(), clock=clock)
    store.commit(AggregateResponse(), ["https://a.example/feed"])

    assert store.is_stale("https://a.example/feed", True)


def test_staleness_window(settings, clock) -> None:
    store = CacheStore(settings=settings, sink=NullSink(), clock=clock)
    url = "https://a.example/feed"
    assert store.is_stale(url)

    store.commit(AggregateResponse(), [url])
    assert not store.is_stale(url)

    clock.advance(hours=2)
    assert not store.is_stale(url)
    clock.advance(seconds=1)
    assert store.is_stale(url)
    assert store.is_stale("https://never.example/feed")


def test_expired_against_absolute_ttl(settings, clock) -> None:
    store = CacheStore(settings=settings, sink=NullSink(), clock=clock)
    assert store.expired()

    store.commit(AggregateResponse(), [])
    assert not store.expired()
    clock.advance(hours=8, seconds=1)
    assert store.expired()


def test_build_sink_depends_on_credentials(make_settings) -> None:
    assert isinstance(build_sink(make_settings()), NullSink)
    sink = build_sink(make_settings(KV_REST_API_URL=KV_URL, KV_REST_API_TOKEN="kv-token"))
    assert isinstance(sink, RestKVSink)


@pytest.mark.asyncio
async def test_persist_and_hydrate_through_rest_kv(settings, clock) -> None:
    response = AggregateResponse(master_summary="Weekly HR round-up")
    async with httpx.AsyncClient() as client:
        sink = RestKVSink(base_url=KV_URL, token="kv-token", client=client)
        writer = CacheStore(settings=settings, sink=sink, clock=clock)
        writer.commit(response, ["https://a.example/feed"])

        with respx.mock(assert_all_called=True) as mock:
            saved = mock.post(f"{KV_URL}/set/dailyNewsData").respond(200, json={"result": "OK"})
            assert await writer.persist()

        request = saved.calls.last.request
        assert request.headers["Authorization"] == "Bearer kv-token"
        payload = request.content.decode()
        assert '"masterSummary":"Weekly HR round-up"' in payload

        reader = CacheStore(settings=settings, sink=sink, clock=clock)
        with respx.mock(assert_all_called=True) as mock:
            loaded = mock.get(f"{KV_URL}/get/dailyNewsData").respond(
                200, json={"result": payload}
            )
            assert await reader.hydrate()
            assert not await reader.hydrate()

    assert loaded.call_count == 1
    assert reader.current.master_summary == "Weekly HR round-up"
    assert not reader.is_stale("https://a.example/feed")


@pytest.mark.asyncio
async def test_hydrate_accepts_object_results(settings, clock) -> None:
    stored = {"current": {"masterSummary": "From object"}, "perSourceLastRefresh": {}}
    async with httpx.AsyncClient() as client:
        store = CacheStore(
            settings=settings,
            sink=RestKVSink(base_url=KV_URL, token="kv-token", client=client),
            clock=clock,
        )
        with respx.mock(assert_all_called=True) as mock:
            mock.get(f"{KV_URL}/get/dailyNewsData").respond(200, json={"result": stored})
            assert await store.hydrate()

    assert store.current.master_summary == "From object"


@pytest.mark.asyncio
async def test_persistence_failures_are_swallowed(settings, clock) -> None:
    async with httpx.AsyncClient() as client:
        store = CacheStore(
            settings=settings,
            sink=RestKVSink(base_url=KV_URL, token="kv-token", client=client),
            clock=clock,
        )
        with respx.mock(assert_all_called=True) as mock:
            mock.get(f"{KV_URL}/get/dailyNewsData").respond(500)
            assert not await store.hydrate()

        store.commit(AggregateResponse(master_summary="kept"), [])
        with respx.mock(assert_all_called=True) as mock:
            mock.post(f"{KV_URL}/set/dailyNewsData").mock(
                side_effect=httpx.ConnectError("down")
            )
            assert not await store.persist()

    assert store.current.master_summary == "kept"


@pytest.mark.asyncio
async def test_missing_key_hydrates_nothing(settings, clock) -> None:
    async with httpx.AsyncClient() as client:
        store = CacheStore(
            settings=settings,
            sink=RestKVSink(base_url=KV_URL, token="kv-token", client=client),
            clock=clock,
        )
        with respx.mock(assert_all_called=True) as mock:
            mock.get(f"{KV_URL}/get/dailyNewsData").respond(404)
            assert not await store.hydrate()

    assert store.current is None


@pytest.mark.asyncio
async def test_null_sink_round_trip(settings) -> None:
    store = CacheStore(settings=settings, sink=NullSink())
    store.commit(AggregateResponse(), [])
    assert await store.persist()
    assert json.loads(store.snapshot().model_dump_json(by_alias=True))["current"] is not None


def stored_snapshot(summary: str, at) -> str:
    return CacheSnapshot(
        current=AggregateResponse(master_summary=summary),
        snapshot_at=at,
        per_source_last_refresh={"https://a.example/feed": at},
    ).model_dump_json(by_alias=True)


@pytest.mark.asyncio
async def test_aged_snapshot_reloads_newer_copy_from_store(settings, clock) -> None:
    newer = stored_snapshot("From another instance", clock() + timedelta(hours=2))
    async with httpx.AsyncClient() as client:
        store = CacheStore(
            settings=settings,
            sink=RestKVSink(base_url=KV_URL, token="kv-token", client=client),
            clock=clock,
        )
        store.commit(AggregateResponse(master_summary="Local"), [])

        with respx.mock(assert_all_called=False) as mock:
            route = mock.get(f"{KV_URL}/get/dailyNewsData").respond(200, json={"result": newer})
            assert not await store.reload_if_stale()
            assert not route.called

            clock.advance(hours=2, seconds=1)
            assert await store.reload_if_stale()

    assert store.current.master_summary == "From another instance"
    assert not store.is_stale("https://a.example/feed")


@pytest.mark.asyncio
async def test_aged_snapshot_is_kept_when_store_is_not_newer(settings, clock) -> None:
    older = stored_snapshot("Old copy", clock() - timedelta(hours=1))
    async with httpx.AsyncClient() as client:
        store = CacheStore(
            settings=settings,
            sink=RestKVSink(base_url=KV_URL, token="kv-token", client=client),
            clock=clock,
        )
        store.commit(AggregateResponse(master_summary="Local"), [])
        clock.advance(hours=3)

        with respx.mock(assert_all_called=True) as mock:
            route = mock.get(f"{KV_URL}/get/dailyNewsData").respond(200, json={"result": older})
            assert not await store.reload_if_stale()
            async with store.lock:
                assert not await store.reload_if_stale()

    assert route.call_count == 1
    assert store.current.master_summary == "Local"
