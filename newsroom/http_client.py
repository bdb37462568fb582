import asyncio

import httpx

from .config import Settings, get_settings

_client: httpx.AsyncClient | None = None
_client_lock = asyncio.Lock()


def build_http_client(settings: Settings | None = None) -> httpx.AsyncClient:
    """Client shared by feed fetching, the AI provider and the KV sink.

    Redirects are followed since several publishers move their feeds.
    """
    settings = settings or get_settings()
    return httpx.AsyncClient(
        timeout=settings.http_timeout,
        limits=httpx.Limits(
            max_connections=settings.http_max_connections,
            max_keepalive_connections=settings.http_max_keepalive,
        ),
        follow_redirects=True,
        headers={"User-Agent": settings.http_user_agent},
    )


async def get_http_client() -> httpx.AsyncClient:
    global _client

    if _client is None or _client.is_closed:
        async with _client_lock:
            if _client is None or _client.is_closed:
                _client = build_http_client()
    return _client


async def shutdown_http_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
