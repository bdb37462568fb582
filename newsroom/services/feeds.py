from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence
from urllib.parse import quote

import feedparser
import httpx
from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from ..config import Settings, get_settings
from ..http_client import get_http_client
from ..logging import get_logger
from ..models.news import FeedSource, ParsedFeed, RawItem
from .text import clean_html_to_text

logger = get_logger("feeds")

_BARE_AMPERSAND_RE = re.compile(r"&(?!amp;|lt;|gt;|quot;|apos;|#\d+;|#x[0-9a-fA-F]+;)")
_DOUBLE_CDATA_OPEN_RE = re.compile(r"<!\[CDATA\[\s*<!\[CDATA\[")
_DOUBLE_CDATA_CLOSE_RE = re.compile(r"\]\]>\s*\]\]>")


class FeedFetchError(Exception):
    pass


class FeedParseError(Exception):
    pass


def sanitize_feed_xml(text: str) -> str:
    """Escape bare ampersands and collapse doubled CDATA markers."""
    text = _BARE_AMPERSAND_RE.sub("&amp;", text)
    text = _DOUBLE_CDATA_OPEN_RE.sub("<![CDATA[", text)
    return _DOUBLE_CDATA_CLOSE_RE.sub("]]>", text)


@dataclass(slots=True)
class FeedFetcher:
    # primary (feedparser) -> direct (lenient xml) -> proxy; only transport failures escalate
    settings: Settings | None = None
    client: httpx.AsyncClient | None = None

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()

    def _feed_headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.settings.http_user_agent,
            "Accept": self.settings.feed_accept,
        }

    def _proxy_url(self, url: str) -> str:
        return f"{self.settings.feed_proxy_url}{quote(url, safe='')}"

    async def fetch(self, source: FeedSource) -> ParsedFeed:
        client = self.client or await get_http_client()
        tier_timeout = self.settings.feed_tier_timeout

        try:
            return await asyncio.wait_for(
                self._fetch_primary(client, source), timeout=tier_timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("feed_timed_out", url=source.url)
            return _degraded(source, f"Feed {source.url} timed out")
        except Exception as exc:
            logger.warning("feed_primary_failed", url=source.url, error=str(exc))

        try:
            return await asyncio.wait_for(
                self._fetch_lenient(client, source, source.url, self._feed_headers()),
                timeout=tier_timeout,
            )
        except Exception as exc:
            logger.warning("feed_direct_failed", url=source.url, error=str(exc) or repr(exc))

        try:
            return await asyncio.wait_for(
                self._fetch_lenient(
                    client,
                    source,
                    self._proxy_url(source.url),
                    {"User-Agent": self.settings.http_user_agent},
                ),
                timeout=tier_timeout,
            )
        except Exception as exc:
            logger.warning("feed_proxy_failed", url=source.url, error=str(exc) or repr(exc))

        return _degraded(source, f"Unable to fetch feed from {source.url}")

    async def fetch_all(self, sources: Sequence[FeedSource]) -> list[ParsedFeed]:
        results: list[ParsedFeed] = []

        async def run() -> None:
            for index, source in enumerate(sources):
                if index:
                    await asyncio.sleep(self.settings.feed_fetch_delay)
                try:
                    results.append(await self.fetch(source))
                except Exception:
                    logger.exception("feed_fetch_crashed", url=source.url)
                    results.append(
                        _degraded(source, f"Unable to fetch feed from {source.url}")
                    )

        try:
            await asyncio.wait_for(run(), timeout=self.settings.feed_batch_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "feed_batch_timed_out", collected=len(results), requested=len(sources)
            )
        return list(results)

    async def _fetch_primary(
        self, client: httpx.AsyncClient, source: FeedSource
    ) -> ParsedFeed:
        response = await client.get(
            source.url, headers=self._feed_headers(), timeout=self.settings.http_timeout
        )
        response.raise_for_status()
        parsed = feedparser.parse(response.content)
        entries = parsed.get("entries") or []
        if parsed.get("bozo") and not entries:
            raise FeedParseError(f"{source.url}: {parsed.get('bozo_exception')}")

        meta = parsed.get("feed") or {}
        items = [
            _item_from_entry(entry, source)
            for entry in entries[: self.settings.feed_max_items]
        ]
        logger.info("feed_fetched", url=source.url, tier="primary", items=len(items))
        return ParsedFeed(
            source_name=source.display_name or meta.get("title") or "Unknown Feed",
            source_url=source.url,
            category=source.category,
            title=meta.get("title") or source.display_name,
            description=meta.get("subtitle") or meta.get("description"),
            link=meta.get("link") or source.url,
            items=items,
        )

    async def _fetch_lenient(
        self,
        client: httpx.AsyncClient,
        source: FeedSource,
        url: str,
        headers: dict[str, str],
    ) -> ParsedFeed:
        response = await client.get(url, headers=headers, timeout=self.settings.http_timeout)
        if response.status_code >= 400:
            raise FeedFetchError(f"status code {response.status_code}")
        text = response.text
        if not text or not text.strip():
            raise FeedFetchError("empty response")

        try:
            feed = self._parse_lenient(sanitize_feed_xml(text), source)
        except Exception as exc:
            logger.warning("feed_parse_failed", url=url, error=str(exc))
            return _degraded(source, f"Unable to parse feed from {source.url}")
        logger.info("feed_fetched", url=source.url, tier="lenient", items=len(feed.items))
        return feed

    def _parse_lenient(self, text: str, source: FeedSource) -> ParsedFeed:
        soup = BeautifulSoup(text, "xml")
        root = soup.find("rss") or soup.find("feed") or soup.find("RDF")
        if root is None:
            raise FeedParseError("no rss, feed or RDF root element")
        atom = root.name == "feed"
        channel = soup.find("channel") or root

        items: list[RawItem] = []
        for entry in soup.find_all("entry" if atom else "item"):
            if len(items) >= self.settings.feed_max_items:
                break
            items.append(_item_from_tag(entry, source, atom=atom))

        title = _tag_text(channel.find("title", recursive=False))
        link_tag = channel.find("link", recursive=False)
        description = _tag_text(
            channel.find("description", recursive=False)
            or channel.find("subtitle", recursive=False)
        )
        return ParsedFeed(
            source_name=source.display_name or title or "Unknown Feed",
            source_url=source.url,
            category=source.category,
            title=title or source.display_name,
            description=description or f"Feed from {source.url}",
            link=_link_of(link_tag) or source.url,
            items=items,
        )


def _degraded(source: FeedSource, reason: str) -> ParsedFeed:
    return ParsedFeed(
        source_name=source.display_name or "Unknown Feed",
        source_url=source.url,
        category=source.category,
        title=source.display_name,
        description=reason,
        link=source.url,
        items=[],
    )


def _item_from_entry(entry: Any, source: FeedSource) -> RawItem:
    contents = entry.get("content") or []
    full_content = ""
    if contents and isinstance(contents, list):
        full_content = contents[0].get("value") or ""
    description = entry.get("summary") or entry.get("description") or ""
    published = _parse_datetime(entry.get("published") or entry.get("updated"))
    return RawItem(
        title=(entry.get("title") or "").strip() or "Untitled",
        link=entry.get("link") or source.url,
        published_at=published or datetime.now(timezone.utc),
        full_content=full_content,
        content=full_content or description,
        snippet=clean_html_to_text(description or full_content)[:300],
        description=description,
    )


def _item_from_tag(entry: Any, source: FeedSource, *, atom: bool) -> RawItem:
    date_tag = (
        entry.find("pubDate")
        or entry.find("published")
        or entry.find("updated")
        or entry.find("dc:date")
    )
    full_content = _tag_text(entry.find("content:encoded") or entry.find("encoded"))
    if atom and not full_content:
        full_content = _tag_text(entry.find("content"))
    description = _tag_text(entry.find("description") or entry.find("summary"))
    return RawItem(
        title=_tag_text(entry.find("title")) or "Untitled",
        link=_link_of(entry.find("link")) or source.url,
        published_at=_parse_datetime(_tag_text(date_tag)) or datetime.now(timezone.utc),
        full_content=full_content,
        content=full_content or description,
        snippet=clean_html_to_text(description or full_content)[:300],
        description=description,
    )


def _tag_text(tag: Any) -> str:
    if tag is None:
        return ""
    return tag.get_text(strip=True)


def _link_of(tag: Any) -> str:
    if tag is None:
        return ""
    return (tag.get("href") or tag.get_text(strip=True) or "").strip()


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = date_parser.parse(value)
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
