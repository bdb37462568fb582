from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping
from urllib.parse import urlparse

import yaml

from .models.news import FeedSource


class SourceConfigError(Exception):
    """Raised when a sources YAML file is missing or malformed."""


FEED_CATEGORIES: dict[str, tuple[tuple[str, str], ...]] = {
    "UK HR": (
        ("https://www.personneltoday.com/feed", "Personnel Today"),
        ("https://www.hrdept.co.uk/feed", "The HR Dept"),
    ),
    "Global HR": (),
    "HR Legal": (
        ("https://www.xperthr.co.uk/rss-feeds/", "XpertHR"),
        ("https://www.gov.uk/government/topics/employment.atom", "GOV.UK Employment Updates"),
    ),
    "Payroll": (
        ("https://www.cipp.org.uk/resource/news.rss.xml", "CIPP News"),
        ("https://journeypayroll.com/payroll/feed", "Journey Payroll & HR"),
        (
            "https://www.gov.uk/government/publications.atom"
            "?publication_filter_option=employer-bulletin",
            "HMRC Employer Bulletin",
        ),
        ("https://www.payescape.com/blog/rss.xml", "PayeSpace Blog"),
    ),
    "Employee Benefits": (
        ("https://www.employeebenefits.co.uk/feed", "Employee Benefits UK"),
        ("https://reba.global/rss", "Reward & Employee Benefits Association (REBA)"),
    ),
}


def flatten_categories(
    categories: Mapping[str, Iterable[tuple[str, str]]],
) -> tuple[FeedSource, ...]:
    """Flatten ``{category: [(url, name), ...]}`` in category then feed order."""
    return tuple(
        FeedSource(url=url, display_name=name, category=category)
        for category, feeds in categories.items()
        for url, name in feeds
    )


DEFAULT_SOURCES: tuple[FeedSource, ...] = flatten_categories(FEED_CATEGORIES)


def _validate_entry(entry: object) -> FeedSource:
    if not isinstance(entry, dict):
        raise SourceConfigError(f"Each source must be a mapping, got: {type(entry).__name__}")
    missing = {"url", "name", "category"} - set(entry)
    if missing:
        raise SourceConfigError(f"Missing required fields: {sorted(missing)} in {entry}")
    url = str(entry["url"]).strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise SourceConfigError(f"Invalid URL '{url}'. Must be absolute http(s) URL.")
    return FeedSource(
        url=url,
        display_name=str(entry["name"]).strip(),
        category=str(entry["category"]).strip(),
    )


def load_sources_file(path: Path | str) -> tuple[FeedSource, ...]:
    """Load a registry from YAML.

    Expected structure::

        sources:
          - url: https://example.com/feed
            name: Example
            category: Payroll

    Duplicate URLs keep their first occurrence.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise SourceConfigError(f"Sources file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    raw = data.get("sources") if isinstance(data, dict) else None
    if not isinstance(raw, list):
        raise SourceConfigError("'sources' must be a list in the YAML configuration")

    seen: set[str] = set()
    sources: list[FeedSource] = []
    for entry in raw:
        source = _validate_entry(entry)
        if source.url in seen:
            continue
        seen.add(source.url)
        sources.append(source)
    return tuple(sources)


def load_registry(sources_file: str | None = None) -> tuple[FeedSource, ...]:
    if sources_file:
        return load_sources_file(sources_file)
    return DEFAULT_SOURCES


def category_for(url: str, registry: Iterable[FeedSource]) -> str | None:
    for source in registry:
        if source.url == url:
            return source.category
    return None
