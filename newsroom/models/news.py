from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FeedSource(CamelModel):
    model_config = ConfigDict(frozen=True)

    url: str = Field(description="Feed URL; identifies the source")
    display_name: str = Field(description="Publisher name shown to readers")
    category: str = Field(description="Registry category the feed belongs to")


class RawItem(CamelModel):
    model_config = ConfigDict(frozen=True)

    title: str = Field(default="Untitled", description="Entry headline")
    link: str = Field(default="", description="Entry URL")
    published_at: datetime = Field(default_factory=utcnow)
    full_content: str = Field(default="", description="content:encoded / Atom content")
    content: str = Field(default="")
    snippet: str = Field(default="", description="Plain-text teaser")
    description: str = Field(default="")

    @property
    def best_content(self) -> str:
        return self.full_content or self.content or self.snippet or self.description or ""


class ParsedFeed(CamelModel):
    source_name: str = Field(description="Display name of the source")
    source_url: str = Field(description="URL the feed was requested from")
    category: str | None = None
    title: str | None = Field(default=None, description="Channel title reported by the feed")
    description: str | None = Field(
        default=None, description="Channel description, or the reason a fetch degraded"
    )
    link: str | None = None
    items: list[RawItem] = Field(default_factory=list)


class EnrichedArticle(CamelModel):
    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=1)
    link: str = Field(min_length=1)
    published_at: datetime
    content: str = ""
    summary: str = ""
    sentiment: str = Field(default="neutral", description="positive | negative | neutral")
    sentiment_score: float = Field(default=0.5, ge=0.0, le=1.0)
    source: str = Field(description="Display name of the originating source")
    category: str
    topics: list[str] = Field(default_factory=list)


class CategoryBucket(CamelModel):
    title: str
    description: str
    sources: list[str] = Field(default_factory=list)
    items: list[EnrichedArticle] = Field(default_factory=list)

    def add_source(self, name: str) -> None:
        if name not in self.sources:
            self.sources.append(name)


class TrendingTopic(CamelModel):
    topic: str
    count: int


class AggregateResponse(CamelModel):
    feeds_by_category: dict[str, CategoryBucket] = Field(default_factory=dict)
    all_articles: list[EnrichedArticle] = Field(
        default_factory=list, description="Deduplicated articles, newest first"
    )
    trending_topics: list[TrendingTopic] = Field(default_factory=list)
    master_summary: str = ""
    generated_at: datetime = Field(default_factory=utcnow)


class CacheSnapshot(CamelModel):
    current: AggregateResponse | None = None
    snapshot_at: datetime | None = None
    per_source_last_refresh: dict[str, datetime] = Field(default_factory=dict)


class RefreshSummary(CamelModel):
    message: str
    articles_processed: int
    categories: int
    duration: str
