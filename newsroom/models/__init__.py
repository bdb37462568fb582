from .news import (
    AggregateResponse,
    CacheSnapshot,
    CategoryBucket,
    EnrichedArticle,
    FeedSource,
    ParsedFeed,
    RawItem,
    RefreshSummary,
    TrendingTopic,
)

__all__ = [
    "AggregateResponse",
    "CacheSnapshot",
    "CategoryBucket",
    "EnrichedArticle",
    "FeedSource",
    "ParsedFeed",
    "RawItem",
    "RefreshSummary",
    "TrendingTopic",
]
