from .aggregation import TopicAggregator, dedupe_articles, sort_newest_first
from .ai import AIServiceError, AIUnavailableError, ChatCompletionClient
from .cache import CacheStore, NullSink, PersistenceSink, RestKVSink, build_sink
from .enrichment import ArticleEnricher
from .feeds import FeedFetchError, FeedFetcher, FeedParseError
from .updater import IncrementalUpdater

__all__ = [
    "AIServiceError",
    "AIUnavailableError",
    "ArticleEnricher",
    "CacheStore",
    "ChatCompletionClient",
    "FeedFetchError",
    "FeedFetcher",
    "FeedParseError",
    "IncrementalUpdater",
    "NullSink",
    "PersistenceSink",
    "RestKVSink",
    "TopicAggregator",
    "build_sink",
    "dedupe_articles",
    "sort_newest_first",
]
