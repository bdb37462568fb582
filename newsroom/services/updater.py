from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from .. import deadline as checkpoints
from ..config import Settings, get_settings
from ..deadline import Deadline
from ..logging import get_logger
from ..models.news import (
    AggregateResponse,
    CategoryBucket,
    EnrichedArticle,
    FeedSource,
    ParsedFeed,
    TrendingTopic,
)
from ..sources import category_for, load_registry
from .aggregation import (
    TopicAggregator,
    count_article_topics,
    dedupe_articles,
    sort_newest_first,
)
from .ai import AIServiceError, ChatCompletionClient
from .cache import CacheStore
from .enrichment import ArticleEnricher
from .feeds import FeedFetcher

logger = get_logger("updater")

SUMMARY_PREPARING = "Industry news summary is being prepared. Please check back shortly."
NO_ARTICLES = "No articles available at the moment. Please check back later."
NO_FEEDS = "No feeds available at the moment. Please check back later."
REFRESH_ERROR = "An error occurred while fetching news. Please try again later."
DATA_UPDATING = (
    "News data is currently being updated or is not yet available. "
    "Please check back shortly."
)

TOPIC_ARTICLES = 10
SUMMARY_ARTICLES = 8
SIGNIFICANT_NEW_ARTICLES = 2


@dataclass(slots=True)
class IncrementalUpdater:
    # select stale -> throttle -> fetch -> enrich and merge -> dedupe -> topics and summary -> commit
    cache: CacheStore
    fetcher: FeedFetcher | None = None
    enricher: ArticleEnricher | None = None
    aggregator: TopicAggregator | None = None
    registry: Sequence[FeedSource] | None = None
    settings: Settings | None = None
    clock: Callable[[], float] = time.monotonic

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()
        if self.fetcher is None:
            self.fetcher = FeedFetcher(settings=self.settings)
        if self.enricher is None or self.aggregator is None:
            ai = ChatCompletionClient(settings=self.settings)
            if self.enricher is None:
                self.enricher = ArticleEnricher(ai=ai, settings=self.settings)
            if self.aggregator is None:
                self.aggregator = TopicAggregator(ai=ai)
        if self.registry is None:
            self.registry = load_registry(self.settings.sources_file)

    async def refresh(self, force_refresh: bool = False) -> AggregateResponse:
        async with self.cache.lock:
            try:
                return await self._run_pass(force_refresh)
            except Exception:
                logger.exception("refresh_failed", force_refresh=force_refresh)
                if self.cache.current is not None:
                    return self.cache.current
                return AggregateResponse(master_summary=REFRESH_ERROR)

    async def _run_pass(self, force_refresh: bool) -> AggregateResponse:
        await self.cache.hydrate()
        deadline = Deadline(self.settings.update_time_budget, clock=self.clock)
        previous = self.cache.current

        stale = [s for s in self.registry if self.cache.is_stale(s.url, force_refresh)]
        if not stale and previous is not None:
            logger.info("refresh_skipped", reason="nothing_stale")
            return previous

        limit = self.settings.update_max_sources
        if not force_refresh and len(stale) > limit:
            logger.info("refresh_throttled", stale=len(stale), kept=limit)
            stale = stale[:limit]

        feeds = await self._fetch_in_batches(stale, deadline)
        refreshed = [feed for feed in feeds if feed.items]
        logger.info(
            "feeds_collected",
            requested=len(stale),
            fetched=len(feeds),
            with_items=len(refreshed),
        )

        if previous is None or not previous.all_articles:
            if not refreshed:
                response = AggregateResponse(master_summary=NO_FEEDS)
                self.cache.commit(response, [])
                await self.cache.persist()
                return response
            buckets: dict[str, CategoryBucket] = {}
            new_articles = await self._merge_feeds(refreshed, buckets, deadline)
            articles = sort_newest_first(dedupe_articles(new_articles))
            topics, summary = await self._aggregate_cold(articles, deadline)
        else:
            if not refreshed:
                logger.info("refresh_skipped", reason="no_new_items")
                return previous
            buckets = previous.model_copy(deep=True).feeds_by_category
            new_articles = await self._merge_feeds(refreshed, buckets, deadline)
            merged = [article for bucket in buckets.values() for article in bucket.items]
            articles = sort_newest_first(dedupe_articles(merged))
            topics, summary = await self._aggregate_warm(
                articles, previous, len(new_articles), force_refresh, deadline
            )

        response = AggregateResponse(
            feeds_by_category=buckets,
            all_articles=articles,
            trending_topics=topics,
            master_summary=summary,
        )
        self.cache.commit(response, [feed.source_url for feed in refreshed])
        await self.cache.persist()
        logger.info(
            "refresh_completed",
            articles=len(articles),
            new_articles=len(new_articles),
            categories=len(buckets),
            elapsed_s=round(deadline.elapsed(), 3),
        )
        return response

    async def _fetch_in_batches(
        self, sources: Sequence[FeedSource], deadline: Deadline
    ) -> list[ParsedFeed]:
        feeds: list[ParsedFeed] = []
        size = self.settings.update_batch_size
        for start in range(0, len(sources), size):
            if start:
                await asyncio.sleep(self.settings.update_batch_delay)
            if deadline.exceeded(checkpoints.FETCH):
                logger.warning(
                    "fetch_budget_exhausted",
                    fetched=len(feeds),
                    skipped=len(sources) - start,
                )
                break
            feeds.extend(await self.fetcher.fetch_all(sources[start : start + size]))
        return feeds

    def _category_of(self, feed: ParsedFeed) -> str:
        return category_for(feed.source_url, self.registry) or feed.category or "Uncategorized"

    async def _merge_feeds(
        self,
        feeds: Sequence[ParsedFeed],
        buckets: dict[str, CategoryBucket],
        deadline: Deadline,
    ) -> list[EnrichedArticle]:
        produced: list[EnrichedArticle] = []
        for index, feed in enumerate(feeds):
            if deadline.exceeded(checkpoints.PROCESS):
                logger.warning("process_budget_exhausted", skipped=len(feeds) - index)
                break
            category = self._category_of(feed)
            articles = await self._enrich_feed(feed, category)
            if not articles:
                continue

            bucket = buckets.get(category)
            if bucket is None:
                bucket = buckets[category] = CategoryBucket(
                    title=category, description=f"Latest {category} news"
                )
            bucket.add_source(feed.source_name)
            bucket.items = [
                item for item in bucket.items if item.source != feed.source_name
            ] + articles
            produced.extend(articles)
        return produced

    async def _enrich_feed(self, feed: ParsedFeed, category: str) -> list[EnrichedArticle]:
        articles: list[EnrichedArticle] = []
        for index, item in enumerate(feed.items[: self.settings.update_items_per_feed]):
            if index:
                await asyncio.sleep(self.settings.update_item_delay)
            try:
                articles.append(await self.enricher.enrich(item, feed.source_name, category))
            except Exception:
                logger.exception("article_enrich_failed", source=feed.source_name, title=item.title)
        return articles

    async def _trending_topics(
        self, articles: Sequence[EnrichedArticle]
    ) -> list[TrendingTopic]:
        try:
            return await self.aggregator.extract_trending_topics(articles[:TOPIC_ARTICLES])
        except Exception:
            logger.exception("trending_topics_failed")
            return count_article_topics(articles[:TOPIC_ARTICLES])

    async def _master_summary(self, articles: Sequence[EnrichedArticle]) -> str | None:
        try:
            summary = await self.aggregator.create_master_summary(articles[:SUMMARY_ARTICLES])
        except AIServiceError as exc:
            logger.warning("master_summary_failed", error=str(exc))
            return None
        except Exception:
            logger.exception("master_summary_failed")
            return None
        return summary.strip() or None

    async def _aggregate_cold(
        self, articles: Sequence[EnrichedArticle], deadline: Deadline
    ) -> tuple[list[TrendingTopic], str]:
        if not articles:
            return [], NO_ARTICLES
        if deadline.exceeded(checkpoints.TOPICS):
            logger.warning("topics_budget_exhausted")
            return count_article_topics(articles[:TOPIC_ARTICLES]), SUMMARY_PREPARING
        topics = await self._trending_topics(articles)
        if deadline.exceeded(checkpoints.SUMMARY):
            logger.warning("summary_budget_exhausted")
            return topics, SUMMARY_PREPARING
        return topics, await self._master_summary(articles) or SUMMARY_PREPARING

    async def _aggregate_warm(
        self,
        articles: Sequence[EnrichedArticle],
        previous: AggregateResponse,
        new_count: int,
        force_refresh: bool,
        deadline: Deadline,
    ) -> tuple[list[TrendingTopic], str]:
        # the previous summary is kept whenever there is no budget to replace it
        if not articles:
            return [], NO_ARTICLES
        if not force_refresh and new_count <= SIGNIFICANT_NEW_ARTICLES:
            if not new_count:
                return list(previous.trending_topics), previous.master_summary
            return count_article_topics(articles[:TOPIC_ARTICLES]), previous.master_summary
        if deadline.exceeded(checkpoints.TOPICS):
            logger.warning("topics_budget_exhausted")
            return count_article_topics(articles[:TOPIC_ARTICLES]), previous.master_summary
        topics = await self._trending_topics(articles)
        if deadline.exceeded(checkpoints.SUMMARY):
            logger.warning("summary_budget_exhausted")
            return topics, previous.master_summary
        return topics, await self._master_summary(articles) or SUMMARY_PREPARING
