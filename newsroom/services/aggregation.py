from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Sequence

from ..logging import get_logger
from ..models.news import EnrichedArticle, TrendingTopic
from .ai import AIServiceError, ChatCompletionClient, parse_topics_response
from .text import title_prefix, tokenize

logger = get_logger("aggregation")

TOPICS_PROMPT = (
    "You are a keyword extraction AI specializing in HR, payroll, and employee "
    "benefits. Extract the top 12 topics or keywords from the provided articles. "
    "Respond with a JSON array of objects, each with 'topic' and 'count' properties. "
    "The 'count' should represent the relative importance (1-10). Use short, "
    "specific terms that would work well as hashtags."
)
MASTER_SUMMARY_PROMPT = (
    "You are a news summarization expert specializing in HR, employee benefits, and "
    "payroll news. Create a comprehensive overview of the key trends and important "
    "developments from these articles. Your summary should be 2-4 paragraphs (at "
    "least 6 sentences total) that capture the main themes across HR News, Employee "
    "Benefits News, and Payroll News. Use UK English spelling and terminology throughout."
)

TOPICS_ARTICLES = 15
TOPICS_INPUT_CHARS = 3000
SUMMARY_ARTICLES = 10
SUMMARY_INPUT_CHARS = 4000
MIN_ARTICLES_FOR_AI = 3


def _fingerprint(article: EnrichedArticle) -> tuple[str, str]:
    return title_prefix(article.title), (article.content or "")[:100].lower()


def _similar(a: str, b: str) -> bool:
    return a in b or b in a


def _dedupe_pass(articles: Sequence[EnrichedArticle]) -> list[EnrichedArticle]:
    kept: list[EnrichedArticle] = []
    fingerprints: list[tuple[str, str]] = []
    for article in articles:
        fingerprint = _fingerprint(article)
        for index, seen in enumerate(fingerprints):
            if _similar(fingerprint[0], seen[0]):
                if article.published_at > kept[index].published_at:
                    kept[index] = article
                    fingerprints[index] = fingerprint
                break
        else:
            kept.append(article)
            fingerprints.append(fingerprint)
    return kept


def dedupe_articles(articles: Iterable[EnrichedArticle]) -> list[EnrichedArticle]:
    """Collapse articles whose five-word title prefixes contain one another.

    On a match the newer article wins and takes the older one's position.
    Passes repeat until nothing merges, so the result is a fixed point.
    """
    current = list(articles)
    while True:
        merged = _dedupe_pass(current)
        if len(merged) == len(current):
            return merged
        current = merged


def sort_newest_first(articles: Iterable[EnrichedArticle]) -> list[EnrichedArticle]:
    # sorted() is stable with reverse=True, so equal timestamps keep input order
    return sorted(articles, key=lambda a: a.published_at, reverse=True)


def count_article_topics(
    articles: Iterable[EnrichedArticle], *, limit: int = 8
) -> list[TrendingTopic]:
    counts: Counter[str] = Counter()
    for article in articles:
        counts.update(article.topics)
    return [TrendingTopic(topic=t, count=c) for t, c in counts.most_common(limit)]


def local_trending_topics(
    articles: Iterable[EnrichedArticle], *, limit: int = 10
) -> list[TrendingTopic]:
    """Title words count double; every fifth body word counts once."""
    counts: Counter[str] = Counter()
    for article in articles:
        for word in tokenize(article.title):
            counts[word] += 2
        for word in tokenize(article.content or "")[::5]:
            counts[word] += 1
    return [TrendingTopic(topic=t, count=c) for t, c in counts.most_common(limit)]


def local_master_summary(articles: Sequence[EnrichedArticle]) -> str:
    if not articles:
        return "No recent articles available."
    heads = ", ".join(" ".join(a.title.split()[:3]) for a in articles[:3])
    themes = ", ".join(t.topic for t in local_trending_topics(articles)[:3])
    return (
        f"Recent articles highlight {heads} and other important topics in HR and "
        f"employee benefits. Key themes include {themes}."
    )


@dataclass(slots=True)
class TopicAggregator:
    ai: ChatCompletionClient | None = None

    def __post_init__(self) -> None:
        if self.ai is None:
            self.ai = ChatCompletionClient()

    async def extract_trending_topics(
        self, articles: Sequence[EnrichedArticle]
    ) -> list[TrendingTopic]:
        if len(articles) < MIN_ARTICLES_FOR_AI:
            return local_trending_topics(articles)
        combined = "\n\n".join(
            f"ARTICLE: {a.title}. {a.summary or ''}" for a in articles[:TOPICS_ARTICLES]
        )
        try:
            raw = await self.ai.complete(
                TOPICS_PROMPT,
                combined[:TOPICS_INPUT_CHARS],
                temperature=0.2,
                max_tokens=500,
            )
            topics = parse_topics_response(raw)
        except (AIServiceError, ValueError) as exc:
            logger.warning("topics_ai_failed", error=str(exc))
            return count_article_topics(articles)
        return [TrendingTopic(topic=t, count=c) for t, c in topics]

    async def create_master_summary(self, articles: Sequence[EnrichedArticle]) -> str:
        """Raises :class:`AIServiceError` when the provider gives nothing usable."""
        if len(articles) < MIN_ARTICLES_FOR_AI or not self.ai.enabled:
            return local_master_summary(articles)
        combined = "\n\n".join(
            f"ARTICLE: {a.title}\nSUMMARY: {a.summary}\nCATEGORY: {a.category}"
            for a in articles[:SUMMARY_ARTICLES]
        )
        return await self.ai.complete(
            MASTER_SUMMARY_PROMPT,
            combined[:SUMMARY_INPUT_CHARS],
            temperature=0.3,
            max_tokens=600,
        )
