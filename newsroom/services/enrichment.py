from __future__ import annotations

import asyncio
from dataclasses import dataclass

from ..config import Settings, get_settings
from ..logging import get_logger
from ..models.news import EnrichedArticle, RawItem
from .ai import AIServiceError, ChatCompletionClient, parse_sentiment_response
from .text import (
    SHORT_TEXT,
    clean_html_to_text,
    extract_article_topics,
    local_sentiment,
    local_summary,
)

logger = get_logger("enrichment")

SENTIMENT_PROMPT = (
    "You are a sentiment analysis AI. Analyze the sentiment of the given text and "
    "respond with only a JSON object containing 'sentiment' (positive, negative, or "
    "neutral) and 'score' (0 to 1)."
)
SUMMARY_PROMPT = (
    "You are a text summarization AI. Summarize the following text in 3-4 concise "
    "sentences that capture the main points. Use UK English spelling and terminology."
)

SENTIMENT_INPUT_CHARS = 500
SUMMARY_INPUT_CHARS = 1500
SUMMARY_MIN_CHARS = 500


@dataclass(slots=True)
class ArticleEnricher:
    ai: ChatCompletionClient | None = None
    settings: Settings | None = None

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()
        if self.ai is None:
            self.ai = ChatCompletionClient(settings=self.settings)

    async def analyze_sentiment(self, text: str) -> tuple[str, float]:
        if not text or len(text) < SHORT_TEXT or not self.ai.enabled:
            return local_sentiment(text)
        try:
            raw = await self.ai.complete(
                SENTIMENT_PROMPT,
                text[:SENTIMENT_INPUT_CHARS],
                temperature=0,
                max_tokens=100,
            )
            return parse_sentiment_response(raw)
        except (AIServiceError, ValueError) as exc:
            logger.warning("sentiment_ai_failed", error=str(exc))
            return local_sentiment(text)

    async def summarize(self, text: str) -> str | None:
        if not text or len(text) < SUMMARY_MIN_CHARS:
            return text or None
        if not self.ai.enabled:
            return None
        try:
            summary = await self.ai.complete(
                SUMMARY_PROMPT,
                text[:SUMMARY_INPUT_CHARS],
                temperature=0.3,
                max_tokens=150,
            )
        except AIServiceError as exc:
            logger.warning("summary_ai_failed", error=str(exc))
            return None
        return summary.strip() or None

    async def enrich(self, item: RawItem, source_name: str, category: str) -> EnrichedArticle:
        content = clean_html_to_text(item.best_content) or clean_html_to_text(item.title)
        fallback_summary = local_summary(content)
        topics = extract_article_topics(item.title or "", content)

        def build(summary: str | None, sentiment: str, score: float) -> EnrichedArticle:
            return EnrichedArticle(
                title=item.title or "Untitled",
                link=item.link or "#",
                published_at=item.published_at,
                content=content,
                summary=(summary or "").strip() or fallback_summary,
                sentiment=sentiment,
                sentiment_score=score,
                source=source_name,
                category=category,
                topics=topics,
            )

        try:
            summary, (sentiment, score) = await asyncio.wait_for(
                asyncio.gather(self.summarize(content), self.analyze_sentiment(content)),
                timeout=self.settings.ai_enrich_timeout,
            )
        except asyncio.TimeoutError:
            logger.info("enrichment_timed_out", title=item.title)
            return build(None, "neutral", 0.5)
        except Exception:
            logger.exception("enrichment_failed", title=item.title)
            return build(None, "neutral", 0.5)
        return build(summary, sentiment, score)
