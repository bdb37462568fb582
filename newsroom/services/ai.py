from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import Settings, get_settings
from ..http_client import get_http_client
from ..logging import get_logger

logger = get_logger("ai")

_json_object_re = re.compile(r"\{[\s\S]*\}")
_json_array_re = re.compile(r"\[[\s\S]*\]")


class AIServiceError(Exception):
    """The completion provider failed or returned nothing usable."""


class AIUnavailableError(AIServiceError):
    """No API key is configured; callers should use their local fallback."""


@dataclass(slots=True)
class ChatCompletionClient:
    # a 429 gets one fixed backoff and a single retry
    settings: Settings | None = None
    client: httpx.AsyncClient | None = None

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()

    @property
    def enabled(self) -> bool:
        return bool(self.settings.ai_api_key)

    async def complete(
        self,
        system: str,
        user: str,
        *,
        temperature: float = 0.2,
        max_tokens: int = 300,
    ) -> str:
        if not self.enabled:
            raise AIUnavailableError("AI_API_KEY is not configured")

        client = self.client or await get_http_client()
        url = f"{str(self.settings.ai_base_url).rstrip('/')}/chat/completions"
        payload = {
            "model": self.settings.ai_model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.settings.ai_api_key}"}

        try:
            response = await client.post(
                url, json=payload, headers=headers, timeout=self.settings.ai_timeout
            )
            if response.status_code == 429:
                logger.warning(
                    "ai_rate_limited", backoff_s=self.settings.ai_rate_limit_backoff
                )
                await asyncio.sleep(self.settings.ai_rate_limit_backoff)
                response = await client.post(
                    url, json=payload, headers=headers, timeout=self.settings.ai_timeout
                )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AIServiceError(f"completion request failed: {exc}") from exc

        choices = data.get("choices") or []
        if not choices:
            raise AIServiceError("completion returned no choices")
        content = (choices[0].get("message") or {}).get("content") or ""
        content = content.strip()
        if not content:
            raise AIServiceError("completion returned empty content")
        return content


def extract_json_object(raw: str) -> dict[str, Any]:
    match = _json_object_re.search(raw or "")
    if not match:
        raise ValueError("No JSON object found in AI response")
    obj = json.loads(match.group(0))
    if not isinstance(obj, dict):
        raise ValueError("AI response JSON is not an object")
    return obj


def extract_json_array(raw: str) -> list[Any]:
    match = _json_array_re.search(raw or "")
    if not match:
        raise ValueError("No JSON array found in AI response")
    arr = json.loads(match.group(0))
    if not isinstance(arr, list):
        raise ValueError("AI response JSON is not an array")
    return arr


def parse_sentiment_response(raw: str) -> tuple[str, float]:
    """Validate ``{"sentiment": str, "score": number}``; unknown labels become neutral."""
    obj = extract_json_object(raw)
    label = obj.get("sentiment")
    score = obj.get("score")
    if not isinstance(label, str) or not label.strip():
        raise ValueError("'sentiment' must be a non-empty string")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise ValueError(f"Invalid score '{score}'")
    label = label.strip().lower()
    if label not in {"positive", "negative", "neutral"}:
        label = "neutral"
    return label, max(0.0, min(1.0, float(score)))


def parse_topics_response(raw: str) -> list[tuple[str, int]]:
    """Parse ``[{"topic"|"keyword": str, "count"|"importance": int}, ...]``."""
    topics: list[tuple[str, int]] = []
    for entry in extract_json_array(raw):
        if not isinstance(entry, dict):
            continue
        topic = entry.get("topic") or entry.get("keyword") or ""
        if not isinstance(topic, str) or not topic.strip():
            continue
        count = entry.get("count") or entry.get("importance") or 1
        try:
            count = int(count)
        except (TypeError, ValueError):
            count = 1
        topics.append((topic.strip(), count))
    if not topics:
        raise ValueError("AI response contained no topics")
    return topics
