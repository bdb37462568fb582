from __future__ import annotations

import re
from collections import Counter

from bs4 import BeautifulSoup

_whitespace_re = re.compile(r"\s+")
_non_word_re = re.compile(r"\W+")
_sentence_re = re.compile(r"[^.!?]+[.!?]+")

STOPWORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for", "with",
        "by", "about", "as", "of", "this", "that", "these", "those", "is", "are",
        "was", "were", "be", "been", "being", "have", "has", "had", "do", "does",
        "did", "will", "would", "shall", "should", "can", "could", "may", "might",
        "must", "from", "what", "when", "where", "how", "all", "any", "both", "each",
    }
)

POSITIVE_WORDS = (
    "good", "great", "excellent", "amazing", "positive", "benefit", "benefits",
    "advantage", "advantages", "improve", "improvement", "success", "successful",
    "growth", "opportunity", "opportunities",
)
NEGATIVE_WORDS = (
    "bad", "poor", "terrible", "negative", "problem", "problems", "issue", "issues",
    "fail", "failure", "decline", "crisis", "difficult", "challenge", "challenging",
)

_positive_re = re.compile(r"\b(?:" + "|".join(POSITIVE_WORDS) + r")\b")
_negative_re = re.compile(r"\b(?:" + "|".join(NEGATIVE_WORDS) + r")\b")

SHORT_TEXT = 100


def clean_html_to_text(raw_html: str | None) -> str:
    """Strip tags and collapse whitespace; entities are decoded once by the parser."""
    if not raw_html:
        return ""
    if "<" not in raw_html and "&" not in raw_html:
        return _whitespace_re.sub(" ", raw_html).strip()
    soup = BeautifulSoup(raw_html, "html.parser")
    text = soup.get_text(" ")
    return _whitespace_re.sub(" ", text).strip()


def tokenize(text: str) -> list[str]:
    """Lower-case word tokens longer than three characters, stopwords removed."""
    return [
        word
        for word in _non_word_re.split(text.lower())
        if len(word) > 3 and word not in STOPWORDS
    ]


def local_summary(text: str) -> str:
    """First three sentences, or the text itself when it is short."""
    if not text or len(text) < SHORT_TEXT:
        return text or "No content available"
    sentences = [s.strip() for s in _sentence_re.findall(text)]
    if len(sentences) <= 3:
        return text
    return " ".join(sentences[:3])


def extract_article_topics(title: str, content: str, *, limit: int = 5) -> list[str]:
    counts: Counter[str] = Counter()
    for word in tokenize(title):
        counts[word] += 3
    for word in tokenize(content):
        counts[word] += 1
    return [word for word, _ in counts.most_common(limit)]


def local_sentiment(text: str) -> tuple[str, float]:
    """Keyword-count sentiment: (label, score in [0, 1])."""
    lowered = (text or "").lower()
    positive = len(_positive_re.findall(lowered))
    negative = len(_negative_re.findall(lowered))
    total = positive + negative
    if total == 0:
        return "neutral", 0.5
    score = positive / total
    if score > 0.67:
        return "positive", score
    if score < 0.33:
        return "negative", score
    return "neutral", score


def title_prefix(title: str, words: int = 5) -> str:
    return " ".join(title.lower().split()[:words])
