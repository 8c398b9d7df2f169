"""Keyword-bucket sentiment scoring."""

from __future__ import annotations

from dataclasses import dataclass

from inboxflow.domain.models import Sentiment

MAX_CONFIDENCE = 0.95


@dataclass(frozen=True)
class KeywordBucket:
    sentiment: Sentiment
    keywords: tuple[str, ...]
    weight: float = 1.0

    def score(self, text: str) -> float:
        return self.weight * sum(1 for k in self.keywords if k in text)


POSITIVE = KeywordBucket(
    Sentiment.POSITIVE,
    (
        "thank", "thanks", "great", "excellent", "happy", "pleased", "appreciate", "good",
        "wonderful", "fantastic", "amazing", "love", "perfect", "awesome", "congratulations",
        "excited", "delighted",
    ),
)
NEGATIVE = KeywordBucket(
    Sentiment.NEGATIVE,
    (
        "urgent", "problem", "issue", "complaint", "disappointed", "concerned", "worried",
        "angry", "frustrated", "terrible", "awful", "horrible", "unacceptable", "failed",
        "error", "mistake", "wrong",
    ),
)


def detect_sentiment(body: str) -> tuple[Sentiment, float]:
    """Return the dominant sentiment and a confidence in [0.5, 0.95]."""
    text = (body or "").lower()
    positive = POSITIVE.score(text)
    negative = NEGATIVE.score(text)

    if positive + negative == 0:
        return Sentiment.NEUTRAL, 0.5
    if positive == negative:
        return Sentiment.NEUTRAL, 0.6

    winner = Sentiment.POSITIVE if positive > negative else Sentiment.NEGATIVE
    confidence = min(0.5 + abs(positive - negative) * 0.1, MAX_CONFIDENCE)
    return winner, round(confidence, 4)
