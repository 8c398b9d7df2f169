"""Local triage heuristics: extraction, sentiment, category and urgency."""

from inboxflow.application.triage.extraction import extract_entities, extract_tickers, split_signals
from inboxflow.application.triage.reply_validation import ValidationResult, validate_reply
from inboxflow.application.triage.rules import Match, classify_category, detect_urgency
from inboxflow.application.triage.sentiment import detect_sentiment

__all__ = [
    "extract_entities",
    "extract_tickers",
    "split_signals",
    "ValidationResult",
    "validate_reply",
    "Match",
    "classify_category",
    "detect_urgency",
    "detect_sentiment",
]
