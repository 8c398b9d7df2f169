"""Pattern-based entity and ticker extraction. Pure functions, never raise."""

from __future__ import annotations

import re
from typing import Iterable

from inboxflow.domain.models import Entities

AMOUNT_PATTERN = re.compile(
    r"\$\d+(?:,\d{3})*(?:\.\d{2})?|\b\d+(?:,\d{3})*(?:\.\d{2})?\s*(?:USD|dollars?)\b",
    re.IGNORECASE,
)
DATE_PATTERN = re.compile(
    r"\b(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\s+\d{1,2}(?:,?\s+\d{4})?"
    r"|\b\d{1,2}/\d{1,2}/\d{2,4}\b",
    re.IGNORECASE,
)
EMAIL_PATTERN = re.compile(r"[\w.-]+@[\w.-]+\.\w+")
COMPANY_PATTERN = re.compile(r"\b[A-Z][a-zA-Z]+(?:\s+[A-Z][a-zA-Z]+)*\s+(?:Inc|Corp|LLC|Ltd|Company|Co)\b")
TICKER_PATTERN = re.compile(r"\b[A-Z]{1,5}\b")
CASHTAG_PATTERN = re.compile(r"\$([A-Z]{1,5})\b")

MAX_TICKERS = 20

# Uppercase words that look like tickers but almost never are
TICKER_STOP_WORDS = frozenset(
    {
        "I", "A", "THE", "AND", "OR", "FOR", "TO", "IN", "ON", "AT", "IS", "IT", "BE", "AS",
        "BY", "AN", "IF", "NO", "SO", "UP", "DO", "MY", "WE", "PM", "AM", "RE", "FW", "CC",
        "BCC", "USD", "CEO", "CFO", "CTO", "COO", "VP", "SVP", "EVP", "HR", "PR", "FAQ",
        "TBD", "ETA", "FYI", "ASAP", "PDF", "URL", "USA", "UK", "EU", "NY", "CA", "TX",
    }
)


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


def extract_entities(body: str) -> Entities:
    """Pull people (email addresses), companies, amounts and dates from a body."""
    body = body or ""
    return Entities(
        people=_unique(EMAIL_PATTERN.findall(body)),
        companies=_unique(m.group(0) for m in COMPANY_PATTERN.finditer(body)),
        amounts=_unique(m.group(0) for m in AMOUNT_PATTERN.finditer(body)),
        dates=_unique(m.group(0) for m in DATE_PATTERN.finditer(body)),
    )


def extract_tickers(body: str, extra: Iterable[str] = ()) -> list[str]:
    """Ticker-like tokens in the body plus ``extra`` symbols, deduplicated, at most 20."""
    body = body or ""
    words = [t for t in TICKER_PATTERN.findall(body) if t not in TICKER_STOP_WORDS]
    cashtags = CASHTAG_PATTERN.findall(body)
    suggested = [s.strip().upper().lstrip("$") for s in extra if s and s.strip()]
    return _unique([*words, *cashtags, *suggested])[:MAX_TICKERS]


def split_signals(tickers: Iterable[str], watchlist: Iterable[str]) -> tuple[list[str], list[str]]:
    """Split tickers into (confirmed, candidates) against the user's watch-list."""
    watched = {s.upper() for s in watchlist}
    confirmed: list[str] = []
    candidates: list[str] = []
    for ticker in tickers:
        (confirmed if ticker.upper() in watched else candidates).append(ticker)
    return confirmed, candidates
