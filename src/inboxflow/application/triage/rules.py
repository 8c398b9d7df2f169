"""Ordered keyword waterfalls for category and urgency.

Each waterfall is an explicit list of ``(predicate, outcome)`` rules evaluated
top to bottom; the first matching rule wins. Reordering the lists changes
behaviour, so keep the most specific rules first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Sequence, TypeVar

from inboxflow.domain.models import Priority

T = TypeVar("T")


@dataclass(frozen=True)
class EmailText:
    """Lower-cased view of the fields the rules look at."""

    combined: str
    sender: str
    ai_priority: Priority | None = None

    @classmethod
    def of(cls, subject: str, body: str, sender: str, ai_priority: Priority | None = None) -> "EmailText":
        return cls(
            combined=f"{subject} {body}".lower(),
            sender=sender.lower(),
            ai_priority=ai_priority,
        )


@dataclass(frozen=True)
class Rule(Generic[T]):
    outcome: T
    confidence: float
    predicate: Callable[[EmailText], bool]


@dataclass(frozen=True)
class Match(Generic[T]):
    value: T
    confidence: float


def contains_any(*keywords: str) -> Callable[[EmailText], bool]:
    return lambda text: any(k in text.combined for k in keywords)


def sender_contains_any(*keywords: str) -> Callable[[EmailText], bool]:
    return lambda text: any(k in text.sender for k in keywords)


def either(*predicates: Callable[[EmailText], bool]) -> Callable[[EmailText], bool]:
    return lambda text: any(p(text) for p in predicates)


def first_match(rules: Sequence[Rule[T]], text: EmailText, default: Match[T]) -> Match[T]:
    for rule in rules:
        if rule.predicate(text):
            return Match(rule.outcome, rule.confidence)
    return default


# ============================================================================
# Category
# ============================================================================

CATEGORY_RULES: tuple[Rule[str], ...] = (
    Rule(
        "newsletter",
        0.9,
        either(contains_any("unsubscribe", "newsletter"), sender_contains_any("news", "digest")),
    ),
    Rule("financial", 0.85, contains_any("invoice", "payment", "receipt", "transaction", "bank", "statement")),
    Rule("scheduling", 0.8, contains_any("meeting", "calendar", "schedule", "appointment", "zoom", "call")),
    Rule("shopping", 0.8, contains_any("order", "shipping", "delivery", "tracking", "package")),
    Rule("security", 0.85, contains_any("password", "security", "verify", "login", "authentication")),
    Rule("support", 0.75, contains_any("support", "help", "ticket", "case number")),
    Rule("promotion", 0.85, contains_any("sale", "discount", "offer", "promo", "% off")),
)
GENERAL = Match("general", 0.5)


def classify_category(subject: str, body: str, sender: str) -> Match[str]:
    return first_match(CATEGORY_RULES, EmailText.of(subject, body, sender), GENERAL)


# ============================================================================
# Urgency
# ============================================================================

URGENT_KEYWORDS = (
    "urgent",
    "asap",
    "immediately",
    "emergency",
    "critical",
    "time sensitive",
    "expires today",
    "action required now",
    "respond immediately",
)
IMPORTANT_KEYWORDS = (
    "important",
    "action required",
    "deadline",
    "due date",
    "reminder",
    "follow up",
    "please respond",
    "awaiting your",
    "need your",
)
LOW_KEYWORDS = (
    "fyi",
    "no action needed",
    "for your information",
    "just wanted to share",
    "no rush",
    "when you have time",
)


def _ai_suggests(priority: Priority) -> Callable[[EmailText], bool]:
    return lambda text: text.ai_priority == priority


URGENCY_RULES: tuple[Rule[Priority], ...] = (
    Rule(Priority.URGENT, 0.9, contains_any(*URGENT_KEYWORDS)),
    Rule(Priority.IMPORTANT, 0.8, contains_any(*IMPORTANT_KEYWORDS)),
    Rule(Priority.LOW, 0.75, contains_any(*LOW_KEYWORDS)),
    Rule(Priority.URGENT, 0.7, _ai_suggests(Priority.URGENT)),
    Rule(Priority.IMPORTANT, 0.7, _ai_suggests(Priority.IMPORTANT)),
)
NORMAL = Match(Priority.NORMAL, 0.6)


def detect_urgency(subject: str, body: str, sender: str, ai_priority: Priority | None = None) -> Match[Priority]:
    return first_match(URGENCY_RULES, EmailText.of(subject, body, sender, ai_priority), NORMAL)
