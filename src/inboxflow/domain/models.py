"""Domain models for inboxflow workflows."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Priority(str, Enum):
    """Triage priority levels."""

    URGENT = "urgent"
    IMPORTANT = "important"
    NORMAL = "normal"
    LOW = "low"


class Sentiment(str, Enum):
    """Overall tone of an email body."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class Tone(str, Enum):
    """Tone variants for generated replies."""

    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    CONCISE = "concise"


class SyncPhase(str, Enum):
    SYNCING = "syncing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TriagePhase(str, Enum):
    ANALYZING = "analyzing"
    EXTRACTING = "extracting"
    CLASSIFYING = "classifying"
    COMPLETED = "completed"
    FAILED = "failed"


class SmartReplyPhase(str, Enum):
    LOADING_CONTEXT = "loading_context"
    ANALYZING_STYLE = "analyzing_style"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


# ============================================================================
# Triage
# ============================================================================


class Entities(BaseModel):
    """Entities pulled out of an email body by pattern matching."""

    model_config = ConfigDict(frozen=True)

    people: list[str] = Field(default_factory=list)
    companies: list[str] = Field(default_factory=list)
    amounts: list[str] = Field(default_factory=list)
    dates: list[str] = Field(default_factory=list)


class AiClassification(BaseModel):
    """Raw classification returned by the AI service."""

    priority: Priority = Priority.NORMAL
    category: str = "uncategorized"
    summary: str = ""
    suggested_action: str = "Review email"
    tickers: list[str] = Field(default_factory=list)
    requires_response: bool = False
    estimated_response_time: int = 5
    confidence: float = 0.8

    @classmethod
    def conservative(cls, subject: str) -> "AiClassification":
        """Default used when the classifier is unavailable."""
        return cls(summary=subject, confidence=0.5)


class TriageResult(BaseModel):
    """Final triage outcome for one email. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    email_id: str
    message_id: str
    priority: Priority
    category: str
    summary: str
    suggested_action: str
    related_tickers: list[str] = Field(default_factory=list)
    confirmed_signals: list[str] = Field(default_factory=list)
    candidate_signals: list[str] = Field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL
    entities: Entities = Field(default_factory=Entities)
    requires_response: bool = False
    estimated_response_time: int = 5
    confidence: float = 0.5


class ItemError(BaseModel):
    """A per-item failure recorded without aborting the batch."""

    email_id: str
    error: str


class EmailSyncStatus(BaseModel):
    """Live status of one sync epoch."""

    sync_id: str
    grant_id: str
    phase: SyncPhase = SyncPhase.SYNCING
    emails_fetched: int = 0
    emails_processed: int = 0
    emails_triaged: int = 0
    urgent_alerts_created: int = 0
    trading_signals_detected: int = 0
    dead_lettered: int = 0
    cursor: str | None = None
    last_processed_at: datetime | None = None
    errors: list[ItemError] = Field(default_factory=list)


class TriageStatus(BaseModel):
    """Live status of a single-email triage."""

    email_id: str
    phase: TriagePhase = TriagePhase.ANALYZING
    result: TriageResult | None = None
    confidence: float = 0.0


# ============================================================================
# Smart replies
# ============================================================================


class WritingStyle(BaseModel):
    """How the user usually writes."""

    preferred_tone: str = "professional"
    formality_level: int = 7
    average_reply_length: int = 150
    common_phrases: list[str] = Field(
        default_factory=lambda: ["Best regards", "Thank you", "Please let me know"]
    )


class GeneratedDraft(BaseModel):
    """An unvalidated reply variant from the AI service."""

    tone: Tone = Tone.PROFESSIONAL
    content: str = ""
    subject: str | None = None
    confidence: float = 0.5


class ReplySuggestion(BaseModel):
    """A validated reply ready to be shown to the user."""

    id: str
    tone: Tone
    content: str
    confidence: float
    subject: str | None = None
    used: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


class SmartReplyStatus(BaseModel):
    """Live status of a smart-reply generation."""

    thread_id: str
    phase: SmartReplyPhase = SmartReplyPhase.LOADING_CONTEXT
    suggestions: list[ReplySuggestion] = Field(default_factory=list)


# ============================================================================
# Audit
# ============================================================================


class AuditEvent(BaseModel):
    """Append-only audit record."""

    user_id: str
    action: str
    resource_type: str
    resource_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)
