"""Domain models and entities."""

from inboxflow.domain.models import (
    AiClassification,
    AuditEvent,
    EmailSyncStatus,
    Entities,
    GeneratedDraft,
    ItemError,
    Priority,
    ReplySuggestion,
    Sentiment,
    SmartReplyPhase,
    SmartReplyStatus,
    SyncPhase,
    Tone,
    TriagePhase,
    TriageResult,
    TriageStatus,
    WritingStyle,
)

__all__ = [
    "Priority",
    "Sentiment",
    "Tone",
    "SyncPhase",
    "TriagePhase",
    "SmartReplyPhase",
    "Entities",
    "AiClassification",
    "TriageResult",
    "ItemError",
    "EmailSyncStatus",
    "TriageStatus",
    "WritingStyle",
    "GeneratedDraft",
    "ReplySuggestion",
    "SmartReplyStatus",
    "AuditEvent",
]
