from __future__ import annotations
from typing import Optional, Protocol

from inboxflow.domain.entities.email_message import MailboxMessage, ThreadContext
from inboxflow.domain.models import AuditEvent, ReplySuggestion, TriageResult, WritingStyle


class EmailStore(Protocol):
    """System of record. Every write is an idempotent upsert keyed by a stable id."""

    async def has_message(self, message_id: str) -> bool: ...
    async def upsert_triage(self, user_id: str, message: MailboxMessage, result: TriageResult) -> None: ...
    async def link_assets(self, email_id: str, symbols: list[str]) -> None: ...
    async def get_watchlist(self, user_id: str) -> set[str]: ...

    async def get_thread(self, thread_id: str) -> Optional[ThreadContext]: ...
    async def get_writing_style(self, user_id: str) -> WritingStyle: ...
    async def get_signature(self, user_id: str) -> str: ...
    async def upsert_suggestions(self, thread_id: str, user_id: str, suggestions: list[ReplySuggestion]) -> None: ...
    async def get_suggestion(self, suggestion_id: str) -> Optional[ReplySuggestion]: ...
    async def mark_suggestion_used(self, suggestion_id: str, sent_message_id: str) -> None: ...

    async def record_audit(self, event: AuditEvent) -> None: ...

    # Dead-letter ledger for items that keep failing across epochs
    async def is_dead_lettered(self, message_id: str) -> bool: ...
    async def record_failure(self, message_id: str, grant_id: str, error: str, threshold: int) -> bool: ...
