from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class MailboxMessage:
    message_id: str
    subject: str
    body: str
    sender: str
    to: tuple[str, ...] = ()
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    thread_id: Optional[str] = None

    @property
    def email_id(self) -> str:
        # Stable store key derived from the provider message id
        return f"email_{self.message_id}"


@dataclass(frozen=True)
class ThreadMessage:
    message_id: str
    sender: str
    body: str
    date: str
    to: tuple[str, ...] = ()
    subject: Optional[str] = None


@dataclass(frozen=True)
class ThreadContext:
    thread_id: str
    subject: str
    messages: tuple[ThreadMessage, ...] = ()
    participants: tuple[str, ...] = ()

    @property
    def latest(self) -> Optional[ThreadMessage]:
        return self.messages[-1] if self.messages else None
