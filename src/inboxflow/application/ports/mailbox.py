from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Protocol

from inboxflow.domain.entities.email_message import MailboxMessage


@dataclass(frozen=True)
class MailboxPage:
    items: tuple[MailboxMessage, ...]
    # Absent when the mailbox is exhausted
    next_cursor: Optional[str] = None


@dataclass(frozen=True)
class OutgoingMessage:
    to: tuple[str, ...]
    subject: str
    body: str
    in_reply_to: Optional[str] = None


class MailboxProvider(Protocol):
    async def fetch_page(self, grant_id: str, cursor: Optional[str], limit: int) -> MailboxPage: ...
    async def get_message(self, grant_id: str, message_id: str) -> MailboxMessage: ...
    async def send_message(self, grant_id: str, message: OutgoingMessage) -> str: ...
