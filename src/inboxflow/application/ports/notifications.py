from __future__ import annotations
from typing import Protocol

from inboxflow.domain.models import Priority


class NotificationSink(Protocol):
    async def create_alert(
        self, user_id: str, email_id: str, subject: str, summary: str, suggested_action: str
    ) -> None: ...

    async def create_task(
        self, user_id: str, email_id: str, priority: Priority, suggested_action: str, due_in_minutes: int
    ) -> None: ...

    async def notify(self, user_id: str, email_id: str, priority: Priority, summary: str) -> None: ...
