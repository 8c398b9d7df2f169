from __future__ import annotations
from typing import Protocol

from inboxflow.domain.entities.email_message import ThreadContext, ThreadMessage
from inboxflow.domain.models import AiClassification, GeneratedDraft, WritingStyle


class AiService(Protocol):
    async def classify(self, subject: str, body: str, sender: str) -> AiClassification: ...

    async def generate(
        self,
        thread: ThreadContext,
        latest: ThreadMessage,
        style: WritingStyle,
        signature: str,
    ) -> list[GeneratedDraft]: ...
