"""
Shared pytest fixtures for inboxflow tests.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional

import pytest

from inboxflow.application.ports import MailboxPage, OutgoingMessage
from inboxflow.application.workflow.retry import RetryingActivityInvoker
from inboxflow.application.workflow.status import StatusRegister
from inboxflow.domain.entities.email_message import MailboxMessage, ThreadContext, ThreadMessage
from inboxflow.domain.models import AiClassification, GeneratedDraft, Priority, Tone, WritingStyle
from inboxflow.infrastructure.sqlite import (
    SQLiteCheckpointStore,
    SQLiteClient,
    SQLiteEmailStore,
    SQLiteNotificationSink,
)


def make_message(n: int | str, subject: str = "Hello", body: str = "Just checking in.", sender: str = "a@b.com"):
    """Helper to create a mailbox message with a stable id."""
    return MailboxMessage(
        message_id=f"msg-{n}",
        subject=subject,
        body=body,
        sender=sender,
        to=("me@example.com",),
        received_at=datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc),
        thread_id=f"thread-{n}",
    )


class FakeContext:
    """Workflow context that records sleeps and heartbeats instead of waiting."""

    def __init__(self, instance_id: str = "test-instance"):
        self.instance_id = instance_id
        self.sleeps: list[float] = []
        self.heartbeats: list[str] = []
        self.register = StatusRegister()

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    def heartbeat(self, detail: str) -> None:
        self.heartbeats.append(detail)

    def register_query(self, name: str, handler: Callable[[], Any]) -> None:
        self.register.register(self.instance_id, name, handler)

    def query(self, name: str | None = None) -> Any:
        return self.register.query(self.instance_id, name)


class FakeMailbox:
    """Mailbox serving pre-built pages keyed by cursor (None is the head)."""

    def __init__(self, pages: Optional[dict[Optional[str], MailboxPage]] = None):
        self.pages = pages or {}
        self.messages: dict[str, MailboxMessage] = {}
        self.fetches: list[Optional[str]] = []
        self.sent: list[tuple[str, OutgoingMessage]] = []
        self.fail_on: dict[Optional[str], Exception] = {}

    async def fetch_page(self, grant_id: str, cursor: Optional[str], limit: int) -> MailboxPage:
        self.fetches.append(cursor)
        if cursor in self.fail_on:
            raise self.fail_on[cursor]
        return self.pages.get(cursor, MailboxPage(items=()))

    async def get_message(self, grant_id: str, message_id: str) -> MailboxMessage:
        return self.messages[message_id]

    async def send_message(self, grant_id: str, message: OutgoingMessage) -> str:
        self.sent.append((grant_id, message))
        return f"sent-{len(self.sent)}"


def paged_mailbox(*sizes: int) -> FakeMailbox:
    """A mailbox whose pages hold ``sizes`` messages each, chained by cursor."""
    pages: dict[Optional[str], MailboxPage] = {}
    cursor: Optional[str] = None
    n = 0
    for index, size in enumerate(sizes):
        items = tuple(make_message(n + i) for i in range(size))
        n += size
        next_cursor = f"page-{index + 2}" if index + 1 < len(sizes) else None
        pages[cursor] = MailboxPage(items=items, next_cursor=next_cursor)
        cursor = next_cursor
    return FakeMailbox(pages)


class FakeAi:
    """AI service returning canned classifications and drafts."""

    def __init__(
        self,
        classification: AiClassification | None = None,
        drafts: list[GeneratedDraft] | None = None,
    ):
        self.classification = classification or AiClassification(
            priority=Priority.NORMAL, category="work", summary="A summary", suggested_action="Read it"
        )
        self.drafts = drafts if drafts is not None else [
            GeneratedDraft(tone=Tone.PROFESSIONAL, content="Thanks, I will review this today.\n\nBest, Sam", confidence=0.85),
            GeneratedDraft(tone=Tone.FRIENDLY, content="Thanks so much! Will look today.\n\nBest, Sam", confidence=0.8),
        ]
        self.classify_calls: list[str] = []
        self.generate_calls: list[tuple[ThreadContext, ThreadMessage, WritingStyle, str]] = []
        self.classify_error: Exception | None = None
        self.generate_error: Exception | None = None

    async def classify(self, subject: str, body: str, sender: str) -> AiClassification:
        self.classify_calls.append(subject)
        if self.classify_error is not None:
            raise self.classify_error
        return self.classification

    async def generate(self, thread, latest, style, signature) -> list[GeneratedDraft]:
        self.generate_calls.append((thread, latest, style, signature))
        if self.generate_error is not None:
            raise self.generate_error
        return self.drafts


class RecordingNotifier:
    """Notification sink that records every call."""

    def __init__(self):
        self.alerts: list[str] = []
        self.tasks: list[str] = []
        self.notifications: list[str] = []
        self.error: Exception | None = None

    async def create_alert(self, user_id, email_id, subject, summary, suggested_action) -> None:
        if self.error is not None:
            raise self.error
        self.alerts.append(email_id)

    async def create_task(self, user_id, email_id, priority, suggested_action, due_in_minutes) -> None:
        if self.error is not None:
            raise self.error
        self.tasks.append(email_id)

    async def notify(self, user_id, email_id, priority, summary) -> None:
        if self.error is not None:
            raise self.error
        self.notifications.append(email_id)


class RecordingSleep:
    """Awaitable sleep that only records the requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def ctx() -> FakeContext:
    return FakeContext()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def invoker(sleep) -> RetryingActivityInvoker:
    """Invoker with zero jitter and no real waiting."""
    return RetryingActivityInvoker(sleep=sleep, rng=lambda: 0.0)


@pytest.fixture
def ai() -> FakeAi:
    return FakeAi()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def sqlite_client(tmp_path) -> SQLiteClient:
    return SQLiteClient(tmp_path / "inboxflow.db")


@pytest.fixture
def store(sqlite_client) -> SQLiteEmailStore:
    return SQLiteEmailStore(sqlite_client)


@pytest.fixture
def checkpoints(sqlite_client) -> SQLiteCheckpointStore:
    return SQLiteCheckpointStore(sqlite_client)


@pytest.fixture
def sink(sqlite_client) -> SQLiteNotificationSink:
    return SQLiteNotificationSink(sqlite_client)


@pytest.fixture
def sample_thread() -> ThreadContext:
    return ThreadContext(
        thread_id="thread-1",
        subject="Quarterly numbers",
        messages=(
            ThreadMessage(message_id="m1", sender="me@example.com", body="Here are the numbers.", date="2026-01-01"),
            ThreadMessage(
                message_id="m2",
                sender="boss@example.com",
                body="Can you walk me through the AAPL position?",
                date="2026-01-02",
            ),
        ),
        participants=("me@example.com", "boss@example.com"),
    )
