"""Alerts, tasks and in-app notifications persisted to SQLite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from loguru import logger

from inboxflow.application.ports.notifications import NotificationSink
from inboxflow.domain.models import Priority
from inboxflow.infrastructure.sqlite.client import SQLiteClient, utcnow_iso


class SQLiteNotificationSink(NotificationSink):
    """Every write is keyed on the email id, so replays never duplicate."""

    def __init__(self, client: SQLiteClient):
        self.client = client

    async def create_alert(
        self, user_id: str, email_id: str, subject: str, summary: str, suggested_action: str
    ) -> None:
        self._insert_alert(
            kind="urgent_email",
            user_id=user_id,
            email_id=email_id,
            title=f"Urgent: {subject}",
            message=summary,
            action=suggested_action,
            priority="high",
        )
        logger.info(f"Urgent alert for {email_id}")

    async def notify(self, user_id: str, email_id: str, priority: Priority, summary: str) -> None:
        self._insert_alert(
            kind="email_triage",
            user_id=user_id,
            email_id=email_id,
            title=f"{priority.value.capitalize()} email",
            message=summary,
            action=None,
            priority="medium" if priority == Priority.IMPORTANT else "low",
        )

    async def create_task(
        self, user_id: str, email_id: str, priority: Priority, suggested_action: str, due_in_minutes: int
    ) -> None:
        now = datetime.now(timezone.utc)
        due_at = now + timedelta(minutes=due_in_minutes)
        with self.client.connection() as conn:
            conn.execute(
                """INSERT OR IGNORE INTO tasks (source_id, user_id, title, type, priority, due_at, created_at)
                   VALUES (?, ?, ?, 'email_response', ?, ?, ?)""",
                (email_id, user_id, suggested_action, priority.value, due_at.isoformat(), now.isoformat()),
            )

    async def list_alerts(self, user_id: str) -> list[dict]:
        with self.client.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM alerts WHERE user_id = ? ORDER BY created_at, rowid", (user_id,)
            ).fetchall()
        return [dict(row) for row in rows]

    async def list_tasks(self, user_id: str) -> list[dict]:
        with self.client.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE user_id = ? ORDER BY created_at, rowid", (user_id,)
            ).fetchall()
        return [dict(row) for row in rows]

    def _insert_alert(
        self,
        kind: str,
        user_id: str,
        email_id: str,
        title: str,
        message: str,
        action: str | None,
        priority: str,
    ) -> None:
        with self.client.connection() as conn:
            conn.execute(
                """INSERT OR IGNORE INTO alerts (email_id, kind, user_id, title, message, action, priority, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (email_id, kind, user_id, title, message, action, priority, utcnow_iso()),
            )
