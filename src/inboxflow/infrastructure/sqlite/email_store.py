"""SQLite implementation of EmailStore."""

from __future__ import annotations

import json
from typing import Optional

from loguru import logger

from inboxflow.application.ports.email_store import EmailStore
from inboxflow.domain.entities.email_message import MailboxMessage, ThreadContext, ThreadMessage
from inboxflow.domain.models import AuditEvent, ReplySuggestion, Tone, TriageResult, WritingStyle
from inboxflow.infrastructure.sqlite.client import SQLiteClient, utcnow_iso

DEFAULT_SIGNATURE = "Best regards"


class SQLiteEmailStore(EmailStore):
    """Emails, threads, reply suggestions, audit trail and the dead-letter ledger."""

    def __init__(self, client: SQLiteClient):
        self.client = client

    # ------------------------------------------------------------------
    # Emails
    # ------------------------------------------------------------------

    async def has_message(self, message_id: str) -> bool:
        with self.client.connection() as conn:
            row = conn.execute("SELECT 1 FROM emails WHERE message_id = ?", (message_id,)).fetchone()
        return row is not None

    async def upsert_triage(self, user_id: str, message: MailboxMessage, result: TriageResult) -> None:
        """Store the first triage result for a message. A stored result is never overwritten."""
        now = utcnow_iso()
        with self.client.connection() as conn:
            conn.execute(
                """INSERT INTO emails (
                       message_id, email_id, user_id, thread_id, subject, sender, recipients_json,
                       body, received_at, priority, category, triage_json, processed_at
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(message_id) DO NOTHING""",
                (
                    message.message_id,
                    message.email_id,
                    user_id,
                    message.thread_id,
                    message.subject,
                    message.sender,
                    json.dumps(list(message.to)),
                    message.body,
                    message.received_at.isoformat(),
                    result.priority.value,
                    result.category,
                    result.model_dump_json(),
                    now,
                ),
            )
            # A message that finally succeeded leaves the failure ledger
            conn.execute("DELETE FROM item_failures WHERE message_id = ? AND status = 'failed'", (message.message_id,))
        logger.debug(f"Stored triage for {message.email_id}: {result.priority.value}/{result.category}")

    async def get_triage(self, message_id: str) -> Optional[TriageResult]:
        with self.client.connection() as conn:
            row = conn.execute("SELECT triage_json FROM emails WHERE message_id = ?", (message_id,)).fetchone()
        if row is None:
            return None
        return TriageResult.model_validate_json(row["triage_json"])

    async def link_assets(self, email_id: str, symbols: list[str]) -> None:
        with self.client.connection() as conn:
            row = conn.execute("SELECT linked_assets_json FROM emails WHERE email_id = ?", (email_id,)).fetchone()
            if row is None:
                logger.warning(f"Cannot link assets, {email_id} not stored")
                return
            linked = json.loads(row["linked_assets_json"])
            merged = linked + [s for s in symbols if s not in linked]
            conn.execute(
                "UPDATE emails SET linked_assets_json = ? WHERE email_id = ?",
                (json.dumps(merged), email_id),
            )

    async def get_linked_assets(self, email_id: str) -> list[str]:
        with self.client.connection() as conn:
            row = conn.execute("SELECT linked_assets_json FROM emails WHERE email_id = ?", (email_id,)).fetchone()
        return json.loads(row["linked_assets_json"]) if row else []

    async def get_watchlist(self, user_id: str) -> set[str]:
        with self.client.connection() as conn:
            rows = conn.execute("SELECT symbol FROM watchlists WHERE user_id = ?", (user_id,)).fetchall()
        return {row["symbol"] for row in rows}

    async def add_to_watchlist(self, user_id: str, symbols: list[str]) -> None:
        with self.client.connection() as conn:
            conn.executemany(
                "INSERT OR IGNORE INTO watchlists (user_id, symbol) VALUES (?, ?)",
                [(user_id, s.upper()) for s in symbols],
            )

    # ------------------------------------------------------------------
    # Threads and profiles
    # ------------------------------------------------------------------

    async def save_thread(self, thread: ThreadContext) -> None:
        messages = [
            {
                "message_id": m.message_id,
                "sender": m.sender,
                "body": m.body,
                "date": m.date,
                "to": list(m.to),
                "subject": m.subject,
            }
            for m in thread.messages
        ]
        with self.client.connection() as conn:
            conn.execute(
                """INSERT INTO threads (thread_id, subject, participants_json, messages_json, updated_at)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(thread_id) DO UPDATE SET
                       subject = excluded.subject,
                       participants_json = excluded.participants_json,
                       messages_json = excluded.messages_json,
                       updated_at = excluded.updated_at""",
                (
                    thread.thread_id,
                    thread.subject,
                    json.dumps(list(thread.participants)),
                    json.dumps(messages),
                    utcnow_iso(),
                ),
            )

    async def get_thread(self, thread_id: str) -> Optional[ThreadContext]:
        with self.client.connection() as conn:
            row = conn.execute("SELECT * FROM threads WHERE thread_id = ?", (thread_id,)).fetchone()
        if row is None:
            return None
        messages = tuple(
            ThreadMessage(
                message_id=m["message_id"],
                sender=m["sender"],
                body=m["body"],
                date=m["date"],
                to=tuple(m.get("to") or ()),
                subject=m.get("subject"),
            )
            for m in json.loads(row["messages_json"])
        )
        return ThreadContext(
            thread_id=row["thread_id"],
            subject=row["subject"],
            messages=messages,
            participants=tuple(json.loads(row["participants_json"])),
        )

    async def save_profile(
        self, user_id: str, style: WritingStyle | None = None, signature: str | None = None
    ) -> None:
        with self.client.connection() as conn:
            conn.execute(
                """INSERT INTO user_profiles (user_id, writing_style_json, signature)
                   VALUES (?, ?, ?)
                   ON CONFLICT(user_id) DO UPDATE SET
                       writing_style_json = COALESCE(excluded.writing_style_json, writing_style_json),
                       signature = COALESCE(excluded.signature, signature)""",
                (user_id, style.model_dump_json() if style else None, signature),
            )

    async def get_writing_style(self, user_id: str) -> WritingStyle:
        with self.client.connection() as conn:
            row = conn.execute(
                "SELECT writing_style_json FROM user_profiles WHERE user_id = ?", (user_id,)
            ).fetchone()
        if row is None or not row["writing_style_json"]:
            return WritingStyle()
        return WritingStyle.model_validate_json(row["writing_style_json"])

    async def get_signature(self, user_id: str) -> str:
        with self.client.connection() as conn:
            row = conn.execute("SELECT signature FROM user_profiles WHERE user_id = ?", (user_id,)).fetchone()
        if row is None or not row["signature"]:
            return DEFAULT_SIGNATURE
        return row["signature"]

    # ------------------------------------------------------------------
    # Reply suggestions
    # ------------------------------------------------------------------

    async def upsert_suggestions(self, thread_id: str, user_id: str, suggestions: list[ReplySuggestion]) -> None:
        """Replace the thread's unused suggestions with ``suggestions``.

        Sent suggestions are kept and never rewritten.
        """
        ids = [s.id for s in suggestions]
        with self.client.connection() as conn:
            conn.execute(
                f"""DELETE FROM reply_suggestions
                    WHERE thread_id = ? AND used = 0 AND id NOT IN ({",".join("?" * len(ids))})""",
                (thread_id, *ids),
            )
            conn.executemany(
                """INSERT INTO reply_suggestions (
                       id, thread_id, user_id, tone, subject, content, confidence, used, created_at
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       subject = excluded.subject,
                       content = excluded.content,
                       confidence = excluded.confidence
                   WHERE used = 0""",
                [
                    (
                        s.id,
                        thread_id,
                        user_id,
                        s.tone.value,
                        s.subject,
                        s.content,
                        s.confidence,
                        int(s.used),
                        s.created_at.isoformat(),
                    )
                    for s in suggestions
                ],
            )
        logger.info(f"Stored {len(suggestions)} reply suggestions for thread {thread_id}")

    async def list_suggestions(self, thread_id: str) -> list[ReplySuggestion]:
        with self.client.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM reply_suggestions WHERE thread_id = ? ORDER BY created_at, rowid",
                (thread_id,),
            ).fetchall()
        return [self._row_to_suggestion(row) for row in rows]

    async def get_suggestion(self, suggestion_id: str) -> Optional[ReplySuggestion]:
        with self.client.connection() as conn:
            row = conn.execute("SELECT * FROM reply_suggestions WHERE id = ?", (suggestion_id,)).fetchone()
        return self._row_to_suggestion(row) if row else None

    async def mark_suggestion_used(self, suggestion_id: str, sent_message_id: str) -> None:
        with self.client.connection() as conn:
            conn.execute(
                "UPDATE reply_suggestions SET used = 1, sent_message_id = ? WHERE id = ?",
                (sent_message_id, suggestion_id),
            )

    @staticmethod
    def _row_to_suggestion(row) -> ReplySuggestion:
        return ReplySuggestion(
            id=row["id"],
            tone=Tone(row["tone"]),
            content=row["content"],
            confidence=row["confidence"],
            subject=row["subject"],
            used=bool(row["used"]),
            created_at=row["created_at"],
        )

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    async def record_audit(self, event: AuditEvent) -> None:
        with self.client.connection() as conn:
            conn.execute(
                """INSERT INTO audit_log (user_id, action, resource_type, resource_id, metadata_json, ts)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    event.user_id,
                    event.action,
                    event.resource_type,
                    event.resource_id,
                    json.dumps(event.metadata, default=str),
                    event.timestamp.isoformat(),
                ),
            )

    async def list_audit(self, user_id: str, action: str | None = None) -> list[AuditEvent]:
        query = "SELECT * FROM audit_log WHERE user_id = ?"
        params: list = [user_id]
        if action:
            query += " AND action = ?"
            params.append(action)
        query += " ORDER BY id"
        with self.client.connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            AuditEvent(
                user_id=row["user_id"],
                action=row["action"],
                resource_type=row["resource_type"],
                resource_id=row["resource_id"],
                metadata=json.loads(row["metadata_json"]),
                timestamp=row["ts"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Dead letters
    # ------------------------------------------------------------------

    async def is_dead_lettered(self, message_id: str) -> bool:
        with self.client.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM item_failures WHERE message_id = ? AND status = 'dead_letter'",
                (message_id,),
            ).fetchone()
        return row is not None

    async def record_failure(self, message_id: str, grant_id: str, error: str, threshold: int) -> bool:
        """Count one more failure. Returns True once the message reaches ``threshold``."""
        with self.client.connection() as conn:
            conn.execute(
                """INSERT INTO item_failures (message_id, grant_id, failure_count, last_error, updated_at)
                   VALUES (?, ?, 1, ?, ?)
                   ON CONFLICT(message_id) DO UPDATE SET
                       failure_count = failure_count + 1,
                       last_error = excluded.last_error,
                       updated_at = excluded.updated_at""",
                (message_id, grant_id, error, utcnow_iso()),
            )
            row = conn.execute(
                "SELECT failure_count FROM item_failures WHERE message_id = ?", (message_id,)
            ).fetchone()
            dead = row["failure_count"] >= threshold
            if dead:
                conn.execute(
                    "UPDATE item_failures SET status = 'dead_letter' WHERE message_id = ?", (message_id,)
                )
        if dead:
            logger.warning(f"Message {message_id} dead-lettered after {row['failure_count']} failures")
        return dead

    async def list_dead_letters(self, grant_id: str) -> list[dict]:
        with self.client.connection() as conn:
            rows = conn.execute(
                """SELECT message_id, failure_count, last_error, updated_at FROM item_failures
                   WHERE grant_id = ? AND status = 'dead_letter' ORDER BY updated_at""",
                (grant_id,),
            ).fetchall()
        return [dict(row) for row in rows]
