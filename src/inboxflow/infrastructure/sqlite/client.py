"""SQLite client: the durable system of record for emails, replies and workflow state."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

from loguru import logger

SCHEMA = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS emails (
    message_id TEXT PRIMARY KEY,
    email_id TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL,
    thread_id TEXT,
    subject TEXT NOT NULL,
    sender TEXT NOT NULL,
    recipients_json TEXT NOT NULL DEFAULT '[]',
    body TEXT NOT NULL,
    received_at TEXT NOT NULL,
    priority TEXT NOT NULL,
    category TEXT NOT NULL,
    triage_json TEXT NOT NULL,
    linked_assets_json TEXT NOT NULL DEFAULT '[]',
    processed_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_emails_user_priority ON emails(user_id, priority);

CREATE TABLE IF NOT EXISTS threads (
    thread_id TEXT PRIMARY KEY,
    subject TEXT NOT NULL,
    participants_json TEXT NOT NULL DEFAULT '[]',
    messages_json TEXT NOT NULL DEFAULT '[]',
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS user_profiles (
    user_id TEXT PRIMARY KEY,
    writing_style_json TEXT,
    signature TEXT
);

CREATE TABLE IF NOT EXISTS watchlists (
    user_id TEXT NOT NULL,
    symbol TEXT NOT NULL,
    PRIMARY KEY (user_id, symbol)
);

CREATE TABLE IF NOT EXISTS reply_suggestions (
    id TEXT PRIMARY KEY,
    thread_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    tone TEXT NOT NULL,
    subject TEXT,
    content TEXT NOT NULL,
    confidence REAL NOT NULL,
    used INTEGER NOT NULL DEFAULT 0,
    sent_message_id TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_reply_suggestions_thread ON reply_suggestions(thread_id);

CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    action TEXT NOT NULL,
    resource_type TEXT NOT NULL,
    resource_id TEXT NOT NULL,
    metadata_json TEXT NOT NULL DEFAULT '{}',
    ts TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sync_cursors (
    grant_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    cursor TEXT,
    last_sync_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS item_failures (
    message_id TEXT PRIMARY KEY,
    grant_id TEXT NOT NULL,
    failure_count INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    status TEXT NOT NULL DEFAULT 'failed' CHECK(status IN ('failed','dead_letter')),
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS alerts (
    email_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    action TEXT,
    priority TEXT NOT NULL,
    read INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    PRIMARY KEY (email_id, kind)
);

CREATE TABLE IF NOT EXISTS tasks (
    source_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    type TEXT NOT NULL,
    priority TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    due_at TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS workflow_instances (
    instance_id TEXT PRIMARY KEY,
    workflow_type TEXT NOT NULL,
    identity TEXT NOT NULL,
    input_json TEXT NOT NULL,
    state TEXT NOT NULL CHECK(state IN ('running','completed','continued','failed')),
    result_json TEXT,
    error TEXT,
    continued_as TEXT,
    heartbeat TEXT,
    heartbeat_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_workflow_active_identity
    ON workflow_instances(identity) WHERE state = 'running';
"""


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteClient:
    """Connection factory and schema owner for the inboxflow database."""

    def __init__(self, db_path: str | Path = "data/inboxflow.db"):
        self.db_path = Path(db_path)
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Create database and tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.connection() as conn:
            conn.executescript(SCHEMA)
        logger.info(f"SQLite database initialized at {self.db_path}")

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections. Commits on success."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
