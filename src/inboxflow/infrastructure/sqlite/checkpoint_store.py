"""SQLite-based checkpoint store for mailbox sync cursors."""

from __future__ import annotations

from typing import Optional

from loguru import logger

from inboxflow.application.ports.checkpoint_store import CheckpointStore, SyncCursor
from inboxflow.infrastructure.sqlite.client import SQLiteClient, utcnow_iso


class SQLiteCheckpointStore(CheckpointStore):
    """Store one sync cursor per mailbox grant."""

    def __init__(self, client: SQLiteClient):
        self.client = client

    async def load(self, grant_id: str) -> Optional[SyncCursor]:
        """Load checkpoint for a grant."""
        with self.client.connection() as conn:
            row = conn.execute("SELECT cursor FROM sync_cursors WHERE grant_id = ?", (grant_id,)).fetchone()

        if row is None:
            logger.debug(f"No checkpoint found for {grant_id}")
            return None

        logger.debug(f"Loaded checkpoint for {grant_id}: {row['cursor']}")
        return SyncCursor(grant_id=grant_id, token=row["cursor"])

    async def save(self, user_id: str, cursor: SyncCursor) -> None:
        """Save checkpoint for a grant. A None token marks the end of the mailbox."""
        with self.client.connection() as conn:
            conn.execute(
                """INSERT INTO sync_cursors (grant_id, user_id, cursor, last_sync_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(grant_id) DO UPDATE SET
                       user_id = excluded.user_id,
                       cursor = excluded.cursor,
                       last_sync_at = excluded.last_sync_at""",
                (cursor.grant_id, user_id, cursor.token, utcnow_iso()),
            )
        logger.info(f"Saved checkpoint for {cursor.grant_id}: {cursor.token}")
