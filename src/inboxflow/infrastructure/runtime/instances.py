"""Durable workflow instance rows."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from inboxflow.domain.errors import WorkflowAlreadyRunningError
from inboxflow.infrastructure.sqlite.client import SQLiteClient, utcnow_iso

RUNNING = "running"
COMPLETED = "completed"
CONTINUED = "continued"
FAILED = "failed"


@dataclass(frozen=True)
class InstanceRecord:
    instance_id: str
    workflow_type: str
    identity: str
    input_json: str
    state: str
    result_json: Optional[str] = None
    error: Optional[str] = None
    continued_as: Optional[str] = None
    heartbeat: Optional[str] = None
    heartbeat_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class InstanceStore:
    """One row per workflow instance; at most one running row per identity."""

    def __init__(self, client: SQLiteClient):
        self.client = client

    def create(self, instance_id: str, workflow_type: str, identity: str, input_json: str) -> InstanceRecord:
        now = utcnow_iso()
        try:
            with self.client.connection() as conn:
                self._insert(conn, instance_id, workflow_type, identity, input_json, now)
        except sqlite3.IntegrityError:
            active = self.active_for(identity)
            raise WorkflowAlreadyRunningError(identity, active.instance_id if active else "unknown") from None
        logger.info(f"Workflow {instance_id} ({workflow_type}) started for {identity}")
        return self.get(instance_id)

    def continue_as_new(
        self,
        instance_id: str,
        result_json: Optional[str],
        next_instance_id: str,
        next_input_json: str,
    ) -> InstanceRecord:
        """Close ``instance_id`` as continued and insert its successor atomically."""
        now = utcnow_iso()
        with self.client.connection() as conn:
            row = conn.execute(
                "SELECT workflow_type, identity FROM workflow_instances WHERE instance_id = ?",
                (instance_id,),
            ).fetchone()
            if row is None:
                raise KeyError(instance_id)
            conn.execute(
                """UPDATE workflow_instances
                   SET state = ?, result_json = ?, continued_as = ?, updated_at = ?
                   WHERE instance_id = ?""",
                (CONTINUED, result_json, next_instance_id, now, instance_id),
            )
            self._insert(conn, next_instance_id, row["workflow_type"], row["identity"], next_input_json, now)
        logger.info(f"Workflow {instance_id} continued as {next_instance_id}")
        return self.get(next_instance_id)

    def complete(self, instance_id: str, result_json: Optional[str]) -> None:
        self._finish(instance_id, COMPLETED, result_json=result_json)

    def fail(self, instance_id: str, error: str) -> None:
        self._finish(instance_id, FAILED, error=error)

    def heartbeat(self, instance_id: str, detail: str) -> None:
        with self.client.connection() as conn:
            conn.execute(
                "UPDATE workflow_instances SET heartbeat = ?, heartbeat_at = ? WHERE instance_id = ?",
                (detail, utcnow_iso(), instance_id),
            )

    def get(self, instance_id: str) -> Optional[InstanceRecord]:
        with self.client.connection() as conn:
            row = conn.execute(
                "SELECT * FROM workflow_instances WHERE instance_id = ?", (instance_id,)
            ).fetchone()
        return InstanceRecord(**dict(row)) if row else None

    def active_for(self, identity: str) -> Optional[InstanceRecord]:
        with self.client.connection() as conn:
            row = conn.execute(
                "SELECT * FROM workflow_instances WHERE identity = ? AND state = ?",
                (identity, RUNNING),
            ).fetchone()
        return InstanceRecord(**dict(row)) if row else None

    def running(self) -> list[InstanceRecord]:
        with self.client.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM workflow_instances WHERE state = ? ORDER BY created_at", (RUNNING,)
            ).fetchall()
        return [InstanceRecord(**dict(row)) for row in rows]

    def _finish(
        self,
        instance_id: str,
        state: str,
        result_json: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        with self.client.connection() as conn:
            conn.execute(
                """UPDATE workflow_instances
                   SET state = ?, result_json = ?, error = ?, updated_at = ?
                   WHERE instance_id = ? AND state = ?""",
                (state, result_json, error, utcnow_iso(), instance_id, RUNNING),
            )
        logger.info(f"Workflow {instance_id} {state}")

    @staticmethod
    def _insert(
        conn: sqlite3.Connection,
        instance_id: str,
        workflow_type: str,
        identity: str,
        input_json: str,
        now: str,
    ) -> None:
        conn.execute(
            """INSERT INTO workflow_instances
                   (instance_id, workflow_type, identity, input_json, state, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (instance_id, workflow_type, identity, input_json, RUNNING, now, now),
        )
