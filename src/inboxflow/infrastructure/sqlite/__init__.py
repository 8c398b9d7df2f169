"""SQLite-backed stores."""

from inboxflow.infrastructure.sqlite.checkpoint_store import SQLiteCheckpointStore
from inboxflow.infrastructure.sqlite.client import SQLiteClient
from inboxflow.infrastructure.sqlite.email_store import SQLiteEmailStore
from inboxflow.infrastructure.sqlite.notifications import SQLiteNotificationSink

__all__ = [
    "SQLiteClient",
    "SQLiteCheckpointStore",
    "SQLiteEmailStore",
    "SQLiteNotificationSink",
]
