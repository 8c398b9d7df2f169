"""Infrastructure layer - adapters, storage, workflow host and configuration."""

from inboxflow.infrastructure.settings import Settings, get_settings
from inboxflow.infrastructure.sqlite import SQLiteClient

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # SQLite
    "SQLiteClient",
]
