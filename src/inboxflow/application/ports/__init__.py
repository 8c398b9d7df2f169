"""Ports to the external collaborators. Coordinators only reach them through the invoker."""

from inboxflow.application.ports.ai_service import AiService
from inboxflow.application.ports.checkpoint_store import CheckpointStore, SyncCursor
from inboxflow.application.ports.email_store import EmailStore
from inboxflow.application.ports.mailbox import MailboxPage, MailboxProvider, OutgoingMessage
from inboxflow.application.ports.notifications import NotificationSink

__all__ = [
    "AiService",
    "CheckpointStore",
    "SyncCursor",
    "EmailStore",
    "MailboxPage",
    "MailboxProvider",
    "OutgoingMessage",
    "NotificationSink",
]
