"""Workflow coordinators."""

from inboxflow.application.use_cases.smart_reply import SendReplyInput, SmartReplyCoordinator, SmartReplyInput
from inboxflow.application.use_cases.sync_mailbox import SyncCoordinator, SyncInput
from inboxflow.application.use_cases.triage_email import IncomingMessageInput, TriageCoordinator, TriageInput

__all__ = [
    "SmartReplyCoordinator",
    "SmartReplyInput",
    "SendReplyInput",
    "SyncCoordinator",
    "SyncInput",
    "TriageCoordinator",
    "TriageInput",
    "IncomingMessageInput",
]
