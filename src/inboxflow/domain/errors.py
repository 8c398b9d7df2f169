"""Exception hierarchy for inboxflow workflows."""

from __future__ import annotations

from typing import Any


class InboxFlowError(Exception):
    """Base class for all inboxflow errors."""


class NonRetryableError(InboxFlowError):
    """An activity failure that must not be retried (bad input, auth, validation)."""


class EmptyThreadError(NonRetryableError):
    """Raised when a thread has no messages to reply to."""

    def __init__(self, thread_id: str):
        super().__init__(f"No messages found in thread {thread_id}")
        self.thread_id = thread_id


class SuggestionNotFoundError(NonRetryableError):
    """Raised when a reply suggestion id is unknown."""


class WorkflowAlreadyRunningError(InboxFlowError):
    """Raised when an instance with the same logical identity is already active."""

    def __init__(self, identity: str, instance_id: str):
        super().__init__(f"Workflow for {identity} already running as {instance_id}")
        self.identity = identity
        self.instance_id = instance_id


class ContinueAsNew(Exception):
    """Control-flow signal: finish this instance and restart it with ``next_input``.

    Raised outside the coordinators' failure handling; the host engine
    catches it and enqueues the successor instance.
    """

    def __init__(self, next_input: Any, result: Any = None):
        super().__init__("continue as new")
        self.next_input = next_input
        self.result = result


class ReplyValidationError(NonRetryableError):
    """Raised when a stored suggestion fails validation at send time."""

    def __init__(self, suggestion_id: str, reason: str):
        super().__init__(f"Suggestion {suggestion_id} is not sendable: {reason}")
        self.suggestion_id = suggestion_id
        self.reason = reason
