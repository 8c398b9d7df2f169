"""Workflow primitives shared by every coordinator."""

from inboxflow.application.workflow.batch import BatchProcessor, ItemOutcome
from inboxflow.application.workflow.context import LocalContext, WorkflowContext
from inboxflow.application.workflow.retry import RetryingActivityInvoker, RetryPolicy, is_retryable_error
from inboxflow.application.workflow.status import StatusRegister, UnknownQueryError

__all__ = [
    "BatchProcessor",
    "ItemOutcome",
    "LocalContext",
    "WorkflowContext",
    "RetryingActivityInvoker",
    "RetryPolicy",
    "is_retryable_error",
    "StatusRegister",
    "UnknownQueryError",
]
