"""Workflow host."""

from inboxflow.infrastructure.runtime.engine import EngineContext, WorkflowDefinition, WorkflowEngine
from inboxflow.infrastructure.runtime.instances import InstanceRecord, InstanceStore

__all__ = [
    "EngineContext",
    "WorkflowDefinition",
    "WorkflowEngine",
    "InstanceRecord",
    "InstanceStore",
]
