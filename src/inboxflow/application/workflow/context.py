"""Execution context handed to coordinators by the workflow host."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol

from loguru import logger

from inboxflow.application.workflow.status import StatusRegister


class WorkflowContext(Protocol):
    """What a coordinator may do besides calling activities.

    Every ``sleep`` is a suspension point; ``heartbeat`` signals liveness to
    the host; ``register_query`` exposes live status to pollers.
    """

    instance_id: str

    async def sleep(self, seconds: float) -> None: ...
    def heartbeat(self, detail: str) -> None: ...
    def register_query(self, name: str, handler: Callable[[], Any]) -> None: ...


class LocalContext:
    """In-process context: real sleeps, logged heartbeats, queries on a register.

    Used for one-off runs outside the engine (CLI, API fire-and-forget).
    """

    def __init__(self, instance_id: str, register: StatusRegister | None = None) -> None:
        self.instance_id = instance_id
        self.register = register or StatusRegister()
        self.last_heartbeat: str | None = None

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def heartbeat(self, detail: str) -> None:
        self.last_heartbeat = detail
        logger.debug(f"[{self.instance_id}] heartbeat: {detail}")

    def register_query(self, name: str, handler: Callable[[], Any]) -> None:
        self.register.register(self.instance_id, name, handler)
