"""Live status queries for running workflow instances."""

from __future__ import annotations

from threading import Lock
from typing import Any, Callable

from loguru import logger

QueryHandler = Callable[[], Any]


class UnknownQueryError(KeyError):
    """No handler registered for the instance/query pair."""


class StatusRegister:
    """Maps (instance id, query name) to a handler returning the live status object.

    Handlers hand back the coordinator's own mutable status, so a poll always
    sees the latest counters without waiting on the coordinator.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, dict[str, QueryHandler]] = {}
        self._lock = Lock()

    def register(self, instance_id: str, name: str, handler: QueryHandler) -> None:
        with self._lock:
            self._handlers.setdefault(instance_id, {})[name] = handler
        logger.debug(f"Registered query {name} for {instance_id}")

    def unregister(self, instance_id: str) -> None:
        with self._lock:
            self._handlers.pop(instance_id, None)

    def query(self, instance_id: str, name: str | None = None) -> Any:
        """Run a query handler. With no name, the first registered query answers."""
        with self._lock:
            handlers = self._handlers.get(instance_id)
            if not handlers:
                raise UnknownQueryError(instance_id)
            if name is None:
                handler = next(iter(handlers.values()))
            elif name in handlers:
                handler = handlers[name]
            else:
                raise UnknownQueryError(f"{instance_id}:{name}")
        return handler()
