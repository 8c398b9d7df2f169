"""Durable host that runs coordinators as asyncio tasks over SQLite instance rows."""

from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger
from pydantic import TypeAdapter
from pydantic_core import to_jsonable_python

from inboxflow.application.workflow.context import LocalContext, WorkflowContext
from inboxflow.application.workflow.status import StatusRegister, UnknownQueryError
from inboxflow.domain.errors import ContinueAsNew
from inboxflow.infrastructure.runtime.instances import InstanceRecord, InstanceStore
from inboxflow.infrastructure.sqlite.client import SQLiteClient


@dataclass(frozen=True)
class WorkflowDefinition:
    """A coordinator entry point the engine knows how to start and resume.

    ``identity`` maps an input to the logical key that may only have one
    running instance at a time (for example one sync per mailbox grant).
    """

    name: str
    input_type: type
    run: Callable[[WorkflowContext, Any], Awaitable[Any]]
    identity: Callable[[Any], str]

    def dump_input(self, input: Any) -> str:
        return TypeAdapter(self.input_type).dump_json(input).decode()

    def load_input(self, raw: str) -> Any:
        return TypeAdapter(self.input_type).validate_json(raw)


class EngineContext(LocalContext):
    """Context whose heartbeats are also written to the instance row."""

    def __init__(self, instance_id: str, register: StatusRegister, instances: InstanceStore) -> None:
        super().__init__(instance_id, register)
        self.instances = instances

    def heartbeat(self, detail: str) -> None:
        super().heartbeat(detail)
        self.instances.heartbeat(self.instance_id, detail)


def new_instance_id(identity: str) -> str:
    return f"{identity}-{uuid.uuid4().hex[:8]}"


def dump_result(result: Any) -> str | None:
    if result is None:
        return None
    return json.dumps(to_jsonable_python(result))


class WorkflowEngine:
    """Start, resume, continue and query workflow instances.

    Each instance runs as one asyncio task. A ``ContinueAsNew`` raised by the
    coordinator closes the current row and starts the successor in the same
    task, so a continuous sync keeps a single task across epochs.
    """

    def __init__(self, client: SQLiteClient, register: StatusRegister | None = None) -> None:
        self.instances = InstanceStore(client)
        self.register = register or StatusRegister()
        self._definitions: dict[str, WorkflowDefinition] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def define(self, definition: WorkflowDefinition) -> None:
        self._definitions[definition.name] = definition
        logger.debug(f"Registered workflow type {definition.name}")

    def definition(self, name: str) -> WorkflowDefinition:
        try:
            return self._definitions[name]
        except KeyError:
            raise ValueError(f"Unknown workflow type: {name}") from None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, workflow_type: str, input: Any) -> str:
        """Persist a new running instance and launch it.

        Raises WorkflowAlreadyRunningError when the identity is busy.
        """
        definition = self.definition(workflow_type)
        identity = definition.identity(input)
        instance_id = new_instance_id(identity)
        self.instances.create(instance_id, definition.name, identity, definition.dump_input(input))
        self._launch(definition, instance_id, input)
        return instance_id

    async def resume(self) -> list[str]:
        """Relaunch every instance left running by a previous process."""
        resumed = []
        for record in self.instances.running():
            if record.instance_id in self._tasks:
                continue
            definition = self._definitions.get(record.workflow_type)
            if definition is None:
                logger.warning(f"Cannot resume {record.instance_id}: unknown type {record.workflow_type}")
                continue
            input = definition.load_input(record.input_json)
            self._launch(definition, record.instance_id, input)
            resumed.append(record.instance_id)
        if resumed:
            logger.info(f"Resumed {len(resumed)} workflow instances")
        return resumed

    async def wait(self, instance_id: str) -> None:
        """Wait for the task driving ``instance_id`` (and its continuations) to end.

        Finished and continued instances are no longer tracked, so waiting on
        them returns at once.
        """
        task = self._tasks.get(instance_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel running tasks. Their rows stay running so ``resume`` picks them up."""
        tasks = list({id(t): t for t in self._tasks.values() if not t.done()}.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Workflow engine stopped ({len(tasks)} tasks cancelled)")

    def _launch(self, definition: WorkflowDefinition, instance_id: str, input: Any) -> None:
        task = asyncio.create_task(self._drive(definition, instance_id, input), name=instance_id)
        self._tasks[instance_id] = task
        task.add_done_callback(self._forget)

    def _forget(self, task: asyncio.Task) -> None:
        for instance_id in [i for i, t in self._tasks.items() if t is task]:
            del self._tasks[instance_id]

    async def _drive(self, definition: WorkflowDefinition, instance_id: str, input: Any) -> None:
        while True:
            ctx = EngineContext(instance_id, self.register, self.instances)
            try:
                result = await definition.run(ctx, input)
            except ContinueAsNew as cont:
                next_id = new_instance_id(definition.identity(cont.next_input))
                self.instances.continue_as_new(
                    instance_id,
                    dump_result(cont.result),
                    next_id,
                    definition.dump_input(cont.next_input),
                )
                self.register.unregister(instance_id)
                self._tasks[next_id] = self._tasks.pop(instance_id)
                instance_id, input = next_id, cont.next_input
                continue
            except asyncio.CancelledError:
                logger.info(f"Workflow {instance_id} interrupted")
                raise
            except Exception as e:
                logger.error(f"Workflow {instance_id} failed: {e!r}")
                self.instances.fail(instance_id, repr(e))
                self.register.unregister(instance_id)
                return

            self.instances.complete(instance_id, dump_result(result))
            self.register.unregister(instance_id)
            return

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, instance_id: str) -> InstanceRecord | None:
        return self.instances.get(instance_id)

    def active_instance(self, identity: str) -> InstanceRecord | None:
        return self.instances.active_for(identity)

    def query(self, instance_id: str, name: str | None = None) -> Any:
        """Live status of a running instance, or the stored outcome of a finished one."""
        try:
            return to_jsonable_python(self.register.query(instance_id, name))
        except UnknownQueryError:
            record = self.instances.get(instance_id)
            if record is None:
                raise
        if record.result_json is not None:
            return json.loads(record.result_json)
        return {"state": record.state, "heartbeat": record.heartbeat, "error": record.error}
