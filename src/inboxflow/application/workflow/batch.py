"""Concurrency-limited chunked execution with heartbeats."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

from loguru import logger

from inboxflow.application.workflow.context import WorkflowContext

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_BATCH_SIZE = 5
DEFAULT_BATCH_DELAY = 0.5


@dataclass
class ItemOutcome(Generic[T, R]):
    """Result of one item: either ``value`` or ``error`` is set."""

    item: T
    value: R | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    if size <= 0:
        raise ValueError("batch size must be positive")
    return [items[i : i + size] for i in range(0, len(items), size)]


class BatchProcessor:
    """Run items in fixed-size chunks.

    Items inside a chunk run concurrently; chunks run strictly one after the
    other with ``delay`` seconds between them. One heartbeat is emitted per
    chunk. A failing item is captured in its outcome and never cancels its
    siblings.
    """

    def __init__(self, ctx: WorkflowContext, delay: float = DEFAULT_BATCH_DELAY) -> None:
        self.ctx = ctx
        self.delay = delay

    async def process_batch(
        self,
        items: Sequence[T],
        batch_size: int,
        per_item: Callable[[T], Awaitable[R]],
    ) -> list[ItemOutcome[T, R]]:
        chunks = chunked(items, batch_size)
        outcomes: list[ItemOutcome[T, R]] = []

        for index, chunk in enumerate(chunks):
            self.ctx.heartbeat(f"chunk {index + 1} of {len(chunks)}")
            results = await asyncio.gather(*(self._run_one(item, per_item) for item in chunk))
            outcomes.extend(results)

            if index + 1 < len(chunks):
                await self.ctx.sleep(self.delay)

        failed = sum(1 for o in outcomes if not o.ok)
        if failed:
            logger.warning(f"Batch finished with {failed}/{len(outcomes)} failed items")
        return outcomes

    @staticmethod
    async def _run_one(item: T, per_item: Callable[[T], Awaitable[R]]) -> ItemOutcome[T, R]:
        try:
            return ItemOutcome(item=item, value=await per_item(item))
        except Exception as e:
            logger.error(f"Batch item failed: {e!r}")
            return ItemOutcome(item=item, error=e)
