"""Sync worker - keeps one continuous sync running per configured mailbox grant."""

from __future__ import annotations

import argparse
import asyncio
import signal
from dataclasses import dataclass, field

from loguru import logger

from inboxflow.application.use_cases import SyncInput
from inboxflow.domain.errors import WorkflowAlreadyRunningError
from inboxflow.infrastructure.container import EMAIL_SYNC, Container, build_container, sync_identity
from inboxflow.infrastructure.logging import configure_logging
from inboxflow.infrastructure.settings import Settings, get_settings


@dataclass(frozen=True)
class MailboxConfig:
    """One mailbox grant to keep in sync."""

    user_id: str
    grant_id: str


@dataclass
class WorkerStats:
    """Track worker statistics."""

    resumed: int = 0
    started: int = 0
    skipped: int = 0
    instances: dict[str, str] = field(default_factory=dict)


class SyncWorker:
    """Host the workflow engine and the per-mailbox sync loops.

    On start the worker resumes every instance a previous process left
    running, then starts a continuous sync for each configured grant that
    does not already have one. SIGINT/SIGTERM cancel the running tasks; their
    rows stay running and the next start resumes them from the checkpoint.
    """

    def __init__(self, container: Container, mailboxes: list[MailboxConfig], once: bool = False):
        self.container = container
        self.mailboxes = mailboxes
        self.once = once
        self.stats = WorkerStats()
        self._stop = asyncio.Event()
        self._resumed: list[str] = []

    def _handle_shutdown(self, signum) -> None:
        """Handle graceful shutdown."""
        logger.info(f"Received signal {signum}, shutting down...")
        self._stop.set()

    async def start_syncs(self) -> None:
        engine = self.container.engine
        self._resumed = await engine.resume()
        self.stats.resumed = len(self._resumed)

        for mailbox in self.mailboxes:
            input = SyncInput(user_id=mailbox.user_id, grant_id=mailbox.grant_id, initial_sync=self.once)
            try:
                instance_id = await engine.start(EMAIL_SYNC, input)
            except WorkflowAlreadyRunningError as e:
                logger.info(f"Sync for {mailbox.grant_id} already running as {e.instance_id}")
                self.stats.skipped += 1
                self.stats.instances[mailbox.grant_id] = e.instance_id
                continue
            self.stats.started += 1
            self.stats.instances[mailbox.grant_id] = instance_id

    async def run(self) -> int:
        """Run until every one-shot sync finishes or a shutdown signal arrives."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_shutdown, sig)

        logger.info(f"Sync worker starting with {len(self.mailboxes)} mailbox(es)")
        for mb in self.mailboxes:
            logger.info(f"  - {mb.user_id}: {mb.grant_id}")

        await self.start_syncs()
        self._log_stats()

        if self.once:
            await asyncio.gather(*(self.container.engine.wait(i) for i in self._finite_instances()))
        else:
            await self._stop.wait()

        await self.container.aclose()
        logger.info("Worker shutdown complete")
        return 0

    def _finite_instances(self) -> list[str]:
        """Instances a one-shot run waits for. Continuous syncs never finish on their own."""
        engine = self.container.engine
        finite = []
        for instance_id in dict.fromkeys([*self._resumed, *self.stats.instances.values()]):
            record = engine.get(instance_id)
            if record.workflow_type == EMAIL_SYNC:
                if not engine.definition(EMAIL_SYNC).load_input(record.input_json).initial_sync:
                    logger.info(f"Not waiting on continuous sync {instance_id}")
                    continue
            finite.append(instance_id)
        return finite

    def _log_stats(self) -> None:
        logger.info(
            f"Worker stats: resumed={self.stats.resumed}, started={self.stats.started}, "
            f"skipped={self.stats.skipped}, instances={self.stats.instances}"
        )


def get_mailboxes(settings: Settings, overrides: list[str] | None = None) -> list[MailboxConfig]:
    """Mailboxes from ``--mailbox`` flags, falling back to SYNC_MAILBOXES."""
    if overrides:
        settings = settings.model_copy(update={"sync_mailboxes": ",".join(overrides)})
    return [MailboxConfig(user_id=u, grant_id=g) for u, g in settings.mailbox_pairs()]


def main(argv: list[str] | None = None) -> int:
    """Entry point for the sync worker."""
    parser = argparse.ArgumentParser(description="Run inboxflow mailbox syncs")
    parser.add_argument(
        "--mailbox",
        action="append",
        metavar="USER_ID:GRANT_ID",
        help="Mailbox to sync (repeatable, overrides SYNC_MAILBOXES)",
    )
    parser.add_argument("--once", action="store_true", help="Run a single sync pass per mailbox and exit")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("=" * 60)
    logger.info(f"{settings.app_name} sync worker")
    logger.info("=" * 60)

    try:
        mailboxes = get_mailboxes(settings, args.mailbox)
    except ValueError as e:
        logger.error(str(e))
        return 1

    if not mailboxes:
        logger.error("No mailboxes configured! Set SYNC_MAILBOXES or pass --mailbox")
        return 1

    try:
        container = build_container(settings)
    except Exception as e:
        logger.error(f"Failed to initialize infrastructure: {e}")
        return 1

    worker = SyncWorker(container, mailboxes, once=args.once)
    return asyncio.run(worker.run())


if __name__ == "__main__":
    raise SystemExit(main())
