"""Resumable mailbox synchronization loop."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from inboxflow.application.ports import CheckpointStore, EmailStore, MailboxProvider, SyncCursor
from inboxflow.application.use_cases.triage_email import TriageCoordinator
from inboxflow.application.workflow.context import WorkflowContext
from inboxflow.application.workflow.retry import (
    AUDIT_POLICY,
    FETCH_POLICY,
    LOOKUP_POLICY,
    STORE_POLICY,
    RetryingActivityInvoker,
    is_retryable_error,
)
from inboxflow.domain.entities.email_message import MailboxMessage
from inboxflow.domain.errors import ContinueAsNew
from inboxflow.domain.models import AuditEvent, EmailSyncStatus, ItemError, SyncPhase, TriageResult

SYNC_STATUS_QUERY = "sync_status"
DEFAULT_PAGE_SIZE = 50
DEFAULT_SYNC_INTERVAL = 5 * 60
DEFAULT_DEAD_LETTER_THRESHOLD = 3


@dataclass(frozen=True)
class SyncInput:
    user_id: str
    grant_id: str
    cursor: Optional[str] = None
    initial_sync: bool = False


class SyncCoordinator:
    """Paginate one mailbox grant, triaging and storing every new message.

    Per page: fetch -> dedupe -> triage batch -> store + side effects ->
    advance cursor -> checkpoint. The cursor is checkpointed only after the
    page's results are stored, so a crash re-runs at most one page and the
    idempotent store absorbs the duplicates.

    A continuous sync (``initial_sync=False``) sleeps ``sync_interval``
    seconds after reaching the end of the mailbox and raises
    ``ContinueAsNew`` so each epoch keeps a bounded history.
    """

    def __init__(
        self,
        mailbox: MailboxProvider,
        store: EmailStore,
        checkpoints: CheckpointStore,
        triage: TriageCoordinator,
        invoker: RetryingActivityInvoker,
        page_size: int = DEFAULT_PAGE_SIZE,
        sync_interval: float = DEFAULT_SYNC_INTERVAL,
        dead_letter_threshold: int = DEFAULT_DEAD_LETTER_THRESHOLD,
    ) -> None:
        self.mailbox = mailbox
        self.store = store
        self.checkpoints = checkpoints
        self.triage = triage
        self.invoker = invoker
        self.page_size = page_size
        self.sync_interval = sync_interval
        self.dead_letter_threshold = dead_letter_threshold

    async def run(self, ctx: WorkflowContext, input: SyncInput) -> EmailSyncStatus:
        status = EmailSyncStatus(sync_id=f"sync_{ctx.instance_id}", grant_id=input.grant_id, cursor=input.cursor)
        ctx.register_query(SYNC_STATUS_QUERY, lambda: status)

        try:
            await self._audit(input.user_id, "email_sync_started", status.sync_id, {
                "grant_id": input.grant_id,
                "initial_sync": input.initial_sync,
            })
            await self._sync(ctx, input, status)

            status.phase = SyncPhase.COMPLETED
            status.last_processed_at = datetime.now(timezone.utc)
            logger.info(
                f"Sync {status.sync_id} completed: fetched={status.emails_fetched} "
                f"processed={status.emails_processed} triaged={status.emails_triaged} "
                f"errors={len(status.errors)}"
            )
            await self._audit(input.user_id, "email_sync_completed", status.sync_id, {
                "emails_fetched": status.emails_fetched,
                "emails_triaged": status.emails_triaged,
                "urgent_alerts": status.urgent_alerts_created,
                "trading_signals": status.trading_signals_detected,
                "dead_lettered": status.dead_lettered,
                "errors": len(status.errors),
            })
        except Exception as e:
            status.phase = SyncPhase.FAILED
            logger.error(f"Sync {status.sync_id} for {input.grant_id} failed: {e!r}")
            try:
                await self._audit(input.user_id, "email_sync_failed", status.sync_id, {"error": str(e)})
            except Exception as audit_error:
                logger.error(f"Could not audit sync failure: {audit_error!r}")
            raise

        if input.initial_sync:
            return status

        await ctx.sleep(self.sync_interval)
        raise ContinueAsNew(
            SyncInput(user_id=input.user_id, grant_id=input.grant_id, cursor=status.cursor, initial_sync=False),
            result=status,
        )

    async def _starting_cursor(self, input: SyncInput) -> Optional[str]:
        # The durable checkpoint is never behind the input cursor of this epoch
        saved = await self.invoker.invoke(
            lambda: self.checkpoints.load(input.grant_id), "load_sync_cursor", LOOKUP_POLICY
        )
        if saved is not None:
            return saved.token
        return input.cursor

    async def _sync(self, ctx: WorkflowContext, input: SyncInput, status: EmailSyncStatus) -> None:
        cursor = await self._starting_cursor(input)
        status.cursor = cursor

        while True:
            page = await self.invoker.invoke(
                lambda: self.mailbox.fetch_page(input.grant_id, cursor, self.page_size),
                "fetch_page",
                FETCH_POLICY,
            )
            status.emails_fetched += len(page.items)

            if page.items:
                status.phase = SyncPhase.PROCESSING
                await self._process_page(ctx, input, page.items, status)
            elif page.next_cursor is not None and page.next_cursor == cursor:
                # Provider handed back the same token: nothing newer to read
                return

            next_cursor = page.next_cursor
            await self.invoker.invoke(
                lambda: self.checkpoints.save(input.user_id, SyncCursor(input.grant_id, next_cursor)),
                "update_sync_cursor",
                STORE_POLICY,
            )
            cursor = next_cursor
            status.cursor = cursor
            ctx.heartbeat(f"page done, fetched {status.emails_fetched}")

            if cursor is None:
                return

    async def _process_page(
        self,
        ctx: WorkflowContext,
        input: SyncInput,
        items: tuple[MailboxMessage, ...],
        status: EmailSyncStatus,
    ) -> None:
        pending: list[MailboxMessage] = []
        for message in items:
            try:
                if await self._already_handled(message):
                    status.emails_processed += 1
                    continue
                pending.append(message)
            except Exception as e:
                await self._record_item_error(input, message, e, status)

        if not pending:
            return

        watchlist = await self.triage.load_watchlist(input.user_id)
        outcomes = await self.triage.triage_batch(ctx, pending, watchlist)

        for outcome in outcomes:
            if not outcome.ok:
                await self._record_item_error(input, outcome.item, outcome.error, status)
                continue
            try:
                await self._store_result(input, outcome.item, outcome.value, status)
            except Exception as e:
                await self._record_item_error(input, outcome.item, e, status)

    async def _already_handled(self, message: MailboxMessage) -> bool:
        stored = await self.invoker.invoke(
            lambda: self.store.has_message(message.message_id), "check_email_processed", LOOKUP_POLICY
        )
        if stored:
            return True
        return await self.invoker.invoke(
            lambda: self.store.is_dead_lettered(message.message_id), "check_dead_letter", LOOKUP_POLICY
        )

    async def _store_result(
        self,
        input: SyncInput,
        message: MailboxMessage,
        result: TriageResult,
        status: EmailSyncStatus,
    ) -> None:
        await self.triage.persist(input.user_id, message, result)
        status.emails_triaged += 1
        status.emails_processed += 1

        effects = await self.triage.apply_side_effects(input.user_id, message, result)
        if effects.alert_created:
            status.urgent_alerts_created += 1
        if effects.signals_linked:
            status.trading_signals_detected += 1

    async def _record_item_error(
        self,
        input: SyncInput,
        message: MailboxMessage,
        error: Exception,
        status: EmailSyncStatus,
    ) -> None:
        # An exhausted transient error means the dependency is down, not the item
        if is_retryable_error(error):
            raise error

        logger.warning(f"Email {message.message_id} failed: {error!r}")
        status.errors.append(ItemError(email_id=message.message_id, error=str(error)))
        dead = await self.invoker.invoke(
            lambda: self.store.record_failure(
                message.message_id, input.grant_id, str(error), self.dead_letter_threshold
            ),
            "record_failure",
            STORE_POLICY,
        )
        if dead:
            status.dead_lettered += 1
            logger.warning(f"Email {message.message_id} moved to dead letter")

    async def _audit(self, user_id: str, action: str, sync_id: str, metadata: dict) -> None:
        event = AuditEvent(
            user_id=user_id,
            action=action,
            resource_type="email_sync",
            resource_id=sync_id,
            metadata=metadata,
        )
        await self.invoker.invoke(lambda: self.store.record_audit(event), "record_audit", AUDIT_POLICY)
