"""Triage emails: AI classification plus local heuristics, then side effects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from loguru import logger

from inboxflow.application.ports import AiService, EmailStore, MailboxProvider, NotificationSink
from inboxflow.application.triage import (
    classify_category,
    detect_sentiment,
    detect_urgency,
    extract_entities,
    extract_tickers,
    split_signals,
)
from inboxflow.application.workflow.batch import DEFAULT_BATCH_SIZE, BatchProcessor, ItemOutcome
from inboxflow.application.workflow.context import WorkflowContext
from inboxflow.application.workflow.retry import (
    ALERT_POLICY,
    AUDIT_POLICY,
    CLASSIFY_POLICY,
    FETCH_POLICY,
    LOOKUP_POLICY,
    SIDE_EFFECT_POLICY,
    STORE_POLICY,
    RetryingActivityInvoker,
)
from inboxflow.domain.entities.email_message import MailboxMessage
from inboxflow.domain.models import AiClassification, AuditEvent, Priority, TriagePhase, TriageResult, TriageStatus

TRIAGE_STATUS_QUERY = "triage_status"


@dataclass(frozen=True)
class TriageInput:
    user_id: str
    message: MailboxMessage


@dataclass(frozen=True)
class IncomingMessageInput:
    user_id: str
    grant_id: str
    message_id: str


@dataclass
class SideEffects:
    """What ``apply_side_effects`` did for one email."""

    alert_created: bool = False
    task_created: bool = False
    notified: bool = False
    signals_linked: bool = False


class TriageCoordinator:
    """Per-email triage pipeline.

    Flow:
    1. AI classification (degrades to a conservative default on failure)
    2. Entity extraction
    3. Sentiment scoring
    4. Category waterfall
    5. Urgency waterfall (falls back to the AI's suggestion)
    6. Ticker cross-reference against the watch-list
    7. Persist, then task / alert / notification

    Steps 2-6 are local and never fail, so ``triage`` always returns a result.
    """

    def __init__(
        self,
        ai: AiService,
        store: EmailStore,
        notifications: NotificationSink,
        invoker: RetryingActivityInvoker,
        mailbox: MailboxProvider | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = 0.5,
    ) -> None:
        self.ai = ai
        self.store = store
        self.notifications = notifications
        self.invoker = invoker
        self.mailbox = mailbox
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def classify(self, message: MailboxMessage) -> AiClassification:
        """Step 1. Never raises: exhausted or fatal AI errors yield the default."""
        try:
            return await self.invoker.invoke(
                lambda: self.ai.classify(message.subject, message.body, message.sender),
                "classify_email",
                CLASSIFY_POLICY,
            )
        except Exception as e:
            logger.warning(f"AI classification failed for {message.message_id}, using default triage: {e!r}")
            return AiClassification.conservative(message.subject)

    async def triage(
        self,
        message: MailboxMessage,
        watchlist: set[str] | frozenset[str] = frozenset(),
        status: TriageStatus | None = None,
    ) -> TriageResult:
        """Classify and enrich one message without side effects."""
        analysis = await self.classify(message)

        if status is not None:
            status.phase = TriagePhase.EXTRACTING
        entities = extract_entities(message.body)
        sentiment, _ = detect_sentiment(message.body)

        if status is not None:
            status.phase = TriagePhase.CLASSIFYING
        category = classify_category(message.subject, message.body, message.sender)
        urgency = detect_urgency(message.subject, message.body, message.sender, analysis.priority)

        tickers = extract_tickers(message.body, extra=analysis.tickers)
        confirmed, candidates = split_signals(tickers, watchlist)

        return TriageResult(
            email_id=message.email_id,
            message_id=message.message_id,
            priority=urgency.value,
            category=category.value,
            summary=analysis.summary or message.subject,
            suggested_action=analysis.suggested_action,
            related_tickers=tickers,
            confirmed_signals=confirmed,
            candidate_signals=candidates,
            sentiment=sentiment,
            entities=entities,
            requires_response=analysis.requires_response,
            estimated_response_time=analysis.estimated_response_time,
            confidence=analysis.confidence,
        )

    async def triage_batch(
        self,
        ctx: WorkflowContext,
        messages: Sequence[MailboxMessage],
        watchlist: set[str] | frozenset[str] = frozenset(),
    ) -> list[ItemOutcome[MailboxMessage, TriageResult]]:
        """Batch mode: small concurrent chunks separated by a delay to respect rate limits."""
        logger.info(f"Batch triaging {len(messages)} emails")
        processor = BatchProcessor(ctx, delay=self.batch_delay)
        return await processor.process_batch(
            messages,
            self.batch_size,
            lambda message: self.triage(message, watchlist),
        )

    async def load_watchlist(self, user_id: str) -> set[str]:
        return await self.invoker.invoke(lambda: self.store.get_watchlist(user_id), "get_watchlist", LOOKUP_POLICY)

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    async def persist(self, user_id: str, message: MailboxMessage, result: TriageResult) -> None:
        await self.invoker.invoke(
            lambda: self.store.upsert_triage(user_id, message, result),
            "upsert_triage",
            STORE_POLICY,
        )

    async def link_signals(self, result: TriageResult) -> bool:
        if not result.confirmed_signals:
            return False
        await self.invoker.invoke(
            lambda: self.store.link_assets(result.email_id, result.confirmed_signals),
            "link_assets",
            SIDE_EFFECT_POLICY,
        )
        logger.info(f"Linked {result.email_id} to watched assets {result.confirmed_signals}")
        return True

    async def apply_side_effects(self, user_id: str, message: MailboxMessage, result: TriageResult) -> SideEffects:
        """Step 7 after the result is stored.

        Notification failures are logged and swallowed; the stored result is
        the system of record and alerts are idempotent on email id.
        """
        effects = SideEffects()
        effects.signals_linked = await self.link_signals(result)

        if result.requires_response or result.priority == Priority.URGENT:
            effects.task_created = await self._fire(
                "create_task",
                lambda: self.notifications.create_task(
                    user_id, result.email_id, result.priority, result.suggested_action, result.estimated_response_time
                ),
                SIDE_EFFECT_POLICY,
            )

        if result.priority == Priority.URGENT:
            effects.alert_created = await self._fire(
                "create_urgent_alert",
                lambda: self.notifications.create_alert(
                    user_id, result.email_id, message.subject, result.summary, result.suggested_action
                ),
                ALERT_POLICY,
            )
        elif result.priority == Priority.IMPORTANT:
            effects.notified = await self._fire(
                "send_triage_notification",
                lambda: self.notifications.notify(user_id, result.email_id, result.priority, result.summary),
                SIDE_EFFECT_POLICY,
            )
        return effects

    async def _fire(self, name, op, policy) -> bool:
        try:
            await self.invoker.invoke(op, name, policy)
            return True
        except Exception as e:
            logger.warning(f"{name} failed, continuing: {e!r}")
            return False

    async def audit(self, event: AuditEvent) -> None:
        await self.invoker.invoke(lambda: self.store.record_audit(event), "record_audit", AUDIT_POLICY)

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    async def run(self, ctx: WorkflowContext, input: TriageInput) -> TriageResult:
        """Triage a single email end to end with a live status query."""
        message = input.message
        status = TriageStatus(email_id=message.email_id)
        ctx.register_query(TRIAGE_STATUS_QUERY, lambda: status)

        try:
            watchlist = await self.load_watchlist(input.user_id)
            result = await self.triage(message, watchlist, status)
            status.result = result
            status.confidence = result.confidence

            await self.persist(input.user_id, message, result)
            await self.apply_side_effects(input.user_id, message, result)
            status.phase = TriagePhase.COMPLETED

            await self.audit(
                AuditEvent(
                    user_id=input.user_id,
                    action="email_triaged",
                    resource_type="email",
                    resource_id=message.email_id,
                    metadata={
                        "priority": result.priority.value,
                        "category": result.category,
                        "confidence": result.confidence,
                    },
                )
            )
            return result
        except Exception as e:
            status.phase = TriagePhase.FAILED
            await self._audit_failure(input.user_id, "email_triage_failed", "email", message.email_id, e)
            raise

    async def process_incoming(self, ctx: WorkflowContext, input: IncomingMessageInput) -> TriageResult | None:
        """Handle one pushed message id. Returns None when it was already stored."""
        if self.mailbox is None:
            raise RuntimeError("process_incoming requires a mailbox provider")

        already = await self.invoker.invoke(
            lambda: self.store.has_message(input.message_id), "check_email_processed", LOOKUP_POLICY
        )
        if already:
            logger.info(f"Message {input.message_id} already processed")
            return None

        message = await self.invoker.invoke(
            lambda: self.mailbox.get_message(input.grant_id, input.message_id), "get_message", FETCH_POLICY
        )
        result = await self.run(ctx, TriageInput(user_id=input.user_id, message=message))
        logger.info(f"Processed incoming {input.message_id}: {result.priority.value}/{result.category}")
        return result

    async def _audit_failure(self, user_id: str, action: str, resource_type: str, resource_id: str, error: Exception) -> None:
        try:
            await self.audit(
                AuditEvent(
                    user_id=user_id,
                    action=action,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    metadata={"error": str(error)},
                )
            )
        except Exception as audit_error:
            logger.error(f"Could not record {action} for {resource_id}: {audit_error!r}")
