"""Generate validated reply suggestions for an email thread."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from loguru import logger

from inboxflow.application.ports import AiService, EmailStore, MailboxProvider, OutgoingMessage
from inboxflow.application.triage import validate_reply
from inboxflow.application.workflow.context import WorkflowContext
from inboxflow.application.workflow.retry import (
    AUDIT_POLICY,
    GENERATE_POLICY,
    LOOKUP_POLICY,
    SIDE_EFFECT_POLICY,
    STORE_POLICY,
    RetryingActivityInvoker,
)
from inboxflow.domain.errors import (
    EmptyThreadError,
    NonRetryableError,
    ReplyValidationError,
    SuggestionNotFoundError,
)
from inboxflow.domain.models import (
    AuditEvent,
    GeneratedDraft,
    ReplySuggestion,
    SmartReplyPhase,
    SmartReplyStatus,
    Tone,
)

SMART_REPLY_STATUS_QUERY = "smart_reply_status"
FALLBACK_CONFIDENCE = 0.5


@dataclass(frozen=True)
class SmartReplyInput:
    thread_id: str
    user_id: str


@dataclass(frozen=True)
class SendReplyInput:
    user_id: str
    grant_id: str
    thread_id: str
    suggestion_id: str


def suggestion_id(thread_id: str, message_id: str, tone: Tone) -> str:
    """Stable id so a re-run for the same latest message rewrites the same rows."""
    return f"reply_{thread_id}_{message_id}_{tone.value}"


def acknowledgement(thread_id: str, message_id: str, signature: str) -> ReplySuggestion:
    """Generic draft used when every generated draft was rejected."""
    return ReplySuggestion(
        id=suggestion_id(thread_id, message_id, Tone.PROFESSIONAL),
        tone=Tone.PROFESSIONAL,
        content=(
            "Thank you for your email. I've received your message and will get back to you shortly."
            f"\n\n{signature}"
        ),
        confidence=FALLBACK_CONFIDENCE,
    )


class SmartReplyCoordinator:
    """Reply suggestions for one thread.

    Flow:
    1. Load thread context (fail fast if empty)
    2. Load writing style and signature together
    3. Generate tone variants with the AI service
    4. Validate each draft, drop the bad ones
    5. Fall back to a signed acknowledgement if nothing survived
    6. Persist and audit

    A generation failure after retries is fatal. Low-quality drafts are not.
    """

    def __init__(
        self,
        ai: AiService,
        store: EmailStore,
        invoker: RetryingActivityInvoker,
        mailbox: MailboxProvider | None = None,
    ) -> None:
        self.ai = ai
        self.store = store
        self.invoker = invoker
        self.mailbox = mailbox

    async def run(self, ctx: WorkflowContext, input: SmartReplyInput) -> list[ReplySuggestion]:
        status = SmartReplyStatus(thread_id=input.thread_id)
        ctx.register_query(SMART_REPLY_STATUS_QUERY, lambda: status)

        try:
            thread = await self.invoker.invoke(
                lambda: self.store.get_thread(input.thread_id), "get_thread_context", LOOKUP_POLICY
            )
            if thread is None or not thread.messages:
                raise EmptyThreadError(input.thread_id)
            latest = thread.latest

            status.phase = SmartReplyPhase.ANALYZING_STYLE
            style, signature = await asyncio.gather(
                self.invoker.invoke(
                    lambda: self.store.get_writing_style(input.user_id), "get_writing_style", LOOKUP_POLICY
                ),
                self.invoker.invoke(lambda: self.store.get_signature(input.user_id), "get_signature", LOOKUP_POLICY),
            )

            status.phase = SmartReplyPhase.GENERATING
            ctx.heartbeat("Generating replies...")
            drafts = await self.invoker.invoke(
                lambda: self.ai.generate(thread, latest, style, signature),
                "generate_replies",
                GENERATE_POLICY,
            )

            suggestions = self.accept_drafts(input.thread_id, latest.message_id, drafts)
            if not suggestions:
                logger.warning(f"No valid drafts for thread {input.thread_id}, using acknowledgement")
                suggestions = [acknowledgement(input.thread_id, latest.message_id, signature)]
            status.suggestions = suggestions

            await self.invoker.invoke(
                lambda: self.store.upsert_suggestions(input.thread_id, input.user_id, suggestions),
                "store_reply_suggestions",
                STORE_POLICY,
            )
            status.phase = SmartReplyPhase.COMPLETED

            await self._audit(
                AuditEvent(
                    user_id=input.user_id,
                    action="smart_replies_generated",
                    resource_type="email_thread",
                    resource_id=input.thread_id,
                    metadata={
                        "suggestions_count": len(suggestions),
                        "tones": [s.tone.value for s in suggestions],
                    },
                )
            )
            return suggestions
        except Exception as e:
            status.phase = SmartReplyPhase.FAILED
            logger.error(f"Smart reply failed for thread {input.thread_id}: {e!r}")
            try:
                await self._audit(
                    AuditEvent(
                        user_id=input.user_id,
                        action="smart_reply_failed",
                        resource_type="email_thread",
                        resource_id=input.thread_id,
                        metadata={"error": str(e)},
                    )
                )
            except Exception as audit_error:
                logger.error(f"Could not audit smart reply failure: {audit_error!r}")
            raise

    @staticmethod
    def accept_drafts(thread_id: str, message_id: str, drafts: list[GeneratedDraft]) -> list[ReplySuggestion]:
        """Valid drafts as suggestions, at most one per tone."""
        accepted: list[ReplySuggestion] = []
        for draft in drafts:
            if any(s.tone == draft.tone for s in accepted):
                logger.debug(f"Dropping duplicate {draft.tone.value} draft")
                continue
            check = validate_reply(draft.content)
            if not check.valid:
                logger.debug(f"Dropping {draft.tone.value} draft: {check.reason}")
                continue
            accepted.append(
                ReplySuggestion(
                    id=suggestion_id(thread_id, message_id, draft.tone),
                    tone=draft.tone,
                    content=draft.content,
                    subject=draft.subject,
                    confidence=draft.confidence,
                )
            )
        return accepted

    async def send_suggestion(self, input: SendReplyInput) -> str:
        """Send a stored suggestion as a reply to the thread's latest message."""
        if self.mailbox is None:
            raise RuntimeError("send_suggestion requires a mailbox provider")

        suggestion = await self.invoker.invoke(
            lambda: self.store.get_suggestion(input.suggestion_id), "get_suggestion", LOOKUP_POLICY
        )
        if suggestion is None:
            raise SuggestionNotFoundError(input.suggestion_id)
        if suggestion.used:
            raise NonRetryableError(f"Suggestion {input.suggestion_id} was already sent")
        check = validate_reply(suggestion.content)
        if not check.valid:
            raise ReplyValidationError(input.suggestion_id, check.reason)

        thread = await self.invoker.invoke(
            lambda: self.store.get_thread(input.thread_id), "get_thread_context", LOOKUP_POLICY
        )
        if thread is None or not thread.messages:
            raise EmptyThreadError(input.thread_id)
        latest = thread.latest

        subject = suggestion.subject or thread.subject
        if not subject.lower().startswith("re:"):
            subject = f"Re: {subject}"

        outgoing = OutgoingMessage(
            to=(latest.sender,),
            subject=subject,
            body=suggestion.content,
            in_reply_to=latest.message_id,
        )
        sent_id = await self.invoker.invoke(
            lambda: self.mailbox.send_message(input.grant_id, outgoing), "send_message", SIDE_EFFECT_POLICY
        )
        await self.invoker.invoke(
            lambda: self.store.mark_suggestion_used(input.suggestion_id, sent_id),
            "mark_suggestion_used",
            STORE_POLICY,
        )
        await self._audit(
            AuditEvent(
                user_id=input.user_id,
                action="smart_reply_sent",
                resource_type="email_thread",
                resource_id=input.thread_id,
                metadata={"suggestion_id": input.suggestion_id, "message_id": sent_id},
            )
        )
        logger.info(f"Sent suggestion {input.suggestion_id} as {sent_id}")
        return sent_id

    async def _audit(self, event: AuditEvent) -> None:
        await self.invoker.invoke(lambda: self.store.record_audit(event), "record_audit", AUDIT_POLICY)
