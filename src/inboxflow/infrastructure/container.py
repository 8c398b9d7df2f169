"""Composition root: wires adapters, coordinators and workflow types into an engine."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from inboxflow.application.ports import AiService, MailboxProvider
from inboxflow.application.use_cases import (
    IncomingMessageInput,
    SendReplyInput,
    SmartReplyCoordinator,
    SmartReplyInput,
    SyncCoordinator,
    SyncInput,
    TriageCoordinator,
    TriageInput,
)
from inboxflow.application.workflow.retry import RetryingActivityInvoker
from inboxflow.infrastructure.runtime import WorkflowDefinition, WorkflowEngine
from inboxflow.infrastructure.settings import Settings, get_settings
from inboxflow.infrastructure.sqlite import (
    SQLiteCheckpointStore,
    SQLiteClient,
    SQLiteEmailStore,
    SQLiteNotificationSink,
)

EMAIL_SYNC = "email_sync"
EMAIL_TRIAGE = "email_triage"
PROCESS_INCOMING = "process_incoming_email"
SMART_REPLY = "smart_reply"
SEND_REPLY = "send_reply"


def sync_identity(input: SyncInput) -> str:
    return f"email-sync-{input.grant_id}"


@dataclass
class Container:
    settings: Settings
    client: SQLiteClient
    store: SQLiteEmailStore
    checkpoints: SQLiteCheckpointStore
    notifications: SQLiteNotificationSink
    triage: TriageCoordinator
    sync: SyncCoordinator
    smart_reply: SmartReplyCoordinator
    engine: WorkflowEngine
    mailbox: MailboxProvider

    async def aclose(self) -> None:
        """Stop the engine, then release the mailbox HTTP client."""
        await self.engine.shutdown()
        close = getattr(self.mailbox, "aclose", None)
        if close is not None:
            await close()


def build_container(
    settings: Settings | None = None,
    mailbox: MailboxProvider | None = None,
    ai: AiService | None = None,
    client: SQLiteClient | None = None,
    invoker: RetryingActivityInvoker | None = None,
) -> Container:
    """Build every collaborator from settings. Tests pass fakes for the externals."""
    settings = settings or get_settings()
    client = client or SQLiteClient(settings.sqlite_db_path)
    invoker = invoker or RetryingActivityInvoker()

    if mailbox is None:
        from inboxflow.infrastructure.mailbox import NylasMailboxProvider

        if not settings.nylas_api_key:
            raise ValueError("NYLAS_API_KEY is required")
        mailbox = NylasMailboxProvider(
            api_key=settings.nylas_api_key.get_secret_value(),
            api_uri=settings.nylas_api_uri,
            timeout=settings.http_timeout_seconds,
        )
    if ai is None:
        from inboxflow.infrastructure.ai import LangChainAiService, create_llm

        ai = LangChainAiService(create_llm(settings))

    store = SQLiteEmailStore(client)
    checkpoints = SQLiteCheckpointStore(client)
    notifications = SQLiteNotificationSink(client)

    triage = TriageCoordinator(
        ai,
        store,
        notifications,
        invoker,
        mailbox=mailbox,
        batch_size=settings.triage_batch_size,
        batch_delay=settings.triage_batch_delay_seconds,
    )
    sync = SyncCoordinator(
        mailbox,
        store,
        checkpoints,
        triage,
        invoker,
        page_size=settings.sync_page_size,
        sync_interval=settings.sync_interval_seconds,
        dead_letter_threshold=settings.dead_letter_threshold,
    )
    smart_reply = SmartReplyCoordinator(ai, store, invoker, mailbox=mailbox)

    engine = WorkflowEngine(client)
    engine.define(WorkflowDefinition(EMAIL_SYNC, SyncInput, sync.run, sync_identity))
    engine.define(
        WorkflowDefinition(
            EMAIL_TRIAGE, TriageInput, triage.run, lambda i: f"email-triage-{i.message.message_id}"
        )
    )
    engine.define(
        WorkflowDefinition(
            PROCESS_INCOMING,
            IncomingMessageInput,
            triage.process_incoming,
            lambda i: f"process-email-{i.message_id}",
        )
    )
    engine.define(
        WorkflowDefinition(SMART_REPLY, SmartReplyInput, smart_reply.run, lambda i: f"smart-reply-{i.thread_id}")
    )
    engine.define(
        WorkflowDefinition(
            SEND_REPLY,
            SendReplyInput,
            lambda ctx, i: smart_reply.send_suggestion(i),
            lambda i: f"send-reply-{i.suggestion_id}",
        )
    )
    logger.info(f"Container ready (db={client.db_path}, provider={settings.llm_provider})")

    return Container(
        settings=settings,
        client=client,
        store=store,
        checkpoints=checkpoints,
        notifications=notifications,
        triage=triage,
        sync=sync,
        smart_reply=smart_reply,
        engine=engine,
        mailbox=mailbox,
    )
