"""
Tests for the triage coordinator
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from conftest import FakeMailbox, make_message

from inboxflow.application.use_cases import IncomingMessageInput, TriageCoordinator, TriageInput
from inboxflow.application.use_cases.triage_email import TRIAGE_STATUS_QUERY
from inboxflow.domain.errors import NonRetryableError
from inboxflow.domain.models import AiClassification, Priority, TriagePhase

USER = "user-1"


@pytest.fixture
def mailbox() -> FakeMailbox:
    return FakeMailbox()


@pytest.fixture
def triage(ai, store, notifier, invoker, mailbox) -> TriageCoordinator:
    return TriageCoordinator(ai, store, notifier, invoker, mailbox=mailbox, batch_size=5, batch_delay=0.5)


def wire_transfer():
    return make_message(
        "wire",
        subject="URGENT: wire transfer",
        body="Please wire $50,000 today to cover the AAPL position.",
        sender="cfo@fund.com",
    )


class TestTriage:
    """Per-email pipeline"""

    def test_urgent_wire_transfer_with_watched_ticker(self, triage):
        result = asyncio.run(triage.triage(wire_transfer(), {"AAPL"}))

        assert result.priority == Priority.URGENT
        assert result.entities.amounts == ["$50,000"]
        assert result.confirmed_signals == ["AAPL"]
        assert result.candidate_signals == []
        assert result.email_id == "email_msg-wire"

    def test_unwatched_ticker_is_a_candidate(self, triage):
        result = asyncio.run(triage.triage(wire_transfer(), set()))

        assert result.confirmed_signals == []
        assert result.candidate_signals == ["AAPL"]

    def test_category_comes_from_local_rules(self, triage):
        message = make_message(1, subject="Your invoice", body="Click to unsubscribe.")
        result = asyncio.run(triage.triage(message))
        assert result.category == "newsletter"

    def test_ai_priority_is_the_fallback(self, ai, triage):
        ai.classification = AiClassification(priority=Priority.IMPORTANT, summary="s")
        result = asyncio.run(triage.triage(make_message(1, subject="Hello", body="Quick question about lunch")))
        assert result.priority == Priority.IMPORTANT

    def test_fatal_ai_error_degrades(self, ai, triage):
        ai.classify_error = NonRetryableError("invalid api key")
        result = asyncio.run(triage.triage(make_message(1, subject="Hello")))

        assert result.confidence == 0.5
        assert result.summary == "Hello"
        assert result.suggested_action == "Review email"
        assert len(ai.classify_calls) == 1

    def test_transient_ai_error_is_retried_then_degrades(self, ai, triage, sleep):
        ai.classify_error = RuntimeError("503 service unavailable")
        result = asyncio.run(triage.triage(make_message(1)))

        assert result.confidence == 0.5
        # CLASSIFY_POLICY allows 2 retries
        assert len(ai.classify_calls) == 3
        assert len(sleep.delays) == 2


class TestSideEffects:
    def test_urgent_creates_alert_and_task(self, triage, store, notifier, ctx):
        asyncio.run(store.add_to_watchlist(USER, ["AAPL"]))
        result = asyncio.run(triage.run(ctx, TriageInput(user_id=USER, message=wire_transfer())))

        assert notifier.alerts == [result.email_id]
        assert notifier.tasks == [result.email_id]
        assert notifier.notifications == []
        assert asyncio.run(store.get_linked_assets(result.email_id)) == ["AAPL"]

    def test_important_sends_notification(self, ai, triage, notifier, ctx):
        ai.classification = AiClassification(priority=Priority.IMPORTANT, requires_response=True)
        message = make_message(2, subject="Deadline for the report", body="Let me know.")

        asyncio.run(triage.run(ctx, TriageInput(user_id=USER, message=message)))

        assert notifier.notifications == [message.email_id]
        assert notifier.alerts == []
        assert notifier.tasks == [message.email_id]

    def test_notification_failure_is_swallowed(self, triage, notifier, store, ctx):
        notifier.error = NonRetryableError("push service rejected")

        result = asyncio.run(triage.run(ctx, TriageInput(user_id=USER, message=wire_transfer())))

        assert result.priority == Priority.URGENT
        assert asyncio.run(store.has_message("msg-wire")) is True
        assert ctx.query(TRIAGE_STATUS_QUERY).phase == TriagePhase.COMPLETED


class TestRun:
    def test_run_persists_and_audits(self, triage, store, ctx):
        message = make_message(3)
        result = asyncio.run(triage.run(ctx, TriageInput(user_id=USER, message=message)))

        assert asyncio.run(store.get_triage("msg-3")) == result
        audit = asyncio.run(store.list_audit(USER, "email_triaged"))
        assert [a.resource_id for a in audit] == ["email_msg-3"]

        status = ctx.query(TRIAGE_STATUS_QUERY)
        assert status.phase == TriagePhase.COMPLETED
        assert status.result == result

    def test_store_failure_fails_the_run(self, triage, store, ctx):
        with patch.object(store, "upsert_triage", AsyncMock(side_effect=NonRetryableError("disk full"))):
            with pytest.raises(NonRetryableError):
                asyncio.run(triage.run(ctx, TriageInput(user_id=USER, message=make_message(4))))

        assert ctx.query(TRIAGE_STATUS_QUERY).phase == TriagePhase.FAILED
        failures = asyncio.run(store.list_audit(USER, "email_triage_failed"))
        assert failures[0].metadata == {"error": "disk full"}


class TestProcessIncoming:
    def test_fetches_and_triages_new_message(self, triage, mailbox, store, ctx):
        mailbox.messages["msg-5"] = make_message(5, subject="Meeting moved")

        result = asyncio.run(
            triage.process_incoming(ctx, IncomingMessageInput(user_id=USER, grant_id="g-1", message_id="msg-5"))
        )

        assert result.category == "scheduling"
        assert asyncio.run(store.has_message("msg-5")) is True

    def test_already_stored_message_is_skipped(self, triage, mailbox, ctx, ai):
        mailbox.messages["msg-6"] = make_message(6)
        input = IncomingMessageInput(user_id=USER, grant_id="g-1", message_id="msg-6")

        asyncio.run(triage.process_incoming(ctx, input))
        second = asyncio.run(triage.process_incoming(ctx, input))

        assert second is None
        assert len(ai.classify_calls) == 1


class TestBatch:
    def test_batch_triage_heartbeats_per_chunk(self, triage, ctx):
        messages = [make_message(i) for i in range(12)]

        outcomes = asyncio.run(triage.triage_batch(ctx, messages))

        assert all(o.ok for o in outcomes)
        assert len(ctx.heartbeats) == 3
        assert ctx.sleeps == [0.5, 0.5]
