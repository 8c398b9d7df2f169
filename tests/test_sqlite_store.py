"""
Tests for the SQLite stores
"""

import asyncio

from conftest import make_message

from inboxflow.application.ports import SyncCursor
from inboxflow.domain.models import AuditEvent, Priority, ReplySuggestion, Tone, TriageResult, WritingStyle


def triage_result(message, priority=Priority.NORMAL) -> TriageResult:
    return TriageResult(
        email_id=message.email_id,
        message_id=message.message_id,
        priority=priority,
        category="general",
        summary="summary",
        suggested_action="Review email",
    )


class TestEmailStore:
    def test_upsert_is_idempotent(self, store, sqlite_client):
        """Storing the same result twice keeps a single record"""
        message = make_message(1)
        result = triage_result(message)

        asyncio.run(store.upsert_triage("u", message, result))
        asyncio.run(store.upsert_triage("u", message, result))

        with sqlite_client.connection() as conn:
            count = conn.execute("SELECT COUNT(*) FROM emails WHERE message_id = 'msg-1'").fetchone()[0]
        assert count == 1
        assert asyncio.run(store.has_message("msg-1")) is True
        assert asyncio.run(store.get_triage("msg-1")) == result

    def test_stored_triage_is_not_overwritten(self, store):
        """A replayed page cannot re-classify a stored message"""
        message = make_message(1)
        asyncio.run(store.upsert_triage("u", message, triage_result(message)))
        asyncio.run(store.upsert_triage("u", message, triage_result(message, Priority.URGENT)))

        assert asyncio.run(store.get_triage("msg-1")).priority == Priority.NORMAL

    def test_link_assets_merges(self, store):
        message = make_message(1)
        asyncio.run(store.upsert_triage("u", message, triage_result(message)))

        asyncio.run(store.link_assets(message.email_id, ["AAPL"]))
        asyncio.run(store.link_assets(message.email_id, ["AAPL", "TSLA"]))

        assert asyncio.run(store.get_linked_assets(message.email_id)) == ["AAPL", "TSLA"]

    def test_watchlist(self, store):
        asyncio.run(store.add_to_watchlist("u", ["aapl", "BTC", "AAPL"]))
        assert asyncio.run(store.get_watchlist("u")) == {"AAPL", "BTC"}
        assert asyncio.run(store.get_watchlist("other")) == set()

    def test_thread_round_trip(self, store, sample_thread):
        asyncio.run(store.save_thread(sample_thread))
        assert asyncio.run(store.get_thread("thread-1")) == sample_thread
        assert asyncio.run(store.get_thread("missing")) is None

    def test_profile_defaults_and_partial_updates(self, store):
        assert asyncio.run(store.get_writing_style("u")) == WritingStyle()
        assert asyncio.run(store.get_signature("u")) == "Best regards"

        asyncio.run(store.save_profile("u", signature="-- Sam"))
        asyncio.run(store.save_profile("u", style=WritingStyle(formality_level=3)))

        assert asyncio.run(store.get_signature("u")) == "-- Sam"
        assert asyncio.run(store.get_writing_style("u")).formality_level == 3

    def test_suggestions(self, store):
        suggestion = ReplySuggestion(id="reply_1", tone=Tone.CONCISE, content="Sounds good, thanks.", confidence=0.7)
        asyncio.run(store.upsert_suggestions("thread-1", "u", [suggestion]))
        asyncio.run(store.upsert_suggestions("thread-1", "u", [suggestion]))

        assert asyncio.run(store.list_suggestions("thread-1")) == [suggestion]

        asyncio.run(store.mark_suggestion_used("reply_1", "sent-9"))
        assert asyncio.run(store.get_suggestion("reply_1")).used is True

    def test_new_suggestions_replace_unused_ones(self, store):
        sent = ReplySuggestion(id="reply_old", tone=Tone.FRIENDLY, content="Sure thing, thanks!", confidence=0.6)
        stale = ReplySuggestion(id="reply_stale", tone=Tone.CONCISE, content="Noted, thanks.", confidence=0.6)
        fresh = ReplySuggestion(id="reply_new", tone=Tone.PROFESSIONAL, content="Thank you, noted.", confidence=0.9)
        asyncio.run(store.upsert_suggestions("thread-1", "u", [sent, stale]))
        asyncio.run(store.mark_suggestion_used("reply_old", "sent-1"))

        asyncio.run(store.upsert_suggestions("thread-1", "u", [fresh]))

        assert [s.id for s in asyncio.run(store.list_suggestions("thread-1"))] == ["reply_old", "reply_new"]

    def test_audit_log(self, store):
        asyncio.run(store.record_audit(AuditEvent(user_id="u", action="a1", resource_type="r", resource_id="1")))
        asyncio.run(
            store.record_audit(
                AuditEvent(user_id="u", action="a2", resource_type="r", resource_id="2", metadata={"n": 2})
            )
        )

        events = asyncio.run(store.list_audit("u"))
        assert [e.action for e in events] == ["a1", "a2"]
        assert events[1].metadata == {"n": 2}
        assert [e.action for e in asyncio.run(store.list_audit("u", "a2"))] == ["a2"]


class TestDeadLetterLedger:
    def test_threshold(self, store):
        results = [asyncio.run(store.record_failure("msg-1", "g", f"err {i}", 3)) for i in range(3)]

        assert results == [False, False, True]
        assert asyncio.run(store.is_dead_lettered("msg-1")) is True
        dead = asyncio.run(store.list_dead_letters("g"))
        assert dead[0]["message_id"] == "msg-1"
        assert dead[0]["failure_count"] == 3
        assert dead[0]["last_error"] == "err 2"

    def test_success_clears_pending_failures(self, store, sqlite_client):
        message = make_message(1)
        asyncio.run(store.record_failure("msg-1", "g", "flaky", 3))
        asyncio.run(store.upsert_triage("u", message, triage_result(message)))

        with sqlite_client.connection() as conn:
            row = conn.execute("SELECT 1 FROM item_failures WHERE message_id = 'msg-1'").fetchone()
        assert row is None


class TestCheckpointStore:
    def test_missing_checkpoint(self, checkpoints):
        assert asyncio.run(checkpoints.load("g")) is None

    def test_save_and_overwrite(self, checkpoints):
        asyncio.run(checkpoints.save("u", SyncCursor("g", "token-1")))
        asyncio.run(checkpoints.save("u", SyncCursor("g", "token-2")))

        assert asyncio.run(checkpoints.load("g")) == SyncCursor("g", "token-2")

    def test_end_of_mailbox_is_a_none_token(self, checkpoints):
        asyncio.run(checkpoints.save("u", SyncCursor("g", None)))
        assert asyncio.run(checkpoints.load("g")) == SyncCursor("g", None)


class TestNotificationSink:
    def test_alerts_are_idempotent_per_email(self, sink):
        for _ in range(2):
            asyncio.run(sink.create_alert("u", "email_1", "Wire", "Send money", "Call back"))

        alerts = asyncio.run(sink.list_alerts("u"))
        assert len(alerts) == 1
        assert alerts[0]["title"] == "Urgent: Wire"
        assert alerts[0]["priority"] == "high"

    def test_notification_and_alert_coexist(self, sink):
        asyncio.run(sink.create_alert("u", "email_1", "Wire", "s", "a"))
        asyncio.run(sink.notify("u", "email_1", Priority.IMPORTANT, "s"))

        kinds = sorted(a["kind"] for a in asyncio.run(sink.list_alerts("u")))
        assert kinds == ["email_triage", "urgent_email"]

    def test_tasks(self, sink):
        asyncio.run(sink.create_task("u", "email_1", Priority.URGENT, "Reply", 15))
        asyncio.run(sink.create_task("u", "email_1", Priority.URGENT, "Reply", 15))

        tasks = asyncio.run(sink.list_tasks("u"))
        assert len(tasks) == 1
        assert tasks[0]["type"] == "email_response"
        assert tasks[0]["priority"] == "urgent"
