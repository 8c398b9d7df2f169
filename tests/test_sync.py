"""
Tests for the resumable mailbox sync loop
"""

import asyncio
from unittest.mock import patch

import pytest
from conftest import FakeMailbox, make_message, paged_mailbox

from inboxflow.application.ports import MailboxPage, SyncCursor
from inboxflow.application.use_cases import SyncCoordinator, SyncInput, TriageCoordinator
from inboxflow.application.use_cases.sync_mailbox import SYNC_STATUS_QUERY
from inboxflow.domain.errors import ContinueAsNew, NonRetryableError
from inboxflow.domain.models import SyncPhase

USER = "user-1"
GRANT = "grant-1"


def build_sync(mailbox, ai, store, checkpoints, notifier, invoker, **kwargs) -> SyncCoordinator:
    triage = TriageCoordinator(ai, store, notifier, invoker, mailbox=mailbox)
    return SyncCoordinator(mailbox, store, checkpoints, triage, invoker, **kwargs)


@pytest.fixture
def make_sync(ai, store, checkpoints, notifier, invoker):
    def factory(mailbox, **kwargs):
        return build_sync(mailbox, ai, store, checkpoints, notifier, invoker, **kwargs)

    return factory


def initial(cursor=None) -> SyncInput:
    return SyncInput(user_id=USER, grant_id=GRANT, cursor=cursor, initial_sync=True)


class TestInitialSync:
    """One full pass over the mailbox"""

    def test_two_page_mailbox(self, make_sync, ctx, checkpoints, store):
        """50 + 10 new messages -> 60 fetched, 60 processed, cursor cleared"""
        mailbox = paged_mailbox(50, 10)

        status = asyncio.run(make_sync(mailbox).run(ctx, initial()))

        assert status.emails_fetched == 60
        assert status.emails_processed == 60
        assert status.emails_triaged == 60
        assert status.cursor is None
        assert status.phase == SyncPhase.COMPLETED
        assert status.errors == []
        assert mailbox.fetches == [None, "page-2"]
        assert asyncio.run(checkpoints.load(GRANT)).token is None

        actions = [a.action for a in asyncio.run(store.list_audit(USER))]
        assert actions[0] == "email_sync_started"
        assert actions[-1] == "email_sync_completed"

    def test_no_page_is_skipped(self, make_sync, ctx, store):
        """The next page is fetched only after every item on the current page was handled"""
        mailbox = paged_mailbox(5, 5)
        page_one = mailbox.pages[None]
        stored_at_fetch: dict = {}
        original = mailbox.fetch_page

        async def fetch_and_snapshot(grant_id, cursor, limit):
            stored_at_fetch[cursor] = [await store.has_message(m.message_id) for m in page_one.items]
            return await original(grant_id, cursor, limit)

        mailbox.fetch_page = fetch_and_snapshot

        asyncio.run(make_sync(mailbox).run(ctx, initial()))

        assert stored_at_fetch[None] == [False] * 5
        assert stored_at_fetch["page-2"] == [True] * 5

    def test_empty_mailbox(self, make_sync, ctx):
        status = asyncio.run(make_sync(FakeMailbox()).run(ctx, initial()))

        assert status.emails_fetched == 0
        assert status.phase == SyncPhase.COMPLETED

    def test_empty_last_page_clears_checkpoint(self, make_sync, ctx, checkpoints):
        """Reaching the end on an empty page restarts the next epoch from the head"""
        asyncio.run(checkpoints.save(USER, SyncCursor(GRANT, "tail")))
        mailbox = FakeMailbox()

        status = asyncio.run(make_sync(mailbox).run(ctx, initial()))

        assert mailbox.fetches == ["tail"]
        assert status.cursor is None
        assert asyncio.run(checkpoints.load(GRANT)).token is None

    def test_empty_page_with_new_cursor_keeps_going(self, make_sync, ctx):
        mailbox = FakeMailbox(
            {
                None: MailboxPage(items=(), next_cursor="c2"),
                "c2": MailboxPage(items=(make_message(1),), next_cursor=None),
            }
        )
        status = asyncio.run(make_sync(mailbox).run(ctx, initial()))

        assert mailbox.fetches == [None, "c2"]
        assert status.emails_processed == 1

    def test_status_query_reports_live_counters(self, make_sync, ctx):
        asyncio.run(make_sync(paged_mailbox(3)).run(ctx, initial()))

        status = ctx.query(SYNC_STATUS_QUERY)
        assert status.sync_id == "sync_test-instance"
        assert status.emails_triaged == 3

    def test_side_effect_counters(self, make_sync, ctx, store, notifier):
        asyncio.run(store.add_to_watchlist(USER, ["AAPL"]))
        mailbox = FakeMailbox(
            {
                None: MailboxPage(
                    items=(
                        make_message(1, subject="URGENT: margin call", body="Cover AAPL now"),
                        make_message(2, subject="Lunch?", body="Are you free"),
                    )
                )
            }
        )
        status = asyncio.run(make_sync(mailbox).run(ctx, initial()))

        assert status.urgent_alerts_created == 1
        assert status.trading_signals_detected == 1
        assert notifier.alerts == ["email_msg-1"]


class TestIdempotence:
    def test_second_pass_dedupes(self, make_sync, ctx, ai):
        mailbox = paged_mailbox(4, 2)
        sync = make_sync(mailbox)
        asyncio.run(sync.run(ctx, initial()))
        calls_after_first = len(ai.classify_calls)

        status = asyncio.run(sync.run(ctx, initial()))

        assert status.emails_fetched == 6
        assert status.emails_processed == 6
        assert status.emails_triaged == 0
        assert len(ai.classify_calls) == calls_after_first


class TestResume:
    def test_failed_epoch_resumes_from_checkpoint(self, make_sync, ctx, store, checkpoints):
        mailbox = paged_mailbox(5, 3)
        mailbox.fail_on["page-2"] = NonRetryableError("grant revoked")
        sync = make_sync(mailbox)

        with pytest.raises(NonRetryableError):
            asyncio.run(sync.run(ctx, initial()))

        assert ctx.query(SYNC_STATUS_QUERY).phase == SyncPhase.FAILED
        assert asyncio.run(checkpoints.load(GRANT)).token == "page-2"
        assert [a.action for a in asyncio.run(store.list_audit(USER, "email_sync_failed"))] == ["email_sync_failed"]

        del mailbox.fail_on["page-2"]
        mailbox.fetches.clear()
        status = asyncio.run(sync.run(ctx, initial()))

        assert mailbox.fetches == ["page-2"]
        assert status.emails_fetched == 3
        assert status.cursor is None

    def test_exhausted_store_write_fails_the_epoch(self, make_sync, ctx, store, checkpoints, sleep):
        async def unavailable(*args, **kwargs):
            raise RuntimeError("503 store unavailable")

        with patch.object(store, "upsert_triage", unavailable):
            with pytest.raises(RuntimeError):
                asyncio.run(make_sync(paged_mailbox(2, 2)).run(ctx, initial()))

        # The page was never checkpointed, so a restart re-reads it
        assert asyncio.run(checkpoints.load(GRANT)) is None
        assert ctx.query(SYNC_STATUS_QUERY).phase == SyncPhase.FAILED


class TestDeadLetter:
    def test_poison_message_is_dead_lettered_after_three_epochs(self, make_sync, ctx, store):
        mailbox = paged_mailbox(4)
        real_upsert = store.upsert_triage

        async def poison(user_id, message, result):
            if message.message_id == "msg-2":
                raise NonRetryableError("payload rejected")
            await real_upsert(user_id, message, result)

        sync = make_sync(mailbox, dead_letter_threshold=3)
        with patch.object(store, "upsert_triage", poison):
            epochs = [asyncio.run(sync.run(ctx, initial())) for _ in range(3)]

        assert [len(s.errors) for s in epochs] == [1, 1, 1]
        assert epochs[0].errors[0].email_id == "msg-2"
        assert [s.dead_lettered for s in epochs] == [0, 0, 1]
        assert epochs[0].emails_processed == 3
        assert asyncio.run(store.is_dead_lettered("msg-2")) is True

        fourth = asyncio.run(sync.run(ctx, initial()))
        assert fourth.errors == []
        assert fourth.emails_processed == 4

    def test_number_in_error_text_is_not_a_transient_failure(self, make_sync, ctx, store):
        real_upsert = store.upsert_triage

        async def oversized(user_id, message, result):
            if message.message_id == "msg-1":
                raise ValueError("attachment exceeds limit 5000")
            await real_upsert(user_id, message, result)

        with patch.object(store, "upsert_triage", oversized):
            status = asyncio.run(make_sync(paged_mailbox(2)).run(ctx, initial()))

        assert status.phase == SyncPhase.COMPLETED
        assert [e.email_id for e in status.errors] == ["msg-1"]
        assert status.emails_triaged == 1


class TestContinuousSync:
    def test_continues_as_new_after_interval(self, make_sync, ctx):
        sync = make_sync(paged_mailbox(2), sync_interval=300)

        with pytest.raises(ContinueAsNew) as info:
            asyncio.run(sync.run(ctx, SyncInput(user_id=USER, grant_id=GRANT)))

        assert ctx.sleeps[-1] == 300
        next_input = info.value.next_input
        assert next_input == SyncInput(user_id=USER, grant_id=GRANT, cursor=None, initial_sync=False)
        assert info.value.result.emails_triaged == 2
