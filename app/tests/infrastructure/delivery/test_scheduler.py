"""Tests for RetryScheduler."""

import random
import threading
import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from infrastructure.audit import AuditReadError
from infrastructure.delivery import (
    DeliveryChannel,
    DeliveryConfig,
    DeliveryStatus,
    DeliveryStoreError,
    InvalidTransitionError,
    RateLimitDecision,
    RecordNotFoundError,
    RetryScheduler,
)
from infrastructure.delivery.backoff import DELAY_CEILING
from tests.factories.delivery import (
    T0,
    make_record,
    permanent_result,
    retryable_result,
    success_result,
)

WEBHOOK_URL = "https://hooks.example.com/intake?token=s3cret"


def enqueue_webhook(scheduler, max_attempts=3, **kwargs):
    return scheduler.enqueue(
        DeliveryChannel.WEBHOOK,
        WEBHOOK_URL,
        {"event": "intake.submitted", "lead_id": "42"},
        max_attempts=max_attempts,
        **kwargs,
    )


class TestEnqueue:
    def test_creates_pending_record_due_now(self, scheduler, clock):
        record_id = enqueue_webhook(scheduler)

        record = scheduler.get_status(record_id)
        assert record.status == DeliveryStatus.PENDING
        assert record.attempt_count == 0
        assert record.next_eligible_at == clock.now

    def test_uses_configured_default_budget(self, store, audit_log, clock):
        scheduler = RetryScheduler(
            store=store,
            audit_log=audit_log,
            senders={},
            config=DeliveryConfig(default_max_attempts=7),
            clock=clock,
        )

        record_id = scheduler.enqueue("sms", "+15855550123", {"body": "hi"})

        assert scheduler.get_status(record_id).max_attempts == 7

    def test_rejects_invalid_input(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.enqueue("webhook", "", {})
        with pytest.raises(ValueError):
            scheduler.enqueue("fax", WEBHOOK_URL, {})
        with pytest.raises(ValueError):
            enqueue_webhook(scheduler, max_attempts=0)

    def test_get_status_unknown_record(self, scheduler):
        with pytest.raises(RecordNotFoundError):
            scheduler.get_status("missing")


class TestRetryLifecycle:
    """End-to-end retry behavior over several cycles."""

    def test_succeeds_on_third_attempt_following_backoff(
        self, scheduler, webhook_sender, audit_log, clock
    ):
        webhook_sender.attempt.side_effect = [
            retryable_result(),
            retryable_result(),
            success_result(),
        ]
        record_id = enqueue_webhook(scheduler, max_attempts=3)

        first = scheduler.run_cycle()
        record = scheduler.get_status(record_id)
        assert first.processed == 1
        assert first.failed_retryable == 1
        assert record.status == DeliveryStatus.FAILED_RETRYABLE
        assert record.next_eligible_at == T0 + timedelta(minutes=5)

        clock.advance(minutes=4)
        assert scheduler.run_cycle().processed == 0

        clock.set(T0 + timedelta(minutes=5))
        scheduler.run_cycle()
        record = scheduler.get_status(record_id)
        assert record.attempt_count == 2
        assert record.next_eligible_at == T0 + timedelta(minutes=20)

        clock.set(record.next_eligible_at)
        last = scheduler.run_cycle()

        record = scheduler.get_status(record_id)
        assert last.succeeded == 1
        assert record.status == DeliveryStatus.SUCCEEDED
        assert record.attempt_count == 3
        entries = audit_log.list_for_record(record_id)
        assert [e.status for e in entries] == [
            "failed_retryable",
            "failed_retryable",
            "succeeded",
        ]
        assert entries[1].timestamp - entries[0].timestamp == timedelta(minutes=5)
        assert entries[2].timestamp - entries[1].timestamp == timedelta(minutes=15)

    def test_exhausted_budget_abandons(
        self, scheduler, webhook_sender, audit_log, clock
    ):
        webhook_sender.attempt.return_value = retryable_result()
        record_id = enqueue_webhook(scheduler, max_attempts=3)

        for _ in range(3):
            scheduler.run_cycle()
            clock.set(scheduler.get_status(record_id).next_eligible_at)

        record = scheduler.get_status(record_id)
        assert record.status == DeliveryStatus.ABANDONED
        assert record.attempt_count == 3
        assert record.last_error == "Webhook server error (503)"

        final = audit_log.list_for_record(record_id)[-1]
        assert final.reason == "exhausted"
        assert final.failure_history == ["Webhook server error (503)"] * 3

    def test_permanent_failure_skips_remaining_budget(
        self, scheduler, webhook_sender, audit_log
    ):
        webhook_sender.attempt.return_value = permanent_result()
        record_id = enqueue_webhook(scheduler, max_attempts=5)

        summary = scheduler.run_cycle()

        record = scheduler.get_status(record_id)
        assert summary.abandoned == 1
        assert record.status == DeliveryStatus.ABANDONED
        assert record.attempt_count == 1
        entry = audit_log.list_for_record(record_id)[0]
        assert entry.reason == "permanent"
        assert entry.error_code == "HTTP_ERROR"

    def test_single_attempt_budget_abandons_after_one_retryable_failure(
        self, scheduler, webhook_sender
    ):
        webhook_sender.attempt.return_value = retryable_result()
        record_id = enqueue_webhook(scheduler, max_attempts=1)

        scheduler.run_cycle()

        record = scheduler.get_status(record_id)
        assert record.status == DeliveryStatus.ABANDONED
        assert record.attempt_count == 1

    def test_retry_after_sets_a_floor(self, scheduler, webhook_sender):
        webhook_sender.attempt.return_value = retryable_result(
            "Webhook rate limited (429)", retry_after=3600
        )
        record_id = enqueue_webhook(scheduler)

        scheduler.run_cycle()

        record = scheduler.get_status(record_id)
        assert record.next_eligible_at == T0 + timedelta(hours=1)

    def test_large_attempt_count_schedules_within_ceiling(
        self, scheduler, store, webhook_sender
    ):
        webhook_sender.attempt.return_value = retryable_result()
        record = make_record(attempt_count=1999, max_attempts=5000)
        store.insert(record)

        summary = scheduler.run_cycle()

        current = store.get(record.id)
        assert summary.failed_retryable == 1
        assert current.status == DeliveryStatus.FAILED_RETRYABLE
        assert current.next_eligible_at == T0 + DELAY_CEILING

    def test_attempt_count_never_exceeds_budget(self, scheduler, webhook_sender, clock):
        outcomes = random.Random(7)
        webhook_sender.attempt.side_effect = lambda record: (
            success_result() if outcomes.random() < 0.2 else retryable_result()
        )
        record_ids = [enqueue_webhook(scheduler, max_attempts=4) for _ in range(10)]

        for _ in range(8):
            scheduler.run_cycle()
            clock.advance(hours=2)

        for record_id in record_ids:
            record = scheduler.get_status(record_id)
            assert record.attempt_count <= record.max_attempts
            assert record.status in (DeliveryStatus.SUCCEEDED, DeliveryStatus.ABANDONED)
            if record.status == DeliveryStatus.ABANDONED:
                assert record.attempt_count == record.max_attempts

    def test_terminal_records_are_never_touched_again(
        self, scheduler, webhook_sender, clock
    ):
        webhook_sender.attempt.side_effect = [success_result(), permanent_result()]
        delivered = enqueue_webhook(scheduler)
        rejected = enqueue_webhook(scheduler)
        scheduler.run_cycle()
        before = {rid: scheduler.get_status(rid).to_dict() for rid in (delivered, rejected)}

        for _ in range(3):
            clock.advance(days=1)
            summary = scheduler.run_cycle()
            assert summary.processed == 0

        after = {rid: scheduler.get_status(rid).to_dict() for rid in (delivered, rejected)}
        assert after == before
        assert webhook_sender.attempt.call_count == 2

    def test_one_audit_entry_per_attempt(
        self, scheduler, webhook_sender, audit_log, clock
    ):
        webhook_sender.attempt.side_effect = lambda record: (
            success_result() if record.payload["lead_id"] == "ok" else retryable_result()
        )
        ok = scheduler.enqueue("webhook", WEBHOOK_URL, {"lead_id": "ok"})
        failing = scheduler.enqueue("webhook", WEBHOOK_URL, {"lead_id": "bad"})

        for _ in range(4):
            scheduler.run_cycle()
            clock.advance(hours=1)

        for record_id in (ok, failing):
            record = scheduler.get_status(record_id)
            assert len(audit_log.list_for_record(record_id)) == record.attempt_count
        assert len(audit_log) == 1 + 3


class TestAuditEntries:
    def test_entry_contents(self, scheduler, audit_log):
        record_id = enqueue_webhook(scheduler, metadata={"webhook_name": "crm"})

        scheduler.run_cycle()

        entry = audit_log.list_for_record(record_id)[0]
        assert entry.channel == "webhook"
        assert entry.target == "https://hooks.example.com"
        assert entry.status == "succeeded"
        assert entry.reason == "success"
        assert entry.error_message is None
        assert entry.timestamp == T0
        assert entry.metadata["webhook_name"] == "crm"
        assert entry.metadata["response"]["status_code"] == 200

    def test_audit_write_failure_keeps_record_state(self, scheduler, audit_log):
        audit_log.append = MagicMock(side_effect=RuntimeError("table gone"))
        record_id = enqueue_webhook(scheduler)

        summary = scheduler.run_cycle()

        assert summary.succeeded == 1
        assert scheduler.get_status(record_id).status == DeliveryStatus.SUCCEEDED

    def test_unreadable_history_is_flagged_on_abandonment(
        self, scheduler, audit_log, webhook_sender
    ):
        webhook_sender.attempt.return_value = permanent_result()
        audit_log.list_for_record = MagicMock(side_effect=AuditReadError("down"))
        enqueue_webhook(scheduler)

        scheduler.run_cycle()

        entry = audit_log.list_between(
            T0 - timedelta(days=1), T0 + timedelta(days=1)
        )[0]
        assert entry.status == "abandoned"
        assert entry.failure_history == [permanent_result().message]
        assert entry.metadata["failure_history_incomplete"] is True


class TestRateLimiting:
    @pytest.fixture
    def denying_limiter(self):
        limiter = MagicMock()
        limiter.check_and_consume.return_value = RateLimitDecision(
            allowed=False, retry_after=30
        )
        return limiter

    @pytest.mark.parametrize(
        "status,attempt_count",
        [(DeliveryStatus.PENDING, 0), (DeliveryStatus.FAILED_RETRYABLE, 1)],
    )
    def test_throttled_record_is_left_untouched(
        self,
        store,
        audit_log,
        webhook_sender,
        clock,
        denying_limiter,
        status,
        attempt_count,
    ):
        scheduler = RetryScheduler(
            store=store,
            audit_log=audit_log,
            senders={DeliveryChannel.WEBHOOK: webhook_sender},
            rate_limiter=denying_limiter,
            clock=clock,
        )
        record = make_record(
            status=status,
            attempt_count=attempt_count,
            scope_key="clinic-7",
            next_eligible_at=T0 - timedelta(minutes=1),
        )
        store.insert(record)

        summary = scheduler.run_cycle()

        current = store.get(record.id)
        assert summary.throttled == 1
        assert summary.processed == 0
        assert current.status == status
        assert current.attempt_count == attempt_count
        assert current.next_eligible_at == record.next_eligible_at
        assert len(audit_log) == 0
        webhook_sender.attempt.assert_not_called()
        denying_limiter.check_and_consume.assert_called_once_with(
            DeliveryChannel.WEBHOOK, "clinic-7"
        )


class TestConcurrency:
    def test_overlapping_cycles_attempt_record_once(self, scheduler, webhook_sender):
        def slow_success(record):
            time.sleep(0.05)
            return success_result()

        webhook_sender.attempt.side_effect = slow_success
        enqueue_webhook(scheduler)
        barrier = threading.Barrier(2)
        summaries = []

        def run():
            barrier.wait()
            summaries.append(scheduler.run_cycle())

        threads = [threading.Thread(target=run) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(s.processed for s in summaries) == 1
        assert webhook_sender.attempt.call_count == 1

    def test_batch_processes_many_records(self, scheduler, webhook_sender):
        for _ in range(20):
            enqueue_webhook(scheduler)

        summary = scheduler.run_cycle(batch_size=15)

        assert summary.processed == 15
        assert summary.succeeded == 15
        assert webhook_sender.attempt.call_count == 15


class TestFailureIsolation:
    def test_missing_sender_abandons_record(self, scheduler, audit_log):
        record_id = scheduler.enqueue("email", "jane.doe@clinic.org", {"html": "<p>hi</p>"})

        summary = scheduler.run_cycle()

        record = scheduler.get_status(record_id)
        assert summary.abandoned == 1
        assert record.status == DeliveryStatus.ABANDONED
        assert audit_log.list_for_record(record_id)[0].error_code == "NO_SENDER"

    def test_unexpected_error_reverts_claim(self, scheduler, webhook_sender):
        webhook_sender.attempt.side_effect = [RuntimeError("boom"), success_result()]
        broken = enqueue_webhook(scheduler)
        healthy = enqueue_webhook(scheduler)

        summary = scheduler.run_cycle()

        assert summary.errors == 1
        assert summary.succeeded == 1
        statuses = {
            scheduler.get_status(broken).status,
            scheduler.get_status(healthy).status,
        }
        assert statuses == {DeliveryStatus.PENDING, DeliveryStatus.SUCCEEDED}
        reverted = [
            scheduler.get_status(rid)
            for rid in (broken, healthy)
            if scheduler.get_status(rid).status == DeliveryStatus.PENDING
        ][0]
        assert reverted.attempt_count == 0
        assert reverted.claimed_at is None

    def test_rejected_completion_counts_as_error(self, scheduler, store, audit_log):
        store.complete = MagicMock(return_value=False)
        enqueue_webhook(scheduler)

        summary = scheduler.run_cycle()

        assert summary.errors == 1
        assert summary.processed == 0
        assert len(audit_log) == 0

    def test_fetch_failure_raises_store_error(self, scheduler, store):
        store.fetch_due = MagicMock(side_effect=RuntimeError("connection reset"))

        with pytest.raises(DeliveryStoreError, match="connection reset"):
            scheduler.run_cycle()

    def test_store_failure_on_claim_stops_cycle(
        self, store, audit_log, webhook_sender, clock
    ):
        scheduler = RetryScheduler(
            store=store,
            audit_log=audit_log,
            senders={DeliveryChannel.WEBHOOK: webhook_sender},
            config=DeliveryConfig(max_workers=1),
            clock=clock,
        )
        for _ in range(5):
            enqueue_webhook(scheduler)
        hold = threading.Event()
        calls = []

        def claim(record_id, now):
            calls.append(record_id)
            if len(calls) == 1:
                raise DeliveryStoreError("store down", error_code="CONNECTION_ERROR")
            # Keeps the only worker busy so the remaining records stay queued
            hold.wait(timeout=1)
            return None

        store.claim = MagicMock(side_effect=claim)

        with pytest.raises(DeliveryStoreError, match="store down"):
            scheduler.run_cycle()

        assert len(calls) <= 2
        webhook_sender.attempt.assert_not_called()
        assert len(audit_log) == 0

    def test_unexpected_claim_error_is_a_store_failure(self, scheduler, store):
        store.claim = MagicMock(side_effect=RuntimeError("connection reset"))
        enqueue_webhook(scheduler)

        with pytest.raises(DeliveryStoreError, match="connection reset"):
            scheduler.run_cycle()

    def test_store_failure_on_complete_stops_cycle(
        self, scheduler, store, audit_log, webhook_sender
    ):
        record_id = enqueue_webhook(scheduler)
        store.complete = MagicMock(side_effect=DeliveryStoreError("write failed"))

        with pytest.raises(DeliveryStoreError, match="write failed"):
            scheduler.run_cycle()

        webhook_sender.attempt.assert_called_once()
        record = scheduler.get_status(record_id)
        assert record.status == DeliveryStatus.IN_FLIGHT
        assert record.attempt_count == 0
        assert len(audit_log) == 0

    def test_store_failure_on_release_stops_cycle(self, scheduler, store, webhook_sender):
        webhook_sender.attempt.side_effect = RuntimeError("boom")
        store.release = MagicMock(side_effect=DeliveryStoreError("release failed"))
        enqueue_webhook(scheduler)

        with pytest.raises(DeliveryStoreError, match="release failed"):
            scheduler.run_cycle()

    def test_invalid_batch_size(self, scheduler):
        with pytest.raises(ValueError, match="batch_size"):
            scheduler.run_cycle(batch_size=0)

    def test_delivered_callback(self, store, audit_log, webhook_sender, clock):
        delivered = []
        scheduler = RetryScheduler(
            store=store,
            audit_log=audit_log,
            senders={DeliveryChannel.WEBHOOK: webhook_sender},
            clock=clock,
            on_delivered=lambda record, result: delivered.append(record.id),
        )
        record_id = enqueue_webhook(scheduler)

        scheduler.run_cycle()

        assert delivered == [record_id]

    def test_failing_callback_does_not_fail_cycle(
        self, store, audit_log, webhook_sender, clock
    ):
        scheduler = RetryScheduler(
            store=store,
            audit_log=audit_log,
            senders={DeliveryChannel.WEBHOOK: webhook_sender},
            clock=clock,
            on_delivered=MagicMock(side_effect=RuntimeError("crm down")),
        )
        enqueue_webhook(scheduler)

        assert scheduler.run_cycle().succeeded == 1


class TestReconcileStale:
    def test_reverts_claims_older_than_timeout(self, scheduler, store, clock):
        record_id = enqueue_webhook(scheduler)
        store.claim(record_id, clock.now)

        clock.advance(seconds=60)
        assert scheduler.reconcile_stale() == 0

        clock.advance(seconds=31)
        assert scheduler.reconcile_stale() == 1

        record = scheduler.get_status(record_id)
        assert record.status == DeliveryStatus.FAILED_RETRYABLE
        assert record.attempt_count == 0
        assert record.claimed_at is None

    def test_reverted_record_is_retried(self, scheduler, store, clock, webhook_sender):
        record_id = enqueue_webhook(scheduler)
        store.claim(record_id, clock.now)
        clock.advance(minutes=5)
        scheduler.reconcile_stale()

        summary = scheduler.run_cycle()

        assert summary.succeeded == 1
        assert scheduler.get_status(record_id).attempt_count == 1


class TestRetryNow:
    def test_requeues_abandoned_record(self, scheduler, webhook_sender):
        webhook_sender.attempt.return_value = permanent_result()
        abandoned_id = enqueue_webhook(scheduler, scope_key="clinic-7")
        scheduler.run_cycle()

        new_id = scheduler.retry_now(abandoned_id)

        new_record = scheduler.get_status(new_id)
        assert new_id != abandoned_id
        assert new_record.status == DeliveryStatus.PENDING
        assert new_record.attempt_count == 0
        assert new_record.requeued_from == abandoned_id
        assert new_record.scope_key == "clinic-7"
        assert new_record.payload == {"event": "intake.submitted", "lead_id": "42"}
        assert scheduler.get_status(abandoned_id).status == DeliveryStatus.ABANDONED

    def test_rejects_records_that_are_not_abandoned(self, scheduler):
        record_id = enqueue_webhook(scheduler)

        with pytest.raises(InvalidTransitionError, match="Cannot retry"):
            scheduler.retry_now(record_id)

    def test_unknown_record(self, scheduler):
        with pytest.raises(RecordNotFoundError):
            scheduler.retry_now("missing")
