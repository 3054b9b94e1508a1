"""Tests for delivery models."""

from datetime import timedelta

import pytest

from infrastructure.delivery import (
    CycleSummary,
    DeliveryAttemptRecord,
    DeliveryChannel,
    DeliveryStatus,
)
from tests.factories.delivery import T0, make_record


class TestDeliveryAttemptRecord:
    """Tests for DeliveryAttemptRecord."""

    def test_defaults(self):
        record = DeliveryAttemptRecord(
            channel="webhook", target="https://hooks.example.com", payload={}
        )

        assert record.channel is DeliveryChannel.WEBHOOK
        assert record.status is DeliveryStatus.PENDING
        assert record.attempt_count == 0
        assert record.max_attempts == 3
        assert len(record.id) == 32

    def test_ids_are_unique(self):
        assert make_record().id != make_record().id

    def test_rejects_empty_target(self):
        with pytest.raises(ValueError, match="target"):
            make_record(target="")

    def test_rejects_non_dict_payload(self):
        with pytest.raises(ValueError, match="payload"):
            make_record(payload=["not", "a", "dict"])

    def test_rejects_zero_max_attempts(self):
        with pytest.raises(ValueError, match="max_attempts"):
            make_record(max_attempts=0)

    def test_rejects_attempt_count_over_budget(self):
        with pytest.raises(ValueError, match="attempt_count"):
            make_record(max_attempts=2, attempt_count=3)

    def test_rejects_unknown_channel(self):
        with pytest.raises(ValueError):
            make_record(channel="pigeon")

    @pytest.mark.parametrize(
        "status,expected",
        [
            (DeliveryStatus.PENDING, True),
            (DeliveryStatus.FAILED_RETRYABLE, True),
            (DeliveryStatus.IN_FLIGHT, False),
            (DeliveryStatus.SUCCEEDED, False),
            (DeliveryStatus.ABANDONED, False),
        ],
    )
    def test_is_due_by_status(self, status, expected):
        record = make_record(status=status)

        assert record.is_due(T0) is expected

    def test_is_due_respects_next_eligible_at(self):
        record = make_record(next_eligible_at=T0 + timedelta(minutes=5))

        assert record.is_due(T0) is False
        assert record.is_due(T0 + timedelta(minutes=5)) is True

    def test_copy_detaches_payload_and_metadata(self):
        record = make_record(payload={"a": 1}, metadata={"source": "crm"})

        copy = record.copy(attempt_count=1)
        copy.payload["a"] = 2
        copy.metadata["source"] = "other"

        assert record.payload == {"a": 1}
        assert record.metadata == {"source": "crm"}
        assert copy.attempt_count == 1
        assert record.attempt_count == 0

    def test_to_dict(self):
        record = make_record(scope_key="clinic-7")

        data = record.to_dict()

        assert data["channel"] == "webhook"
        assert data["status"] == "pending"
        assert data["scope_key"] == "clinic-7"
        assert data["claimed_at"] is None
        assert data["next_eligible_at"] == T0.isoformat()


def test_status_flags():
    assert DeliveryStatus.SUCCEEDED.is_terminal
    assert DeliveryStatus.ABANDONED.is_terminal
    assert not DeliveryStatus.FAILED_RETRYABLE.is_terminal
    assert DeliveryStatus.FAILED_RETRYABLE.is_claimable
    assert not DeliveryStatus.IN_FLIGHT.is_claimable


def test_cycle_summary_to_dict():
    summary = CycleSummary(processed=2, succeeded=1, abandoned=1, throttled=3)

    assert summary.to_dict() == {
        "processed": 2,
        "succeeded": 1,
        "failed_retryable": 0,
        "abandoned": 1,
        "throttled": 3,
        "skipped": 0,
        "errors": 0,
    }
