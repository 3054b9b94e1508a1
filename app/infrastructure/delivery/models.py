"""Delivery models.

Data structures shared by the scheduler, the stores and the API layer.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryChannel(str, Enum):
    """Delivery medium. Selects the Sender and the rate limit bucket."""

    WEBHOOK = "webhook"
    EMAIL = "email"
    SMS = "sms"


class DeliveryStatus(str, Enum):
    """Lifecycle of a delivery attempt record.

    ``pending -> in_flight -> succeeded | failed_retryable | abandoned``;
    ``failed_retryable -> in_flight`` on the next due cycle.
    """

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED_RETRYABLE = "failed_retryable"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_claimable(self) -> bool:
        return self in CLAIMABLE_STATUSES


TERMINAL_STATUSES = frozenset({DeliveryStatus.SUCCEEDED, DeliveryStatus.ABANDONED})
CLAIMABLE_STATUSES = frozenset({DeliveryStatus.PENDING, DeliveryStatus.FAILED_RETRYABLE})


class AttemptReason(str, Enum):
    """Why an attempt ended the way it did, as recorded in the audit trail."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    PERMANENT = "permanent"
    EXHAUSTED = "exhausted"


@dataclass
class DeliveryAttemptRecord:
    """Persisted unit of retry state for one outbound notification.

    The scheduler treats ``target`` and ``payload`` as opaque; only the
    channel's Sender interprets them.

    Fields:
        channel: Delivery medium
        target: URL, email address or E.164 phone number
        payload: JSON-compatible content owned by the caller
        max_attempts: Attempt budget, fixed at creation
        id: Unique identifier, assigned on creation
        status: Current lifecycle status
        attempt_count: Attempts consumed so far
        next_eligible_at: Earliest time the record may be attempted again
        last_error: Message of the most recent failed attempt
        claimed_at: When the current in_flight claim was taken
        scope_key: Optional rate limit scope inside the channel (e.g. clinic id)
        requeued_from: Id of the abandoned record a manual retry was created from
        metadata: Caller context echoed into logs and audit entries

    Example:
        record = DeliveryAttemptRecord(
            channel=DeliveryChannel.WEBHOOK,
            target="https://hooks.example.com/intake",
            payload={"event": "intake.submitted", "lead_id": "42"},
            max_attempts=3,
        )
    """

    channel: DeliveryChannel
    target: str
    payload: Dict[str, Any]
    max_attempts: int = 3

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempt_count: int = 0
    next_eligible_at: datetime = field(default_factory=utc_now)
    last_error: Optional[str] = None

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    claimed_at: Optional[datetime] = None
    scope_key: Optional[str] = None
    requeued_from: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Normalize enums and validate the attempt bookkeeping."""
        self.channel = DeliveryChannel(self.channel)
        self.status = DeliveryStatus(self.status)
        if not self.target:
            raise ValueError("target is required")
        if not isinstance(self.payload, dict):
            raise ValueError("payload must be a dictionary")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not 0 <= self.attempt_count <= self.max_attempts:
            raise ValueError("attempt_count must be between 0 and max_attempts")

    def is_due(self, now: datetime) -> bool:
        return self.status.is_claimable and self.next_eligible_at <= now

    def copy(self, **changes: Any) -> "DeliveryAttemptRecord":
        """Return a detached copy, so callers never share store state."""
        return replace(
            self,
            payload=dict(self.payload),
            metadata=dict(self.metadata),
            **changes,
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation used by the API layer."""
        return {
            "id": self.id,
            "channel": self.channel.value,
            "target": self.target,
            "payload": self.payload,
            "status": self.status.value,
            "attempt_count": self.attempt_count,
            "max_attempts": self.max_attempts,
            "next_eligible_at": self.next_eligible_at.isoformat(),
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
            "scope_key": self.scope_key,
            "requeued_from": self.requeued_from,
            "metadata": self.metadata,
        }


@dataclass
class CycleSummary:
    """Counts reported by one scheduler cycle.

    ``processed`` counts records this cycle attempted. Throttled and skipped
    records were never attempted and do not contribute to it.
    """

    processed: int = 0
    succeeded: int = 0
    failed_retryable: int = 0
    abandoned: int = 0
    throttled: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed_retryable": self.failed_retryable,
            "abandoned": self.abandoned,
            "throttled": self.throttled,
            "skipped": self.skipped,
            "errors": self.errors,
        }
