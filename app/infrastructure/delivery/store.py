"""Delivery attempt record storage.

The store is the single source of truth and the only shared mutable state of
the delivery system. Every state transition is a conditional write against
it, which is what makes overlapping scheduler cycles safe, both in one
process and across instances.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from infrastructure.delivery.models import (
    DeliveryAttemptRecord,
    DeliveryStatus,
)
from infrastructure.logging import get_module_logger

logger = get_module_logger()


class DeliveryStore(Protocol):
    """Storage interface for delivery attempt records.

    Methods:
        insert: Persist a new record and return its id
        get: Fetch a record by id
        fetch_due: Records due at ``now``, oldest-due first
        claim: Atomically move a due record to in_flight
        release: Undo a claim without consuming an attempt
        complete: Persist the outcome of an attempt on an in_flight record
        list_by_status: Records currently in a status
        list_stale: in_flight records claimed before a cutoff
    """

    def insert(self, record: DeliveryAttemptRecord) -> str:
        ...

    def get(self, record_id: str) -> Optional[DeliveryAttemptRecord]:
        ...

    def fetch_due(self, now: datetime, limit: int) -> List[DeliveryAttemptRecord]:
        """Return up to ``limit`` claimable records with ``next_eligible_at <= now``.

        Ordered by ``next_eligible_at`` ascending so the oldest backlog is
        served first.
        """
        ...

    def claim(self, record_id: str, now: datetime) -> Optional[DeliveryAttemptRecord]:
        """Atomically mark a record in_flight.

        The claim succeeds only if the record is still pending or
        failed_retryable and due at ``now``.

        Returns:
            The record as it was before the claim, or None when another cycle
            claimed it first (or it is no longer due).
        """
        ...

    def release(
        self,
        record_id: str,
        status: DeliveryStatus,
        now: datetime,
        claimed_at: Optional[datetime] = None,
    ) -> bool:
        """Move an in_flight record back to ``status``.

        ``attempt_count`` and ``next_eligible_at`` are left untouched. When
        ``claimed_at`` is given, the release only applies to that specific
        claim.

        Returns:
            True if the record was released.
        """
        ...

    def complete(
        self, record: DeliveryAttemptRecord, claimed_at: Optional[datetime] = None
    ) -> bool:
        """Write the post-attempt state of ``record``.

        Conditional on the stored record still being in_flight and, when
        ``claimed_at`` is given, on it still carrying that claim.

        Returns:
            False when the claim was lost (e.g. reverted by the stale sweep).
        """
        ...

    def list_by_status(
        self, status: DeliveryStatus, limit: int = 100
    ) -> List[DeliveryAttemptRecord]:
        ...

    def list_stale(
        self, claimed_before: datetime, limit: int = 100
    ) -> List[DeliveryAttemptRecord]:
        ...


class InMemoryDeliveryStore:
    """Thread-safe in-memory DeliveryStore.

    Suitable for development, tests and single-instance deployments. One lock
    per store instance serializes the conditional updates, so any number of
    schedulers sharing this instance observe the same claim semantics as the
    DynamoDB implementation.
    """

    def __init__(self) -> None:
        self._records: Dict[str, DeliveryAttemptRecord] = {}
        self._lock = threading.Lock()

    def insert(self, record: DeliveryAttemptRecord) -> str:
        with self._lock:
            if record.id in self._records:
                raise ValueError(f"Record {record.id} already exists")
            self._records[record.id] = record.copy()
        logger.debug("delivery_record_inserted", record_id=record.id)
        return record.id

    def get(self, record_id: str) -> Optional[DeliveryAttemptRecord]:
        with self._lock:
            record = self._records.get(record_id)
            return record.copy() if record else None

    def fetch_due(self, now: datetime, limit: int) -> List[DeliveryAttemptRecord]:
        with self._lock:
            due = sorted(
                (r for r in self._records.values() if r.is_due(now)),
                key=lambda r: r.next_eligible_at,
            )
            return [r.copy() for r in due[:limit]]

    def claim(self, record_id: str, now: datetime) -> Optional[DeliveryAttemptRecord]:
        with self._lock:
            current = self._records.get(record_id)
            if current is None or not current.is_due(now):
                return None
            snapshot = current.copy()
            current.status = DeliveryStatus.IN_FLIGHT
            current.claimed_at = now
            current.updated_at = now
            return snapshot

    def release(
        self,
        record_id: str,
        status: DeliveryStatus,
        now: datetime,
        claimed_at: Optional[datetime] = None,
    ) -> bool:
        with self._lock:
            current = self._records.get(record_id)
            if current is None or current.status != DeliveryStatus.IN_FLIGHT:
                return False
            if claimed_at is not None and current.claimed_at != claimed_at:
                return False
            current.status = status
            current.claimed_at = None
            current.updated_at = now
            return True

    def complete(
        self, record: DeliveryAttemptRecord, claimed_at: Optional[datetime] = None
    ) -> bool:
        with self._lock:
            current = self._records.get(record.id)
            if current is None or current.status != DeliveryStatus.IN_FLIGHT:
                return False
            if claimed_at is not None and current.claimed_at != claimed_at:
                return False
            self._records[record.id] = record.copy(claimed_at=None)
            return True

    def list_by_status(
        self, status: DeliveryStatus, limit: int = 100
    ) -> List[DeliveryAttemptRecord]:
        with self._lock:
            matching = sorted(
                (r for r in self._records.values() if r.status == status),
                key=lambda r: r.updated_at,
                reverse=True,
            )
            return [r.copy() for r in matching[:limit]]

    def list_stale(
        self, claimed_before: datetime, limit: int = 100
    ) -> List[DeliveryAttemptRecord]:
        with self._lock:
            stale = [
                r
                for r in self._records.values()
                if r.status == DeliveryStatus.IN_FLIGHT
                and r.claimed_at is not None
                and r.claimed_at < claimed_before
            ]
            return [r.copy() for r in stale[:limit]]
