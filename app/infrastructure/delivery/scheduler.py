"""Retry scheduler: the delivery state machine.

Each cycle selects due records, claims them, consults the rate limiter,
invokes the channel Sender, applies the backoff policy to the outcome,
persists the new state and writes one audit entry per attempt.

Overlapping cycles (a manual trigger racing the scheduled job, or several
instances) are safe because every claim and completion is a conditional
write against the store.
"""

import contextvars
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from infrastructure.audit import AuditLog, DeliveryAuditEntry, redact_target
from infrastructure.delivery.backoff import BackoffPolicy
from infrastructure.delivery.config import DeliveryConfig
from infrastructure.delivery.errors import (
    DeliveryStoreError,
    InvalidTransitionError,
    RecordNotFoundError,
)
from infrastructure.delivery.models import (
    AttemptReason,
    CycleSummary,
    DeliveryAttemptRecord,
    DeliveryChannel,
    DeliveryStatus,
    utc_now,
)
from infrastructure.delivery.rate_limit import AllowAllRateLimiter, RateLimiter
from infrastructure.delivery.senders.base import Sender
from infrastructure.delivery.store import DeliveryStore
from infrastructure.logging import bind_cycle_context, get_module_logger
from infrastructure.operations import OperationResult

logger = get_module_logger()

Clock = Callable[[], datetime]
DeliveredCallback = Callable[[DeliveryAttemptRecord, OperationResult], None]

# Per-record outcomes tallied into the CycleSummary
SUCCEEDED = "succeeded"
FAILED_RETRYABLE = "failed_retryable"
ABANDONED = "abandoned"
THROTTLED = "throttled"
SKIPPED = "skipped"
ERRORS = "errors"

ATTEMPTED_OUTCOMES = frozenset({SUCCEEDED, FAILED_RETRYABLE, ABANDONED})

STALE_SWEEP_LIMIT = 500


class RetryScheduler:
    """Orchestrates delivery attempts for due records.

    Attributes:
        store: DeliveryStore holding the records
        audit_log: AuditLog receiving one entry per attempt
        senders: Channel -> Sender
        rate_limiter: Limiter consulted before each send
        config: DeliveryConfig with batch size, timeouts and pool size
        backoff: BackoffPolicy mapping attempt counts to delays
        clock: Returns the current UTC time; injectable for tests
        on_delivered: Optional callback invoked after a successful delivery

    Example:
        scheduler = RetryScheduler(
            store=InMemoryDeliveryStore(),
            audit_log=InMemoryAuditLog(),
            senders={DeliveryChannel.WEBHOOK: WebhookSender()},
        )
        record_id = scheduler.enqueue("webhook", "https://hooks.example.com", {"a": 1})
        summary = scheduler.run_cycle()
    """

    def __init__(
        self,
        store: DeliveryStore,
        audit_log: AuditLog,
        senders: Mapping[DeliveryChannel, Sender],
        rate_limiter: Optional[RateLimiter] = None,
        config: Optional[DeliveryConfig] = None,
        backoff: Optional[BackoffPolicy] = None,
        clock: Clock = utc_now,
        on_delivered: Optional[DeliveredCallback] = None,
    ) -> None:
        self.store = store
        self.audit_log = audit_log
        self.senders: Dict[DeliveryChannel, Sender] = {
            DeliveryChannel(channel): sender for channel, sender in senders.items()
        }
        self.rate_limiter = rate_limiter or AllowAllRateLimiter()
        self.config = config or DeliveryConfig()
        self.backoff = backoff or self.config.backoff_policy()
        self.clock = clock
        self.on_delivered = on_delivered

    # ------------------------------------------------------------------
    # Intake and queries
    # ------------------------------------------------------------------

    def enqueue(
        self,
        channel: DeliveryChannel | str,
        target: str,
        payload: Dict[str, Any],
        max_attempts: Optional[int] = None,
        scope_key: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        requeued_from: Optional[str] = None,
    ) -> str:
        """Create a pending record that is due immediately.

        Raises:
            ValueError: invalid channel, empty target or max_attempts < 1
        """
        now = self.clock()
        record = DeliveryAttemptRecord(
            channel=DeliveryChannel(channel),
            target=target,
            payload=dict(payload),
            max_attempts=(
                max_attempts
                if max_attempts is not None
                else self.config.default_max_attempts
            ),
            next_eligible_at=now,
            created_at=now,
            updated_at=now,
            scope_key=scope_key,
            requeued_from=requeued_from,
            metadata=dict(metadata or {}),
        )
        record_id = self.store.insert(record)
        logger.info(
            "delivery_enqueued",
            record_id=record_id,
            channel=record.channel.value,
            target=redact_target(record.channel, record.target),
            max_attempts=record.max_attempts,
            requeued_from=requeued_from,
        )
        return record_id

    def get_status(self, record_id: str) -> DeliveryAttemptRecord:
        record = self.store.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def run_cycle(
        self, batch_size: Optional[int] = None, trigger: str = "manual"
    ) -> CycleSummary:
        """Run one delivery cycle over due records.

        Per-record failures never escape. A store fault, whether while
        fetching or while claiming, completing or releasing a record, stops
        the cycle: records not yet started are cancelled and the error is
        raised to the caller.

        Args:
            batch_size: Maximum records to select (defaults to config.batch_size)
            trigger: Label for logs ("scheduled", "manual", ...)

        Returns:
            CycleSummary with per-outcome counts

        Raises:
            ValueError: batch_size < 1
            DeliveryStoreError: the store failed during the cycle
        """
        limit = batch_size if batch_size is not None else self.config.batch_size
        if limit < 1:
            raise ValueError("batch_size must be at least 1")

        summary = CycleSummary()
        with bind_cycle_context(trigger=trigger):
            now = self.clock()
            try:
                due = self.store.fetch_due(now, limit)
            except DeliveryStoreError:
                logger.error("delivery_cycle_fetch_failed", exc_info=True)
                raise
            except Exception as e:
                logger.error("delivery_cycle_fetch_failed", error=str(e), exc_info=True)
                raise DeliveryStoreError(f"Could not fetch due records: {e}") from e

            if not due:
                logger.debug("delivery_cycle_no_records")
                return summary

            logger.info("delivery_cycle_started", due_count=len(due), batch_size=limit)

            workers = min(self.config.max_workers, len(due))
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="delivery"
            ) as pool:
                # Each task runs in a copy of the current context so log
                # entries from worker threads keep the cycle_id
                futures = [
                    pool.submit(
                        contextvars.copy_context().run, self._process_record, record
                    )
                    for record in due
                ]
                done, _ = wait(futures, return_when=FIRST_EXCEPTION)
                failed = next((f for f in done if f.exception() is not None), None)
                if failed is not None:
                    cancelled = sum(1 for f in futures if f.cancel())
                    logger.error(
                        "delivery_cycle_aborted",
                        error=str(failed.exception()),
                        cancelled=cancelled,
                    )
                    raise failed.exception()
                outcomes: List[str] = [future.result() for future in futures]

            for outcome in outcomes:
                setattr(summary, outcome, getattr(summary, outcome) + 1)
                if outcome in ATTEMPTED_OUTCOMES:
                    summary.processed += 1

            logger.info("delivery_cycle_completed", **summary.to_dict())
        return summary

    def _process_record(self, due: DeliveryAttemptRecord) -> str:
        claimed_at = self.clock()
        try:
            snapshot = self.store.claim(due.id, claimed_at)
        except DeliveryStoreError:
            logger.error("delivery_claim_failed", record_id=due.id, exc_info=True)
            raise
        except Exception as e:
            logger.error(
                "delivery_claim_failed", record_id=due.id, error=str(e), exc_info=True
            )
            raise DeliveryStoreError(f"Could not claim record {due.id}: {e}") from e

        if snapshot is None:
            logger.debug("delivery_record_skipped_claim_lost", record_id=due.id)
            return SKIPPED

        try:
            return self._attempt(snapshot, claimed_at)
        except DeliveryStoreError:
            # The record stays in_flight; the stale sweep reverts it once the
            # store is reachable again
            logger.error(
                "delivery_record_store_failed", record_id=snapshot.id, exc_info=True
            )
            raise
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "delivery_record_processing_failed",
                record_id=snapshot.id,
                channel=snapshot.channel.value,
                error=str(e),
                exc_info=True,
            )
            self._revert(snapshot, claimed_at)
            return ERRORS

    def _revert(self, snapshot: DeliveryAttemptRecord, claimed_at: datetime) -> None:
        try:
            self.store.release(
                snapshot.id, snapshot.status, self.clock(), claimed_at=claimed_at
            )
        except DeliveryStoreError:
            logger.error("delivery_record_revert_failed", record_id=snapshot.id)
            raise

    def _attempt(self, snapshot: DeliveryAttemptRecord, claimed_at: datetime) -> str:
        decision = self.rate_limiter.check_and_consume(
            snapshot.channel, snapshot.scope_key
        )
        if not decision.allowed:
            self.store.release(
                snapshot.id, snapshot.status, self.clock(), claimed_at=claimed_at
            )
            logger.info(
                "delivery_record_throttled",
                record_id=snapshot.id,
                channel=snapshot.channel.value,
                retry_after=decision.retry_after,
            )
            return THROTTLED

        sender = self.senders.get(snapshot.channel)
        started = time.monotonic()
        if sender is None:
            result = OperationResult.permanent_error(
                f"No sender configured for channel {snapshot.channel.value}",
                error_code="NO_SENDER",
            )
        else:
            result = sender.attempt(snapshot)
        duration_ms = int((time.monotonic() - started) * 1000)

        finished_at = self.clock()
        updated, reason = self._apply_outcome(snapshot, result, finished_at)

        if not self.store.complete(updated, claimed_at=claimed_at):
            # Claim was reverted underneath us (stale sweep); the attempt is
            # not counted and the record will be retried
            logger.warning(
                "delivery_completion_rejected",
                record_id=snapshot.id,
                outcome=updated.status.value,
            )
            return ERRORS

        self._write_audit(updated, reason, result, duration_ms, finished_at)
        self._log_outcome(updated, reason, result)

        if updated.status == DeliveryStatus.SUCCEEDED:
            self._notify_delivered(updated, result)
        return updated.status.value

    def _apply_outcome(
        self,
        snapshot: DeliveryAttemptRecord,
        result: OperationResult,
        now: datetime,
    ) -> tuple[DeliveryAttemptRecord, AttemptReason]:
        attempt_count = snapshot.attempt_count + 1

        if result.is_success:
            return (
                snapshot.copy(
                    status=DeliveryStatus.SUCCEEDED,
                    attempt_count=attempt_count,
                    updated_at=now,
                    claimed_at=None,
                ),
                AttemptReason.SUCCESS,
            )

        if result.is_retryable and not self.backoff.is_terminal(
            attempt_count, snapshot.max_attempts
        ):
            next_eligible_at = now + self.backoff.next_delay(attempt_count)
            if result.retry_after:
                next_eligible_at = max(
                    next_eligible_at,
                    now + timedelta(seconds=result.retry_after),
                )
            return (
                snapshot.copy(
                    status=DeliveryStatus.FAILED_RETRYABLE,
                    attempt_count=attempt_count,
                    # Never moves backward
                    next_eligible_at=max(snapshot.next_eligible_at, next_eligible_at),
                    last_error=result.message,
                    updated_at=now,
                    claimed_at=None,
                ),
                AttemptReason.RETRYABLE,
            )

        reason = AttemptReason.EXHAUSTED if result.is_retryable else AttemptReason.PERMANENT
        return (
            snapshot.copy(
                status=DeliveryStatus.ABANDONED,
                attempt_count=attempt_count,
                last_error=result.message,
                updated_at=now,
                claimed_at=None,
            ),
            reason,
        )

    def _write_audit(
        self,
        record: DeliveryAttemptRecord,
        reason: AttemptReason,
        result: OperationResult,
        duration_ms: int,
        timestamp: datetime,
    ) -> None:
        failure_history: List[str] = []
        metadata = dict(record.metadata)
        if record.status == DeliveryStatus.ABANDONED:
            earlier = self._failure_history(record.id)
            if earlier is None:
                metadata["failure_history_incomplete"] = True
                earlier = []
            failure_history = earlier + [result.message]

        if result.data:
            metadata["response"] = result.data
        if result.retry_after:
            metadata["retry_after"] = result.retry_after

        entry = DeliveryAuditEntry(
            record_id=record.id,
            channel=record.channel.value,
            target=redact_target(record.channel, record.target),
            status=record.status.value,
            attempt_count=record.attempt_count,
            reason=reason.value,
            error_message=None if result.is_success else result.message,
            error_code=None if result.is_success else result.error_code,
            duration_ms=duration_ms,
            timestamp=timestamp,
            failure_history=failure_history,
            metadata=metadata,
        )
        try:
            self.audit_log.append(entry)
        except Exception as e:  # pylint: disable=broad-except
            # The record state is already persisted and stays authoritative
            logger.error(
                "delivery_audit_write_failed",
                record_id=record.id,
                attempt_count=record.attempt_count,
                error=str(e),
            )

    def _failure_history(self, record_id: str) -> Optional[List[str]]:
        """Earlier failure messages, or None when the audit log cannot be read."""
        try:
            entries = self.audit_log.list_for_record(record_id)
        except Exception as e:  # pylint: disable=broad-except
            logger.warning(
                "delivery_failure_history_unavailable", record_id=record_id, error=str(e)
            )
            return None
        return [e.error_message for e in entries if e.is_failure and e.error_message]

    def _log_outcome(
        self,
        record: DeliveryAttemptRecord,
        reason: AttemptReason,
        result: OperationResult,
    ) -> None:
        fields = {
            "record_id": record.id,
            "channel": record.channel.value,
            "target": redact_target(record.channel, record.target),
            "attempt_count": record.attempt_count,
            "max_attempts": record.max_attempts,
        }
        if record.status == DeliveryStatus.SUCCEEDED:
            logger.info("delivery_record_succeeded", **fields)
        elif record.status == DeliveryStatus.FAILED_RETRYABLE:
            logger.info(
                "delivery_record_rescheduled",
                next_eligible_at=record.next_eligible_at.isoformat(),
                error=result.message,
                error_code=result.error_code,
                **fields,
            )
        else:
            logger.warning(
                "delivery_record_abandoned",
                reason=reason.value,
                error=result.message,
                error_code=result.error_code,
                **fields,
            )

    def _notify_delivered(
        self, record: DeliveryAttemptRecord, result: OperationResult
    ) -> None:
        if self.on_delivered is None:
            return
        try:
            self.on_delivered(record, result)
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "delivery_callback_failed",
                record_id=record.id,
                error=str(e),
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Recovery and operator actions
    # ------------------------------------------------------------------

    def reconcile_stale(self, now: Optional[datetime] = None) -> int:
        """Revert in_flight records whose claim outlived the sender timeout.

        Covers cycles that crashed mid-send. No attempt is consumed.

        Returns:
            Number of records reverted to failed_retryable
        """
        now = now or self.clock()
        cutoff = now - self.config.stale_after
        reverted = 0
        for record in self.store.list_stale(cutoff, limit=STALE_SWEEP_LIMIT):
            if self.store.release(
                record.id,
                DeliveryStatus.FAILED_RETRYABLE,
                now,
                claimed_at=record.claimed_at,
            ):
                reverted += 1
                logger.warning(
                    "delivery_stale_claim_reverted",
                    record_id=record.id,
                    claimed_at=(
                        record.claimed_at.isoformat() if record.claimed_at else None
                    ),
                )
        if reverted:
            logger.info("delivery_stale_sweep_completed", reverted=reverted)
        return reverted

    def retry_now(self, record_id: str) -> str:
        """Re-enqueue an abandoned record with a fresh attempt budget.

        The abandoned record is left untouched; a new record referencing it
        through ``requeued_from`` is created and is due immediately.

        Raises:
            RecordNotFoundError: unknown record
            InvalidTransitionError: record is not abandoned
        """
        record = self.get_status(record_id)
        if record.status != DeliveryStatus.ABANDONED:
            raise InvalidTransitionError(record_id, record.status.value, "retry")

        return self.enqueue(
            channel=record.channel,
            target=record.target,
            payload=record.payload,
            max_attempts=record.max_attempts,
            scope_key=record.scope_key,
            metadata=record.metadata,
            requeued_from=record.id,
        )
