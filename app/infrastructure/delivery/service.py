"""Delivery service for dependency injection.

Single entry point used by the HTTP API and the scheduled jobs.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import structlog

from infrastructure.audit import AuditLog, DeliveryAuditEntry
from infrastructure.delivery.config import DeliveryConfig
from infrastructure.delivery.health import (
    DeliveryHealthMonitor,
    HealthReport,
    HealthThresholds,
)
from infrastructure.delivery.models import (
    CycleSummary,
    DeliveryAttemptRecord,
    DeliveryChannel,
    DeliveryStatus,
)
from infrastructure.delivery.scheduler import RetryScheduler

if TYPE_CHECKING:
    from infrastructure.configuration import Settings

logger = structlog.get_logger()


class DeliveryService:
    """Class-based delivery service.

    Usage:
        # Via dependency injection
        from infrastructure.services import DeliveryServiceDep

        @router.post("/deliveries")
        def enqueue(service: DeliveryServiceDep):
            return {"record_id": service.enqueue("webhook", url, payload)}

        # Direct instantiation (tests)
        service = DeliveryService(settings, scheduler=scheduler)
    """

    def __init__(
        self,
        settings: "Settings",
        scheduler: Optional[RetryScheduler] = None,
        health_monitor: Optional[DeliveryHealthMonitor] = None,
    ):
        """Initialize the delivery service.

        Args:
            settings: Settings instance (passed from provider).
            scheduler: Optional pre-built scheduler. If not provided, one is
                built from settings through the factories.
            health_monitor: Optional pre-built monitor sharing the scheduler's
                store and audit log.
        """
        if scheduler is None:
            # Import here to avoid circular dependency
            from infrastructure.delivery.factory import (
                create_audit_log,
                create_delivery_store,
                create_rate_limiter,
                create_senders,
            )

            scheduler = RetryScheduler(
                store=create_delivery_store(settings),
                audit_log=create_audit_log(settings),
                senders=create_senders(settings),
                rate_limiter=create_rate_limiter(settings),
                config=DeliveryConfig.from_settings(settings.delivery),
            )

        self._scheduler = scheduler
        self._health_monitor = health_monitor or DeliveryHealthMonitor(
            store=scheduler.store,
            audit_log=scheduler.audit_log,
            thresholds=HealthThresholds.from_settings(settings.delivery),
            clock=scheduler.clock,
        )

    @property
    def scheduler(self) -> RetryScheduler:
        return self._scheduler

    @property
    def audit_log(self) -> AuditLog:
        return self._scheduler.audit_log

    def enqueue(
        self,
        channel: DeliveryChannel | str,
        target: str,
        payload: Dict[str, Any],
        max_attempts: Optional[int] = None,
        scope_key: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        return self._scheduler.enqueue(
            channel,
            target,
            payload,
            max_attempts=max_attempts,
            scope_key=scope_key,
            metadata=metadata,
        )

    def run_cycle(
        self, batch_size: Optional[int] = None, trigger: str = "manual"
    ) -> CycleSummary:
        return self._scheduler.run_cycle(batch_size=batch_size, trigger=trigger)

    def get_status(self, record_id: str) -> DeliveryAttemptRecord:
        return self._scheduler.get_status(record_id)

    def get_audit_trail(self, record_id: str) -> List[DeliveryAuditEntry]:
        """Audit entries of a record, oldest first.

        Raises:
            RecordNotFoundError: unknown record
        """
        self._scheduler.get_status(record_id)
        return self.audit_log.list_for_record(record_id)

    def list_audit(
        self,
        start: datetime,
        end: datetime,
        channel: Optional[DeliveryChannel | str] = None,
    ) -> List[DeliveryAuditEntry]:
        if end < start:
            raise ValueError("end must not be before start")
        channel_name = DeliveryChannel(channel).value if channel else None
        return self.audit_log.list_between(start, end, channel=channel_name)

    def list_records(
        self, status: DeliveryStatus | str, limit: int = 100
    ) -> List[DeliveryAttemptRecord]:
        return self._scheduler.store.list_by_status(DeliveryStatus(status), limit=limit)

    def retry_now(self, record_id: str) -> str:
        new_id = self._scheduler.retry_now(record_id)
        logger.info("delivery_manual_retry", record_id=record_id, new_record_id=new_id)
        return new_id

    def reconcile(self) -> int:
        return self._scheduler.reconcile_stale()

    def check_health(self) -> HealthReport:
        return self._health_monitor.check()
