"""Delivery health monitoring.

Looks back over a trailing window of audit entries and abandoned records and
raises alerts for channels that fail too often or respond too slowly, plus
one alert per record abandoned in the window. Alerts are logged and returned;
a cooldown keeps the same condition from being logged every run.
"""

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from infrastructure.audit import AuditLog, DeliveryAuditEntry, redact_target
from infrastructure.delivery.models import DeliveryStatus, utc_now
from infrastructure.delivery.store import DeliveryStore
from infrastructure.logging import get_module_logger

if TYPE_CHECKING:
    from infrastructure.configuration import DeliverySettings

logger = get_module_logger()

ABANDONED_SCAN_LIMIT = 500


@dataclass
class HealthThresholds:
    """Alerting thresholds.

    Attributes:
        window_hours: Trailing window inspected by each check
        failure_rate_threshold: Failure percentage that raises an alert
        response_time_threshold_ms: Average send duration that raises an alert
        min_attempts: Attempts a channel needs in the window before rate and
            latency alerts apply
        cooldown_hours: Minimum time between two alerting runs
    """

    window_hours: int = 24
    failure_rate_threshold: float = 25.0
    response_time_threshold_ms: int = 10000
    min_attempts: int = 5
    cooldown_hours: int = 4

    @classmethod
    def from_settings(cls, settings: "DeliverySettings") -> "HealthThresholds":
        return cls(
            window_hours=settings.health_window_hours,
            failure_rate_threshold=settings.health_failure_rate_threshold,
            response_time_threshold_ms=settings.health_response_time_threshold_ms,
            min_attempts=settings.health_min_attempts,
            cooldown_hours=settings.health_cooldown_hours,
        )


@dataclass
class ChannelStats:
    total: int = 0
    failures: int = 0
    durations: List[int] = field(default_factory=list)

    @property
    def failure_rate(self) -> float:
        return (self.failures / self.total) * 100 if self.total else 0.0

    @property
    def avg_duration_ms(self) -> Optional[float]:
        return sum(self.durations) / len(self.durations) if self.durations else None

    def to_dict(self) -> Dict[str, Any]:
        avg = self.avg_duration_ms
        return {
            "total": self.total,
            "failures": self.failures,
            "failure_rate": round(self.failure_rate, 1),
            "avg_duration_ms": round(avg) if avg is not None else None,
        }


@dataclass
class HealthAlert:
    type: str
    channel: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "channel": self.channel, "details": self.details}


@dataclass
class HealthReport:
    checked_at: datetime
    window_start: datetime
    channels: Dict[str, ChannelStats] = field(default_factory=dict)
    alerts: List[HealthAlert] = field(default_factory=list)
    suppressed: bool = False

    @property
    def healthy(self) -> bool:
        return not self.alerts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checked_at": self.checked_at.isoformat(),
            "window_start": self.window_start.isoformat(),
            "healthy": self.healthy,
            "suppressed": self.suppressed,
            "channels": {name: s.to_dict() for name, s in self.channels.items()},
            "alerts": [a.to_dict() for a in self.alerts],
        }


class DeliveryHealthMonitor:
    """Computes delivery health over a trailing window.

    Example:
        monitor = DeliveryHealthMonitor(store, audit_log)
        report = monitor.check()
        if not report.healthy:
            ...
    """

    def __init__(
        self,
        store: DeliveryStore,
        audit_log: AuditLog,
        thresholds: Optional[HealthThresholds] = None,
        clock=utc_now,
    ) -> None:
        self.store = store
        self.audit_log = audit_log
        self.thresholds = thresholds or HealthThresholds()
        self.clock = clock
        self._last_alerted_at: Optional[datetime] = None
        self._lock = threading.Lock()

    def check(self, now: Optional[datetime] = None) -> HealthReport:
        """Evaluate the trailing window.

        Raises:
            AuditReadError: audit entries could not be read
            DeliveryStoreError: abandoned records could not be listed
        """
        now = now or self.clock()
        window_start = now - timedelta(hours=self.thresholds.window_hours)
        report = HealthReport(checked_at=now, window_start=window_start)

        report.channels = self._channel_stats(
            self.audit_log.list_between(window_start, now)
        )
        report.alerts.extend(self._rate_and_latency_alerts(report.channels))
        report.alerts.extend(self._abandoned_alerts(window_start))

        if report.alerts:
            report.suppressed = not self._should_alert(now)
            self._log_alerts(report)
        else:
            logger.debug("delivery_health_ok", channels=len(report.channels))
        return report

    def _channel_stats(
        self, entries: List[DeliveryAuditEntry]
    ) -> Dict[str, ChannelStats]:
        stats: Dict[str, ChannelStats] = defaultdict(ChannelStats)
        for entry in entries:
            channel = stats[entry.channel]
            channel.total += 1
            if entry.is_failure:
                channel.failures += 1
            if entry.duration_ms is not None:
                channel.durations.append(entry.duration_ms)
        return dict(stats)

    def _rate_and_latency_alerts(
        self, channels: Dict[str, ChannelStats]
    ) -> List[HealthAlert]:
        t = self.thresholds
        alerts: List[HealthAlert] = []
        for name, stats in sorted(channels.items()):
            if stats.total < t.min_attempts:
                continue
            if stats.failure_rate >= t.failure_rate_threshold:
                alerts.append(
                    HealthAlert(
                        type="high_failure_rate",
                        channel=name,
                        details={
                            "failure_rate": round(stats.failure_rate, 1),
                            "failures": stats.failures,
                            "total": stats.total,
                            "threshold": t.failure_rate_threshold,
                            "window_hours": t.window_hours,
                        },
                    )
                )
            avg = stats.avg_duration_ms
            if avg is not None and avg >= t.response_time_threshold_ms:
                alerts.append(
                    HealthAlert(
                        type="slow_responses",
                        channel=name,
                        details={
                            "avg_duration_ms": round(avg),
                            "threshold": t.response_time_threshold_ms,
                            "total": stats.total,
                            "window_hours": t.window_hours,
                        },
                    )
                )
        return alerts

    def _abandoned_alerts(self, window_start: datetime) -> List[HealthAlert]:
        abandoned = self.store.list_by_status(
            DeliveryStatus.ABANDONED, limit=ABANDONED_SCAN_LIMIT
        )
        return [
            HealthAlert(
                type="abandoned_delivery",
                channel=record.channel.value,
                details={
                    "record_id": record.id,
                    "target": redact_target(record.channel, record.target),
                    "attempt_count": record.attempt_count,
                    "last_error": record.last_error,
                    "abandoned_at": record.updated_at.isoformat(),
                },
            )
            for record in abandoned
            if record.updated_at >= window_start
        ]

    def _should_alert(self, now: datetime) -> bool:
        cooldown = timedelta(hours=self.thresholds.cooldown_hours)
        with self._lock:
            if self._last_alerted_at and now < self._last_alerted_at + cooldown:
                return False
            self._last_alerted_at = now
            return True

    def _log_alerts(self, report: HealthReport) -> None:
        if report.suppressed:
            logger.info(
                "delivery_health_alerts_suppressed",
                alert_count=len(report.alerts),
                cooldown_hours=self.thresholds.cooldown_hours,
            )
            return
        for alert in report.alerts:
            logger.warning(
                "delivery_health_alert",
                alert_type=alert.type,
                channel=alert.channel,
                **alert.details,
            )
