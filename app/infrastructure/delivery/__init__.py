"""Notification delivery reliability.

Retry scheduling, exponential backoff, attempt bookkeeping and terminal
state transitions for outbound webhooks, email and SMS.

Usage:
    from infrastructure.delivery import DeliveryService

    service = DeliveryService(settings)
    record_id = service.enqueue("email", "patient@example.com", {...})
    summary = service.run_cycle()
"""

from infrastructure.delivery.backoff import BackoffPolicy
from infrastructure.delivery.config import DeliveryConfig
from infrastructure.delivery.errors import (
    DeliveryError,
    DeliveryStoreError,
    InvalidTransitionError,
    RecordNotFoundError,
)
from infrastructure.delivery.health import (
    DeliveryHealthMonitor,
    HealthAlert,
    HealthReport,
    HealthThresholds,
)
from infrastructure.delivery.models import (
    AttemptReason,
    CycleSummary,
    DeliveryAttemptRecord,
    DeliveryChannel,
    DeliveryStatus,
)
from infrastructure.delivery.rate_limit import (
    AllowAllRateLimiter,
    RateLimitDecision,
    RateLimiter,
    WindowedRateLimiter,
)
from infrastructure.delivery.scheduler import RetryScheduler
from infrastructure.delivery.service import DeliveryService
from infrastructure.delivery.store import DeliveryStore, InMemoryDeliveryStore

__all__ = [
    "AllowAllRateLimiter",
    "AttemptReason",
    "BackoffPolicy",
    "CycleSummary",
    "DeliveryAttemptRecord",
    "DeliveryChannel",
    "DeliveryConfig",
    "DeliveryError",
    "DeliveryHealthMonitor",
    "DeliveryService",
    "DeliveryStatus",
    "DeliveryStore",
    "DeliveryStoreError",
    "HealthAlert",
    "HealthReport",
    "HealthThresholds",
    "InMemoryDeliveryStore",
    "InvalidTransitionError",
    "RateLimitDecision",
    "RateLimiter",
    "RecordNotFoundError",
    "RetryScheduler",
    "WindowedRateLimiter",
]
