"""Delivery retry system infrastructure settings."""

from typing import Optional

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class DeliverySettings(InfrastructureSettings):
    """Retry queue configuration for outbound notification delivery.

    Environment Variables:
        DELIVERY_BACKEND: Store backend - 'memory' or 'dynamodb' (default: memory)
        DELIVERY_TABLE_NAME: DynamoDB table for delivery attempt records
        DELIVERY_AUDIT_TABLE_NAME: DynamoDB table for the delivery audit log
        DELIVERY_AUDIT_RETENTION_DAYS: TTL for audit entries (default: 90 days)
        DELIVERY_DEFAULT_MAX_ATTEMPTS: Attempt budget when enqueue omits one (default: 3)
        DELIVERY_BASE_DELAY_SECONDS: First retry delay (default: 300s = 5min)
        DELIVERY_BACKOFF_MULTIPLIER: Growth factor per attempt (default: 3)
        DELIVERY_MAX_DELAY_SECONDS: Optional cap on the retry delay
        DELIVERY_BATCH_SIZE: Records selected per cycle (default: 50)
        DELIVERY_SENDER_TIMEOUT_SECONDS: Per-send HTTP timeout (default: 30s)
        DELIVERY_STALE_CLAIM_MARGIN_SECONDS: Grace added to the sender timeout
            before an in-flight record is considered stale (default: 60s)
        DELIVERY_MAX_WORKERS: Concurrent sends per cycle (default: 8)
        DELIVERY_CYCLE_INTERVAL_MINUTES: Scheduled cycle interval (default: 5)
        DELIVERY_RECONCILE_INTERVAL_MINUTES: Stale sweep interval (default: 10)
        DELIVERY_RATE_LIMIT_WEBHOOK / _EMAIL / _SMS: `limits` rate strings,
            e.g. "100/minute;1000/hour". Empty disables throttling for the channel.

    Exponential Backoff:
        Delay calculation: base_delay * multiplier ^ (attempt - 1)

        Example with defaults (base=300s, multiplier=3):
            Attempt 1: 300s (5 minutes)
            Attempt 2: 900s (15 minutes)
            Attempt 3: 2700s (45 minutes)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        backend = settings.delivery.backend
        batch_size = settings.delivery.batch_size
        ```
    """

    backend: str = Field(
        default="memory",
        alias="DELIVERY_BACKEND",
        description="Delivery store backend: 'memory' or 'dynamodb'",
    )
    table_name: str = Field(
        default="delivery-attempt-records",
        alias="DELIVERY_TABLE_NAME",
        description="DynamoDB table name for delivery attempt records",
    )
    audit_table_name: str = Field(
        default="delivery-audit-log",
        alias="DELIVERY_AUDIT_TABLE_NAME",
        description="DynamoDB table name for delivery audit entries",
    )
    audit_retention_days: int = Field(
        default=90,
        alias="DELIVERY_AUDIT_RETENTION_DAYS",
        description="Days before DynamoDB TTL removes audit entries",
    )
    default_max_attempts: int = Field(
        default=3,
        alias="DELIVERY_DEFAULT_MAX_ATTEMPTS",
        description="Attempt budget for records enqueued without one",
    )
    base_delay_seconds: int = Field(
        default=300,
        alias="DELIVERY_BASE_DELAY_SECONDS",
        description="Delay before the first retry (seconds)",
    )
    backoff_multiplier: float = Field(
        default=3.0,
        alias="DELIVERY_BACKOFF_MULTIPLIER",
        description="Exponential growth factor applied per attempt",
    )
    max_delay_seconds: Optional[int] = Field(
        default=None,
        alias="DELIVERY_MAX_DELAY_SECONDS",
        description="Optional upper bound for the retry delay (seconds)",
    )
    batch_size: int = Field(
        default=50,
        alias="DELIVERY_BATCH_SIZE",
        description="Maximum number of due records processed per cycle",
    )
    sender_timeout_seconds: int = Field(
        default=30,
        alias="DELIVERY_SENDER_TIMEOUT_SECONDS",
        description="HTTP timeout applied to every send (seconds)",
    )
    stale_claim_margin_seconds: int = Field(
        default=60,
        alias="DELIVERY_STALE_CLAIM_MARGIN_SECONDS",
        description="Grace period past the sender timeout before reclaiming",
    )
    max_workers: int = Field(
        default=8,
        alias="DELIVERY_MAX_WORKERS",
        description="Thread pool size for concurrent sends within a cycle",
    )
    cycle_interval_minutes: int = Field(
        default=5,
        alias="DELIVERY_CYCLE_INTERVAL_MINUTES",
        description="Interval between scheduled delivery cycles",
    )
    reconcile_interval_minutes: int = Field(
        default=10,
        alias="DELIVERY_RECONCILE_INTERVAL_MINUTES",
        description="Interval between stale in-flight sweeps",
    )
    rate_limit_webhook: str = Field(
        default="",
        alias="DELIVERY_RATE_LIMIT_WEBHOOK",
        description="Rate limit rules for the webhook channel",
    )
    rate_limit_email: str = Field(
        default="100/minute;1000/hour;10000/day",
        alias="DELIVERY_RATE_LIMIT_EMAIL",
        description="Rate limit rules for the email channel",
    )
    rate_limit_sms: str = Field(
        default="30/minute;500/hour;2000/day",
        alias="DELIVERY_RATE_LIMIT_SMS",
        description="Rate limit rules for the SMS channel",
    )
    health_window_hours: int = Field(
        default=24,
        alias="DELIVERY_HEALTH_WINDOW_HOURS",
        description="Trailing window inspected by the health monitor",
    )
    health_failure_rate_threshold: float = Field(
        default=25.0,
        alias="DELIVERY_HEALTH_FAILURE_RATE_THRESHOLD",
        description="Failure rate percentage that raises an alert",
    )
    health_response_time_threshold_ms: int = Field(
        default=10000,
        alias="DELIVERY_HEALTH_RESPONSE_TIME_THRESHOLD_MS",
        description="Average send duration that raises an alert",
    )
    health_min_attempts: int = Field(
        default=5,
        alias="DELIVERY_HEALTH_MIN_ATTEMPTS",
        description="Minimum attempts in the window before rates are evaluated",
    )
    health_cooldown_hours: int = Field(
        default=4,
        alias="DELIVERY_HEALTH_COOLDOWN_HOURS",
        description="Hours before the same alert is raised again",
    )

    def rate_limits(self) -> dict[str, str]:
        """Rate limit rules keyed by channel name."""
        return {
            "webhook": self.rate_limit_webhook,
            "email": self.rate_limit_email,
            "sms": self.rate_limit_sms,
        }
