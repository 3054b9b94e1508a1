"""Factories building delivery components from settings."""

from typing import Dict, TYPE_CHECKING

import structlog

from infrastructure.audit import AuditLog, DynamoDBAuditLog, InMemoryAuditLog
from infrastructure.delivery.dynamodb_store import DynamoDBDeliveryStore
from infrastructure.delivery.models import DeliveryChannel
from infrastructure.delivery.rate_limit import (
    AllowAllRateLimiter,
    RateLimiter,
    WindowedRateLimiter,
)
from infrastructure.delivery.senders import (
    EmailSender,
    Sender,
    SmsSender,
    WebhookSender,
)
from infrastructure.delivery.store import DeliveryStore, InMemoryDeliveryStore

if TYPE_CHECKING:
    from infrastructure.configuration import Settings

logger = structlog.get_logger()

SUPPORTED_BACKENDS = ("memory", "dynamodb")


def create_delivery_store(
    settings: "Settings", backend: str | None = None
) -> DeliveryStore:
    """Create the record store for the configured backend.

    Args:
        settings: Application settings
        backend: Optional override ('memory' or 'dynamodb'). If None, uses
            settings.delivery.backend

    Raises:
        ValueError: If an unknown backend is specified

    Examples:
        >>> store = create_delivery_store(settings)
        >>> store = create_delivery_store(settings, backend="memory")
    """
    backend = backend or settings.delivery.backend

    if backend == "memory":
        logger.info("creating_in_memory_delivery_store")
        return InMemoryDeliveryStore()

    if backend == "dynamodb":
        logger.info(
            "creating_dynamodb_delivery_store",
            table_name=settings.delivery.table_name,
        )
        return DynamoDBDeliveryStore(table_name=settings.delivery.table_name)

    raise ValueError(
        f"Unknown delivery backend: {backend}. Supported: {', '.join(SUPPORTED_BACKENDS)}"
    )


def create_audit_log(settings: "Settings", backend: str | None = None) -> AuditLog:
    """Create the audit log matching the store backend."""
    backend = backend or settings.delivery.backend

    if backend == "memory":
        return InMemoryAuditLog()

    if backend == "dynamodb":
        return DynamoDBAuditLog(
            table_name=settings.delivery.audit_table_name,
            retention_days=settings.delivery.audit_retention_days,
        )

    raise ValueError(
        f"Unknown delivery backend: {backend}. Supported: {', '.join(SUPPORTED_BACKENDS)}"
    )


def create_senders(settings: "Settings") -> Dict[DeliveryChannel, Sender]:
    """Build a Sender for every channel whose provider is configured.

    Webhooks need no credentials. Email requires RESEND_API_KEY and SMS
    requires the Twilio account settings; records for an unconfigured channel
    are abandoned with NO_SENDER when attempted.
    """
    timeout = settings.delivery.sender_timeout_seconds
    senders: Dict[DeliveryChannel, Sender] = {
        DeliveryChannel.WEBHOOK: WebhookSender(timeout=timeout)
    }

    if settings.resend.RESEND_API_KEY:
        senders[DeliveryChannel.EMAIL] = EmailSender(settings.resend, timeout=timeout)
    else:
        logger.warning("delivery_channel_unconfigured", channel="email")

    if settings.twilio.is_configured:
        senders[DeliveryChannel.SMS] = SmsSender(settings.twilio, timeout=timeout)
    else:
        logger.warning("delivery_channel_unconfigured", channel="sms")

    return senders


def create_rate_limiter(settings: "Settings") -> RateLimiter:
    rules = {channel: rule for channel, rule in settings.delivery.rate_limits().items() if rule}
    if not rules:
        return AllowAllRateLimiter()
    logger.info("creating_windowed_rate_limiter", channels=sorted(rules))
    return WindowedRateLimiter(rules)
