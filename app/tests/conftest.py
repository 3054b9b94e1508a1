from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from infrastructure.audit import InMemoryAuditLog
from infrastructure.delivery import (
    DeliveryChannel,
    DeliveryConfig,
    InMemoryDeliveryStore,
    RetryScheduler,
)
from infrastructure.delivery.senders.base import Sender
from tests.factories.delivery import T0, success_result


class ManualClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return self.now


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def store():
    return InMemoryDeliveryStore()


@pytest.fixture
def audit_log():
    return InMemoryAuditLog()


@pytest.fixture
def webhook_sender():
    """Sender mock; tests script outcomes through ``attempt.side_effect``."""
    sender = MagicMock(spec=Sender)
    sender.channel = DeliveryChannel.WEBHOOK
    sender.attempt.return_value = success_result()
    return sender


@pytest.fixture
def delivery_config():
    return DeliveryConfig(max_workers=4)


@pytest.fixture
def scheduler(store, audit_log, webhook_sender, delivery_config, clock):
    return RetryScheduler(
        store=store,
        audit_log=audit_log,
        senders={DeliveryChannel.WEBHOOK: webhook_sender},
        config=delivery_config,
        clock=clock,
    )
