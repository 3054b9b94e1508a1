"""Tests for the Sender base class and template rendering."""

import time

from infrastructure.delivery import DeliveryChannel
from infrastructure.delivery.senders.base import Sender, render_template
from infrastructure.operations import OperationResult
from tests.factories.delivery import make_record


class ExplodingSender(Sender):
    channel = DeliveryChannel.WEBHOOK

    def validate_target(self, target):
        return OperationResult.success(data={"target": target.upper()})

    def _send(self, record, target):
        raise RuntimeError(f"cannot reach {target}")


def test_render_template():
    rendered = render_template(
        "Hi {{ name }}, see you {{when}}{{missing}}.",
        {"name": "Jane", "when": "Friday", "unused": "x"},
    )

    assert rendered == "Hi Jane, see you Friday."


def test_render_template_none_values():
    assert render_template("[{{a}}]", {"a": None}) == "[]"


def test_attempt_converts_exceptions_to_transient_errors():
    sender = ExplodingSender(timeout=5)

    result = sender.attempt(make_record(target="https://a.example.com"))

    assert result.is_retryable
    assert result.error_code == "SENDER_ERROR"
    assert "HTTPS://A.EXAMPLE.COM" in result.message
    assert sender.channel_name == "webhook"


class SlowSender(Sender):
    channel = DeliveryChannel.WEBHOOK

    def __init__(self, delay, **kwargs):
        super().__init__(**kwargs)
        self.delay = delay

    def validate_target(self, target):
        return OperationResult.success(data={"target": target})

    def _send(self, record, target):
        time.sleep(self.delay)
        return OperationResult.success(message="late")


def test_attempt_enforces_total_deadline():
    sender = SlowSender(delay=2, timeout=0.2)

    started = time.monotonic()
    result = sender.attempt(make_record(target="https://a.example.com"))
    elapsed = time.monotonic() - started

    assert elapsed < 1
    assert result.is_retryable
    assert result.error_code == "TIMEOUT"
    assert result.message == "Request timed out after 0.2 seconds"


def test_attempt_within_deadline_returns_send_result():
    sender = SlowSender(delay=0, timeout=5)

    result = sender.attempt(make_record(target="https://a.example.com"))

    assert result.is_success
    assert result.message == "late"
