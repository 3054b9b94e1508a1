"""Tests for SmsSender."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from infrastructure.configuration.integrations import TwilioSettings
from infrastructure.delivery import DeliveryChannel
from infrastructure.delivery.senders import SmsSender
from tests.factories.delivery import make_record


@pytest.fixture
def twilio_settings(monkeypatch):
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "secret-token")
    monkeypatch.setenv("TWILIO_PHONE_NUMBER", "+15550000000")
    monkeypatch.delenv("TWILIO_API_URL", raising=False)
    return TwilioSettings()


@pytest.fixture
def sender(twilio_settings):
    return SmsSender(twilio_settings, timeout=20)


@pytest.fixture
def mock_post():
    with patch("infrastructure.delivery.senders.sms.requests.post") as mock:
        yield mock


def make_response(status_code=201, body=None):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.text = "{}"
    response.headers = {}
    response.json.return_value = body or {}
    return response


def sms_record(body="Reminder for {{name}}", target="+15855550123"):
    return make_record(
        channel=DeliveryChannel.SMS,
        target=target,
        payload={"body": body, "template_values": {"name": "Jane"}},
    )


class TestSmsSender:
    def test_sends_message(self, sender, mock_post):
        mock_post.return_value = make_response(201, {"sid": "SM123"})

        result = sender.attempt(sms_record())

        assert result.is_success
        assert result.data["provider_message_id"] == "SM123"
        args, kwargs = mock_post.call_args
        assert args == (
            "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json",
        )
        assert kwargs["data"] == {
            "To": "+15855550123",
            "From": "+15550000000",
            "Body": "Reminder for Jane",
        }
        assert kwargs["auth"] == ("AC123", "secret-token")

    def test_long_body_is_truncated(self, sender, mock_post):
        mock_post.return_value = make_response(201, {"sid": "SM123"})

        sender.attempt(sms_record(body="x" * 2000))

        body = mock_post.call_args.kwargs["data"]["Body"]
        assert len(body) == 1600
        assert body.endswith("...")

    @pytest.mark.parametrize("target", ["5855550123", "+1585555abcd", "+1234567890123456"])
    def test_invalid_number_is_permanent(self, sender, mock_post, target):
        result = sender.attempt(sms_record(target=target))

        assert result.error_code == "INVALID_TARGET"
        mock_post.assert_not_called()

    def test_empty_body_is_permanent(self, sender, mock_post):
        result = sender.attempt(sms_record(body=""))

        assert result.error_code == "INVALID_PAYLOAD"
        mock_post.assert_not_called()

    def test_twilio_rate_limit_is_retryable(self, sender, mock_post):
        mock_post.return_value = make_response(429)

        result = sender.attempt(sms_record())

        assert result.is_retryable
        assert result.error_code == "RATE_LIMITED"
