"""Tests for delivery rate limiters."""

from unittest.mock import patch

from limits.storage import MemoryStorage

from infrastructure.delivery import (
    AllowAllRateLimiter,
    DeliveryChannel,
    WindowedRateLimiter,
)


def test_allow_all_never_throttles():
    limiter = AllowAllRateLimiter()

    decisions = [limiter.check_and_consume(DeliveryChannel.SMS) for _ in range(100)]

    assert all(d.allowed for d in decisions)


class TestWindowedRateLimiter:
    """Tests for WindowedRateLimiter."""

    def test_denies_once_window_is_exhausted(self):
        limiter = WindowedRateLimiter({"sms": "2/minute"})

        first = limiter.check_and_consume(DeliveryChannel.SMS)
        second = limiter.check_and_consume(DeliveryChannel.SMS)
        third = limiter.check_and_consume(DeliveryChannel.SMS)

        assert first.allowed and second.allowed
        assert third.allowed is False
        assert 0 < third.retry_after <= 61

    def test_channels_without_rule_are_unlimited(self):
        limiter = WindowedRateLimiter({"sms": "1/minute", "webhook": ""})

        assert all(
            limiter.check_and_consume(DeliveryChannel.WEBHOOK).allowed
            for _ in range(10)
        )
        assert all(
            limiter.check_and_consume(DeliveryChannel.EMAIL).allowed for _ in range(10)
        )

    def test_scopes_are_independent(self):
        limiter = WindowedRateLimiter({"email": "1/minute"})

        assert limiter.check_and_consume(DeliveryChannel.EMAIL, "clinic-1").allowed
        assert limiter.check_and_consume(DeliveryChannel.EMAIL, "clinic-2").allowed
        assert not limiter.check_and_consume(DeliveryChannel.EMAIL, "clinic-1").allowed

    def test_channels_are_independent(self):
        limiter = WindowedRateLimiter({"email": "1/minute", "sms": "1/minute"})

        assert limiter.check_and_consume(DeliveryChannel.EMAIL).allowed
        assert limiter.check_and_consume(DeliveryChannel.SMS).allowed

    def test_denial_does_not_consume_other_windows(self):
        storage = MemoryStorage()
        limiter = WindowedRateLimiter({"sms": "5/minute;1/day"}, storage=storage)

        assert limiter.check_and_consume(DeliveryChannel.SMS).allowed
        for _ in range(3):
            assert not limiter.check_and_consume(DeliveryChannel.SMS).allowed

        minute_stats = limiter._limiter.get_window_stats(
            limiter._limits["sms"][0], "sms", "global"
        )
        assert minute_stats.remaining == 4

    def test_accepts_channel_names(self):
        limiter = WindowedRateLimiter({"webhook": "1/hour"})

        assert limiter.check_and_consume("webhook").allowed
        assert not limiter.check_and_consume("webhook").allowed

    @patch("infrastructure.delivery.rate_limit.logger")
    def test_logs_denials(self, mock_logger):
        limiter = WindowedRateLimiter({"sms": "1/minute"})
        limiter.check_and_consume(DeliveryChannel.SMS, "clinic-7")

        limiter.check_and_consume(DeliveryChannel.SMS, "clinic-7")

        mock_logger.info.assert_called_once()
        args, kwargs = mock_logger.info.call_args
        assert args == ("delivery_rate_limited",)
        assert kwargs["channel"] == "sms"
        assert kwargs["scope_key"] == "clinic-7"
