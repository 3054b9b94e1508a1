"""Per-channel rate limiting consulted before each send.

The scheduler only relies on ``check_and_consume``; a denied check means the
record is released untouched and the cycle moves on.
"""

import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from limits import RateLimitItem, parse_many
from limits.storage import MemoryStorage, Storage
from limits.strategies import FixedWindowRateLimiter

from infrastructure.delivery.models import DeliveryChannel
from infrastructure.logging import get_module_logger

logger = get_module_logger()

DEFAULT_SCOPE = "global"


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate limit check.

    Attributes:
        allowed: Whether the send may proceed
        retry_after: Seconds until the tightest exhausted window resets
    """

    allowed: bool
    retry_after: Optional[int] = None


class RateLimiter(Protocol):
    def check_and_consume(
        self, channel: DeliveryChannel, scope_key: Optional[str] = None
    ) -> RateLimitDecision:
        """Consume one unit of quota for ``(channel, scope_key)`` if available."""
        ...


class AllowAllRateLimiter:
    """Limiter that never throttles."""

    def check_and_consume(
        self, channel: DeliveryChannel, scope_key: Optional[str] = None
    ) -> RateLimitDecision:
        return RateLimitDecision(allowed=True)


class WindowedRateLimiter:
    """Fixed-window quotas per channel, backed by the ``limits`` library.

    Each channel takes a rate string such as ``"100/minute;1000/hour;10000/day"``.
    Quota is consumed only when every window of the channel has room, so a
    denial never burns minute-level quota on behalf of an exhausted day.

    Args:
        rules: Channel name -> rate string. Channels without a rule (or with
            an empty one) are unlimited.
        storage: ``limits`` storage backend (defaults to process memory)

    Example:
        limiter = WindowedRateLimiter({"sms": "30/minute;500/hour"})
        limiter.check_and_consume(DeliveryChannel.SMS, scope_key="clinic-7")
    """

    def __init__(
        self,
        rules: Dict[str, str],
        storage: Optional[Storage] = None,
    ) -> None:
        self._limits: Dict[str, List[RateLimitItem]] = {
            channel: parse_many(rule) for channel, rule in rules.items() if rule
        }
        self._limiter = FixedWindowRateLimiter(storage or MemoryStorage())
        self._lock = threading.Lock()

    def check_and_consume(
        self, channel: DeliveryChannel, scope_key: Optional[str] = None
    ) -> RateLimitDecision:
        channel_name = DeliveryChannel(channel).value
        items = self._limits.get(channel_name)
        if not items:
            return RateLimitDecision(allowed=True)

        identifiers = (channel_name, scope_key or DEFAULT_SCOPE)
        with self._lock:
            exhausted = [
                item for item in items if not self._limiter.test(item, *identifiers)
            ]
            if exhausted:
                retry_after = max(
                    self._seconds_until_reset(item, identifiers) for item in exhausted
                )
                logger.info(
                    "delivery_rate_limited",
                    channel=channel_name,
                    scope_key=identifiers[1],
                    retry_after=retry_after,
                )
                return RateLimitDecision(allowed=False, retry_after=retry_after)

            for item in items:
                self._limiter.hit(item, *identifiers)
        return RateLimitDecision(allowed=True)

    def _seconds_until_reset(self, item: RateLimitItem, identifiers) -> int:
        stats = self._limiter.get_window_stats(item, *identifiers)
        return max(0, int(stats.reset_time - time.time()) + 1)
