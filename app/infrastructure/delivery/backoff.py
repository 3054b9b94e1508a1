"""Exponential backoff policy for delivery retries."""

import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

# Upper bound on any delay when no max_delay is configured
DELAY_CEILING = timedelta(days=365)


@dataclass(frozen=True)
class BackoffPolicy:
    """Maps attempt numbers to retry delays.

    ``next_delay(n) = base_delay * multiplier ** (n - 1)``, capped at
    ``max_delay`` when one is set and at ``DELAY_CEILING`` otherwise. With
    the defaults this yields 5, 15 and 45 minutes for attempts 1 to 3.

    Attributes:
        base_delay: Delay after the first failed attempt
        multiplier: Growth factor per attempt (>= 1 keeps the policy monotonic)
        max_delay: Optional upper bound on any single delay

    Example:
        policy = BackoffPolicy()
        policy.next_delay(2)  # timedelta(minutes=15)
        policy.is_terminal(3, 3)  # True
    """

    base_delay: timedelta = timedelta(minutes=5)
    multiplier: float = 3.0
    max_delay: Optional[timedelta] = None

    def __post_init__(self) -> None:
        if self.base_delay <= timedelta(0):
            raise ValueError("base_delay must be positive")
        if self.multiplier < 1:
            raise ValueError("multiplier must be at least 1")
        if self.max_delay is not None and self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")

    @classmethod
    def from_seconds(
        cls,
        base_delay_seconds: float,
        multiplier: float,
        max_delay_seconds: Optional[float] = None,
    ) -> "BackoffPolicy":
        return cls(
            base_delay=timedelta(seconds=base_delay_seconds),
            multiplier=multiplier,
            max_delay=(
                timedelta(seconds=max_delay_seconds)
                if max_delay_seconds is not None
                else None
            ),
        )

    def next_delay(self, attempt_number: int) -> timedelta:
        """Delay to wait after ``attempt_number`` failed attempts.

        Attempt numbers below 1 are treated as 1.
        """
        exponent = max(attempt_number, 1) - 1
        cap = self.max_delay if self.max_delay is not None else DELAY_CEILING
        if self.base_delay >= cap:
            return cap
        if self.multiplier > 1:
            # Past this exponent the product exceeds the cap; skip the power
            # so large attempt numbers cannot overflow
            if exponent >= math.log(cap / self.base_delay, self.multiplier):
                return cap
        return min(self.base_delay * (self.multiplier**exponent), cap)

    @staticmethod
    def is_terminal(attempt_count: int, max_attempts: int) -> bool:
        return attempt_count >= max_attempts
