"""Delivery runtime configuration."""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional, TYPE_CHECKING

from infrastructure.delivery.backoff import BackoffPolicy

if TYPE_CHECKING:
    from infrastructure.configuration import DeliverySettings


@dataclass
class DeliveryConfig:
    """Validated knobs consumed by the scheduler.

    Attributes:
        default_max_attempts: Attempt budget when enqueue omits one
        base_delay_seconds: First retry delay
        backoff_multiplier: Growth factor per attempt
        max_delay_seconds: Optional cap on the retry delay
        batch_size: Records selected per cycle
        sender_timeout_seconds: Per-send HTTP timeout
        stale_claim_margin_seconds: Grace added to the sender timeout before
            an in_flight record is reverted by the stale sweep
        max_workers: Concurrent sends per cycle
        rate_limits: Channel name -> `limits` rate string

    Example:
        config = DeliveryConfig(batch_size=20, max_workers=4)
    """

    default_max_attempts: int = 3
    base_delay_seconds: int = 300
    backoff_multiplier: float = 3.0
    max_delay_seconds: Optional[int] = None
    batch_size: int = 50
    sender_timeout_seconds: int = 30
    stale_claim_margin_seconds: int = 60
    max_workers: int = 8
    rate_limits: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.default_max_attempts < 1:
            raise ValueError("default_max_attempts must be at least 1")
        if self.base_delay_seconds < 1:
            raise ValueError("base_delay_seconds must be at least 1")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")
        if (
            self.max_delay_seconds is not None
            and self.max_delay_seconds < self.base_delay_seconds
        ):
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.sender_timeout_seconds < 1:
            raise ValueError("sender_timeout_seconds must be at least 1")
        if self.stale_claim_margin_seconds < 0:
            raise ValueError("stale_claim_margin_seconds must not be negative")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    @classmethod
    def from_settings(cls, settings: "DeliverySettings") -> "DeliveryConfig":
        return cls(
            default_max_attempts=settings.default_max_attempts,
            base_delay_seconds=settings.base_delay_seconds,
            backoff_multiplier=settings.backoff_multiplier,
            max_delay_seconds=settings.max_delay_seconds,
            batch_size=settings.batch_size,
            sender_timeout_seconds=settings.sender_timeout_seconds,
            stale_claim_margin_seconds=settings.stale_claim_margin_seconds,
            max_workers=settings.max_workers,
            rate_limits=settings.rate_limits(),
        )

    @property
    def stale_after(self) -> timedelta:
        """How long a claim may stay in_flight before it counts as abandoned by its worker."""
        return timedelta(
            seconds=self.sender_timeout_seconds + self.stale_claim_margin_seconds
        )

    def backoff_policy(self) -> BackoffPolicy:
        return BackoffPolicy.from_seconds(
            self.base_delay_seconds,
            self.backoff_multiplier,
            self.max_delay_seconds,
        )
