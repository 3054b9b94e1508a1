"""Delivery audit entry model.

One entry is written per delivery attempt, including the attempt that ends in
success or abandonment. Entries are append-only.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DeliveryAuditEntry(BaseModel):
    """Structured audit entry for one delivery attempt.

    Attributes:
        entry_id: Unique identifier of the entry.
        record_id: Delivery attempt record the entry belongs to.
        channel: Delivery channel ('webhook', 'email', 'sms').
        target: Redacted destination (see ``redact_target``).
        status: Record status after the attempt ('succeeded',
            'failed_retryable', 'abandoned').
        attempt_count: Attempts consumed after this attempt.
        reason: Why the attempt ended this way: 'success', 'retryable',
            'permanent' or 'exhausted'.
        error_message: Failure description. Only present on failures.
        error_code: Machine error code from the sender. Only present on failures.
        duration_ms: Wall-clock duration of the send.
        timestamp: When the attempt completed (UTC).
        failure_history: Every failure message of the record, oldest first.
            Only present when the record was abandoned.
        metadata: Caller context copied from the record plus provider
            response metadata (status code, provider message id).
    """

    entry_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    record_id: str = Field(..., description="Delivery attempt record id")
    channel: str = Field(..., description="Delivery channel")
    target: str = Field(..., description="Redacted destination")
    status: str = Field(
        ...,
        description="Record status after the attempt",
        pattern="^(succeeded|failed_retryable|abandoned)$",
    )
    attempt_count: int = Field(..., ge=1)
    reason: str = Field(
        ...,
        description="Attempt outcome reason",
        pattern="^(success|retryable|permanent|exhausted)$",
    )
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    duration_ms: Optional[int] = Field(default=None, ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    failure_history: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "entry_id": "4b1f0c6e2d6a4f1c9a3b1f8e7d6c5b4a",
                "record_id": "9f8e7d6c5b4a4f1c9a3b1f0c6e2d6a4b",
                "channel": "webhook",
                "target": "https://hooks.example.com",
                "status": "failed_retryable",
                "attempt_count": 1,
                "reason": "retryable",
                "error_message": "Webhook server error (503)",
                "error_code": "SERVER_ERROR",
                "duration_ms": 812,
                "timestamp": "2026-01-08T12:00:00+00:00",
            }
        },
    )

    @property
    def is_failure(self) -> bool:
        return self.reason != "success"

    def to_response(self) -> Dict[str, Any]:
        """JSON-ready representation for API responses."""
        return self.model_dump(mode="json", exclude_none=True)
