"""Webhook sender: JSON POST of the record payload to the target URL."""

from urllib.parse import urlparse

import requests
import structlog

from infrastructure.delivery.models import DeliveryAttemptRecord, DeliveryChannel
from infrastructure.delivery.senders.base import Sender
from infrastructure.operations import OperationResult
from infrastructure.operations.classifiers import (
    classify_http_response,
    classify_request_exception,
)

logger = structlog.get_logger()


class WebhookSender(Sender):
    """Deliver payloads to HTTP(S) webhook endpoints.

    The payload is posted as-is. ``X-Delivery-Id`` lets receivers deduplicate
    and ``X-Delivery-Attempt`` carries the 1-based attempt number.
    """

    channel = DeliveryChannel.WEBHOOK

    def validate_target(self, target: str) -> OperationResult:
        parsed = urlparse(target.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return OperationResult.permanent_error(
                message="Webhook target must be an absolute http(s) URL",
                error_code="INVALID_TARGET",
            )
        return OperationResult.success(data={"target": target.strip()})

    def _send(self, record: DeliveryAttemptRecord, target: str) -> OperationResult:
        headers = {
            "Content-Type": "application/json",
            "X-Delivery-Id": record.id,
            "X-Delivery-Attempt": str(record.attempt_count + 1),
        }
        try:
            response = requests.post(
                target,
                json=record.payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(
                "webhook_request_failed",
                record_id=record.id,
                error=str(e),
            )
            return classify_request_exception(e, timeout=self.timeout)

        return classify_http_response(response, provider="Webhook")
