"""Sender abstract base class.

All channel implementations (webhook, email, SMS) implement this interface.
The scheduler only ever calls ``attempt`` and reads the OperationResult it
returns.
"""

import contextvars
import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Dict

import structlog

from infrastructure.delivery.models import DeliveryAttemptRecord, DeliveryChannel
from infrastructure.operations import OperationResult

logger = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 30

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def render_template(template: str, values: Dict[str, Any]) -> str:
    """Replace ``{{name}}`` placeholders; missing or empty values render as ''."""

    def substitute(match: "re.Match[str]") -> str:
        value = values.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(substitute, template)


class Sender(ABC):
    """Transport able to attempt one delivery for a record.

    Outcome mapping consumed by the scheduler:
    - ``SUCCESS``: delivered; ``data`` carries provider response metadata
    - ``TRANSIENT_ERROR``: retryable failure
    - any other error status: permanent failure, the record is abandoned

    Subclasses implement ``validate_target`` and ``_send``. ``attempt`` never
    raises: anything escaping ``_send`` becomes a transient error.

    ``timeout`` bounds the whole send, not only each socket operation. A
    provider that trickles its response past the deadline yields a TIMEOUT
    transient error while the abandoned call finishes in the background.

    Example Implementation:
        class PagerSender(Sender):
            channel = DeliveryChannel.WEBHOOK

            def validate_target(self, target):
                return OperationResult.success(data={"target": target})

            def _send(self, record, target):
                response = requests.post(target, json=record.payload, timeout=self.timeout)
                return classify_http_response(response, provider="pager")
    """

    channel: DeliveryChannel

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.timeout = timeout

    @property
    def channel_name(self) -> str:
        return self.channel.value

    def attempt(self, record: DeliveryAttemptRecord) -> OperationResult:
        """Attempt one delivery of ``record``.

        Args:
            record: The claimed record

        Returns:
            OperationResult classifying the outcome
        """
        validation = self.validate_target(record.target)
        if not validation.is_success:
            return validation

        pool = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"{self.channel_name}-send"
        )
        future = pool.submit(
            contextvars.copy_context().run,
            self._send,
            record,
            validation.data["target"],
        )
        pool.shutdown(wait=False)

        done, _ = wait([future], timeout=self.timeout)
        if not done:
            logger.warning(
                "delivery_send_deadline_exceeded",
                channel=self.channel_name,
                record_id=record.id,
                timeout=self.timeout,
            )
            return OperationResult.transient_error(
                f"Request timed out after {self.timeout:g} seconds",
                error_code="TIMEOUT",
            )

        try:
            return future.result()
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "delivery_sender_unexpected_error",
                channel=self.channel_name,
                record_id=record.id,
                error=str(e),
                exc_info=True,
            )
            return OperationResult.transient_error(
                f"Unexpected sender error: {type(e).__name__}: {e}",
                error_code="SENDER_ERROR",
            )

    @abstractmethod
    def validate_target(self, target: str) -> OperationResult:
        """Check the target is deliverable on this channel.

        Returns:
            SUCCESS with ``{"target": normalized_target}`` in data, or a
            PERMANENT_ERROR with error_code INVALID_TARGET.
        """

    @abstractmethod
    def _send(self, record: DeliveryAttemptRecord, target: str) -> OperationResult:
        """Perform the provider call for an already validated target."""
