"""SMS sender using the Twilio Messages API."""

from typing import TYPE_CHECKING

import requests
import structlog

from infrastructure.delivery.models import DeliveryAttemptRecord, DeliveryChannel
from infrastructure.delivery.senders.base import (
    DEFAULT_TIMEOUT_SECONDS,
    Sender,
    render_template,
)
from infrastructure.operations import OperationResult
from infrastructure.operations.classifiers import (
    classify_http_response,
    classify_request_exception,
)

if TYPE_CHECKING:
    from infrastructure.configuration.integrations import TwilioSettings

logger = structlog.get_logger()

SMS_MAX_LENGTH = 1600


class SmsSender(Sender):
    """SMS channel backed by Twilio.

    Requires targets in E.164 format (+1234567890). Payload keys:
        body: Message text (supports ``{{placeholders}}``)
        template_values: Optional values substituted into the body
    """

    channel = DeliveryChannel.SMS

    def __init__(
        self,
        settings: "TwilioSettings",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(timeout=timeout)
        self._account_sid = settings.TWILIO_ACCOUNT_SID
        self._auth_token = settings.TWILIO_AUTH_TOKEN
        self._from_number = settings.TWILIO_PHONE_NUMBER
        self._endpoint = (
            f"{settings.TWILIO_API_URL.rstrip('/')}/2010-04-01/Accounts/"
            f"{settings.TWILIO_ACCOUNT_SID}/Messages.json"
        )
        logger.info("initialized_sms_sender", backend="twilio")

    def validate_target(self, target: str) -> OperationResult:
        phone = target.strip()
        if not phone.startswith("+"):
            return OperationResult.permanent_error(
                message="Phone number must be in E.164 format (+1234567890)",
                error_code="INVALID_TARGET",
            )

        # E.164 allows 1-15 digits after +
        digits = phone[1:]
        if not digits.isdigit() or len(digits) > 15:
            return OperationResult.permanent_error(
                message="Phone number must have 1-15 digits after +",
                error_code="INVALID_TARGET",
            )

        return OperationResult.success(data={"target": phone})

    def _send(self, record: DeliveryAttemptRecord, target: str) -> OperationResult:
        message = render_template(
            record.payload.get("body") or "",
            record.payload.get("template_values") or {},
        )
        if not message:
            return OperationResult.permanent_error(
                message="SMS payload requires a body",
                error_code="INVALID_PAYLOAD",
            )
        if len(message) > SMS_MAX_LENGTH:
            message = message[: SMS_MAX_LENGTH - 3] + "..."

        try:
            response = requests.post(
                self._endpoint,
                data={"To": target, "From": self._from_number, "Body": message},
                auth=(self._account_sid, self._auth_token),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("sms_request_failed", record_id=record.id, error=str(e))
            return classify_request_exception(e, timeout=self.timeout)

        result = classify_http_response(response, provider="Twilio")
        if result.is_success:
            try:
                result.data["provider_message_id"] = response.json().get("sid")
            except ValueError:
                result.data["provider_message_id"] = None
        return result
