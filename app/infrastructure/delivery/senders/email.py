"""Email sender using the Resend API."""

from typing import TYPE_CHECKING

import requests
import structlog
from pydantic import EmailStr, TypeAdapter, ValidationError

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
    from infrastructure.configuration.integrations import ResendSettings

logger = structlog.get_logger()

_email_adapter = TypeAdapter(EmailStr)


class EmailSender(Sender):
    """Email channel backed by Resend's ``POST /emails``.

    Payload keys:
        subject: Subject line (supports ``{{placeholders}}``)
        html: HTML body (supports ``{{placeholders}}``)
        text: Optional plain-text body
        from: Optional sender, defaults to the configured from address
        template_values: Optional values substituted into subject/html/text
    """

    channel = DeliveryChannel.EMAIL

    def __init__(
        self,
        settings: "ResendSettings",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(timeout=timeout)
        self._api_key = settings.RESEND_API_KEY
        self._endpoint = f"{settings.RESEND_API_URL.rstrip('/')}/emails"
        self._from_address = settings.RESEND_FROM_ADDRESS
        logger.info("initialized_email_sender", backend="resend")

    def validate_target(self, target: str) -> OperationResult:
        try:
            address = _email_adapter.validate_python(target.strip())
        except ValidationError:
            return OperationResult.permanent_error(
                message="Email target is not a valid address",
                error_code="INVALID_TARGET",
            )
        return OperationResult.success(data={"target": str(address)})

    def _send(self, record: DeliveryAttemptRecord, target: str) -> OperationResult:
        payload = record.payload
        values = payload.get("template_values") or {}
        html = payload.get("html")
        if not html:
            return OperationResult.permanent_error(
                message="Email payload requires an html body",
                error_code="INVALID_PAYLOAD",
            )

        body = {
            "from": payload.get("from") or self._from_address,
            "to": [target],
            "subject": render_template(payload.get("subject") or "Notification", values),
            "html": render_template(html, values),
        }
        if payload.get("text"):
            body["text"] = render_template(payload["text"], values)

        try:
            response = requests.post(
                self._endpoint,
                json=body,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("email_request_failed", record_id=record.id, error=str(e))
            return classify_request_exception(e, timeout=self.timeout)

        result = classify_http_response(response, provider="Resend")
        if result.is_success:
            result.data["provider_message_id"] = _json_field(response, "id")
        return result


def _json_field(response: requests.Response, key: str):
    try:
        return response.json().get(key)
    except ValueError:
        return None
