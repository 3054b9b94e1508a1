"""Error classifiers for provider responses and exceptions.

Converts HTTP responses, ``requests`` exceptions and AWS SDK errors into
standardized OperationResult objects so every sender and store wrapper
classifies failures the same way.

Key Functions:
- classify_http_response(): provider HTTP response -> OperationResult
- classify_request_exception(): requests exceptions -> OperationResult
- classify_aws_error(): AWS SDK errors -> OperationResult

Usage:
    from infrastructure.operations.classifiers import (
        classify_http_response,
        classify_request_exception,
    )

    try:
        response = requests.post(url, json=payload, timeout=30)
    except requests.RequestException as exc:
        return classify_request_exception(exc)
    return classify_http_response(response, provider="webhook")
"""

from typing import Any, Optional

import requests
from botocore.exceptions import ClientError

from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

RESPONSE_BODY_LIMIT = 5000

# 4xx codes that signal a temporary condition rather than a bad request
TRANSIENT_CLIENT_STATUSES = frozenset({408, 425, 429})

DEFAULT_RETRY_AFTER_SECONDS = 60


def _retry_after(response: Any) -> int:
    header_value = None
    headers = getattr(response, "headers", None)
    if headers is not None:
        header_value = headers.get("Retry-After")
    if header_value:
        try:
            return max(0, int(header_value))
        except (ValueError, TypeError):
            pass  # HTTP-date form or garbage, fall back to the default
    return DEFAULT_RETRY_AFTER_SECONDS


def response_metadata(response: Any) -> dict[str, Any]:
    """Extract the metadata kept for the audit trail from an HTTP response."""
    body = getattr(response, "text", "") or ""
    return {
        "status_code": response.status_code,
        "response_body": body[:RESPONSE_BODY_LIMIT],
    }


def classify_http_response(response: Any, provider: str = "HTTP") -> OperationResult:
    """Classify a provider HTTP response into an OperationResult.

    Status Code Mapping:
    - 2xx: SUCCESS with response metadata as data
    - 408, 425: TRANSIENT_ERROR
    - 429: TRANSIENT_ERROR with retry_after from the Retry-After header
    - 401, 403: UNAUTHORIZED
    - 404: NOT_FOUND
    - other 4xx: PERMANENT_ERROR (the request itself is invalid)
    - 5xx: TRANSIENT_ERROR
    - anything else: PERMANENT_ERROR

    Args:
        response: ``requests.Response`` (or anything exposing status_code,
            text and headers)
        provider: Provider name used in messages

    Returns:
        OperationResult with appropriate status, message, error_code and
        retry_after (if applicable)
    """
    status_code = response.status_code
    meta = response_metadata(response)

    if 200 <= status_code < 300:
        return OperationResult.success(
            data=meta, message=f"{provider} accepted ({status_code})"
        )

    if status_code == 429:
        return OperationResult.transient_error(
            f"{provider} rate limited (429)",
            error_code="RATE_LIMITED",
            retry_after=_retry_after(response),
            data=meta,
        )

    if status_code in TRANSIENT_CLIENT_STATUSES:
        return OperationResult.transient_error(
            f"{provider} request timed out ({status_code})",
            error_code="REQUEST_TIMEOUT",
            data=meta,
        )

    if status_code in (401, 403):
        return OperationResult.error(
            OperationStatus.UNAUTHORIZED,
            f"{provider} rejected credentials ({status_code})",
            error_code="UNAUTHORIZED" if status_code == 401 else "FORBIDDEN",
            data=meta,
        )

    if status_code == 404:
        return OperationResult.error(
            OperationStatus.NOT_FOUND,
            f"{provider} target not found (404)",
            error_code="NOT_FOUND",
            data=meta,
        )

    if 400 <= status_code < 500:
        return OperationResult.permanent_error(
            f"{provider} client error ({status_code}): {meta['response_body'][:200]}",
            error_code="HTTP_ERROR",
            data=meta,
        )

    if 500 <= status_code < 600:
        return OperationResult.transient_error(
            f"{provider} server error ({status_code})",
            error_code="SERVER_ERROR",
            data=meta,
        )

    return OperationResult.permanent_error(
        f"{provider} unexpected status ({status_code})",
        error_code="UNKNOWN_ERROR",
        data=meta,
    )


def classify_request_exception(exc: Exception, timeout: Optional[float] = None) -> OperationResult:
    """Classify an exception raised while performing an HTTP call.

    Mapping:
    - Timeout: TRANSIENT_ERROR ("Request timed out after N seconds")
    - ConnectionError: TRANSIENT_ERROR
    - MissingSchema, InvalidSchema, InvalidURL: PERMANENT_ERROR
    - any other exception: TRANSIENT_ERROR

    Args:
        exc: Exception raised by ``requests``
        timeout: Timeout that was in effect, used in the message

    Returns:
        OperationResult describing the failure
    """
    if isinstance(exc, requests.exceptions.Timeout):
        message = (
            f"Request timed out after {timeout:g} seconds"
            if timeout is not None
            else "Request timed out"
        )
        return OperationResult.transient_error(message, error_code="TIMEOUT")

    if isinstance(
        exc,
        (
            requests.exceptions.MissingSchema,
            requests.exceptions.InvalidSchema,
            requests.exceptions.InvalidURL,
        ),
    ):
        return OperationResult.permanent_error(
            f"Invalid target URL: {exc}", error_code="INVALID_TARGET"
        )

    if isinstance(exc, requests.exceptions.ConnectionError):
        return OperationResult.transient_error(
            f"Connection error: {exc}", error_code="CONNECTION_ERROR"
        )

    return OperationResult.transient_error(
        f"Unexpected error: {type(exc).__name__}: {exc}",
        error_code="UNEXPECTED_ERROR",
    )


def classify_aws_error(exc: Exception) -> OperationResult:
    """Classify AWS SDK errors into OperationResult.

    Error Code Mapping:
    - ThrottlingException, ProvisionedThroughputExceededException,
      RequestLimitExceeded: TRANSIENT_ERROR with retry_after
    - ConditionalCheckFailedException: PERMANENT_ERROR (CONDITION_FAILED)
    - AccessDeniedException: UNAUTHORIZED
    - ResourceNotFoundException: NOT_FOUND
    - ValidationException: PERMANENT_ERROR
    - Other: TRANSIENT_ERROR (AWS convention)

    Args:
        exc: Exception raised by boto3/botocore

    Returns:
        OperationResult with appropriate status and error_code
    """
    if not isinstance(exc, ClientError):
        # BotoCoreError (endpoint unreachable, credentials missing, ...)
        return OperationResult.transient_error(
            f"AWS connection error: {type(exc).__name__}: {str(exc)}",
            error_code="CONNECTION_ERROR",
        )

    error_code = "Unknown"
    if hasattr(exc, "response") and exc.response:
        error_code = exc.response.get("Error", {}).get("Code", "Unknown")

    if error_code in (
        "ThrottlingException",
        "ProvisionedThroughputExceededException",
        "RequestLimitExceeded",
    ):
        return OperationResult.transient_error(
            "AWS API throttled",
            error_code="RATE_LIMITED",
            retry_after=DEFAULT_RETRY_AFTER_SECONDS,
        )

    if error_code == "ConditionalCheckFailedException":
        return OperationResult.permanent_error(
            "Conditional check failed", error_code="CONDITION_FAILED"
        )

    if error_code == "AccessDeniedException":
        return OperationResult.error(
            OperationStatus.UNAUTHORIZED,
            "AWS API access denied",
            error_code="FORBIDDEN",
        )

    if error_code == "ResourceNotFoundException":
        return OperationResult.error(
            OperationStatus.NOT_FOUND,
            "AWS resource not found",
            error_code="NOT_FOUND",
        )

    if error_code in ("ValidationException", "InvalidParameterException"):
        return OperationResult.permanent_error(
            f"AWS validation error: {error_code}",
            error_code="INVALID_REQUEST",
        )

    return OperationResult.transient_error(
        f"AWS client error: {error_code}",
        error_code="AWS_CLIENT_ERROR",
    )
