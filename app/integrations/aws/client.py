"""AWS API call helpers.

Centralizes boto3 client creation, throttling retries and error
classification so store implementations only ever see OperationResult.

Usage:
    result = execute_aws_api_call(
        service_name="dynamodb",
        method="get_item",
        TableName="delivery-attempt-records",
        Key={"record_id": {"S": "abc"}},
    )
    if result.is_success:
        item = result.data.get("Item")
"""

import time
from typing import Any, Callable, List, Optional

import boto3  # type: ignore
from botocore.client import BaseClient  # type: ignore
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore

from infrastructure.logging import get_module_logger
from infrastructure.operations.classifiers import classify_aws_error
from infrastructure.operations.result import OperationResult

logger = get_module_logger()

DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_FACTOR = 0.5

# Error codes that are expected as part of normal control flow and only
# warrant a debug log line
EXPECTED_ERROR_CODES = frozenset({"ConditionalCheckFailedException"})


def _error_code(error: Exception) -> Optional[str]:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


def _should_retry(error: Exception, attempt: int, max_attempts: int) -> bool:
    # Import here to avoid circular dependency
    from infrastructure.services.providers import get_settings

    return (
        _error_code(error) in get_settings().aws.THROTTLING_ERRS
        and attempt < max_attempts
    )


def _calculate_retry_delay(attempt: int) -> float:
    return DEFAULT_BACKOFF_FACTOR * (2**attempt)


def get_aws_client(service_name: str) -> BaseClient:
    """Create a boto3 client for the configured region and endpoint.

    ``DYNAMODB_ENDPOINT_URL`` points the DynamoDB client at a local emulator
    when set.
    """
    # Import here to avoid circular dependency
    from infrastructure.services.providers import get_settings

    aws = get_settings().aws
    client_kwargs: dict[str, Any] = {"region_name": aws.AWS_REGION}
    if service_name == "dynamodb" and aws.DYNAMODB_ENDPOINT_URL:
        client_kwargs["endpoint_url"] = aws.DYNAMODB_ENDPOINT_URL
    return boto3.client(service_name, **client_kwargs)


def _paginate_all_results(
    client: BaseClient, method: str, keys: Optional[List[str]] = None, **kwargs
) -> List[dict]:
    paginator = client.get_paginator(method)
    results: List[dict] = []
    for page in paginator.paginate(**kwargs):
        for key in keys or ["Items"]:
            results.extend(page.get(key, []))
    return results


def execute_api_call(
    func_name: str,
    api_call: Callable[[], Any],
    max_retries: Optional[int] = None,
) -> OperationResult:
    """Run an AWS API call, retrying throttling errors with backoff.

    Args:
        func_name: Name used in log entries (``dynamodb_update_item``)
        api_call: Zero-argument callable performing the request
        max_retries: Override the default number of throttling retries

    Returns:
        OperationResult with the raw response as data, or the classified error.
        ``error_code`` keeps the AWS error code when one is available so
        callers can branch on ``ConditionalCheckFailedException``.
    """
    max_attempts = max_retries if max_retries is not None else DEFAULT_MAX_RETRIES

    for attempt in range(max_attempts + 1):
        try:
            return OperationResult.success(data=api_call())
        except (BotoCoreError, ClientError) as e:
            if _should_retry(e, attempt, max_attempts):
                delay = _calculate_retry_delay(attempt)
                logger.warning(
                    "aws_api_retrying",
                    function=func_name,
                    attempt=attempt + 1,
                    error=str(e),
                    delay=delay,
                )
                time.sleep(delay)
                continue
            return _handle_final_error(e, func_name)

    # Unreachable, the final iteration either returns or hits _handle_final_error
    return OperationResult.transient_error(
        f"{func_name} exhausted retries", error_code="RETRIES_EXHAUSTED"
    )


def _handle_final_error(error: Exception, func_name: str) -> OperationResult:
    result = classify_aws_error(error)
    code = _error_code(error)
    if code in EXPECTED_ERROR_CODES:
        logger.debug("aws_api_condition_not_met", function=func_name, error_code=code)
    else:
        logger.error(
            "aws_api_error_final",
            function=func_name,
            error=str(error),
            error_code=code,
        )
    if code:
        result.error_code = code
    return result


def execute_aws_api_call(
    service_name: str,
    method: str,
    keys: Optional[List[str]] = None,
    force_paginate: bool = False,
    max_retries: Optional[int] = None,
    **kwargs,
) -> OperationResult:
    """Call ``method`` on a fresh ``service_name`` client.

    Args:
        service_name: The AWS service (``dynamodb``)
        method: The client method to call
        keys: Keys to collect from each page when paginating
        force_paginate: Collect every page and return the concatenated items
        max_retries: Override the default number of throttling retries
        **kwargs: Arguments for the API call

    Returns:
        OperationResult: response dict, or a list of items when paginated
    """

    def api_call():
        client = get_aws_client(service_name)
        if force_paginate:
            return _paginate_all_results(client, method, keys, **kwargs)
        return getattr(client, method)(**kwargs)

    return execute_api_call(f"{service_name}_{method}", api_call, max_retries)
