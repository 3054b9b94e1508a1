"""Operation result types and status enums.

Standardized result types shared by the delivery senders and the store
wrappers, plus classifiers that turn provider responses and exceptions into
results.
"""

from infrastructure.operations.classifiers import (
    classify_aws_error,
    classify_http_response,
    classify_request_exception,
)
from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

__all__ = [
    "OperationResult",
    "OperationStatus",
    "classify_http_response",
    "classify_request_exception",
    "classify_aws_error",
]
