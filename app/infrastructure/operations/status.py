"""Operation status enumeration.

Status codes used to classify the outcome of a delivery attempt or a store
operation so callers can decide between retrying and giving up.
"""

from enum import Enum


class OperationStatus(Enum):
    """Status codes for operation results.

    Attributes:
        SUCCESS: Operation completed successfully
        TRANSIENT_ERROR: Retryable error (network, timeout, rate limit, 5xx)
        PERMANENT_ERROR: Non-retryable error (malformed target, rejected request)
        UNAUTHORIZED: Provider rejected our credentials
        NOT_FOUND: Target or resource does not exist
    """

    SUCCESS = "success"
    TRANSIENT_ERROR = "transient_error"
    PERMANENT_ERROR = "permanent_error"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"

    @property
    def is_retryable(self) -> bool:
        """Only transient errors are worth another attempt."""
        return self is OperationStatus.TRANSIENT_ERROR
