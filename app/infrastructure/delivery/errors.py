"""Delivery exceptions.

Per-record failures are expressed as OperationResult values and never raise;
these exceptions cover infrastructure faults and invalid caller requests.
"""

from typing import Optional


class DeliveryError(Exception):
    """Base class for delivery errors."""


class DeliveryStoreError(DeliveryError):
    """The record store could not be reached or rejected an operation.

    Raised out of ``run_cycle`` when due records cannot be fetched, so the
    job runner surfaces it as an operational alert.
    """

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.error_code = error_code
        super().__init__(message)


class RecordNotFoundError(DeliveryError):
    """No delivery record exists with the requested id."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Delivery record not found: {record_id}")


class InvalidTransitionError(DeliveryError):
    """The requested operation is not allowed from the record's current status."""

    def __init__(self, record_id: str, status: str, operation: str):
        self.record_id = record_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} delivery record {record_id} in status {status}"
        )
