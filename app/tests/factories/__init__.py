"""Test data factories for deterministic test data generation."""

from tests.factories.delivery import (
    make_audit_entry,
    make_dynamodb_item,
    make_record,
    permanent_result,
    retryable_result,
    success_result,
)

__all__ = [
    "make_audit_entry",
    "make_dynamodb_item",
    "make_record",
    "permanent_result",
    "retryable_result",
    "success_result",
]
