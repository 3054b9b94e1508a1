"""Delivery audit trail.

Append-only record of every delivery attempt, with in-memory and DynamoDB
backends and target redaction helpers.
"""

from infrastructure.audit.dynamodb_log import DynamoDBAuditLog
from infrastructure.audit.models import DeliveryAuditEntry
from infrastructure.audit.redaction import redact_target
from infrastructure.audit.store import (
    AuditLog,
    AuditReadError,
    AuditWriteError,
    InMemoryAuditLog,
)

__all__ = [
    "AuditLog",
    "AuditReadError",
    "AuditWriteError",
    "DeliveryAuditEntry",
    "DynamoDBAuditLog",
    "InMemoryAuditLog",
    "redact_target",
]
