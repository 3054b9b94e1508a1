"""Delivery API routes.

Enqueue deliveries, poll their state, read the audit trail and trigger
cycles, sweeps and manual retries on demand.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from api.dependencies.rate_limits import get_limiter, manual_trigger_limit
from infrastructure.audit import AuditReadError
from infrastructure.delivery import (
    DeliveryChannel,
    DeliveryStatus,
    DeliveryStoreError,
    InvalidTransitionError,
    RecordNotFoundError,
)
from infrastructure.logging import get_module_logger
from infrastructure.services import DeliveryServiceDep

logger = get_module_logger()
router = APIRouter(prefix="/deliveries", tags=["Deliveries"])
limiter = get_limiter()

# Upper bound on a caller-supplied retry budget
MAX_ATTEMPTS_LIMIT = 100


class EnqueueRequest(BaseModel):
    channel: DeliveryChannel
    target: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
    max_attempts: Optional[int] = Field(default=None, ge=1, le=MAX_ATTEMPTS_LIMIT)
    scope_key: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "json_schema_extra": {
            "example": {
                "channel": "webhook",
                "target": "https://hooks.example.com/intake",
                "payload": {"event": "intake.submitted", "lead_id": "42"},
                "max_attempts": 3,
                "metadata": {"webhook_name": "crm-intake"},
            }
        }
    }


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _store_unavailable(exc: DeliveryStoreError) -> HTTPException:
    logger.error("delivery_store_unavailable", error=str(exc), error_code=exc.error_code)
    return HTTPException(status_code=503, detail="Delivery store unavailable")


def _audit_unavailable(exc: AuditReadError) -> HTTPException:
    logger.error("delivery_audit_unavailable", error=str(exc))
    return HTTPException(status_code=503, detail="Audit log unavailable")


@router.post("", status_code=201)
def enqueue_delivery(body: EnqueueRequest, service: DeliveryServiceDep):
    """Create a pending delivery that is attempted on the next cycle."""
    try:
        record_id = service.enqueue(
            body.channel,
            body.target,
            body.payload,
            max_attempts=body.max_attempts,
            scope_key=body.scope_key,
            metadata=body.metadata,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except DeliveryStoreError as e:
        raise _store_unavailable(e) from e
    return {"record_id": record_id}


@router.get("")
def list_deliveries(
    service: DeliveryServiceDep,
    status: DeliveryStatus = DeliveryStatus.ABANDONED,
    limit: int = Query(default=50, ge=1, le=500),
):
    """List records in a status, most recently updated first."""
    try:
        records = service.list_records(status, limit=limit)
    except DeliveryStoreError as e:
        raise _store_unavailable(e) from e
    return {"records": [r.to_dict() for r in records], "count": len(records)}


@router.get("/audit")
def list_audit_entries(
    service: DeliveryServiceDep,
    start: datetime,
    end: Optional[datetime] = None,
    channel: Optional[DeliveryChannel] = None,
):
    """Audit entries recorded between ``start`` and ``end`` (default: now)."""
    end_at = _as_utc(end) if end else datetime.now(timezone.utc)
    try:
        entries = service.list_audit(_as_utc(start), end_at, channel=channel)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except AuditReadError as e:
        raise _audit_unavailable(e) from e
    return {"entries": [e.to_response() for e in entries], "count": len(entries)}


@router.get("/health-report")
def get_health_report(service: DeliveryServiceDep):
    """Failure rate, latency and abandonment alerts over the health window."""
    try:
        return service.check_health().to_dict()
    except AuditReadError as e:
        raise _audit_unavailable(e) from e
    except DeliveryStoreError as e:
        raise _store_unavailable(e) from e


@router.post("/run-cycle")
@limiter.limit(manual_trigger_limit)
def run_cycle(
    request: Request,  # pylint: disable=unused-argument
    service: DeliveryServiceDep,
    batch_size: Optional[int] = Query(default=None, ge=1, le=500),
):
    """Run one delivery cycle now and return its summary."""
    try:
        summary = service.run_cycle(batch_size=batch_size, trigger="manual")
    except DeliveryStoreError as e:
        raise _store_unavailable(e) from e
    return summary.to_dict()


@router.post("/reconcile")
@limiter.limit(manual_trigger_limit)
def reconcile(request: Request, service: DeliveryServiceDep):  # pylint: disable=unused-argument
    """Revert stale in-flight claims so they are retried."""
    try:
        reverted = service.reconcile()
    except DeliveryStoreError as e:
        raise _store_unavailable(e) from e
    return {"reverted": reverted}


@router.get("/{record_id}")
def get_delivery(record_id: str, service: DeliveryServiceDep):
    """Current state of a delivery record."""
    try:
        return service.get_status(record_id).to_dict()
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except DeliveryStoreError as e:
        raise _store_unavailable(e) from e


@router.get("/{record_id}/audit")
def get_delivery_audit(record_id: str, service: DeliveryServiceDep):
    """Audit trail of a delivery record, oldest first."""
    try:
        entries = service.get_audit_trail(record_id)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except AuditReadError as e:
        raise _audit_unavailable(e) from e
    except DeliveryStoreError as e:
        raise _store_unavailable(e) from e
    return {"entries": [e.to_response() for e in entries], "count": len(entries)}


@router.post("/{record_id}/retry", status_code=201)
@limiter.limit(manual_trigger_limit)
def retry_delivery(
    request: Request,  # pylint: disable=unused-argument
    record_id: str,
    service: DeliveryServiceDep,
):
    """Re-enqueue an abandoned delivery with a fresh attempt budget."""
    try:
        new_record_id = service.retry_now(record_id)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except DeliveryStoreError as e:
        raise _store_unavailable(e) from e
    return {"record_id": new_record_id, "requeued_from": record_id}
