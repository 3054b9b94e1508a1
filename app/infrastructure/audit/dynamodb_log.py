"""DynamoDB persistence for the delivery audit log.

Table schema:
- Partition Key: record_id
- Sort Key: timestamp_entry_id ("<iso timestamp>#<entry id>", range queries by time)
- GSI: channel-timestamp-index (channel + timestamp, time-range dashboards)
- TTL: ttl_timestamp (auto-delete after the retention period)
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import structlog

from infrastructure.audit.models import DeliveryAuditEntry
from infrastructure.audit.store import AuditReadError, AuditWriteError
from integrations.aws import dynamodb

logger = structlog.get_logger()

CHANNEL_INDEX = "channel-timestamp-index"
AUDIT_CHANNELS = ("webhook", "email", "sms")


def _iso(value: datetime) -> str:
    # Fixed precision keeps the lexicographic order equal to time order
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def entry_to_item(entry: DeliveryAuditEntry, retention_days: int) -> Dict[str, Any]:
    timestamp = _iso(entry.timestamp)
    expiry = entry.timestamp + timedelta(days=retention_days)
    item: Dict[str, Any] = {
        "record_id": {"S": entry.record_id},
        "timestamp_entry_id": {"S": f"{timestamp}#{entry.entry_id}"},
        "entry_id": {"S": entry.entry_id},
        "timestamp": {"S": timestamp},
        "channel": {"S": entry.channel},
        "target": {"S": entry.target},
        "status": {"S": entry.status},
        "attempt_count": {"N": str(entry.attempt_count)},
        "reason": {"S": entry.reason},
        "failure_history": {"S": json.dumps(entry.failure_history)},
        "metadata": {"S": json.dumps(entry.metadata, default=str)},
        "ttl_timestamp": {"N": str(int(expiry.timestamp()))},
    }
    if entry.error_message is not None:
        item["error_message"] = {"S": entry.error_message}
    if entry.error_code is not None:
        item["error_code"] = {"S": entry.error_code}
    if entry.duration_ms is not None:
        item["duration_ms"] = {"N": str(entry.duration_ms)}
    return item


def item_to_entry(item: Dict[str, Any]) -> DeliveryAuditEntry:
    def get_value(name: str, default: Any = None) -> Any:
        attr = item.get(name, {})
        return attr.get("S", attr.get("N", default))

    duration = get_value("duration_ms")
    return DeliveryAuditEntry(
        entry_id=get_value("entry_id"),
        record_id=get_value("record_id"),
        channel=get_value("channel"),
        target=get_value("target"),
        status=get_value("status"),
        attempt_count=int(get_value("attempt_count", 1)),
        reason=get_value("reason"),
        error_message=get_value("error_message"),
        error_code=get_value("error_code"),
        duration_ms=int(duration) if duration is not None else None,
        timestamp=datetime.fromisoformat(get_value("timestamp")),
        failure_history=json.loads(get_value("failure_history", "[]")),
        metadata=json.loads(get_value("metadata", "{}")),
    )


class DynamoDBAuditLog:
    """AuditLog backed by DynamoDB.

    Args:
        table_name: DynamoDB table name
        retention_days: Days before DynamoDB TTL deletes an entry
    """

    def __init__(self, table_name: str, retention_days: int = 90):
        self.table_name = table_name
        self.retention_days = retention_days

    def append(self, entry: DeliveryAuditEntry) -> None:
        result = dynamodb.put_item(
            table_name=self.table_name,
            Item=entry_to_item(entry, self.retention_days),
        )
        if not result.is_success:
            logger.error(
                "dynamodb_audit_write_error",
                record_id=entry.record_id,
                error=result.message,
                error_code=result.error_code,
            )
            raise AuditWriteError(result.message)
        logger.debug(
            "delivery_audit_entry_written",
            record_id=entry.record_id,
            entry_id=entry.entry_id,
        )

    def list_for_record(self, record_id: str) -> List[DeliveryAuditEntry]:
        result = dynamodb.query(
            table_name=self.table_name,
            KeyConditionExpression="record_id = :rid",
            ExpressionAttributeValues={":rid": {"S": record_id}},
            ScanIndexForward=True,
        )
        if not result.is_success:
            logger.error(
                "delivery_audit_query_error",
                record_id=record_id,
                error=result.message,
                error_code=result.error_code,
            )
            raise AuditReadError(result.message)
        return [item_to_entry(item) for item in result.data or []]

    def list_between(
        self,
        start: datetime,
        end: datetime,
        channel: Optional[str] = None,
    ) -> List[DeliveryAuditEntry]:
        entries: List[DeliveryAuditEntry] = []
        for channel_name in (channel,) if channel else AUDIT_CHANNELS:
            result = dynamodb.query(
                table_name=self.table_name,
                IndexName=CHANNEL_INDEX,
                KeyConditionExpression=(
                    "channel = :channel AND #ts BETWEEN :start AND :end"
                ),
                ExpressionAttributeNames={"#ts": "timestamp"},
                ExpressionAttributeValues={
                    ":channel": {"S": channel_name},
                    ":start": {"S": _iso(start)},
                    ":end": {"S": _iso(end)},
                },
            )
            if not result.is_success:
                logger.error(
                    "delivery_audit_query_error",
                    channel=channel_name,
                    error=result.message,
                    error_code=result.error_code,
                )
                raise AuditReadError(result.message)
            entries.extend(item_to_entry(item) for item in result.data or [])
        return sorted(entries, key=lambda e: e.timestamp)
