"""DynamoDB-backed delivery store for multi-instance deployments.

Table Schema:
    PK: record_id (String)
    Attributes: channel, target, payload (JSON), status, attempt_count,
        max_attempts, next_eligible_at (epoch ms), last_error, created_at,
        updated_at, updated_at_ms (epoch ms), claimed_at (epoch ms),
        scope_key, requeued_from, metadata (JSON)
    GSI: status-next_eligible_at-index (status + next_eligible_at), due records
    GSI: status-updated_at_ms-index (status + updated_at_ms), listings by
        status, most recently updated first

All transitions use ConditionExpression so concurrent cycles on different
instances can never both claim or complete the same record.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from infrastructure.delivery.errors import DeliveryStoreError
from infrastructure.delivery.models import (
    CLAIMABLE_STATUSES,
    DeliveryAttemptRecord,
    DeliveryStatus,
)
from infrastructure.logging import get_module_logger
from integrations.aws import dynamodb

logger = get_module_logger()

STATUS_INDEX = "status-next_eligible_at-index"
UPDATED_INDEX = "status-updated_at_ms-index"
CONDITION_FAILED = "ConditionalCheckFailedException"


def _to_millis(value: datetime) -> str:
    return str(int(value.timestamp() * 1000))


def _from_millis(value: str) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def record_to_item(record: DeliveryAttemptRecord) -> Dict[str, Any]:
    """Serialize a record into DynamoDB attribute-value format."""
    item: Dict[str, Any] = {
        "record_id": {"S": record.id},
        "channel": {"S": record.channel.value},
        "target": {"S": record.target},
        "payload": {"S": json.dumps(record.payload)},
        "status": {"S": record.status.value},
        "attempt_count": {"N": str(record.attempt_count)},
        "max_attempts": {"N": str(record.max_attempts)},
        "next_eligible_at": {"N": _to_millis(record.next_eligible_at)},
        "created_at": {"S": record.created_at.isoformat()},
        "updated_at": {"S": record.updated_at.isoformat()},
        "updated_at_ms": {"N": _to_millis(record.updated_at)},
        "metadata": {"S": json.dumps(record.metadata)},
    }
    if record.last_error is not None:
        item["last_error"] = {"S": record.last_error}
    if record.claimed_at is not None:
        item["claimed_at"] = {"N": _to_millis(record.claimed_at)}
    if record.scope_key is not None:
        item["scope_key"] = {"S": record.scope_key}
    if record.requeued_from is not None:
        item["requeued_from"] = {"S": record.requeued_from}
    return item


def item_to_record(item: Dict[str, Any]) -> DeliveryAttemptRecord:
    """Deserialize a DynamoDB item into a DeliveryAttemptRecord."""

    def get_value(name: str, default: Any = None) -> Any:
        attr = item.get(name)
        if isinstance(attr, dict):
            if "S" in attr:
                return attr["S"]
            if "N" in attr:
                return attr["N"]
        return default

    claimed_at = get_value("claimed_at")
    return DeliveryAttemptRecord(
        id=get_value("record_id"),
        channel=get_value("channel"),
        target=get_value("target"),
        payload=json.loads(get_value("payload", "{}")),
        status=get_value("status"),
        attempt_count=int(get_value("attempt_count", 0)),
        max_attempts=int(get_value("max_attempts", 1)),
        next_eligible_at=_from_millis(get_value("next_eligible_at", "0")),
        last_error=get_value("last_error"),
        created_at=datetime.fromisoformat(get_value("created_at")),
        updated_at=datetime.fromisoformat(get_value("updated_at")),
        claimed_at=_from_millis(claimed_at) if claimed_at else None,
        scope_key=get_value("scope_key"),
        requeued_from=get_value("requeued_from"),
        metadata=json.loads(get_value("metadata", "{}")),
    )


class DynamoDBDeliveryStore:
    """DeliveryStore backed by a DynamoDB table.

    Args:
        table_name: DynamoDB table name
    """

    def __init__(self, table_name: str):
        self.table_name = table_name
        logger.info("dynamodb_delivery_store_initialized", table_name=table_name)

    def _raise(self, operation: str, result) -> None:
        logger.error(
            "dynamodb_delivery_store_error",
            operation=operation,
            error=result.message,
            error_code=result.error_code,
        )
        raise DeliveryStoreError(
            f"{operation} failed: {result.message}", error_code=result.error_code
        )

    def insert(self, record: DeliveryAttemptRecord) -> str:
        result = dynamodb.put_item(
            table_name=self.table_name,
            Item=record_to_item(record),
            ConditionExpression="attribute_not_exists(record_id)",
        )
        if not result.is_success:
            self._raise("insert", result)
        logger.debug("delivery_record_inserted", record_id=record.id)
        return record.id

    def get(self, record_id: str) -> Optional[DeliveryAttemptRecord]:
        result = dynamodb.get_item(
            table_name=self.table_name,
            Key={"record_id": {"S": record_id}},
            ConsistentRead=True,
        )
        if not result.is_success:
            self._raise("get", result)
        item = (result.data or {}).get("Item")
        return item_to_record(item) if item else None

    def fetch_due(self, now: datetime, limit: int) -> List[DeliveryAttemptRecord]:
        due: List[DeliveryAttemptRecord] = []
        for status in sorted(CLAIMABLE_STATUSES, key=lambda s: s.value):
            result = dynamodb.query_page(
                table_name=self.table_name,
                IndexName=STATUS_INDEX,
                KeyConditionExpression="#status = :status AND next_eligible_at <= :now",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={
                    ":status": {"S": status.value},
                    ":now": {"N": _to_millis(now)},
                },
                Limit=limit,
            )
            if not result.is_success:
                self._raise("fetch_due", result)
            due.extend(item_to_record(i) for i in (result.data or {}).get("Items", []))

        due.sort(key=lambda r: r.next_eligible_at)
        return due[:limit]

    def claim(self, record_id: str, now: datetime) -> Optional[DeliveryAttemptRecord]:
        result = dynamodb.update_item(
            table_name=self.table_name,
            Key={"record_id": {"S": record_id}},
            UpdateExpression=(
                "SET #status = :in_flight, claimed_at = :now_ms, "
                "updated_at = :now_iso, updated_at_ms = :now_ms"
            ),
            ConditionExpression=(
                "#status IN (:pending, :failed) AND next_eligible_at <= :now_ms"
            ),
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues={
                ":in_flight": {"S": DeliveryStatus.IN_FLIGHT.value},
                ":pending": {"S": DeliveryStatus.PENDING.value},
                ":failed": {"S": DeliveryStatus.FAILED_RETRYABLE.value},
                ":now_ms": {"N": _to_millis(now)},
                ":now_iso": {"S": now.isoformat()},
            },
            ReturnValues="ALL_OLD",
        )
        if result.is_success:
            return item_to_record(result.data["Attributes"])
        if result.error_code == CONDITION_FAILED:
            logger.debug("delivery_claim_lost", record_id=record_id)
            return None
        self._raise("claim", result)
        return None

    def release(
        self,
        record_id: str,
        status: DeliveryStatus,
        now: datetime,
        claimed_at: Optional[datetime] = None,
    ) -> bool:
        condition = "#status = :in_flight"
        values: Dict[str, Any] = {
            ":in_flight": {"S": DeliveryStatus.IN_FLIGHT.value},
            ":status": {"S": status.value},
            ":now_iso": {"S": now.isoformat()},
            ":now_ms": {"N": _to_millis(now)},
        }
        if claimed_at is not None:
            condition += " AND claimed_at = :claimed_at"
            values[":claimed_at"] = {"N": _to_millis(claimed_at)}

        result = dynamodb.update_item(
            table_name=self.table_name,
            Key={"record_id": {"S": record_id}},
            UpdateExpression=(
                "SET #status = :status, updated_at = :now_iso, updated_at_ms = :now_ms "
                "REMOVE claimed_at"
            ),
            ConditionExpression=condition,
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues=values,
        )
        if result.is_success:
            return True
        if result.error_code == CONDITION_FAILED:
            return False
        self._raise("release", result)
        return False

    def complete(
        self, record: DeliveryAttemptRecord, claimed_at: Optional[datetime] = None
    ) -> bool:
        condition = "#status = :in_flight"
        values: Dict[str, Any] = {":in_flight": {"S": DeliveryStatus.IN_FLIGHT.value}}
        if claimed_at is not None:
            condition += " AND claimed_at = :claimed_at"
            values[":claimed_at"] = {"N": _to_millis(claimed_at)}

        result = dynamodb.put_item(
            table_name=self.table_name,
            Item=record_to_item(record.copy(claimed_at=None)),
            ConditionExpression=condition,
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues=values,
        )
        if result.is_success:
            return True
        if result.error_code == CONDITION_FAILED:
            return False
        self._raise("complete", result)
        return False

    def list_by_status(
        self, status: DeliveryStatus, limit: int = 100
    ) -> List[DeliveryAttemptRecord]:
        result = dynamodb.query_page(
            table_name=self.table_name,
            IndexName=UPDATED_INDEX,
            KeyConditionExpression="#status = :status",
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues={":status": {"S": status.value}},
            ScanIndexForward=False,
            Limit=limit,
        )
        if not result.is_success:
            self._raise("list_by_status", result)
        return [item_to_record(i) for i in (result.data or {}).get("Items", [])]

    def list_stale(
        self, claimed_before: datetime, limit: int = 100
    ) -> List[DeliveryAttemptRecord]:
        result = dynamodb.query(
            table_name=self.table_name,
            IndexName=STATUS_INDEX,
            KeyConditionExpression="#status = :in_flight",
            FilterExpression="claimed_at < :cutoff",
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues={
                ":in_flight": {"S": DeliveryStatus.IN_FLIGHT.value},
                ":cutoff": {"N": _to_millis(claimed_before)},
            },
        )
        if not result.is_success:
            self._raise("list_stale", result)
        return [item_to_record(i) for i in (result.data or [])[:limit]]
