"""DynamoDB-backed notification store for multi-worker deployments.

Every worker process shares the same four tables. The claim and every status
change are single conditional writes, so two workers can never hold the same
item in processing at once.

Table Schema (all tables):
    PK: id (String)

Queue table:
    GSI: status-dispatch_key-index
        partition: status
        sort: dispatch_key = "<priority:02d>#<scheduled_for>"
    Timestamps are fixed-width UTC strings, so they sort lexicographically.
    metadata and variables are stored as JSON strings.

Channels table: counters are updated with ADD, never read-modify-write.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer  # type: ignore
from pydantic import BaseModel

from courier.clients.aws.dynamodb import DynamoDBClient
from courier.logging import get_module_logger
from courier.notifications.errors import StoreError
from courier.notifications.models import (
    ChannelType,
    NotificationChannel,
    NotificationItem,
    NotificationLog,
    NotificationStatus,
    NotificationTemplate,
)
from courier.operations.result import OperationResult

logger = get_module_logger()

STATUS_INDEX = "status-dispatch_key-index"
CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# Dict-valued fields kept as JSON strings so arbitrary values (floats, nesting)
# never hit DynamoDB type restrictions.
JSON_FIELDS = frozenset({"metadata", "variables", "config"})

ModelT = TypeVar("ModelT", bound=BaseModel)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def dispatch_key(priority: int, scheduled_for: datetime) -> str:
    return f"{priority:02d}#{format_timestamp(scheduled_for)}"


def _to_plain(name: str, value: Any) -> Any:
    if name in JSON_FIELDS and isinstance(value, dict):
        return json.dumps(value, default=str)
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def _serialize_value(name: str, value: Any) -> Dict[str, Any]:
    return _serializer.serialize(_to_plain(name, value))


def _to_attributes(model: BaseModel) -> Dict[str, Any]:
    """Convert a model into a DynamoDB item, dropping None values."""
    attributes = {}
    for name in type(model).model_fields:
        value = getattr(model, name)
        if value is None:
            continue
        attributes[name] = _serialize_value(name, value)
    return attributes


def _from_attributes(raw: Dict[str, Any], model_cls: Type[ModelT]) -> ModelT:
    """Convert a DynamoDB item back into a model."""
    data: Dict[str, Any] = {}
    for name, attr in raw.items():
        if name not in model_cls.model_fields:
            continue
        value = _deserializer.deserialize(attr)
        if isinstance(value, Decimal):
            value = int(value) if value == value.to_integral_value() else float(value)
        if name in JSON_FIELDS and isinstance(value, str):
            value = json.loads(value) if value else {}
        data[name] = value
    return model_cls.model_validate(data)


class DynamoDBNotificationStore:
    """DynamoDB implementation of NotificationStore.

    This implementation provides:
    - Atomic claims through conditional status updates
    - Priority then schedule ordering through the status GSI
    - Store-side counter increments for channel health
    - Durable state surviving worker crashes

    Args:
        client: DynamoDBClient used for every call
        queue_table: Queue items table
        channels_table: Channel registry table
        templates_table: Templates table
        logs_table: Delivery log table
    """

    def __init__(
        self,
        client: DynamoDBClient,
        queue_table: str,
        channels_table: str,
        templates_table: str,
        logs_table: str,
    ) -> None:
        self.client = client
        self.queue_table = queue_table
        self.channels_table = channels_table
        self.templates_table = templates_table
        self.logs_table = logs_table

        logger.info(
            "dynamodb_notification_store_initialized",
            queue_table=queue_table,
            channels_table=channels_table,
        )

    # Helpers

    def _raise_on_error(self, result: OperationResult, operation: str) -> None:
        if not result.is_success:
            logger.error(
                "dynamodb_operation_failed",
                operation=operation,
                error=result.message,
                error_code=result.error_code,
            )
            raise StoreError(f"{operation} failed: {result.message}")

    def _put(self, table: str, model: BaseModel, operation: str) -> None:
        result = self.client.put_item(table_name=table, Item=_to_attributes(model))
        self._raise_on_error(result, operation)

    def _get(self, table: str, key: str, model_cls: Type[ModelT]) -> Optional[ModelT]:
        result = self.client.get_item(table_name=table, Key={"id": {"S": key}})
        self._raise_on_error(result, f"get {model_cls.__name__}")
        raw = (result.data or {}).get("Item")
        return _from_attributes(raw, model_cls) if raw else None

    def _scan(self, table: str, model_cls: Type[ModelT], **kwargs) -> List[ModelT]:
        result = self.client.scan(table_name=table, **kwargs)
        self._raise_on_error(result, f"scan {model_cls.__name__}")
        return [_from_attributes(raw, model_cls) for raw in result.data or []]

    def _delete(self, table: str, key: str, operation: str) -> bool:
        """Delete an existing record; False if no record had that id."""
        result = self.client.delete_item(
            table_name=table,
            Key={"id": {"S": key}},
            ConditionExpression="attribute_exists(id)",
        )
        if not result.is_success:
            if result.error_code == CONDITIONAL_CHECK_FAILED:
                return False
            self._raise_on_error(result, operation)
        return True

    def _update(
        self,
        table: str,
        key: str,
        model_cls: Type[ModelT],
        operation: str,
        **kwargs,
    ) -> Optional[ModelT]:
        """Run a conditional update returning the new item, or None if the condition failed."""
        result = self.client.update_item(
            table_name=table,
            Key={"id": {"S": key}},
            ReturnValues="ALL_NEW",
            **kwargs,
        )
        if not result.is_success:
            if result.error_code == CONDITIONAL_CHECK_FAILED:
                return None
            self._raise_on_error(result, operation)
        raw = (result.data or {}).get("Attributes")
        return _from_attributes(raw, model_cls) if raw else None

    @staticmethod
    def _build_set_expression(changes: Dict[str, Any]) -> Dict[str, Any]:
        """Build SET/REMOVE clauses with placeholder names for every field."""
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        set_parts: List[str] = []
        remove_parts: List[str] = []
        for index, (name, value) in enumerate(sorted(changes.items())):
            names[f"#f{index}"] = name
            if value is None:
                remove_parts.append(f"#f{index}")
            else:
                values[f":v{index}"] = _serialize_value(name, value)
                set_parts.append(f"#f{index} = :v{index}")
        expression = ""
        if set_parts:
            expression += "SET " + ", ".join(set_parts)
        if remove_parts:
            expression += " REMOVE " + ", ".join(remove_parts)
        return {
            "UpdateExpression": expression.strip(),
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
        }

    # Queue items

    def save_item(self, item: NotificationItem) -> NotificationItem:
        attributes = _to_attributes(item)
        attributes["dispatch_key"] = {
            "S": dispatch_key(item.priority, item.scheduled_for)
        }
        result = self.client.put_item(table_name=self.queue_table, Item=attributes)
        self._raise_on_error(result, "save item")
        logger.debug("notification_item_saved", item_id=item.id)
        return item.model_copy(deep=True)

    def get_item(self, item_id: str) -> Optional[NotificationItem]:
        return self._get(self.queue_table, item_id, NotificationItem)

    def claim_ready(self, now: datetime, limit: int) -> List[NotificationItem]:
        # Over-fetch: some candidates may be claimed by other workers first
        result = self.client.query(
            table_name=self.queue_table,
            max_items=limit * 2,
            IndexName=STATUS_INDEX,
            KeyConditionExpression="#s = :pending",
            FilterExpression="scheduled_for <= :now",
            ExpressionAttributeNames={"#s": "status"},
            ExpressionAttributeValues={
                ":pending": {"S": NotificationStatus.PENDING.value},
                ":now": {"S": format_timestamp(now)},
            },
            ScanIndexForward=True,
        )
        self._raise_on_error(result, "query pending items")

        claimed: List[NotificationItem] = []
        for raw in result.data or []:
            if len(claimed) >= limit:
                break
            item_id = raw["id"]["S"]
            item = self._update(
                self.queue_table,
                item_id,
                NotificationItem,
                "claim item",
                UpdateExpression="SET #s = :processing, updated_at = :now",
                ConditionExpression="#s = :pending",
                ExpressionAttributeNames={"#s": "status"},
                ExpressionAttributeValues={
                    ":processing": {"S": NotificationStatus.PROCESSING.value},
                    ":pending": {"S": NotificationStatus.PENDING.value},
                    ":now": {"S": format_timestamp(now)},
                },
            )
            if item is None:
                logger.debug("notification_claim_lost", item_id=item_id)
                continue
            claimed.append(item)

        if claimed:
            logger.debug("notification_items_claimed", count=len(claimed))
        return claimed

    def transition(
        self,
        item_id: str,
        expected_statuses: Iterable[NotificationStatus],
        changes: Dict[str, Any],
    ) -> Optional[NotificationItem]:
        changes = dict(changes)
        if "scheduled_for" in changes or "priority" in changes:
            # Priority is fixed after enqueue; re-read it to rebuild the sort key
            current = self.get_item(item_id)
            if current is None:
                return None
            changes["dispatch_key"] = dispatch_key(
                changes.get("priority", current.priority),
                changes.get("scheduled_for", current.scheduled_for),
            )

        update = self._build_set_expression(changes)
        expected = [NotificationStatus(s) for s in expected_statuses]
        placeholders = []
        for index, status in enumerate(expected):
            update["ExpressionAttributeValues"][f":e{index}"] = {"S": status.value}
            placeholders.append(f":e{index}")
        update["ExpressionAttributeNames"]["#status"] = "status"

        return self._update(
            self.queue_table,
            item_id,
            NotificationItem,
            "transition item",
            ConditionExpression=f"#status IN ({', '.join(placeholders)})",
            **update,
        )

    def list_items(
        self,
        status: Optional[NotificationStatus] = None,
        limit: Optional[int] = None,
        min_retry_count: Optional[int] = None,
    ) -> List[NotificationItem]:
        if status is not None:
            result = self.client.query(
                table_name=self.queue_table,
                IndexName=STATUS_INDEX,
                KeyConditionExpression="#s = :status",
                ExpressionAttributeNames={"#s": "status"},
                ExpressionAttributeValues={":status": {"S": status.value}},
            )
            self._raise_on_error(result, "query items by status")
            items = [_from_attributes(raw, NotificationItem) for raw in result.data or []]
        else:
            items = self._scan(self.queue_table, NotificationItem)

        if min_retry_count is not None:
            items = [i for i in items if i.retry_count >= min_retry_count]
        items.sort(key=lambda i: (i.created_at, i.id), reverse=True)
        return items[:limit] if limit is not None else items

    def count_items(self, status: NotificationStatus) -> int:
        result = self.client.query(
            table_name=self.queue_table,
            IndexName=STATUS_INDEX,
            KeyConditionExpression="#s = :status",
            ExpressionAttributeNames={"#s": "status"},
            ExpressionAttributeValues={":status": {"S": status.value}},
            ProjectionExpression="id",
        )
        self._raise_on_error(result, "count items")
        return len(result.data or [])

    def purge_items(
        self, statuses: Iterable[NotificationStatus], older_than: datetime
    ) -> int:
        values = {":cutoff": {"S": format_timestamp(older_than)}}
        placeholders = []
        for index, status in enumerate(statuses):
            values[f":s{index}"] = {"S": NotificationStatus(status).value}
            placeholders.append(f":s{index}")
        if not placeholders:
            return 0

        result = self.client.scan(
            table_name=self.queue_table,
            FilterExpression=f"#s IN ({', '.join(placeholders)}) AND updated_at < :cutoff",
            ExpressionAttributeNames={"#s": "status"},
            ExpressionAttributeValues=values,
            ProjectionExpression="id",
        )
        self._raise_on_error(result, "scan purgeable items")

        purged = 0
        for raw in result.data or []:
            delete = self.client.delete_item(
                table_name=self.queue_table, Key={"id": raw["id"]}
            )
            if delete.is_success:
                purged += 1
            else:
                logger.warning(
                    "notification_purge_delete_failed",
                    item_id=raw["id"].get("S"),
                    error=delete.message,
                )
        return purged

    # Channels

    def save_channel(self, channel: NotificationChannel) -> NotificationChannel:
        self._put(self.channels_table, channel, "save channel")
        return channel.model_copy(deep=True)

    def get_channel(self, channel_id: str) -> Optional[NotificationChannel]:
        return self._get(self.channels_table, channel_id, NotificationChannel)

    def list_channels(
        self, channel_type: Optional[ChannelType] = None
    ) -> List[NotificationChannel]:
        channels = self._scan(self.channels_table, NotificationChannel)
        if channel_type is not None:
            channels = [c for c in channels if c.type == channel_type]
        channels.sort(key=lambda c: (c.created_at, c.id))
        return channels

    def update_channel(
        self, channel_id: str, changes: Dict[str, Any]
    ) -> Optional[NotificationChannel]:
        update = self._build_set_expression(changes)
        return self._update(
            self.channels_table,
            channel_id,
            NotificationChannel,
            "update channel",
            ConditionExpression="attribute_exists(id)",
            **update,
        )

    def delete_channel(self, channel_id: str) -> bool:
        return self._delete(self.channels_table, channel_id, "delete channel")

    def record_channel_success(
        self, channel_id: str, now: datetime
    ) -> Optional[NotificationChannel]:
        return self._update(
            self.channels_table,
            channel_id,
            NotificationChannel,
            "record channel success",
            UpdateExpression=(
                "ADD success_count :one "
                "SET consecutive_errors = :zero, is_healthy = :true, updated_at = :now"
            ),
            ConditionExpression="attribute_exists(id)",
            ExpressionAttributeValues={
                ":one": {"N": "1"},
                ":zero": {"N": "0"},
                ":true": {"BOOL": True},
                ":now": {"S": format_timestamp(now)},
            },
        )

    def record_channel_failure(
        self,
        channel_id: str,
        error: str,
        now: datetime,
        count_consecutive: bool = True,
    ) -> Optional[NotificationChannel]:
        add_clause = "ADD error_count :one"
        if count_consecutive:
            add_clause += ", consecutive_errors :one"
        return self._update(
            self.channels_table,
            channel_id,
            NotificationChannel,
            "record channel failure",
            UpdateExpression=f"{add_clause} SET last_error = :error, updated_at = :now",
            ConditionExpression="attribute_exists(id)",
            ExpressionAttributeValues={
                ":one": {"N": "1"},
                ":error": {"S": error},
                ":now": {"S": format_timestamp(now)},
            },
        )

    def mark_channel_unhealthy(
        self, channel_id: str, min_consecutive_errors: int, now: datetime
    ) -> Optional[NotificationChannel]:
        return self._update(
            self.channels_table,
            channel_id,
            NotificationChannel,
            "mark channel unhealthy",
            UpdateExpression="SET is_healthy = :false, updated_at = :now",
            ConditionExpression="consecutive_errors >= :threshold",
            ExpressionAttributeValues={
                ":false": {"BOOL": False},
                ":now": {"S": format_timestamp(now)},
                ":threshold": {"N": str(min_consecutive_errors)},
            },
        )

    def record_health_check(
        self,
        channel_id: str,
        healthy: bool,
        now: datetime,
        error: Optional[str] = None,
    ) -> Optional[NotificationChannel]:
        changes: Dict[str, Any] = {
            "is_healthy": healthy,
            "last_health_check": now,
            "updated_at": now,
        }
        if healthy:
            changes["consecutive_errors"] = 0
        if error:
            changes["last_error"] = error
        return self.update_channel(channel_id, changes)

    # Templates

    def save_template(self, template: NotificationTemplate) -> NotificationTemplate:
        self._put(self.templates_table, template, "save template")
        return template.model_copy(deep=True)

    def get_template(self, template_id: str) -> Optional[NotificationTemplate]:
        return self._get(self.templates_table, template_id, NotificationTemplate)

    def delete_template(self, template_id: str) -> bool:
        return self._delete(self.templates_table, template_id, "delete template")

    def get_active_template(self, template_type: str) -> Optional[NotificationTemplate]:
        templates = self.list_templates(template_type=template_type, active_only=True)
        return templates[0] if templates else None

    def list_templates(
        self, template_type: Optional[str] = None, active_only: bool = False
    ) -> List[NotificationTemplate]:
        templates = self._scan(self.templates_table, NotificationTemplate)
        templates = [
            t
            for t in templates
            if (template_type is None or t.type == template_type)
            and (not active_only or t.is_active)
        ]
        templates.sort(key=lambda t: (t.created_at, t.id))
        return templates

    # Logs

    def append_log(self, log: NotificationLog) -> NotificationLog:
        result = self.client.put_item(
            table_name=self.logs_table,
            Item=_to_attributes(log),
            ConditionExpression="attribute_not_exists(id)",
        )
        self._raise_on_error(result, "append log")
        return log.model_copy(deep=True)

    def list_logs(
        self,
        limit: Optional[int] = None,
        channel: Optional[ChannelType] = None,
        user_id: Optional[str] = None,
        notification_item_id: Optional[str] = None,
    ) -> List[NotificationLog]:
        logs = [
            log
            for log in self._scan(self.logs_table, NotificationLog)
            if (channel is None or log.channel == channel)
            and (user_id is None or log.user_id == user_id)
            and (
                notification_item_id is None
                or log.notification_item_id == notification_item_id
            )
        ]
        logs.sort(key=lambda log: (log.created_at, log.id), reverse=True)
        return logs[:limit] if limit is not None else logs

    def logs_between(
        self, date_from: Optional[datetime], date_to: Optional[datetime]
    ) -> List[NotificationLog]:
        clauses = []
        values: Dict[str, Any] = {}
        if date_from is not None:
            clauses.append("created_at >= :from")
            values[":from"] = {"S": format_timestamp(date_from)}
        if date_to is not None:
            clauses.append("created_at <= :to")
            values[":to"] = {"S": format_timestamp(date_to)}

        kwargs: Dict[str, Any] = {}
        if clauses:
            kwargs["FilterExpression"] = " AND ".join(clauses)
            kwargs["ExpressionAttributeValues"] = values
        logs = self._scan(self.logs_table, NotificationLog, **kwargs)
        logs.sort(key=lambda log: (log.created_at, log.id))
        return logs
