"""Unit tests for DynamoDBNotificationStore against a mocked DynamoDBClient.

Tests cover:
- Attribute serialization (fixed-width timestamps, JSON fields, dispatch key)
- Conditional claims skipping items won by another worker
- Compare-and-set transitions
- Store-side counter updates
- StoreError on backend failures
"""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from courier.notifications.dynamodb_store import (
    STATUS_INDEX,
    DynamoDBNotificationStore,
    _from_attributes,
    _to_attributes,
    dispatch_key,
    format_timestamp,
)
from courier.notifications.errors import StoreError
from courier.notifications.models import (
    ChannelType,
    LogStatus,
    NotificationChannel,
    NotificationItem,
    NotificationLog,
    NotificationStatus,
)
from courier.operations import OperationResult

CONDITION_FAILED = OperationResult.permanent_error(
    "Conditional check failed", error_code="ConditionalCheckFailedException"
)


@pytest.fixture
def dynamodb_client():
    client = MagicMock()
    client.put_item.return_value = OperationResult.success(data={})
    return client


@pytest.fixture
def dynamodb_store(dynamodb_client):
    return DynamoDBNotificationStore(
        client=dynamodb_client,
        queue_table="queue",
        channels_table="channels",
        templates_table="templates",
        logs_table="logs",
    )


def _attributes_result(model, key="Attributes", status=None):
    attributes = _to_attributes(model)
    if status is not None:
        attributes["status"] = {"S": status.value}
    return OperationResult.success(data={key: attributes})


@pytest.mark.unit
class TestSerialization:
    def test_timestamps_are_fixed_width(self):
        whole = format_timestamp(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))
        fractional = format_timestamp(
            datetime(2024, 3, 1, 12, 0, 0, 5, tzinfo=timezone.utc)
        )

        assert whole == "2024-03-01T12:00:00.000000Z"
        assert len(whole) == len(fractional)
        assert whole < fractional

    def test_dispatch_key_sorts_priority_first(self):
        early = datetime(2024, 1, 1, tzinfo=timezone.utc)
        late = datetime(2024, 6, 1, tzinfo=timezone.utc)

        assert dispatch_key(1, late) < dispatch_key(2, early)
        assert dispatch_key(10, early).startswith("10#")
        assert dispatch_key(3, early).startswith("03#")

    def test_round_trip_preserves_item(self, item_factory):
        item = item_factory(
            metadata={"score": 0.75, "tags": ["a"]},
            variables={"symbol": "BTC"},
            priority=2,
        )

        attributes = _to_attributes(item)
        restored = _from_attributes(attributes, NotificationItem)

        assert attributes["metadata"]["S"] == json.dumps(
            {"score": 0.75, "tags": ["a"]}, default=str
        )
        assert "last_error" not in attributes
        assert restored == item


@pytest.mark.unit
class TestQueueOperations:
    def test_save_item_writes_dispatch_key(self, dynamodb_store, dynamodb_client, item_factory):
        item = item_factory(priority=3)

        dynamodb_store.save_item(item)

        kwargs = dynamodb_client.put_item.call_args.kwargs
        assert kwargs["table_name"] == "queue"
        assert kwargs["Item"]["dispatch_key"] == {
            "S": dispatch_key(3, item.scheduled_for)
        }

    def test_save_item_failure_raises_store_error(self, dynamodb_store, dynamodb_client, item_factory):
        dynamodb_client.put_item.return_value = OperationResult.transient_error("down")
        with pytest.raises(StoreError):
            dynamodb_store.save_item(item_factory())

    def test_get_item(self, dynamodb_store, dynamodb_client, item_factory):
        item = item_factory()
        dynamodb_client.get_item.return_value = _attributes_result(item, key="Item")

        assert dynamodb_store.get_item(item.id) == item
        dynamodb_client.get_item.assert_called_once_with(
            table_name="queue", Key={"id": {"S": item.id}}
        )

    def test_get_item_missing(self, dynamodb_store, dynamodb_client):
        dynamodb_client.get_item.return_value = OperationResult.success(data={})
        assert dynamodb_store.get_item("missing") is None

    def test_claim_skips_items_won_elsewhere(self, dynamodb_store, dynamodb_client, item_factory, clock):
        items = [item_factory() for _ in range(3)]
        dynamodb_client.query.return_value = OperationResult.success(
            data=[{"id": {"S": item.id}} for item in items]
        )
        dynamodb_client.update_item.side_effect = [
            _attributes_result(items[0], status=NotificationStatus.PROCESSING),
            CONDITION_FAILED,
            _attributes_result(items[2], status=NotificationStatus.PROCESSING),
        ]

        claimed = dynamodb_store.claim_ready(clock(), 5)

        assert [item.id for item in claimed] == [items[0].id, items[2].id]
        assert all(item.status == NotificationStatus.PROCESSING for item in claimed)
        query_kwargs = dynamodb_client.query.call_args.kwargs
        assert query_kwargs["IndexName"] == STATUS_INDEX
        assert query_kwargs["max_items"] == 10
        assert query_kwargs["ScanIndexForward"] is True
        update_kwargs = dynamodb_client.update_item.call_args.kwargs
        assert update_kwargs["ConditionExpression"] == "#s = :pending"

    def test_claim_stops_at_limit(self, dynamodb_store, dynamodb_client, item_factory, clock):
        items = [item_factory() for _ in range(4)]
        dynamodb_client.query.return_value = OperationResult.success(
            data=[{"id": {"S": item.id}} for item in items]
        )
        dynamodb_client.update_item.side_effect = [
            _attributes_result(item, status=NotificationStatus.PROCESSING)
            for item in items
        ]

        claimed = dynamodb_store.claim_ready(clock(), 2)

        assert len(claimed) == 2
        assert dynamodb_client.update_item.call_count == 2

    def test_claim_query_failure_raises(self, dynamodb_store, dynamodb_client, clock):
        dynamodb_client.query.return_value = OperationResult.transient_error("throttled")
        with pytest.raises(StoreError):
            dynamodb_store.claim_ready(clock(), 5)

    def test_transition_uses_status_condition(self, dynamodb_store, dynamodb_client, item_factory):
        item = item_factory(status=NotificationStatus.SENT)
        dynamodb_client.update_item.return_value = _attributes_result(item)

        updated = dynamodb_store.transition(
            item.id,
            (NotificationStatus.PROCESSING,),
            {"status": NotificationStatus.SENT, "last_error": None},
        )

        assert updated.status == NotificationStatus.SENT
        kwargs = dynamodb_client.update_item.call_args.kwargs
        assert kwargs["ConditionExpression"] == "#status IN (:e0)"
        assert kwargs["ExpressionAttributeValues"][":e0"] == {"S": "processing"}
        assert "REMOVE" in kwargs["UpdateExpression"]
        assert kwargs["ReturnValues"] == "ALL_NEW"

    def test_transition_condition_failure_returns_none(self, dynamodb_store, dynamodb_client, item_factory):
        dynamodb_client.update_item.return_value = CONDITION_FAILED

        updated = dynamodb_store.transition(
            "id-1", (NotificationStatus.PROCESSING,), {"status": NotificationStatus.SENT}
        )

        assert updated is None

    def test_transition_rebuilds_dispatch_key(self, dynamodb_store, dynamodb_client, item_factory, clock):
        item = item_factory(priority=4)
        dynamodb_client.get_item.return_value = _attributes_result(item, key="Item")
        dynamodb_client.update_item.return_value = _attributes_result(item)
        later = clock().replace(hour=13)

        dynamodb_store.transition(
            item.id, (NotificationStatus.PROCESSING,), {"scheduled_for": later}
        )

        values = dynamodb_client.update_item.call_args.kwargs["ExpressionAttributeValues"]
        assert {"S": dispatch_key(4, later)} in values.values()

    def test_transition_backend_failure_raises(self, dynamodb_store, dynamodb_client):
        dynamodb_client.update_item.return_value = OperationResult.transient_error("down")
        with pytest.raises(StoreError):
            dynamodb_store.transition(
                "id-1", (NotificationStatus.PENDING,), {"status": NotificationStatus.CANCELLED}
            )

    def test_purge_deletes_matching_items(self, dynamodb_store, dynamodb_client, clock):
        dynamodb_client.scan.return_value = OperationResult.success(
            data=[{"id": {"S": "a"}}, {"id": {"S": "b"}}]
        )
        dynamodb_client.delete_item.side_effect = [
            OperationResult.success(),
            OperationResult.transient_error("throttled"),
        ]

        purged = dynamodb_store.purge_items(
            (NotificationStatus.SENT, NotificationStatus.FAILED), clock()
        )

        assert purged == 1
        scan_kwargs = dynamodb_client.scan.call_args.kwargs
        assert "#s IN (:s0, :s1)" in scan_kwargs["FilterExpression"]

    def test_list_items_by_status_newest_first(self, dynamodb_store, dynamodb_client, item_factory, clock):
        older = item_factory()
        clock.advance(5)
        newer = item_factory()
        dynamodb_client.query.return_value = OperationResult.success(
            data=[_to_attributes(older), _to_attributes(newer)]
        )

        items = dynamodb_store.list_items(status=NotificationStatus.PENDING, limit=1)

        assert [item.id for item in items] == [newer.id]


@pytest.mark.unit
class TestChannelOperations:
    def _channel(self):
        return NotificationChannel(name="Telegram", type=ChannelType.TELEGRAM, provider="telegram", config={"bot_token": "t"})

    def test_channel_config_stored_as_json(self, dynamodb_store, dynamodb_client):
        channel = self._channel()

        dynamodb_store.save_channel(channel)

        item = dynamodb_client.put_item.call_args.kwargs["Item"]
        assert json.loads(item["config"]["S"]) == {"bot_token": "t"}

    def test_record_failure_uses_atomic_add(self, dynamodb_store, dynamodb_client, clock):
        channel = self._channel()
        dynamodb_client.update_item.return_value = _attributes_result(channel)

        dynamodb_store.record_channel_failure(channel.id, "timeout", clock())

        expression = dynamodb_client.update_item.call_args.kwargs["UpdateExpression"]
        assert expression.startswith("ADD error_count :one, consecutive_errors :one")

    def test_record_permanent_failure_skips_consecutive(self, dynamodb_store, dynamodb_client, clock):
        channel = self._channel()
        dynamodb_client.update_item.return_value = _attributes_result(channel)

        dynamodb_store.record_channel_failure(
            channel.id, "bad address", clock(), count_consecutive=False
        )

        expression = dynamodb_client.update_item.call_args.kwargs["UpdateExpression"]
        assert "consecutive_errors" not in expression

    def test_mark_unhealthy_condition(self, dynamodb_store, dynamodb_client, clock):
        dynamodb_client.update_item.return_value = CONDITION_FAILED

        assert dynamodb_store.mark_channel_unhealthy("ch-1", 5, clock()) is None
        kwargs = dynamodb_client.update_item.call_args.kwargs
        assert kwargs["ConditionExpression"] == "consecutive_errors >= :threshold"
        assert kwargs["ExpressionAttributeValues"][":threshold"] == {"N": "5"}

    def test_update_unknown_channel_returns_none(self, dynamodb_store, dynamodb_client, clock):
        dynamodb_client.update_item.return_value = CONDITION_FAILED
        assert dynamodb_store.update_channel("missing", {"is_enabled": False}) is None

    def test_delete_channel_requires_existing_record(self, dynamodb_store, dynamodb_client):
        dynamodb_client.delete_item.return_value = OperationResult.success(data={})

        assert dynamodb_store.delete_channel("ch-1") is True
        kwargs = dynamodb_client.delete_item.call_args.kwargs
        assert kwargs["table_name"] == "channels"
        assert kwargs["Key"] == {"id": {"S": "ch-1"}}
        assert kwargs["ConditionExpression"] == "attribute_exists(id)"

    def test_delete_unknown_channel_returns_false(self, dynamodb_store, dynamodb_client):
        dynamodb_client.delete_item.return_value = CONDITION_FAILED
        assert dynamodb_store.delete_channel("missing") is False

@pytest.mark.unit
class TestTemplateOperations:
    def test_delete_template(self, dynamodb_store, dynamodb_client):
        dynamodb_client.delete_item.return_value = OperationResult.success(data={})

        assert dynamodb_store.delete_template("tpl-1") is True
        assert dynamodb_client.delete_item.call_args.kwargs["table_name"] == "templates"

    def test_delete_unknown_template_returns_false(self, dynamodb_store, dynamodb_client):
        dynamodb_client.delete_item.return_value = CONDITION_FAILED
        assert dynamodb_store.delete_template("missing") is False

    def test_delete_backend_failure_raises(self, dynamodb_store, dynamodb_client):
        dynamodb_client.delete_item.return_value = OperationResult.transient_error(
            "throttled", error_code="ProvisionedThroughputExceededException"
        )
        with pytest.raises(StoreError):
            dynamodb_store.delete_template("tpl-1")


@pytest.mark.unit
class TestLogOperations:
    def test_append_log_is_insert_only(self, dynamodb_store, dynamodb_client, clock):
        log = NotificationLog(
            channel=ChannelType.EMAIL,
            recipient="a@example.com",
            status=LogStatus.SENT,
            created_at=clock(),
        )

        dynamodb_store.append_log(log)

        kwargs = dynamodb_client.put_item.call_args.kwargs
        assert kwargs["table_name"] == "logs"
        assert kwargs["ConditionExpression"] == "attribute_not_exists(id)"

    def test_logs_between_filters_on_created_at(self, dynamodb_store, dynamodb_client, clock):
        dynamodb_client.scan.return_value = OperationResult.success(data=[])

        dynamodb_store.logs_between(clock(), None)

        kwargs = dynamodb_client.scan.call_args.kwargs
        assert kwargs["FilterExpression"] == "created_at >= :from"
        assert kwargs["ExpressionAttributeValues"] == {
            ":from": {"S": format_timestamp(clock())}
        }
