"""Unit tests for the notification store factory."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from courier.notifications.dynamodb_store import DynamoDBNotificationStore
from courier.notifications.factory import create_notification_store
from courier.notifications.store import InMemoryNotificationStore


def _settings(backend="memory"):
    return SimpleNamespace(
        storage=SimpleNamespace(
            backend=backend,
            aws_region="ca-central-1",
            endpoint_url="http://localhost:8000",
            queue_table="queue",
            channels_table="channels",
            templates_table="templates",
            logs_table="logs",
        )
    )


@pytest.mark.unit
class TestCreateNotificationStore:
    def test_memory_backend(self):
        assert isinstance(create_notification_store(_settings()), InMemoryNotificationStore)

    @patch("courier.notifications.factory.DynamoDBClient")
    def test_dynamodb_backend(self, mock_client_cls):
        store = create_notification_store(_settings("dynamodb"))

        assert isinstance(store, DynamoDBNotificationStore)
        mock_client_cls.assert_called_once_with(
            region_name="ca-central-1", endpoint_url="http://localhost:8000"
        )
        assert store.queue_table == "queue"
        assert store.logs_table == "logs"

    def test_backend_override(self):
        store = create_notification_store(_settings("dynamodb"), backend="memory")
        assert isinstance(store, InMemoryNotificationStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_notification_store(_settings("redis"))
