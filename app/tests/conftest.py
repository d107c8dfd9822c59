"""Shared fixtures for the courier test suite.

Every component takes an injectable clock, so tests drive time explicitly
through `FakeClock` instead of sleeping.
"""

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from courier.notifications.channels.base import ChannelAdapter
from courier.notifications.config import QueueConfig, WorkerConfig
from courier.notifications.models import (
    ChannelType,
    DeliveryOutcome,
    NotificationChannel,
    NotificationItem,
    NotificationTemplate,
)
from courier.notifications.queue import NotificationQueue
from courier.notifications.registry import ChannelRegistry
from courier.notifications.service import NotificationService
from courier.notifications.store import InMemoryNotificationStore
from courier.notifications.templates import TemplateStore
from courier.notifications.worker import DeliveryWorker
from courier.operations import OperationResult

START_TIME = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class ScriptedAdapter(ChannelAdapter):
    """Adapter that replays scripted outcomes.

    Each entry of `outcomes` is a DeliveryOutcome, an exception to raise from
    the transport, or a callable invoked with (recipient, subject, body).
    Once the script is exhausted every delivery succeeds.
    """

    channel_type = ChannelType.EMAIL
    provider = "scripted"

    def __init__(
        self,
        outcomes: Optional[List[Any]] = None,
        health: Optional[OperationResult] = None,
        delay: float = 0.0,
    ):
        super().__init__(config={})
        self.outcomes = list(outcomes or [])
        self.health = health or OperationResult.success(message="scripted healthy")
        self.delay = delay
        self.calls: List[tuple] = []
        self.health_checks = 0
        self._lock = threading.Lock()

    def _send(self, recipient: str, subject: str, body: str) -> DeliveryOutcome:
        with self._lock:
            self.calls.append((recipient, subject, body))
            outcome = self.outcomes.pop(0) if self.outcomes else None
        if self.delay:
            time.sleep(self.delay)
        if outcome is None:
            return DeliveryOutcome.ok(external_id="msg-1")
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(recipient, subject, body)
        return outcome

    def health_check(self) -> OperationResult:
        self.health_checks += 1
        return self.health


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryNotificationStore()


@pytest.fixture
def queue_config():
    return QueueConfig(base_delay_seconds=30, max_delay_seconds=3600)


@pytest.fixture
def queue(store, queue_config, clock):
    return NotificationQueue(store, queue_config, clock=clock)


@pytest.fixture
def adapter():
    """Single scripted adapter shared by every channel in a test."""
    return ScriptedAdapter()


@pytest.fixture
def registry(store, adapter, clock):
    return ChannelRegistry(
        store,
        store,
        failure_threshold=3,
        adapter_factory=lambda channel, timeout=10.0: adapter,
        clock=clock,
    )


@pytest.fixture
def templates(store, clock):
    return TemplateStore(store, clock=clock)


@pytest.fixture
def worker_config():
    return WorkerConfig(
        batch_size=10,
        max_concurrency=4,
        delivery_timeout_seconds=2.0,
        failure_threshold=3,
        worker_id="test-worker",
    )


@pytest.fixture
def worker(queue, registry, templates, store, worker_config, clock):
    delivery_worker = DeliveryWorker(
        queue, registry, templates, store, config=worker_config, clock=clock
    )
    yield delivery_worker
    delivery_worker.shutdown(wait=False)


@pytest.fixture
def service(queue, registry, templates, store):
    return NotificationService(queue, registry, templates, store)


@pytest.fixture
def item_factory(clock):
    """Factory for NotificationItem instances.

    Example:
        item = item_factory(priority=1)
        templated = item_factory(message=None, template_type="welcome")
    """

    def _factory(**overrides: Any) -> NotificationItem:
        fields: Dict[str, Any] = {
            "channel": ChannelType.EMAIL,
            "recipient": "user@example.com",
            "subject": "Hello",
            "message": "Test message body",
            "scheduled_for": clock(),
            "created_at": clock(),
            "updated_at": clock(),
        }
        fields.update(overrides)
        return NotificationItem(**fields)

    return _factory


@pytest.fixture
def channel_factory(store, clock):
    """Factory that saves NotificationChannel records directly in the store.

    Bypasses provider validation so tests can use the scripted adapter.

    Example:
        channel = channel_factory(type=ChannelType.SMS, name="backup")
    """
    counter = {"n": 0}

    def _factory(**overrides: Any) -> NotificationChannel:
        counter["n"] += 1
        fields: Dict[str, Any] = {
            "name": f"channel-{counter['n']}",
            "type": ChannelType.EMAIL,
            "provider": "scripted",
            "created_at": clock() + timedelta(seconds=counter["n"]),
            "updated_at": clock(),
        }
        fields.update(overrides)
        return store.save_channel(NotificationChannel(**fields))

    return _factory


@pytest.fixture
def template_factory(store, clock):
    """Factory that saves NotificationTemplate records directly in the store."""

    def _factory(**overrides: Any) -> NotificationTemplate:
        fields: Dict[str, Any] = {
            "name": "Welcome",
            "type": "welcome",
            "subject": "Welcome {{name}}",
            "content": "Hello {{name}}, your code is {{code}}",
            "variables": ["name", "code"],
            "created_at": clock(),
            "updated_at": clock(),
        }
        fields.update(overrides)
        return store.save_template(NotificationTemplate(**fields))

    return _factory


@pytest.fixture
def mock_response():
    """Factory for fake `requests.Response` objects.

    Example:
        response = mock_response(status_code=429, headers={"Retry-After": "5"})
    """

    def _factory(
        status_code: int = 200,
        json_data: Any = None,
        text: str = "",
        headers: Optional[Dict[str, str]] = None,
    ) -> MagicMock:
        response = MagicMock()
        response.status_code = status_code
        response.ok = 200 <= status_code < 400
        response.headers = headers or {}
        response.text = text
        if json_data is not None:
            response.content = b"{}"
            response.json.return_value = json_data
        else:
            response.content = text.encode("utf-8")
            response.json.side_effect = ValueError("no json")
        return response

    return _factory
