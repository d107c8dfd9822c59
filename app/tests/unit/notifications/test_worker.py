"""Unit tests for DeliveryWorker.

Tests cover:
- Successful delivery and channel health bookkeeping
- Retry with backoff until success or exhaustion
- Caller-enforced transport timeout and per-channel transport isolation
- Cancellation while a delivery is in flight
- Template rendering and dispatch-time errors
- Batch statistics
"""

from unittest.mock import MagicMock

import pytest

from courier.notifications.config import WorkerConfig
from courier.notifications.errors import StoreError
from courier.notifications.models import (
    ChannelType,
    DeliveryOutcome,
    LogStatus,
    NotificationStatus,
)
from courier.notifications.registry import ChannelRegistry
from courier.notifications.worker import DeliveryResult, DeliveryWorker


def _enqueue(queue, **overrides):
    fields = {
        "channel": "email",
        "recipient": "user@example.com",
        "subject": "Hello",
        "message": "Body",
    }
    fields.update(overrides)
    return queue.enqueue(**fields)


@pytest.mark.unit
class TestSuccessfulDelivery:
    def test_delivers_and_marks_sent(self, worker, queue, channel_factory, adapter, store):
        channel = channel_factory()
        item_id = _enqueue(queue)

        stats = worker.process_batch()

        assert stats == {"claimed": 1, "sent": 1, "retried": 0, "failed": 0, "cancelled": 0}
        item = queue.get(item_id)
        assert item.status == NotificationStatus.SENT
        assert item.channel_id == channel.id
        assert item.sent_at is not None
        assert adapter.calls == [("user@example.com", "Hello", "Body")]
        assert store.get_channel(channel.id).success_count == 1

    def test_writes_log_row(self, worker, queue, channel_factory, store):
        channel = channel_factory(provider="scripted")
        item_id = _enqueue(queue, user_id="u1")

        worker.process_batch()

        [log] = store.list_logs(notification_item_id=item_id)
        assert log.status == LogStatus.SENT
        assert log.attempt == 1
        assert log.user_id == "u1"
        assert log.channel_id == channel.id
        assert log.provider == "scripted"

    def test_no_items(self, worker):
        assert worker.process_batch() == {
            "claimed": 0,
            "sent": 0,
            "retried": 0,
            "failed": 0,
            "cancelled": 0,
        }

    def test_deliver_one(self, worker, queue, channel_factory):
        channel_factory()
        item_id = _enqueue(queue)
        [item] = queue.dequeue_ready(1)

        assert worker.deliver_one(item) == DeliveryResult.SENT
        assert queue.get(item_id).status == NotificationStatus.SENT


@pytest.mark.unit
class TestRetries:
    def test_retries_until_success(self, worker, queue, channel_factory, adapter, store, clock):
        channel_factory()
        adapter.outcomes = [
            DeliveryOutcome.failed("timeout"),
            DeliveryOutcome.failed("timeout"),
        ]
        item_id = _enqueue(queue, max_retries=2)

        assert worker.process_batch()["retried"] == 1
        assert worker.process_batch()["claimed"] == 0
        clock.advance(30)
        assert worker.process_batch()["retried"] == 1
        clock.advance(60)
        assert worker.process_batch()["sent"] == 1

        item = queue.get(item_id)
        assert item.status == NotificationStatus.SENT
        assert item.retry_count == 2
        logs = store.list_logs(notification_item_id=item_id)
        assert sorted(log.attempt for log in logs) == [1, 2, 3]
        assert [log.status for log in sorted(logs, key=lambda l: l.attempt)] == [
            LogStatus.FAILED,
            LogStatus.FAILED,
            LogStatus.SENT,
        ]

    def test_exhausted_retries_fail(self, worker, queue, channel_factory, adapter, clock):
        channel_factory()
        adapter.outcomes = [DeliveryOutcome.failed("timeout")] * 2
        item_id = _enqueue(queue, max_retries=1)

        worker.process_batch()
        clock.advance(30)
        stats = worker.process_batch()

        assert stats["failed"] == 1
        item = queue.get(item_id)
        assert item.status == NotificationStatus.FAILED
        assert item.retry_count == 1
        assert item.last_error == "timeout"

    def test_zero_max_retries_fails_immediately(self, worker, queue, channel_factory, adapter):
        channel_factory()
        adapter.outcomes = [DeliveryOutcome.failed("timeout")]
        item_id = _enqueue(queue, max_retries=0)

        assert worker.process_batch()["failed"] == 1
        item = queue.get(item_id)
        assert item.status == NotificationStatus.FAILED
        assert item.retry_count == 0

    def test_permanent_failure_skips_retries(self, worker, queue, channel_factory, adapter, store):
        channel = channel_factory()
        adapter.outcomes = [DeliveryOutcome.failed("invalid address", retryable=False)]
        item_id = _enqueue(queue)

        assert worker.process_batch()["failed"] == 1
        assert queue.get(item_id).retry_count == 0
        recorded = store.get_channel(channel.id)
        assert recorded.error_count == 1
        assert recorded.consecutive_errors == 0

    def test_retry_after_extends_backoff(self, worker, queue, channel_factory, adapter, clock):
        channel_factory()
        adapter.outcomes = [DeliveryOutcome.failed("rate limited", retry_after=120)]
        item_id = _enqueue(queue)

        worker.process_batch()

        item = queue.get(item_id)
        assert item.status == NotificationStatus.PENDING
        assert (item.scheduled_for - clock()).total_seconds() == 120

    def test_adapter_exception_is_retried(self, worker, queue, channel_factory, adapter):
        channel_factory()
        adapter.outcomes = [RuntimeError("socket closed")]
        item_id = _enqueue(queue)

        assert worker.process_batch()["retried"] == 1
        assert queue.get(item_id).last_error == "RuntimeError: socket closed"

    def test_repeated_failures_mark_channel_unhealthy(
        self, worker, queue, channel_factory, adapter, store
    ):
        channel = channel_factory()
        adapter.outcomes = [DeliveryOutcome.failed("timeout")] * 3
        for _ in range(3):
            _enqueue(queue)

        worker.process_batch()

        assert store.get_channel(channel.id).is_healthy is False


@pytest.mark.unit
class TestTimeout:
    def test_slow_transport_times_out(
        self, queue, registry, templates, store, clock, channel_factory, adapter
    ):
        channel_factory()
        adapter.delay = 0.5
        worker = DeliveryWorker(
            queue,
            registry,
            templates,
            store,
            config=WorkerConfig(delivery_timeout_seconds=0.05, worker_id="slow"),
            clock=clock,
        )
        item_id = _enqueue(queue)

        try:
            stats = worker.process_batch()
        finally:
            worker.shutdown(wait=False)

        assert stats["retried"] == 1
        item = queue.get(item_id)
        assert item.status == NotificationStatus.PENDING
        assert "timed out" in item.last_error


@pytest.fixture
def split_worker(queue, templates, store, clock, adapter):
    """Worker whose email adapter hangs while the telegram adapter is fast.

    Returns a factory taking max_concurrency; yields (worker, hanging, fast).
    """
    hanging = type(adapter)(delay=1.0)
    fast = type(adapter)()
    adapters = {ChannelType.EMAIL: hanging, ChannelType.TELEGRAM: fast}
    registry = ChannelRegistry(
        store,
        store,
        failure_threshold=3,
        adapter_factory=lambda channel, timeout=10.0: adapters[channel.type],
        clock=clock,
    )
    workers = []

    def _factory(max_concurrency):
        delivery_worker = DeliveryWorker(
            queue,
            registry,
            templates,
            store,
            config=WorkerConfig(
                max_concurrency=max_concurrency,
                delivery_timeout_seconds=0.2,
                worker_id="split",
            ),
            clock=clock,
        )
        workers.append(delivery_worker)
        return delivery_worker, hanging, fast

    yield _factory
    for delivery_worker in workers:
        delivery_worker.shutdown(wait=False)


@pytest.mark.unit
class TestChannelIsolation:
    def test_hung_channel_does_not_starve_other_channels(
        self, split_worker, queue, channel_factory, store
    ):
        channel_factory(type=ChannelType.EMAIL)
        telegram = channel_factory(type=ChannelType.TELEGRAM)
        worker, _, fast = split_worker(2)
        for _ in range(2):
            _enqueue(queue)

        assert worker.process_batch()["retried"] == 2

        telegram_ids = [
            _enqueue(queue, channel="telegram", recipient="111", subject="") for _ in range(2)
        ]
        stats = worker.process_batch()

        assert stats["sent"] == 2
        assert len(fast.calls) == 2
        assert all(queue.get(i).status == NotificationStatus.SENT for i in telegram_ids)
        recorded = store.get_channel(telegram.id)
        assert recorded.is_healthy is True
        assert recorded.success_count == 2
        assert recorded.error_count == 0

    def test_queued_call_that_never_started_is_not_charged(
        self, split_worker, queue, channel_factory, store
    ):
        email = channel_factory(type=ChannelType.EMAIL)
        worker, hanging, _ = split_worker(1)
        item_ids = [_enqueue(queue) for _ in range(2)]

        stats = worker.process_batch()

        assert stats["retried"] == 2
        assert len(hanging.calls) == 1
        errors = sorted(queue.get(i).last_error for i in item_ids)
        assert errors[0].startswith("channel busy")
        assert "timed out" in errors[1]
        recorded = store.get_channel(email.id)
        assert recorded.error_count == 1
        assert recorded.consecutive_errors == 1


@pytest.mark.unit
class TestCancellation:
    def test_cancel_during_delivery_discards_outcome(
        self, worker, queue, service, channel_factory, adapter, store
    ):
        channel_factory()
        item_id = _enqueue(queue)

        def _cancel_then_succeed(recipient, subject, body):
            service.cancel(item_id)
            return DeliveryOutcome.ok()

        adapter.outcomes = [_cancel_then_succeed]

        stats = worker.process_batch()

        assert stats["cancelled"] == 1
        assert queue.get(item_id).status == NotificationStatus.CANCELLED
        [log] = store.list_logs(notification_item_id=item_id)
        assert log.status == LogStatus.SENT

    def test_cancelled_items_are_not_claimed(self, worker, queue, channel_factory, adapter):
        channel_factory()
        item_id = _enqueue(queue)
        queue.cancel(item_id)

        assert worker.process_batch()["claimed"] == 0
        assert adapter.calls == []


@pytest.mark.unit
class TestDispatchErrors:
    def test_renders_template(self, worker, queue, channel_factory, template_factory, adapter):
        channel_factory()
        template_factory()
        _enqueue(
            queue,
            subject="",
            message=None,
            template_type="welcome",
            variables={"name": "Ada", "code": "42"},
        )

        assert worker.process_batch()["sent"] == 1
        assert adapter.calls == [
            ("user@example.com", "Welcome Ada", "Hello Ada, your code is 42")
        ]

    def test_missing_template_is_retried(self, worker, queue, channel_factory, adapter, store):
        channel = channel_factory()
        item_id = _enqueue(queue, message=None, template_type="missing")

        assert worker.process_batch()["retried"] == 1
        assert adapter.calls == []
        [log] = store.list_logs(notification_item_id=item_id)
        assert log.status == LogStatus.FAILED
        assert log.channel_id is None
        assert store.get_channel(channel.id).error_count == 0

    def test_missing_variable_is_retried(
        self, worker, queue, channel_factory, template_factory, adapter
    ):
        channel_factory()
        template_factory()
        item_id = _enqueue(
            queue, message=None, template_type="welcome", variables={"name": "Ada"}
        )

        assert worker.process_batch()["retried"] == 1
        assert "code" in queue.get(item_id).last_error
        assert adapter.calls == []

    def test_no_healthy_channel_is_retried(self, worker, queue, channel_factory):
        channel_factory(type=ChannelType.SMS)
        item_id = _enqueue(queue)

        assert worker.process_batch()["retried"] == 1
        assert "no enabled and healthy email channel" in queue.get(item_id).last_error

    def test_unexpected_exception_releases_item(self, worker, queue, channel_factory, monkeypatch):
        channel_factory()
        item_id = _enqueue(queue)
        monkeypatch.setattr(
            worker.registry, "resolve", MagicMock(side_effect=RuntimeError("bug"))
        )

        stats = worker.process_batch()

        assert stats["retried"] == 1
        item = queue.get(item_id)
        assert item.status == NotificationStatus.PENDING
        assert item.last_error == "Unhandled exception: bug"

    def test_counter_failure_still_logs_and_settles(
        self, worker, queue, channel_factory, adapter, store, monkeypatch
    ):
        channel_factory()
        item_id = _enqueue(queue)
        monkeypatch.setattr(
            worker.registry, "record_success", MagicMock(side_effect=StoreError("throttled"))
        )

        stats = worker.process_batch()

        assert stats["sent"] == 1
        assert len(adapter.calls) == 1
        assert queue.get(item_id).status == NotificationStatus.SENT
        [log] = store.list_logs(notification_item_id=item_id)
        assert log.status == LogStatus.SENT

    def test_claim_failure_returns_empty_stats(self, worker, monkeypatch):
        monkeypatch.setattr(
            worker.queue, "dequeue_ready", MagicMock(side_effect=StoreError("down"))
        )

        assert worker.process_batch()["claimed"] == 0


@pytest.mark.unit
class TestBatching:
    def test_batch_size_limits_claims(self, worker, queue, channel_factory):
        channel_factory()
        for _ in range(15):
            _enqueue(queue)

        assert worker.process_batch()["claimed"] == 10
        assert worker.process_batch()["claimed"] == 5

    def test_mixed_outcomes_in_one_batch(self, worker, queue, channel_factory, adapter):
        channel_factory()
        adapter.outcomes = [
            DeliveryOutcome.failed("invalid", retryable=False),
            DeliveryOutcome.failed("timeout"),
        ]
        for _ in range(3):
            _enqueue(queue)

        stats = worker.process_batch()

        assert stats["claimed"] == 3
        assert stats["sent"] + stats["retried"] + stats["failed"] == 3
        assert stats["failed"] == 1
        assert stats["retried"] == 1
