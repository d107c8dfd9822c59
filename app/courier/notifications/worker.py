"""Delivery worker.

Drives claimed items to sent, pending (retry) or failed. Each polling cycle
claims a batch and dispatches it on a bounded thread pool. Every adapter call
runs on a transport pool owned by its channel and is abandoned after
`delivery_timeout_seconds`, so a hung transport cannot hold a dispatch slot
or the transport slots of another channel.

Per-item failures never escape `process_batch`: each one becomes a log row
plus a queue transition.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from courier.logging import bind_request_context, get_module_logger
from courier.notifications.channels import ChannelAdapter
from courier.notifications.config import WorkerConfig
from courier.notifications.errors import (
    AdapterTransportError,
    ChannelBusyError,
    DeliveryError,
    StoreError,
)
from courier.notifications.models import (
    DeliveryOutcome,
    LogStatus,
    NotificationChannel,
    NotificationItem,
    NotificationLog,
    NotificationStatus,
    utc_now,
)
from courier.notifications.queue import NotificationQueue
from courier.notifications.registry import ChannelRegistry
from courier.notifications.store import LogStore
from courier.notifications.templates import TemplateStore

logger = get_module_logger()


class DeliveryResult(Enum):
    """Where one delivery attempt left the item."""

    SENT = "sent"
    RETRIED = "retried"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _empty_stats() -> Dict[str, int]:
    return {"claimed": 0, "sent": 0, "retried": 0, "failed": 0, "cancelled": 0}


class DeliveryWorker:
    """Polls the queue and delivers notifications through channel adapters.

    Attributes:
        queue: NotificationQueue to claim from and transition
        registry: ChannelRegistry for channel selection and health
        templates: TemplateStore for rendering template items
        log_store: Append-only delivery log
        config: WorkerConfig controlling batch size, concurrency and timeouts
    """

    def __init__(
        self,
        queue: NotificationQueue,
        registry: ChannelRegistry,
        templates: TemplateStore,
        log_store: LogStore,
        config: Optional[WorkerConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.queue = queue
        self.registry = registry
        self.templates = templates
        self.log_store = log_store
        self.config = config or WorkerConfig()
        self.clock = clock
        self.log = logger.bind(component="delivery_worker", worker_id=self.config.worker_id)
        self._dispatch_pool = ThreadPoolExecutor(
            max_workers=self.config.max_concurrency,
            thread_name_prefix="courier-dispatch",
        )
        self._transport_pools: Dict[str, ThreadPoolExecutor] = {}
        self._transport_pools_lock = threading.Lock()

    def process_batch(self) -> Dict[str, int]:
        """Claim and deliver one batch.

        Returns:
            Dictionary with processing statistics:
                - claimed: Items claimed this cycle
                - sent: Items delivered
                - retried: Items rescheduled for another attempt
                - failed: Items that reached terminal failure
                - cancelled: Items cancelled while in flight

        Example:
            stats = worker.process_batch()
            logger.info("batch_complete", **stats)
        """
        stats = _empty_stats()
        try:
            items = self.queue.dequeue_ready(self.config.batch_size)
        except StoreError as e:
            self.log.error("delivery_batch_claim_failed", error=str(e))
            return stats

        if not items:
            self.log.debug("delivery_batch_no_items")
            return stats

        stats["claimed"] = len(items)
        self.log.info("delivery_batch_start", item_count=len(items))

        futures = {
            self._dispatch_pool.submit(self._deliver_item, item): item for item in items
        }
        for future in as_completed(futures):
            item = futures[future]
            try:
                result = future.result()
            except Exception as e:  # pylint: disable=broad-except
                self.log.error(
                    "delivery_item_exception",
                    item_id=item.id,
                    error=str(e),
                    exc_info=True,
                )
                result = self._fail_unhandled(item, e)
            stats[result.value] += 1

        self.log.info("delivery_batch_complete", **stats)
        return stats

    def deliver_one(self, item: NotificationItem) -> DeliveryResult:
        """Deliver an already claimed item on the calling thread."""
        return self._deliver_item(item)

    def _deliver_item(self, item: NotificationItem) -> DeliveryResult:
        with bind_request_context(
            worker_id=self.config.worker_id, notification_id=item.id
        ):
            attempt = item.retry_count + 1
            subject = item.subject
            channel: Optional[NotificationChannel] = None
            adapter_called = False

            try:
                subject, body = self._resolve_content(item)
                channel = self.registry.resolve(item.channel)
                adapter = self._build_adapter(channel)
                adapter_called = True
                outcome = self._call_adapter(
                    adapter, channel.id, item.recipient, subject, body
                )
            except ChannelBusyError as e:
                adapter_called = False
                outcome = DeliveryOutcome.failed(str(e))
                self.log.warning("delivery_channel_busy", channel_id=channel.id, error=str(e))
            except DeliveryError as e:
                outcome = DeliveryOutcome.failed(
                    str(e), retryable=e.retryable, retry_after=e.retry_after
                )
                self.log.warning(
                    "delivery_error",
                    error_type=type(e).__name__,
                    error=str(e),
                    retryable=e.retryable,
                )

            if channel is not None and adapter_called:
                self._record_health(channel, outcome)

            self.log_store.append_log(
                NotificationLog(
                    notification_item_id=item.id,
                    user_id=item.user_id,
                    channel=item.channel,
                    channel_id=channel.id if channel else None,
                    provider=channel.provider if channel else None,
                    recipient=item.recipient,
                    subject=subject,
                    status=LogStatus.SENT if outcome.success else LogStatus.FAILED,
                    error_message=outcome.error,
                    attempt=attempt,
                    created_at=self.clock(),
                )
            )

            return self._settle(item, outcome, channel.id if channel else None)

    def _resolve_content(self, item: NotificationItem) -> Tuple[str, str]:
        """Return (subject, body), rendering the template when referenced."""
        if not item.uses_template:
            return item.subject, item.message or ""
        if item.template_id:
            rendered = self.templates.render_by_id(item.template_id, item.variables)
        else:
            rendered = self.templates.render(item.template_type, item.variables)
        return item.subject or rendered.subject, rendered.body

    def _build_adapter(self, channel: NotificationChannel) -> ChannelAdapter:
        try:
            return self.registry.get_adapter(channel)
        except ValueError as e:
            raise AdapterTransportError(str(e)) from e

    def _record_health(self, channel: NotificationChannel, outcome: DeliveryOutcome) -> None:
        """Update channel counters; a store failure here never loses the attempt."""
        try:
            if outcome.success:
                self.registry.record_success(channel.id)
            else:
                self.registry.record_failure(
                    channel.id, outcome.error or "unknown error", outcome.retryable
                )
        except StoreError as e:
            self.log.error(
                "channel_health_update_failed",
                channel_id=channel.id,
                success=outcome.success,
                error=str(e),
            )

    def _transport_pool(self, channel_id: str) -> ThreadPoolExecutor:
        with self._transport_pools_lock:
            pool = self._transport_pools.get(channel_id)
            if pool is None:
                pool = ThreadPoolExecutor(
                    max_workers=self.config.max_concurrency,
                    thread_name_prefix=f"courier-transport-{channel_id[:8]}",
                )
                self._transport_pools[channel_id] = pool
            return pool

    def _call_adapter(
        self,
        adapter: ChannelAdapter,
        channel_id: str,
        recipient: str,
        subject: str,
        body: str,
    ) -> DeliveryOutcome:
        """Run adapter.deliver on the channel's transport pool with a timeout.

        Raises:
            AdapterTransportError: The call started but did not finish in time
            ChannelBusyError: The call never started because every transport
                slot of the channel was still held by earlier calls
        """
        future = self._transport_pool(channel_id).submit(
            adapter.deliver, recipient, subject, body
        )
        timeout = self.config.delivery_timeout_seconds
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as e:
            if future.cancel():
                raise ChannelBusyError(
                    f"channel busy: delivery not started within {timeout:g}s"
                ) from e
            raise AdapterTransportError(
                f"delivery timed out after {timeout:g}s"
            ) from e

    def _settle(
        self,
        item: NotificationItem,
        outcome: DeliveryOutcome,
        channel_id: Optional[str],
    ) -> DeliveryResult:
        """Apply the outcome to the queue item."""
        if outcome.success:
            updated = self.queue.mark_sent(item.id, channel_id=channel_id)
        else:
            updated = self.queue.mark_failed(
                item.id,
                outcome.error or "unknown error",
                retryable=outcome.retryable,
                retry_after=outcome.retry_after,
                channel_id=channel_id,
            )

        if updated is None:
            # Cancelled while the adapter call was in flight
            self.log.info("delivery_outcome_discarded", success=outcome.success)
            return DeliveryResult.CANCELLED
        if updated.status == NotificationStatus.SENT:
            return DeliveryResult.SENT
        if updated.status == NotificationStatus.PENDING:
            return DeliveryResult.RETRIED
        return DeliveryResult.FAILED

    def _fail_unhandled(self, item: NotificationItem, error: Exception) -> DeliveryResult:
        """Treat an unexpected exception as a retryable failure."""
        try:
            updated = self.queue.mark_failed(
                item.id, f"Unhandled exception: {error}", retryable=True
            )
        except Exception as e:  # pylint: disable=broad-except
            self.log.error("delivery_item_release_failed", item_id=item.id, error=str(e))
            return DeliveryResult.RETRIED
        if updated is None:
            return DeliveryResult.CANCELLED
        if updated.status == NotificationStatus.PENDING:
            return DeliveryResult.RETRIED
        return DeliveryResult.FAILED

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and release the thread pools."""
        self._dispatch_pool.shutdown(wait=wait)
        with self._transport_pools_lock:
            pools = list(self._transport_pools.values())
            self._transport_pools.clear()
        for pool in pools:
            pool.shutdown(wait=False, cancel_futures=True)
        self.log.info("delivery_worker_stopped")
