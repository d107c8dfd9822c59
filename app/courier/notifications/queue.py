"""Notification queue.

The only write path for item creation and status changes. Every change is a
compare-and-set on the item's current status, so a terminal item (sent,
failed, cancelled) is never touched by the worker again.

State machine:
    pending -> processing          (claim)
    processing -> sent             (delivered)
    processing -> pending          (retryable failure, rescheduled with backoff)
    processing -> failed           (retries exhausted or permanent failure)
    pending|processing -> cancelled
    failed -> pending              (admin retry)
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from courier.logging import get_module_logger
from courier.notifications.config import QueueConfig
from courier.notifications.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from courier.notifications.models import (
    ChannelType,
    NotificationItem,
    NotificationStatus,
    utc_now,
)
from courier.notifications.store import QueueStore

logger = get_module_logger()

CANCELLABLE_STATUSES = (NotificationStatus.PENDING, NotificationStatus.PROCESSING)


def _parse_status(value: NotificationStatus | str) -> NotificationStatus:
    try:
        return NotificationStatus(value)
    except ValueError as exc:
        raise ValidationError(f"unknown notification status: {value}") from exc


class NotificationQueue:
    """Priority-ordered durable queue of notification items.

    Args:
        store: Queue persistence backend
        config: Retry and retention configuration
        clock: Returns the current UTC time

    Example:
        queue = NotificationQueue(InMemoryNotificationStore(), QueueConfig())
        item_id = queue.enqueue(channel="email", recipient="a@example.com",
                                subject="Hi", message="Hello")
        for item in queue.dequeue_ready(10):
            ...
            queue.mark_sent(item.id)
    """

    def __init__(
        self,
        store: QueueStore,
        config: Optional[QueueConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.config = config or QueueConfig()
        self.clock = clock

    def enqueue(
        self,
        channel: str,
        recipient: str,
        subject: str = "",
        message: Optional[str] = None,
        template_id: Optional[str] = None,
        template_type: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
        priority: Any = None,
        scheduled_for: Any = None,
        max_retries: Optional[int] = None,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Persist a new pending item.

        Args:
            channel: Channel type name (email, sms, push, telegram, discord, webhook)
            recipient: Channel-specific address
            subject: Subject line
            message: Literal body (or use a template reference)
            template_id: Template record id rendered at dispatch time
            template_type: Template type rendered at dispatch time
            variables: Template variables
            priority: 1..10 or urgent/high/normal/low (default from config)
            scheduled_for: Earliest dispatch time (datetime or ISO-8601 string)
            max_retries: Retry budget (default from config)
            user_id: Owning user
            metadata: Opaque producer data

        Returns:
            The new item id

        Raises:
            ValidationError: Unknown channel, empty recipient, bad priority or
                neither message nor template reference
        """
        try:
            channel_type = ChannelType(channel)
        except ValueError as exc:
            raise ValidationError(f"unknown channel type: {channel}") from exc

        now = self.clock()
        try:
            item = NotificationItem(
                user_id=user_id,
                channel=channel_type,
                recipient=recipient,
                subject=subject or "",
                message=message,
                template_id=template_id,
                template_type=template_type,
                variables=variables or {},
                priority=self.config.default_priority if priority is None else priority,
                scheduled_for=scheduled_for or now,
                max_retries=(
                    self.config.default_max_retries
                    if max_retries is None
                    else max_retries
                ),
                metadata=metadata or {},
                created_at=now,
                updated_at=now,
            )
        except PydanticValidationError as exc:
            raise ValidationError(f"invalid notification: {exc}") from exc

        self.store.save_item(item)
        logger.info(
            "notification_enqueued",
            item_id=item.id,
            channel=item.channel.value,
            priority=item.priority,
            scheduled_for=item.scheduled_for.isoformat(),
        )
        return item.id

    def dequeue_ready(self, limit: int) -> List[NotificationItem]:
        """Claim up to `limit` due items, moving them to processing.

        Ordered by priority ascending, then scheduled_for ascending.
        """
        if limit < 1:
            return []
        return self.store.claim_ready(self.clock(), limit)

    def mark_sent(
        self, item_id: str, channel_id: Optional[str] = None
    ) -> Optional[NotificationItem]:
        """Move a processing item to sent.

        Returns:
            The updated item, or None if the item was no longer processing
            (e.g. cancelled while the delivery was in flight)
        """
        now = self.clock()
        changes: Dict[str, Any] = {
            "status": NotificationStatus.SENT,
            "sent_at": now,
            "last_attempt_at": now,
            "updated_at": now,
        }
        if channel_id is not None:
            changes["channel_id"] = channel_id
        updated = self.store.transition(
            item_id, (NotificationStatus.PROCESSING,), changes
        )
        if updated is None:
            logger.info("notification_mark_sent_skipped", item_id=item_id)
        else:
            logger.info(
                "notification_sent",
                item_id=item_id,
                retry_count=updated.retry_count,
            )
        return updated

    def mark_failed(
        self,
        item_id: str,
        error: str,
        retryable: bool = True,
        retry_after: Optional[int] = None,
        channel_id: Optional[str] = None,
    ) -> Optional[NotificationItem]:
        """Record a failed attempt on a processing item.

        If the failure is retryable and retry_count < max_retries, the item
        returns to pending with retry_count incremented and scheduled_for
        pushed forward by the backoff delay. Otherwise it becomes failed.

        Returns:
            The updated item, or None if the item was no longer processing
        """
        current = self.store.get_item(item_id)
        if current is None or current.status != NotificationStatus.PROCESSING:
            logger.info("notification_mark_failed_skipped", item_id=item_id)
            return None

        now = self.clock()
        changes: Dict[str, Any] = {
            "last_error": error,
            "last_attempt_at": now,
            "updated_at": now,
        }
        if channel_id is not None:
            changes["channel_id"] = channel_id

        will_retry = retryable and current.retry_count < current.max_retries
        if will_retry:
            retry_count = current.retry_count + 1
            delay = self.config.calculate_backoff_delay(retry_count, retry_after)
            changes.update(
                {
                    "status": NotificationStatus.PENDING,
                    "retry_count": retry_count,
                    "scheduled_for": now + timedelta(seconds=delay),
                }
            )
        else:
            changes["status"] = NotificationStatus.FAILED

        updated = self.store.transition(
            item_id, (NotificationStatus.PROCESSING,), changes
        )
        if updated is None:
            logger.info("notification_mark_failed_skipped", item_id=item_id)
            return None

        if will_retry:
            logger.info(
                "notification_retry_scheduled",
                item_id=item_id,
                retry_count=updated.retry_count,
                max_retries=updated.max_retries,
                next_retry_in_seconds=delay,
                error=error,
            )
        else:
            logger.warning(
                "notification_failed",
                item_id=item_id,
                retry_count=updated.retry_count,
                retryable=retryable,
                error=error,
            )
        return updated

    def cancel(self, item_id: str) -> NotificationItem:
        """Cancel a pending or processing item.

        A processing item is cancelled cooperatively: an in-flight delivery
        finishes, but its outcome no longer changes the item.

        Raises:
            NotFoundError: Unknown item id
            InvalidStateError: Item already sent, failed or cancelled
        """
        current = self.get(item_id)
        now = self.clock()
        updated = self.store.transition(
            item_id,
            CANCELLABLE_STATUSES,
            {"status": NotificationStatus.CANCELLED, "updated_at": now},
        )
        if updated is None:
            latest = self.store.get_item(item_id) or current
            raise InvalidStateError(
                f"cannot cancel notification {item_id} in status {latest.status.value}"
            )
        logger.info("notification_cancelled", item_id=item_id)
        return updated

    def retry(self, item_id: str) -> NotificationItem:
        """Reset a failed item to pending for immediate dispatch.

        Raises:
            NotFoundError: Unknown item id
            InvalidStateError: Item is not failed
        """
        current = self.get(item_id)
        now = self.clock()
        updated = self.store.transition(
            item_id,
            (NotificationStatus.FAILED,),
            {
                "status": NotificationStatus.PENDING,
                "retry_count": 0,
                "last_error": None,
                "scheduled_for": now,
                "updated_at": now,
            },
        )
        if updated is None:
            raise InvalidStateError(
                f"only failed notifications can be retried, {item_id} is {current.status.value}"
            )
        logger.info("notification_retry_requested", item_id=item_id)
        return updated

    def get(self, item_id: str) -> NotificationItem:
        item = self.store.get_item(item_id)
        if item is None:
            raise NotFoundError(f"notification not found: {item_id}")
        return item

    def get_by_status(
        self, status: NotificationStatus | str, limit: int = 100
    ) -> List[NotificationItem]:
        return self.store.list_items(status=_parse_status(status), limit=limit)

    def get_failed(
        self, min_retry_count: Optional[int] = None, limit: Optional[int] = None
    ) -> List[NotificationItem]:
        return self.store.list_items(
            status=NotificationStatus.FAILED,
            limit=limit,
            min_retry_count=min_retry_count,
        )

    def get_queue(
        self, limit: int = 50, status: Optional[NotificationStatus | str] = None
    ) -> List[NotificationItem]:
        """Newest items first, optionally filtered by status."""
        return self.store.list_items(
            status=_parse_status(status) if status else None, limit=limit
        )

    def count(self, status: NotificationStatus | str) -> int:
        return self.store.count_items(_parse_status(status))

    def recover_stale(self, stale_after_seconds: Optional[int] = None) -> int:
        """Return processing items abandoned by a crashed worker to pending.

        A claim untouched for longer than the stale window (far beyond the
        delivery timeout) can only belong to a worker that died mid-batch.
        The retry count is unchanged; delivery is at-least-once.

        Returns:
            Number of items released
        """
        seconds = (
            stale_after_seconds
            if stale_after_seconds is not None
            else self.config.stale_processing_seconds
        )
        now = self.clock()
        cutoff = now - timedelta(seconds=seconds)
        released = 0
        for item in self.store.list_items(status=NotificationStatus.PROCESSING):
            if item.updated_at >= cutoff:
                continue
            updated = self.store.transition(
                item.id,
                (NotificationStatus.PROCESSING,),
                {
                    "status": NotificationStatus.PENDING,
                    "scheduled_for": now,
                    "updated_at": now,
                },
            )
            if updated is not None:
                released += 1
                logger.warning(
                    "notification_stale_claim_released",
                    item_id=item.id,
                    claimed_at=item.updated_at.isoformat(),
                )
        return released

    def purge(self, retention_days: Optional[int] = None) -> int:
        """Delete terminal items not updated within the retention window.

        Returns:
            Number of items deleted
        """
        days = retention_days if retention_days is not None else self.config.retention_days
        cutoff = self.clock() - timedelta(days=days)
        purged = self.store.purge_items(
            (
                NotificationStatus.SENT,
                NotificationStatus.FAILED,
                NotificationStatus.CANCELLED,
            ),
            cutoff,
        )
        logger.info("notification_queue_purged", purged=purged, retention_days=days)
        return purged
