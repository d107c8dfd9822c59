"""Notification service facade.

Producer and admin surface over the queue, channel registry, template store
and delivery log. Callers (HTTP handlers, signal broadcasters, admin tools)
use this class and never the stores directly.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from courier.notifications.config import QueueConfig
from courier.notifications.errors import ValidationError
from courier.notifications.models import (
    ChannelType,
    LogStatus,
    NotificationChannel,
    NotificationItem,
    NotificationLog,
    NotificationStatus,
    NotificationTemplate,
    utc_now,
)
from courier.notifications.queue import NotificationQueue
from courier.notifications.registry import ChannelRegistry
from courier.notifications.store import LogStore, NotificationStore
from courier.notifications.templates import RenderedMessage, TemplateStore


class NotificationService:
    """Producer and admin operations for the notification pipeline.

    Args:
        queue: NotificationQueue
        registry: ChannelRegistry
        templates: TemplateStore
        log_store: Delivery log
    """

    def __init__(
        self,
        queue: NotificationQueue,
        registry: ChannelRegistry,
        templates: TemplateStore,
        log_store: LogStore,
    ) -> None:
        self.queue = queue
        self.registry = registry
        self.templates = templates
        self.log_store = log_store

    @classmethod
    def from_store(
        cls,
        store: NotificationStore,
        queue_config: Optional[QueueConfig] = None,
        failure_threshold: int = 5,
        adapter_timeout: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> "NotificationService":
        """Wire every component onto one store."""
        return cls(
            queue=NotificationQueue(store, queue_config, clock=clock),
            registry=ChannelRegistry(
                store,
                store,
                failure_threshold=failure_threshold,
                adapter_timeout=adapter_timeout,
                clock=clock,
            ),
            templates=TemplateStore(store, clock=clock),
            log_store=store,
        )

    # Producer surface

    def enqueue(self, **request: Any) -> Dict[str, str]:
        """Enqueue a notification.

        Accepts the NotificationQueue.enqueue keyword arguments.

        Returns:
            {"notification_id": "<id>"}

        Raises:
            ValidationError: Rejected input; nothing is persisted
        """
        return {"notification_id": self.queue.enqueue(**request)}

    # Queue administration

    def get_notification(self, item_id: str) -> NotificationItem:
        return self.queue.get(item_id)

    def cancel(self, item_id: str) -> NotificationItem:
        return self.queue.cancel(item_id)

    def retry(self, item_id: str) -> NotificationItem:
        return self.queue.retry(item_id)

    def get_queue(
        self, limit: int = 50, status: Optional[NotificationStatus | str] = None
    ) -> List[NotificationItem]:
        return self.queue.get_queue(limit=limit, status=status)

    def get_failed(
        self, retry_count: Optional[int] = None, limit: Optional[int] = None
    ) -> List[NotificationItem]:
        """Failed items, optionally only those with at least `retry_count` retries."""
        return self.queue.get_failed(min_retry_count=retry_count, limit=limit)

    def purge(self, retention_days: Optional[int] = None) -> int:
        return self.queue.purge(retention_days)

    def recover_stale(self) -> int:
        return self.queue.recover_stale()

    # Statistics and logs

    def get_stats(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Delivery statistics for a time window.

        Attempt counts come from the delivery log (one row per attempt);
        `pending` is the current queue depth.

        Returns:
            Dictionary with total, sent, failed, pending, success_rate
            (percentage, 2 decimals) and per_channel_breakdown
        """
        logs = self.log_store.logs_between(date_from, date_to)
        sent = sum(1 for log in logs if log.status == LogStatus.SENT)
        failed = sum(1 for log in logs if log.status == LogStatus.FAILED)
        total = len(logs)

        breakdown: Dict[str, Dict[str, int]] = {}
        for log in logs:
            entry = breakdown.setdefault(
                log.channel.value, {"total": 0, "sent": 0, "failed": 0}
            )
            entry["total"] += 1
            entry[log.status.value] += 1

        return {
            "total": total,
            "sent": sent,
            "failed": failed,
            "pending": self.queue.count(NotificationStatus.PENDING),
            "success_rate": round(sent / total * 100, 2) if total else 0.0,
            "per_channel_breakdown": breakdown,
        }

    def get_logs(
        self,
        limit: int = 100,
        channel: Optional[ChannelType | str] = None,
        user_id: Optional[str] = None,
        notification_id: Optional[str] = None,
    ) -> List[NotificationLog]:
        try:
            channel_type = ChannelType(channel) if channel else None
        except ValueError as exc:
            raise ValidationError(f"unknown channel type: {channel}") from exc
        return self.log_store.list_logs(
            limit=limit,
            channel=channel_type,
            user_id=user_id,
            notification_item_id=notification_id,
        )

    # Channels

    def register_channel(self, **fields: Any) -> NotificationChannel:
        return self.registry.register_channel(**fields)

    def update_channel(self, channel_id: str, **changes: Any) -> NotificationChannel:
        return self.registry.update_channel(channel_id, **changes)

    def get_channel(self, channel_id: str) -> NotificationChannel:
        return self.registry.get_channel(channel_id)

    def list_channels(
        self, channel_type: Optional[ChannelType | str] = None
    ) -> List[NotificationChannel]:
        return self.registry.list_channels(channel_type)

    def delete_channel(self, channel_id: str) -> None:
        self.registry.delete_channel(channel_id)

    def test_channel(
        self,
        channel_id: str,
        recipient: Optional[str] = None,
        message: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self.registry.test_channel(channel_id, recipient=recipient, message=message)

    def run_health_checks(self) -> Dict[str, int]:
        return self.registry.run_health_checks()

    def bootstrap_channels(self, settings) -> List[NotificationChannel]:
        return self.registry.bootstrap_channels(settings)

    # Templates

    def create_template(self, **fields: Any) -> NotificationTemplate:
        return self.templates.create_template(**fields)

    def update_template(self, template_id: str, **changes: Any) -> NotificationTemplate:
        return self.templates.update_template(template_id, **changes)

    def get_template(self, template_id: str) -> NotificationTemplate:
        return self.templates.get_template(template_id)

    def delete_template(self, template_id: str) -> None:
        self.templates.delete_template(template_id)

    def list_templates(
        self, template_type: Optional[str] = None, active_only: bool = False
    ) -> List[NotificationTemplate]:
        return self.templates.list_templates(template_type, active_only)

    def preview_template(
        self, template_type: str, variables: Dict[str, Any]
    ) -> RenderedMessage:
        """Render the active template of a type without enqueuing anything."""
        return self.templates.render(template_type, variables)
