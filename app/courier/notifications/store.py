"""Notification storage.

Four protocols describe the persistence capabilities the pipeline needs:
queue items, channel records, templates and delivery logs. Backends
implement persistence mechanics only. Retry policy, the item state machine
and channel health thresholds live in the queue, registry and worker.

Two backends implement all four protocols:
- InMemoryNotificationStore: single process, tests and development
- DynamoDBNotificationStore: shared state across worker processes
"""

import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from courier.logging import get_module_logger
from courier.notifications.models import (
    ChannelType,
    NotificationChannel,
    NotificationItem,
    NotificationLog,
    NotificationStatus,
    NotificationTemplate,
)

logger = get_module_logger()


class QueueStore(Protocol):
    """Storage interface for queue items.

    Implementations must make `claim_ready` and `transition` atomic with
    respect to every other caller, including callers in other processes.
    """

    def save_item(self, item: NotificationItem) -> NotificationItem:
        """Persist a new item and return the stored copy."""
        ...

    def get_item(self, item_id: str) -> Optional[NotificationItem]:
        """Return the item or None."""
        ...

    def claim_ready(self, now: datetime, limit: int) -> List[NotificationItem]:
        """Atomically move due pending items to processing.

        Selects items with status pending and scheduled_for <= now, ordered
        by priority ascending then scheduled_for ascending, at most `limit`.
        An item is returned to at most one caller.

        Args:
            now: Eligibility cutoff
            limit: Maximum number of items to claim

        Returns:
            Claimed items in claim order, already in processing state
        """
        ...

    def transition(
        self,
        item_id: str,
        expected_statuses: Iterable[NotificationStatus],
        changes: Dict[str, Any],
    ) -> Optional[NotificationItem]:
        """Compare-and-set update of one item.

        Applies `changes` only if the item's current status is one of
        `expected_statuses`.

        Returns:
            The updated item, or None if the item is missing or its status
            did not match
        """
        ...

    def list_items(
        self,
        status: Optional[NotificationStatus] = None,
        limit: Optional[int] = None,
        min_retry_count: Optional[int] = None,
    ) -> List[NotificationItem]:
        """Return items newest first, optionally filtered."""
        ...

    def count_items(self, status: NotificationStatus) -> int:
        """Return the number of items in `status`."""
        ...

    def purge_items(
        self, statuses: Iterable[NotificationStatus], older_than: datetime
    ) -> int:
        """Delete items in `statuses` last updated before `older_than`."""
        ...


class ChannelStore(Protocol):
    """Storage interface for channel records.

    Counter methods must increment store-side, never read-modify-write a
    cached copy.
    """

    def save_channel(self, channel: NotificationChannel) -> NotificationChannel: ...

    def get_channel(self, channel_id: str) -> Optional[NotificationChannel]: ...

    def list_channels(
        self, channel_type: Optional[ChannelType] = None
    ) -> List[NotificationChannel]:
        """Return channels ordered by created_at then id."""
        ...

    def update_channel(
        self, channel_id: str, changes: Dict[str, Any]
    ) -> Optional[NotificationChannel]: ...

    def delete_channel(self, channel_id: str) -> bool:
        """Remove a channel record. Returns False if it did not exist."""
        ...

    def record_channel_success(
        self, channel_id: str, now: datetime
    ) -> Optional[NotificationChannel]:
        """Increment success_count, clear consecutive_errors, mark healthy."""
        ...

    def record_channel_failure(
        self,
        channel_id: str,
        error: str,
        now: datetime,
        count_consecutive: bool = True,
    ) -> Optional[NotificationChannel]:
        """Increment error_count (and consecutive_errors when requested)."""
        ...

    def mark_channel_unhealthy(
        self, channel_id: str, min_consecutive_errors: int, now: datetime
    ) -> Optional[NotificationChannel]:
        """Set is_healthy False if consecutive_errors >= the given threshold.

        Returns:
            The updated channel, or None if the condition did not hold
        """
        ...

    def record_health_check(
        self,
        channel_id: str,
        healthy: bool,
        now: datetime,
        error: Optional[str] = None,
    ) -> Optional[NotificationChannel]:
        """Store a probe result without touching delivery counters."""
        ...


class TemplateRepository(Protocol):
    """Storage interface for templates."""

    def save_template(self, template: NotificationTemplate) -> NotificationTemplate: ...

    def get_template(self, template_id: str) -> Optional[NotificationTemplate]: ...

    def delete_template(self, template_id: str) -> bool:
        """Remove a template. Returns False if it did not exist."""
        ...

    def get_active_template(self, template_type: str) -> Optional[NotificationTemplate]:
        """Return the earliest created active template of `template_type`."""
        ...

    def list_templates(
        self, template_type: Optional[str] = None, active_only: bool = False
    ) -> List[NotificationTemplate]: ...


class LogStore(Protocol):
    """Append-only storage for delivery attempt logs."""

    def append_log(self, log: NotificationLog) -> NotificationLog: ...

    def list_logs(
        self,
        limit: Optional[int] = None,
        channel: Optional[ChannelType] = None,
        user_id: Optional[str] = None,
        notification_item_id: Optional[str] = None,
    ) -> List[NotificationLog]:
        """Return logs newest first, optionally filtered."""
        ...

    def logs_between(
        self, date_from: Optional[datetime], date_to: Optional[datetime]
    ) -> List[NotificationLog]:
        """Return logs with date_from <= created_at <= date_to."""
        ...


class NotificationStore(QueueStore, ChannelStore, TemplateRepository, LogStore, Protocol):
    """Every capability the pipeline needs from a backend."""


def _dispatch_order(item: NotificationItem):
    return (item.priority, item.scheduled_for, item.created_at, item.id)


class InMemoryNotificationStore:
    """In-memory implementation of NotificationStore.

    Thread-safe: one lock guards all four collections, so `claim_ready` and
    `transition` are atomic for every thread in the process. Callers always
    receive copies; mutating a returned model never changes stored state.

    Suitable for tests, development and single-process deployments. Use
    DynamoDBNotificationStore when several worker processes share a queue.
    """

    def __init__(self) -> None:
        self._items: Dict[str, NotificationItem] = {}
        self._channels: Dict[str, NotificationChannel] = {}
        self._templates: Dict[str, NotificationTemplate] = {}
        self._logs: List[NotificationLog] = []
        self._lock = threading.Lock()

    # Queue items

    def save_item(self, item: NotificationItem) -> NotificationItem:
        with self._lock:
            self._items[item.id] = item.model_copy(deep=True)
            logger.debug("notification_item_saved", item_id=item.id)
            return item.model_copy(deep=True)

    def get_item(self, item_id: str) -> Optional[NotificationItem]:
        with self._lock:
            item = self._items.get(item_id)
            return item.model_copy(deep=True) if item else None

    def claim_ready(self, now: datetime, limit: int) -> List[NotificationItem]:
        with self._lock:
            due = [
                item
                for item in self._items.values()
                if item.status == NotificationStatus.PENDING
                and item.scheduled_for <= now
            ]
            due.sort(key=_dispatch_order)

            claimed = []
            for item in due[:limit]:
                updated = item.model_copy(
                    update={"status": NotificationStatus.PROCESSING, "updated_at": now}
                )
                self._items[item.id] = updated
                claimed.append(updated.model_copy(deep=True))

            if claimed:
                logger.debug(
                    "notification_items_claimed",
                    count=len(claimed),
                    eligible=len(due),
                )
            return claimed

    def transition(
        self,
        item_id: str,
        expected_statuses: Iterable[NotificationStatus],
        changes: Dict[str, Any],
    ) -> Optional[NotificationItem]:
        expected = set(expected_statuses)
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.status not in expected:
                return None
            updated = item.model_copy(update=changes, deep=True)
            self._items[item_id] = updated
            return updated.model_copy(deep=True)

    def list_items(
        self,
        status: Optional[NotificationStatus] = None,
        limit: Optional[int] = None,
        min_retry_count: Optional[int] = None,
    ) -> List[NotificationItem]:
        with self._lock:
            items = [
                item
                for item in self._items.values()
                if (status is None or item.status == status)
                and (min_retry_count is None or item.retry_count >= min_retry_count)
            ]
            items.sort(key=lambda i: (i.created_at, i.id), reverse=True)
            if limit is not None:
                items = items[:limit]
            return [item.model_copy(deep=True) for item in items]

    def count_items(self, status: NotificationStatus) -> int:
        with self._lock:
            return sum(1 for item in self._items.values() if item.status == status)

    def purge_items(
        self, statuses: Iterable[NotificationStatus], older_than: datetime
    ) -> int:
        targets = set(statuses)
        with self._lock:
            doomed = [
                item_id
                for item_id, item in self._items.items()
                if item.status in targets and item.updated_at < older_than
            ]
            for item_id in doomed:
                del self._items[item_id]
            return len(doomed)

    # Channels

    def save_channel(self, channel: NotificationChannel) -> NotificationChannel:
        with self._lock:
            self._channels[channel.id] = channel.model_copy(deep=True)
            return channel.model_copy(deep=True)

    def get_channel(self, channel_id: str) -> Optional[NotificationChannel]:
        with self._lock:
            channel = self._channels.get(channel_id)
            return channel.model_copy(deep=True) if channel else None

    def list_channels(
        self, channel_type: Optional[ChannelType] = None
    ) -> List[NotificationChannel]:
        with self._lock:
            channels = [
                c
                for c in self._channels.values()
                if channel_type is None or c.type == channel_type
            ]
            channels.sort(key=lambda c: (c.created_at, c.id))
            return [c.model_copy(deep=True) for c in channels]

    def update_channel(
        self, channel_id: str, changes: Dict[str, Any]
    ) -> Optional[NotificationChannel]:
        with self._lock:
            return self._apply_channel(channel_id, changes)

    def delete_channel(self, channel_id: str) -> bool:
        with self._lock:
            return self._channels.pop(channel_id, None) is not None

    def _apply_channel(
        self, channel_id: str, changes: Dict[str, Any]
    ) -> Optional[NotificationChannel]:
        """Apply changes to a channel. Caller holds the lock."""
        channel = self._channels.get(channel_id)
        if channel is None:
            return None
        updated = channel.model_copy(update=changes, deep=True)
        self._channels[channel_id] = updated
        return updated.model_copy(deep=True)

    def record_channel_success(
        self, channel_id: str, now: datetime
    ) -> Optional[NotificationChannel]:
        with self._lock:
            channel = self._channels.get(channel_id)
            if channel is None:
                return None
            return self._apply_channel(
                channel_id,
                {
                    "success_count": channel.success_count + 1,
                    "consecutive_errors": 0,
                    "is_healthy": True,
                    "updated_at": now,
                },
            )

    def record_channel_failure(
        self,
        channel_id: str,
        error: str,
        now: datetime,
        count_consecutive: bool = True,
    ) -> Optional[NotificationChannel]:
        with self._lock:
            channel = self._channels.get(channel_id)
            if channel is None:
                return None
            changes: Dict[str, Any] = {
                "error_count": channel.error_count + 1,
                "last_error": error,
                "updated_at": now,
            }
            if count_consecutive:
                changes["consecutive_errors"] = channel.consecutive_errors + 1
            return self._apply_channel(channel_id, changes)

    def mark_channel_unhealthy(
        self, channel_id: str, min_consecutive_errors: int, now: datetime
    ) -> Optional[NotificationChannel]:
        with self._lock:
            channel = self._channels.get(channel_id)
            if channel is None or channel.consecutive_errors < min_consecutive_errors:
                return None
            return self._apply_channel(
                channel_id, {"is_healthy": False, "updated_at": now}
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
        with self._lock:
            return self._apply_channel(channel_id, changes)

    # Templates

    def save_template(self, template: NotificationTemplate) -> NotificationTemplate:
        with self._lock:
            self._templates[template.id] = template.model_copy(deep=True)
            return template.model_copy(deep=True)

    def get_template(self, template_id: str) -> Optional[NotificationTemplate]:
        with self._lock:
            template = self._templates.get(template_id)
            return template.model_copy(deep=True) if template else None

    def delete_template(self, template_id: str) -> bool:
        with self._lock:
            return self._templates.pop(template_id, None) is not None

    def get_active_template(self, template_type: str) -> Optional[NotificationTemplate]:
        templates = self.list_templates(template_type=template_type, active_only=True)
        return templates[0] if templates else None

    def list_templates(
        self, template_type: Optional[str] = None, active_only: bool = False
    ) -> List[NotificationTemplate]:
        with self._lock:
            templates = [
                t
                for t in self._templates.values()
                if (template_type is None or t.type == template_type)
                and (not active_only or t.is_active)
            ]
            templates.sort(key=lambda t: (t.created_at, t.id))
            return [t.model_copy(deep=True) for t in templates]

    # Logs

    def append_log(self, log: NotificationLog) -> NotificationLog:
        with self._lock:
            self._logs.append(log.model_copy(deep=True))
            return log.model_copy(deep=True)

    def list_logs(
        self,
        limit: Optional[int] = None,
        channel: Optional[ChannelType] = None,
        user_id: Optional[str] = None,
        notification_item_id: Optional[str] = None,
    ) -> List[NotificationLog]:
        with self._lock:
            logs = [
                log
                for log in self._logs
                if (channel is None or log.channel == channel)
                and (user_id is None or log.user_id == user_id)
                and (
                    notification_item_id is None
                    or log.notification_item_id == notification_item_id
                )
            ]
        # Appended in time order; newest first for readers
        logs = list(reversed(logs))
        if limit is not None:
            logs = logs[:limit]
        return [log.model_copy(deep=True) for log in logs]

    def logs_between(
        self, date_from: Optional[datetime], date_to: Optional[datetime]
    ) -> List[NotificationLog]:
        with self._lock:
            return [
                log.model_copy(deep=True)
                for log in self._logs
                if (date_from is None or log.created_at >= date_from)
                and (date_to is None or log.created_at <= date_to)
            ]

    def get_stats(self) -> dict:
        """Return collection sizes (for monitoring)."""
        with self._lock:
            by_status: Dict[str, int] = {}
            for item in self._items.values():
                by_status[item.status.value] = by_status.get(item.status.value, 0) + 1
            return {
                "items": len(self._items),
                "items_by_status": by_status,
                "channels": len(self._channels),
                "templates": len(self._templates),
                "logs": len(self._logs),
            }
