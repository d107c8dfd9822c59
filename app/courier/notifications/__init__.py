"""Notification pipeline: priority queue, channel registry, templates and delivery worker.

Usage:
    from courier.notifications import NotificationService, InMemoryNotificationStore

    service = NotificationService.from_store(InMemoryNotificationStore())
    service.enqueue(channel="email", recipient="user@example.com",
                    subject="Welcome", message="Hello!")
"""

from courier.notifications.config import QueueConfig, WorkerConfig
from courier.notifications.dynamodb_store import DynamoDBNotificationStore
from courier.notifications.errors import (
    AdapterTransportError,
    ChannelBusyError,
    DeliveryError,
    InvalidStateError,
    MissingVariableError,
    NoHealthyChannelError,
    NotFoundError,
    NotificationError,
    StoreError,
    TemplateNotFoundError,
    ValidationError,
)
from courier.notifications.factory import create_notification_store
from courier.notifications.models import (
    ChannelType,
    DeliveryOutcome,
    LogStatus,
    NotificationChannel,
    NotificationItem,
    NotificationLog,
    NotificationPriority,
    NotificationStatus,
    NotificationTemplate,
)
from courier.notifications.queue import NotificationQueue
from courier.notifications.registry import ChannelRegistry
from courier.notifications.service import NotificationService
from courier.notifications.store import InMemoryNotificationStore, NotificationStore
from courier.notifications.templates import TemplateStore, render_template
from courier.notifications.worker import DeliveryResult, DeliveryWorker

__all__ = [
    "AdapterTransportError",
    "ChannelBusyError",
    "ChannelRegistry",
    "ChannelType",
    "DeliveryError",
    "DeliveryOutcome",
    "DeliveryResult",
    "DeliveryWorker",
    "DynamoDBNotificationStore",
    "InMemoryNotificationStore",
    "InvalidStateError",
    "LogStatus",
    "MissingVariableError",
    "NoHealthyChannelError",
    "NotFoundError",
    "NotificationChannel",
    "NotificationError",
    "NotificationItem",
    "NotificationLog",
    "NotificationPriority",
    "NotificationQueue",
    "NotificationService",
    "NotificationStatus",
    "NotificationStore",
    "NotificationTemplate",
    "QueueConfig",
    "StoreError",
    "TemplateNotFoundError",
    "TemplateStore",
    "ValidationError",
    "WorkerConfig",
    "create_notification_store",
    "render_template",
]
