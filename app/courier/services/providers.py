"""
Factory functions for dependency injection.

Provides application-scoped singleton providers for the notification pipeline.
"""

from functools import lru_cache

from courier.configuration import Settings
from courier.notifications.config import QueueConfig, WorkerConfig
from courier.notifications.factory import create_notification_store
from courier.notifications.service import NotificationService
from courier.notifications.store import NotificationStore
from courier.notifications.worker import DeliveryWorker


@lru_cache
def get_settings() -> Settings:
    """
    Get application-scoped settings singleton.

    The @lru_cache decorator ensures only ONE instance is created per process,
    even if called from multiple packages.

    Returns:
        Settings: Cached settings instance loaded from environment.
    """
    return Settings()


@lru_cache
def get_notification_store() -> NotificationStore:
    """
    Get application-scoped notification store singleton.

    The backend (memory or dynamodb) comes from settings.storage.backend.
    """
    return create_notification_store(get_settings())


@lru_cache
def get_notification_service() -> NotificationService:
    """
    Get application-scoped notification service singleton.

    Usage:
        service = get_notification_service()
        service.enqueue(channel="sms", recipient="+15555550100", message="Hi")
    """
    settings = get_settings()
    return NotificationService.from_store(
        get_notification_store(),
        queue_config=QueueConfig.from_settings(settings.queue),
        failure_threshold=settings.worker.failure_threshold,
        adapter_timeout=settings.worker.delivery_timeout_seconds,
    )


@lru_cache
def get_delivery_worker() -> DeliveryWorker:
    """Get the delivery worker sharing the service's queue, registry and templates."""
    settings = get_settings()
    service = get_notification_service()
    return DeliveryWorker(
        queue=service.queue,
        registry=service.registry,
        templates=service.templates,
        log_store=service.log_store,
        config=WorkerConfig.from_settings(settings.worker),
    )
