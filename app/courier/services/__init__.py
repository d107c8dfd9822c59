"""Application-scoped service providers."""

from courier.services.providers import (
    get_delivery_worker,
    get_notification_service,
    get_notification_store,
    get_settings,
)

__all__ = [
    "get_delivery_worker",
    "get_notification_service",
    "get_notification_store",
    "get_settings",
]
