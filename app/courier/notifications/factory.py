"""Factory for creating notification stores based on configuration."""

import structlog

from courier.clients.aws.dynamodb import DynamoDBClient
from courier.notifications.dynamodb_store import DynamoDBNotificationStore
from courier.notifications.store import InMemoryNotificationStore, NotificationStore

logger = structlog.get_logger()


def create_notification_store(settings, backend: str | None = None) -> NotificationStore:
    """Create the notification store selected by configuration.

    Args:
        settings: Settings aggregator (uses `settings.storage`)
        backend: Optional backend override (memory, dynamodb).
                If None, uses settings.storage.backend

    Returns:
        NotificationStore implementation

    Raises:
        ValueError: If unknown backend specified

    Examples:
        >>> store = create_notification_store(settings)
        >>> store = create_notification_store(settings, backend="memory")
    """
    storage = settings.storage
    backend = backend or storage.backend

    if backend == "memory":
        logger.info("creating_in_memory_notification_store")
        return InMemoryNotificationStore()

    elif backend == "dynamodb":
        logger.info(
            "creating_dynamodb_notification_store",
            queue_table=storage.queue_table,
            region=storage.aws_region,
        )
        client = DynamoDBClient(
            region_name=storage.aws_region,
            endpoint_url=storage.endpoint_url,
        )
        return DynamoDBNotificationStore(
            client=client,
            queue_table=storage.queue_table,
            channels_table=storage.channels_table,
            templates_table=storage.templates_table,
            logs_table=storage.logs_table,
        )

    else:
        raise ValueError(
            f"Unknown notification store backend: {backend}. Supported: memory, dynamodb"
        )
