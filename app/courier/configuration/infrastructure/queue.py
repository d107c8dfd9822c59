"""Notification queue settings."""

from pydantic import Field

from courier.configuration.base import InfrastructureSettings


class QueueSettings(InfrastructureSettings):
    """Notification queue configuration.

    Environment Variables:
        QUEUE_DEFAULT_MAX_RETRIES: Retries allowed per item unless overridden (default: 3)
        QUEUE_DEFAULT_PRIORITY: Priority assigned when producers omit one (default: 5)
        QUEUE_BASE_DELAY_SECONDS: First retry delay (default: 30s)
        QUEUE_MAX_DELAY_SECONDS: Cap for the exponential backoff (default: 3600s = 1h)
        QUEUE_RETENTION_DAYS: Age after which terminal items are purged (default: 30)
        QUEUE_STALE_PROCESSING_SECONDS: Claims older than this are released (default: 900s)

    Exponential Backoff:
        Delay calculation: min(base_delay * 2 ^ (retry_count - 1), max_delay)

        Example with defaults (base=30s, max=3600s):
            Retry 1: 30s
            Retry 2: 60s
            Retry 3: 120s
            Retry 8: 3600s (capped)
    """

    default_max_retries: int = Field(
        default=3,
        alias="QUEUE_DEFAULT_MAX_RETRIES",
        description="Retries allowed per item unless the producer overrides it",
    )
    default_priority: int = Field(
        default=5,
        alias="QUEUE_DEFAULT_PRIORITY",
        description="Priority (1 = most urgent, 10 = least) used when omitted",
    )
    base_delay_seconds: int = Field(
        default=30,
        alias="QUEUE_BASE_DELAY_SECONDS",
        description="Base delay for exponential backoff (seconds)",
    )
    max_delay_seconds: int = Field(
        default=3600,
        alias="QUEUE_MAX_DELAY_SECONDS",
        description="Maximum delay for exponential backoff (seconds, 1 hour)",
    )
    retention_days: int = Field(
        default=30,
        alias="QUEUE_RETENTION_DAYS",
        description="Terminal items older than this are purged",
    )
    stale_processing_seconds: int = Field(
        default=900,
        alias="QUEUE_STALE_PROCESSING_SECONDS",
        description="Processing items untouched this long are returned to pending",
    )
