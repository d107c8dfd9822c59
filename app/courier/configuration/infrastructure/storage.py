"""Notification store settings."""

from pydantic import Field

from courier.configuration.base import InfrastructureSettings


class StorageSettings(InfrastructureSettings):
    """Storage backend configuration for the notification pipeline.

    Environment Variables:
        NOTIFICATION_STORE_BACKEND: 'memory' or 'dynamodb' (default: memory)
        AWS_REGION: Region for DynamoDB (default: ca-central-1)
        DYNAMODB_ENDPOINT_URL: Optional endpoint override (local DynamoDB)
        NOTIFICATION_QUEUE_TABLE: Queue items table
        NOTIFICATION_CHANNELS_TABLE: Channel registry table
        NOTIFICATION_TEMPLATES_TABLE: Templates table
        NOTIFICATION_LOGS_TABLE: Delivery log table

    Storage Backends:
        - memory: In-process store (development, testing, single worker)
        - dynamodb: Durable store shared by every worker process
    """

    backend: str = Field(default="memory", alias="NOTIFICATION_STORE_BACKEND")
    aws_region: str = Field(default="ca-central-1", alias="AWS_REGION")
    endpoint_url: str | None = Field(default=None, alias="DYNAMODB_ENDPOINT_URL")
    queue_table: str = Field(
        default="courier-notification-queue", alias="NOTIFICATION_QUEUE_TABLE"
    )
    channels_table: str = Field(
        default="courier-notification-channels", alias="NOTIFICATION_CHANNELS_TABLE"
    )
    templates_table: str = Field(
        default="courier-notification-templates", alias="NOTIFICATION_TEMPLATES_TABLE"
    )
    logs_table: str = Field(
        default="courier-notification-logs", alias="NOTIFICATION_LOGS_TABLE"
    )
