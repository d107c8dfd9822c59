"""Push and generic webhook transport settings."""

from pydantic import Field

from courier.configuration.base import IntegrationSettings


class PushSettings(IntegrationSettings):
    """Firebase Cloud Messaging configuration.

    Environment Variables:
        FCM_SERVER_KEY: Legacy server key
        FCM_API_URL: Send endpoint (default: https://fcm.googleapis.com/fcm/send)
    """

    FCM_SERVER_KEY: str | None = Field(default=None, alias="FCM_SERVER_KEY")
    FCM_API_URL: str = Field(
        default="https://fcm.googleapis.com/fcm/send", alias="FCM_API_URL"
    )


class WebhookSettings(IntegrationSettings):
    """Outgoing webhook configuration.

    Environment Variables:
        WEBHOOK_URL: Default target when the recipient is not a URL
        WEBHOOK_SIGNING_SECRET: HMAC-SHA256 secret for the signature header
    """

    WEBHOOK_URL: str | None = Field(default=None, alias="WEBHOOK_URL")
    WEBHOOK_SIGNING_SECRET: str | None = Field(
        default=None, alias="WEBHOOK_SIGNING_SECRET"
    )
