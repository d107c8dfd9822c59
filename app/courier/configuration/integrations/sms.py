"""SMS transport settings (Twilio and GC Notify)."""

from pydantic import Field

from courier.configuration.base import IntegrationSettings


class TwilioSettings(IntegrationSettings):
    """Twilio Messages API configuration.

    Environment Variables:
        TWILIO_ACCOUNT_SID: Account SID
        TWILIO_AUTH_TOKEN: Auth token
        TWILIO_FROM_NUMBER: Sender phone number (E.164)
    """

    TWILIO_ACCOUNT_SID: str | None = Field(default=None, alias="TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN: str | None = Field(default=None, alias="TWILIO_AUTH_TOKEN")
    TWILIO_FROM_NUMBER: str = Field(default="", alias="TWILIO_FROM_NUMBER")
    TWILIO_API_URL: str = Field(
        default="https://api.twilio.com", alias="TWILIO_API_URL"
    )


class GCNotifySettings(IntegrationSettings):
    """GC Notify API configuration.

    Environment Variables:
        NOTIFY_USER_NAME: GC Notify service account username
        NOTIFY_CLIENT_SECRET: GC Notify service account secret
        NOTIFY_API_URL: GC Notify API endpoint URL
        NOTIFY_SMS_TEMPLATE_ID: Pass-through template that renders ((message))
    """

    NOTIFY_USER_NAME: str | None = Field(default=None, alias="NOTIFY_USER_NAME")
    NOTIFY_CLIENT_SECRET: str | None = Field(default=None, alias="NOTIFY_CLIENT_SECRET")
    NOTIFY_API_URL: str = Field(default="", alias="NOTIFY_API_URL")
    NOTIFY_SMS_TEMPLATE_ID: str = Field(default="", alias="NOTIFY_SMS_TEMPLATE_ID")
