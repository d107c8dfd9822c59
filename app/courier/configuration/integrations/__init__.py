"""Integration settings __init__ - exports all transport settings."""

from courier.configuration.integrations.chat import DiscordSettings, TelegramSettings
from courier.configuration.integrations.email import SendGridSettings, SmtpSettings
from courier.configuration.integrations.push import PushSettings, WebhookSettings
from courier.configuration.integrations.sms import GCNotifySettings, TwilioSettings

__all__ = [
    "SendGridSettings",
    "SmtpSettings",
    "TwilioSettings",
    "GCNotifySettings",
    "TelegramSettings",
    "DiscordSettings",
    "PushSettings",
    "WebhookSettings",
]
