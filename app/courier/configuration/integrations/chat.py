"""Chat transport settings (Telegram and Discord)."""

from pydantic import Field

from courier.configuration.base import IntegrationSettings


class TelegramSettings(IntegrationSettings):
    """Telegram Bot API configuration.

    Environment Variables:
        TELEGRAM_BOT_TOKEN: Bot token issued by BotFather
        TELEGRAM_API_URL: API base URL (default: https://api.telegram.org)
    """

    TELEGRAM_BOT_TOKEN: str | None = Field(default=None, alias="TELEGRAM_BOT_TOKEN")
    TELEGRAM_API_URL: str = Field(
        default="https://api.telegram.org", alias="TELEGRAM_API_URL"
    )


class DiscordSettings(IntegrationSettings):
    """Discord webhook configuration.

    Environment Variables:
        DISCORD_WEBHOOK_URL: Default webhook used when the recipient is not a URL
        DISCORD_USERNAME: Display name for posted messages
    """

    DISCORD_WEBHOOK_URL: str | None = Field(default=None, alias="DISCORD_WEBHOOK_URL")
    DISCORD_USERNAME: str = Field(default="Courier", alias="DISCORD_USERNAME")
