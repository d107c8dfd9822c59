"""Courier configuration settings - main aggregator."""

from pydantic_settings import BaseSettings, SettingsConfigDict

# Transport settings
from courier.configuration.integrations import (
    DiscordSettings,
    GCNotifySettings,
    PushSettings,
    SendGridSettings,
    SmtpSettings,
    TelegramSettings,
    TwilioSettings,
    WebhookSettings,
)

# Infrastructure settings
from courier.configuration.infrastructure import (
    QueueSettings,
    StorageSettings,
    WorkerSettings,
)


class Settings(BaseSettings):
    """Courier configuration settings - main aggregator.

    Aggregates all domain-specific settings into a single configuration object.
    Settings are organized by concern:

    - **Transports**: Credentials used to bootstrap delivery channels
    - **Infrastructure**: Queue, worker and storage behavior

    Environment Variables:
        PREFIX: Environment prefix (empty in production)
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
        GIT_SHA: Git commit SHA for deployment tracking

    Example:
        ```python
        from courier.services.providers import get_settings

        settings = get_settings()

        batch_size = settings.worker.batch_size
        if settings.storage.backend == "dynamodb":
            table = settings.storage.queue_table
        ```
    """

    # Application-level settings
    PREFIX: str = ""
    LOG_LEVEL: str = "INFO"
    GIT_SHA: str = "Unknown"

    # Transport settings
    sendgrid: SendGridSettings
    smtp: SmtpSettings
    twilio: TwilioSettings
    gc_notify: GCNotifySettings
    telegram: TelegramSettings
    discord: DiscordSettings
    push: PushSettings
    webhook: WebhookSettings

    # Infrastructure settings
    queue: QueueSettings
    worker: WorkerSettings
    storage: StorageSettings

    @property
    def is_production(self) -> bool:
        """Check if the application is running in production.

        Returns:
            True if PREFIX is empty (production), False otherwise.
        """
        return not bool(self.PREFIX)

    def __init__(self, **kwargs):
        """Initialize Settings with automatic subsettings instantiation.

        Args:
            **kwargs: Optional overrides for specific settings sections.
        """
        settings_map = {
            # Transports
            "sendgrid": SendGridSettings,
            "smtp": SmtpSettings,
            "twilio": TwilioSettings,
            "gc_notify": GCNotifySettings,
            "telegram": TelegramSettings,
            "discord": DiscordSettings,
            "push": PushSettings,
            "webhook": WebhookSettings,
            # Infrastructure
            "queue": QueueSettings,
            "worker": WorkerSettings,
            "storage": StorageSettings,
        }

        for setting_name, setting_class in settings_map.items():
            if setting_name not in kwargs:
                kwargs[setting_name] = setting_class()

        super().__init__(**kwargs)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


# Create the singleton settings instance
settings = Settings()
