"""Email transport settings (SendGrid and SMTP)."""

from pydantic import Field

from courier.configuration.base import IntegrationSettings


class SendGridSettings(IntegrationSettings):
    """SendGrid API configuration.

    Environment Variables:
        SENDGRID_API_KEY: SendGrid API key
        SENDGRID_FROM_EMAIL: Default sender address
        SENDGRID_API_URL: API base URL (default: https://api.sendgrid.com)
    """

    SENDGRID_API_KEY: str | None = Field(default=None, alias="SENDGRID_API_KEY")
    SENDGRID_FROM_EMAIL: str = Field(
        default="noreply@example.com", alias="SENDGRID_FROM_EMAIL"
    )
    SENDGRID_API_URL: str = Field(
        default="https://api.sendgrid.com", alias="SENDGRID_API_URL"
    )


class SmtpSettings(IntegrationSettings):
    """SMTP relay configuration.

    Environment Variables:
        SMTP_HOST: Relay hostname (transport disabled when empty)
        SMTP_PORT: Relay port (default: 587)
        SMTP_USERNAME: Login user
        SMTP_PASSWORD: Login password
        SMTP_USE_TLS: Issue STARTTLS after connecting (default: True)
        SMTP_FROM_EMAIL: Default sender address
    """

    SMTP_HOST: str = Field(default="", alias="SMTP_HOST")
    SMTP_PORT: int = Field(default=587, alias="SMTP_PORT")
    SMTP_USERNAME: str | None = Field(default=None, alias="SMTP_USERNAME")
    SMTP_PASSWORD: str | None = Field(default=None, alias="SMTP_PASSWORD")
    SMTP_USE_TLS: bool = Field(default=True, alias="SMTP_USE_TLS")
    SMTP_FROM_EMAIL: str = Field(default="noreply@example.com", alias="SMTP_FROM_EMAIL")
