"""Email channel adapters: SendGrid v3 API and plain SMTP."""

import smtplib
from email.message import EmailMessage

from email_validator import EmailNotValidError, validate_email

from courier.clients.http import bearer_headers, send_request
from courier.notifications.channels.base import ChannelAdapter, outcome_from_result
from courier.notifications.models import ChannelType, DeliveryOutcome
from courier.operations import OperationResult, OperationStatus

DEFAULT_SENDGRID_API_URL = "https://api.sendgrid.com"


class EmailAdapter(ChannelAdapter):
    """Shared recipient validation for email providers."""

    channel_type = ChannelType.EMAIL

    def validate_recipient(self, recipient: str) -> OperationResult:
        """Validate RFC 5322 syntax without a DNS lookup."""
        try:
            validated = validate_email(recipient.strip(), check_deliverability=False)
        except EmailNotValidError as e:
            return OperationResult.permanent_error(
                f"invalid email address: {e}", error_code="INVALID_EMAIL"
            )
        return OperationResult.success(data={"recipient": validated.normalized})


class SendGridAdapter(EmailAdapter):
    """Email via SendGrid `v3/mail/send`.

    Config keys: api_key, from_email, api_url (optional)
    """

    provider = "sendgrid"
    required_config = ("api_key", "from_email")

    @property
    def _api_url(self) -> str:
        return (self.config.get("api_url") or DEFAULT_SENDGRID_API_URL).rstrip("/")

    def _send(self, recipient: str, subject: str, body: str) -> DeliveryOutcome:
        payload = {
            "personalizations": [{"to": [{"email": recipient}]}],
            "from": {"email": self.config["from_email"]},
            "subject": subject or "(no subject)",
            "content": [{"type": "text/plain", "value": body}],
        }
        result = send_request(
            "POST",
            f"{self._api_url}/v3/mail/send",
            self.provider,
            timeout=self.timeout,
            json=payload,
            headers=bearer_headers(self.config["api_key"]),
        )
        return outcome_from_result(result)

    def health_check(self) -> OperationResult:
        """Validate the API key against the scopes endpoint."""
        if self.missing_config():
            return OperationResult.permanent_error(
                "SendGrid api_key/from_email not configured", error_code="NOT_CONFIGURED"
            )
        result = send_request(
            "GET",
            f"{self._api_url}/v3/scopes",
            self.provider,
            timeout=self.timeout,
            headers=bearer_headers(self.config["api_key"]),
        )
        if result.is_success:
            return OperationResult.success(message="SendGrid credentials valid")
        return result


class SmtpAdapter(EmailAdapter):
    """Email over SMTP with optional STARTTLS and login.

    Config keys: host, port, username, password, use_tls, from_email
    """

    provider = "smtp"
    required_config = ("host", "from_email")

    def _connect(self) -> smtplib.SMTP:
        server = smtplib.SMTP(
            self.config["host"], int(self.config.get("port") or 587), timeout=self.timeout
        )
        try:
            if self.config.get("use_tls", True):
                server.starttls()
            if self.config.get("username"):
                server.login(self.config["username"], self.config.get("password") or "")
        except (smtplib.SMTPException, OSError):
            server.close()
            raise
        return server

    def _send(self, recipient: str, subject: str, body: str) -> DeliveryOutcome:
        message = EmailMessage()
        message["From"] = self.config["from_email"]
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)

        try:
            server = self._connect()
            try:
                server.send_message(message)
            finally:
                server.quit()
        except smtplib.SMTPRecipientsRefused as e:
            return DeliveryOutcome.failed(f"recipient refused: {e}", retryable=False)
        except smtplib.SMTPAuthenticationError as e:
            return DeliveryOutcome.failed(f"SMTP authentication failed: {e.smtp_code}")
        except (smtplib.SMTPException, OSError) as e:
            return DeliveryOutcome.failed(f"SMTP error: {type(e).__name__}: {e}")
        return DeliveryOutcome.ok()

    def health_check(self) -> OperationResult:
        """Connect, authenticate and NOOP."""
        if self.missing_config():
            return OperationResult.permanent_error(
                "SMTP host/from_email not configured", error_code="NOT_CONFIGURED"
            )
        try:
            server = self._connect()
            try:
                server.noop()
            finally:
                server.quit()
        except smtplib.SMTPAuthenticationError as e:
            return OperationResult.error(
                OperationStatus.UNAUTHORIZED,
                f"SMTP authentication failed: {e.smtp_code}",
            )
        except (smtplib.SMTPException, OSError) as e:
            return OperationResult.transient_error(
                f"SMTP health check failed: {e}", error_code="SMTP_UNAVAILABLE"
            )
        return OperationResult.success(message="SMTP server reachable")
