"""SMS channel adapters: Twilio Messages API and GC Notify."""

import calendar
import time

import jwt

from courier.clients.http import bearer_headers, send_request
from courier.notifications.channels.base import ChannelAdapter, outcome_from_result
from courier.notifications.models import ChannelType, DeliveryOutcome
from courier.operations import OperationResult

DEFAULT_TWILIO_API_URL = "https://api.twilio.com"
SMS_MAX_LENGTH = 1600


def format_sms(subject: str, body: str) -> str:
    """Prefix the subject and truncate to the SMS length limit."""
    text = f"{subject}: {body}" if subject else body
    if len(text) > SMS_MAX_LENGTH:
        text = text[: SMS_MAX_LENGTH - 3] + "..."
    return text


class SmsAdapter(ChannelAdapter):
    """Shared E.164 validation for SMS providers."""

    channel_type = ChannelType.SMS

    def validate_recipient(self, recipient: str) -> OperationResult:
        phone = (recipient or "").strip()
        if not phone.startswith("+"):
            return OperationResult.permanent_error(
                "phone number must be in E.164 format (+1234567890)",
                error_code="INVALID_PHONE_FORMAT",
            )
        digits = phone[1:]
        if not digits.isdigit() or len(digits) < 7 or len(digits) > 15:
            return OperationResult.permanent_error(
                "phone number must have 7-15 digits after +",
                error_code="INVALID_PHONE_LENGTH",
            )
        return OperationResult.success(data={"recipient": phone})


class TwilioAdapter(SmsAdapter):
    """SMS via the Twilio Messages REST API.

    Config keys: account_sid, auth_token, from_number, api_url (optional)
    """

    provider = "twilio"
    required_config = ("account_sid", "auth_token", "from_number")

    def _account_url(self) -> str:
        base = (self.config.get("api_url") or DEFAULT_TWILIO_API_URL).rstrip("/")
        return f"{base}/2010-04-01/Accounts/{self.config['account_sid']}"

    def _auth(self) -> tuple:
        return (self.config["account_sid"], self.config["auth_token"])

    def _send(self, recipient: str, subject: str, body: str) -> DeliveryOutcome:
        result = send_request(
            "POST",
            f"{self._account_url()}/Messages.json",
            self.provider,
            timeout=self.timeout,
            data={
                "To": recipient,
                "From": self.config["from_number"],
                "Body": format_sms(subject, body),
            },
            auth=self._auth(),
        )
        external_id = result.data.get("sid") if isinstance(result.data, dict) else None
        return outcome_from_result(result, external_id=external_id)

    def health_check(self) -> OperationResult:
        """Fetch the account resource to validate credentials."""
        if self.missing_config():
            return OperationResult.permanent_error(
                "Twilio credentials not configured", error_code="NOT_CONFIGURED"
            )
        result = send_request(
            "GET",
            f"{self._account_url()}.json",
            self.provider,
            timeout=self.timeout,
            auth=self._auth(),
        )
        if result.is_success:
            return OperationResult.success(message="Twilio credentials valid")
        return result


def create_jwt_token(secret: str, client_id: str) -> str:
    """Generate a GC Notify bearer token.

    Claims are `iss` (the client id) and `iat` (epoch seconds, UTC), signed
    with HS256.

    Raises:
        ValueError: Missing secret or client id
    """
    if not secret:
        raise ValueError("Missing secret key")
    if not client_id:
        raise ValueError("Missing client id")

    headers = {"typ": "JWT", "alg": "HS256"}
    claims = {"iss": client_id, "iat": calendar.timegm(time.gmtime())}
    return jwt.encode(payload=claims, key=secret, headers=headers)


class GCNotifyAdapter(SmsAdapter):
    """SMS via GC Notify `v2/notifications/sms`.

    The configured template must render a single `((message))` field.

    Config keys: user_name, client_secret, api_url, template_id
    """

    provider = "gc_notify"
    required_config = ("user_name", "client_secret", "api_url", "template_id")

    def _headers(self) -> dict:
        token = create_jwt_token(self.config["client_secret"], self.config["user_name"])
        return bearer_headers(token)

    def _send(self, recipient: str, subject: str, body: str) -> DeliveryOutcome:
        result = send_request(
            "POST",
            f"{self.config['api_url'].rstrip('/')}/v2/notifications/sms",
            self.provider,
            timeout=self.timeout,
            json={
                "phone_number": recipient,
                "template_id": self.config["template_id"],
                "personalisation": {"message": format_sms(subject, body)},
            },
            headers=self._headers(),
        )
        external_id = result.data.get("id") if isinstance(result.data, dict) else None
        return outcome_from_result(result, external_id=external_id)

    def health_check(self) -> OperationResult:
        """Validate credentials by building a signed token."""
        if self.missing_config():
            return OperationResult.permanent_error(
                "GC Notify credentials not configured", error_code="NOT_CONFIGURED"
            )
        try:
            self._headers()
        except (ValueError, jwt.PyJWTError) as e:
            return OperationResult.permanent_error(
                f"failed to create authorization header: {e}",
                error_code="AUTH_HEADER_FAILED",
            )
        return OperationResult.success(
            message="GC Notify API credentials valid",
            data={"api_url": self.config["api_url"]},
        )
