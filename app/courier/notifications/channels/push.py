"""Push channel adapter: Firebase Cloud Messaging legacy HTTP API."""

from courier.clients.http import send_request
from courier.notifications.channels.base import ChannelAdapter, outcome_from_result
from courier.notifications.models import ChannelType, DeliveryOutcome
from courier.operations import OperationResult

DEFAULT_FCM_API_URL = "https://fcm.googleapis.com/fcm/send"

# Per-message errors reported inside a 200 response
PERMANENT_FCM_ERRORS = frozenset(
    {"NotRegistered", "InvalidRegistration", "MismatchSenderId", "MessageTooBig"}
)


class FcmAdapter(ChannelAdapter):
    """Push notifications through FCM `fcm/send`.

    The recipient is a device registration token.

    Config keys: server_key, api_url (optional)
    """

    channel_type = ChannelType.PUSH
    provider = "fcm"
    required_config = ("server_key",)

    def _post(self, payload: dict) -> OperationResult:
        return send_request(
            "POST",
            self.config.get("api_url") or DEFAULT_FCM_API_URL,
            self.provider,
            timeout=self.timeout,
            json=payload,
            headers={
                "Authorization": f"key={self.config['server_key']}",
                "Content-Type": "application/json",
            },
        )

    def _send(self, recipient: str, subject: str, body: str) -> DeliveryOutcome:
        result = self._post(
            {"to": recipient, "notification": {"title": subject, "body": body}}
        )
        if not result.is_success:
            return outcome_from_result(result)

        response = result.data if isinstance(result.data, dict) else {}
        results = response.get("results") or [{}]
        first = results[0]
        error = first.get("error")
        if error:
            return DeliveryOutcome.failed(
                f"FCM rejected message: {error}",
                retryable=error not in PERMANENT_FCM_ERRORS,
            )
        return DeliveryOutcome.ok(external_id=first.get("message_id"))

    def health_check(self) -> OperationResult:
        """Dry-run send: a valid key yields 200 even for a fake token."""
        if self.missing_config():
            return OperationResult.permanent_error(
                "FCM server_key not configured", error_code="NOT_CONFIGURED"
            )
        result = self._post({"registration_ids": ["health-check"], "dry_run": True})
        if result.is_success:
            return OperationResult.success(message="FCM server key valid")
        return result
