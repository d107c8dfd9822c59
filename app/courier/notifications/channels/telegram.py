"""Telegram channel adapter using the Bot API."""

from courier.clients.http import send_request
from courier.notifications.channels.base import ChannelAdapter, outcome_from_result
from courier.notifications.models import ChannelType, DeliveryOutcome
from courier.operations import OperationResult

DEFAULT_TELEGRAM_API_URL = "https://api.telegram.org"
TELEGRAM_MAX_LENGTH = 4096


class TelegramAdapter(ChannelAdapter):
    """Messages through the Telegram Bot API `sendMessage`.

    The recipient is a chat id (e.g. "123456", "-100123") or a public
    channel username ("@signals").

    Config keys: bot_token, api_url (optional)
    """

    channel_type = ChannelType.TELEGRAM
    provider = "telegram"
    required_config = ("bot_token",)

    def _method_url(self, method: str) -> str:
        base = (self.config.get("api_url") or DEFAULT_TELEGRAM_API_URL).rstrip("/")
        return f"{base}/bot{self.config['bot_token']}/{method}"

    def validate_recipient(self, recipient: str) -> OperationResult:
        chat_id = (recipient or "").strip()
        if chat_id.startswith("@") and len(chat_id) > 1:
            return OperationResult.success(data={"recipient": chat_id})
        if chat_id.lstrip("-").isdigit():
            return OperationResult.success(data={"recipient": chat_id})
        return OperationResult.permanent_error(
            "telegram recipient must be a chat id or @username",
            error_code="INVALID_CHAT_ID",
        )

    def _send(self, recipient: str, subject: str, body: str) -> DeliveryOutcome:
        text = f"{subject}\n\n{body}" if subject else body
        result = send_request(
            "POST",
            self._method_url("sendMessage"),
            self.provider,
            timeout=self.timeout,
            json={
                "chat_id": recipient,
                "text": text[:TELEGRAM_MAX_LENGTH],
                "disable_web_page_preview": True,
            },
        )
        external_id = None
        if result.is_success and isinstance(result.data, dict):
            message_id = (result.data.get("result") or {}).get("message_id")
            external_id = str(message_id) if message_id is not None else None
        return outcome_from_result(result, external_id=external_id)

    def health_check(self) -> OperationResult:
        """Call getMe to validate the bot token."""
        if self.missing_config():
            return OperationResult.permanent_error(
                "Telegram bot_token not configured", error_code="NOT_CONFIGURED"
            )
        result = send_request(
            "GET", self._method_url("getMe"), self.provider, timeout=self.timeout
        )
        if result.is_success:
            username = (result.data or {}).get("result", {}).get("username")
            return OperationResult.success(
                message=f"Telegram bot @{username} reachable", data={"username": username}
            )
        return result
