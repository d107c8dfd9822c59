"""Discord channel adapter using webhook execution."""

from courier.clients.http import send_request
from courier.notifications.channels.base import ChannelAdapter, outcome_from_result
from courier.notifications.models import ChannelType, DeliveryOutcome
from courier.operations import OperationResult

EMBED_TITLE_MAX = 256
EMBED_DESCRIPTION_MAX = 4096
EMBED_COLOR = 0x3B82F6


class DiscordAdapter(ChannelAdapter):
    """Messages posted to a Discord channel webhook as an embed.

    The recipient is a Discord user id (mentioned in the message) or any
    label for the destination channel.

    Config keys: webhook_url, username (optional)
    """

    channel_type = ChannelType.DISCORD
    provider = "discord"
    required_config = ("webhook_url",)

    def _send(self, recipient: str, subject: str, body: str) -> DeliveryOutcome:
        payload = {
            "username": self.config.get("username") or "Courier",
            "embeds": [
                {
                    "title": subject[:EMBED_TITLE_MAX],
                    "description": body[:EMBED_DESCRIPTION_MAX],
                    "color": EMBED_COLOR,
                }
            ],
        }
        if recipient.isdigit():
            payload["content"] = f"<@{recipient}>"
            payload["allowed_mentions"] = {"users": [recipient]}

        result = send_request(
            "POST",
            self.config["webhook_url"],
            self.provider,
            timeout=self.timeout,
            params={"wait": "true"},
            json=payload,
        )
        external_id = result.data.get("id") if isinstance(result.data, dict) else None
        return outcome_from_result(result, external_id=external_id)

    def health_check(self) -> OperationResult:
        """GET the webhook object; 200 means the webhook still exists."""
        if self.missing_config():
            return OperationResult.permanent_error(
                "Discord webhook_url not configured", error_code="NOT_CONFIGURED"
            )
        result = send_request(
            "GET", self.config["webhook_url"], self.provider, timeout=self.timeout
        )
        if result.is_success:
            return OperationResult.success(message="Discord webhook reachable")
        return result
