"""Channel adapter abstract base class.

All adapter implementations (email, SMS, push, Telegram, Discord, webhook)
implement this interface. `deliver()` never raises: every transport error is
mapped to a failed DeliveryOutcome.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import structlog

from courier.notifications.models import ChannelType, DeliveryOutcome
from courier.operations import OperationResult

logger = structlog.get_logger()


def outcome_from_result(
    result: OperationResult, external_id: Optional[str] = None
) -> DeliveryOutcome:
    """Map a transport OperationResult onto a DeliveryOutcome."""
    if result.is_success:
        return DeliveryOutcome.ok(external_id=external_id)
    return DeliveryOutcome.failed(
        result.message,
        retryable=result.is_retryable,
        retry_after=result.retry_after,
    )


class ChannelAdapter(ABC):
    """Abstract base class for channel adapters.

    Each adapter owns its transport client, credentials and error
    classification (rate limited vs. permanently invalid recipient), and
    always reports through the uniform DeliveryOutcome shape.

    Args:
        config: Provider configuration from the channel record
        timeout: Transport timeout in seconds for a single call

    Example Implementation:
        class TelegramAdapter(ChannelAdapter):
            channel_type = ChannelType.TELEGRAM
            provider = "telegram"

            def _send(self, recipient, subject, body):
                result = send_request("POST", url, "telegram", json=payload)
                return outcome_from_result(result)

            def health_check(self):
                return send_request("GET", me_url, "telegram")
    """

    channel_type: ChannelType
    provider: str
    required_config: tuple = ()

    def __init__(self, config: Optional[Dict[str, Any]] = None, timeout: float = 10.0):
        self.config = dict(config or {})
        self.timeout = timeout
        self.log = logger.bind(channel=self.channel_type.value, provider=self.provider)

    def deliver(self, recipient: str, subject: str, body: str) -> DeliveryOutcome:
        """Deliver one message. Never raises.

        Args:
            recipient: Channel-specific address
            subject: Subject line (ignored by channels without one)
            body: Message body

        Returns:
            DeliveryOutcome with success flag and error details
        """
        missing = self.missing_config()
        if missing:
            return DeliveryOutcome.failed(
                f"{self.provider} is missing configuration: {', '.join(missing)}"
            )

        recipient_check = self.validate_recipient(recipient)
        if not recipient_check.is_success:
            return DeliveryOutcome.failed(recipient_check.message, retryable=False)

        try:
            outcome = self._send(recipient.strip(), subject or "", body or "")
        except Exception as e:  # pylint: disable=broad-except
            self.log.error("channel_delivery_exception", error=str(e), exc_info=True)
            return DeliveryOutcome.failed(f"{type(e).__name__}: {e}")

        if outcome.success:
            self.log.debug("channel_delivery_succeeded", external_id=outcome.external_id)
        else:
            self.log.warning(
                "channel_delivery_failed",
                error=outcome.error,
                retryable=outcome.retryable,
            )
        return outcome

    def missing_config(self) -> list:
        return [key for key in self.required_config if not self.config.get(key)]

    def validate_recipient(self, recipient: str) -> OperationResult:
        """Check the recipient address format.

        Returns:
            OperationResult, PERMANENT_ERROR when the address can never work
        """
        if not recipient or not recipient.strip():
            return OperationResult.permanent_error(
                "recipient is empty", error_code="INVALID_RECIPIENT"
            )
        return OperationResult.success(data={"recipient": recipient.strip()})

    @abstractmethod
    def _send(self, recipient: str, subject: str, body: str) -> DeliveryOutcome:
        """Perform the transport call. May raise; `deliver()` maps exceptions."""
        pass

    @abstractmethod
    def health_check(self) -> OperationResult:
        """Check channel health (API connectivity, credentials).

        Returns:
            OperationResult indicating channel health
            - Success: API reachable, credentials valid
            - Failure: API unreachable or credentials invalid
        """
        pass
