"""Channel registry.

Holds configured delivery channels, selects the channel for a dispatch and
tracks channel health. Counters are incremented store-side so concurrent
workers never lose updates.

Selection policy: among enabled and healthy channels of the requested type,
the earliest created channel wins (ties broken by id).

Health policy:
- A retryable delivery failure increments consecutive_errors; reaching the
  failure threshold marks the channel unhealthy.
- A permanent failure (bad recipient) counts toward error_count only.
- A successful delivery or health probe marks the channel healthy again.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from courier.logging import get_module_logger
from courier.notifications.channels import ChannelAdapter, build_adapter, is_supported
from courier.notifications.errors import (
    NoHealthyChannelError,
    NotFoundError,
    ValidationError,
)
from courier.notifications.models import (
    ChannelType,
    LogStatus,
    NotificationChannel,
    NotificationLog,
    utc_now,
)
from courier.notifications.store import ChannelStore, LogStore
from courier.operations import OperationResult

logger = get_module_logger()

EDITABLE_FIELDS = frozenset(
    {"name", "description", "provider", "config", "is_enabled", "health_check_interval"}
)
TEST_SUBJECT = "Test notification"
TEST_MESSAGE = "This is a test notification from the notification service."


class ChannelRegistry:
    """Configured delivery channels and their health.

    Args:
        store: Channel persistence backend
        log_store: Log store for test deliveries
        failure_threshold: Consecutive errors before a channel is unhealthy
        adapter_factory: Builds the adapter for a channel record
        adapter_timeout: Transport timeout passed to adapters
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        store: ChannelStore,
        log_store: LogStore,
        failure_threshold: int = 5,
        adapter_factory: Callable[..., ChannelAdapter] = build_adapter,
        adapter_timeout: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.store = store
        self.log_store = log_store
        self.failure_threshold = failure_threshold
        self.adapter_factory = adapter_factory
        self.adapter_timeout = adapter_timeout
        self.clock = clock

    # Administration

    def register_channel(
        self,
        name: str,
        type: str,
        provider: str,
        config: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
        is_enabled: bool = True,
        health_check_interval: int = 300,
    ) -> NotificationChannel:
        """Create a channel record.

        Raises:
            ValidationError: Unknown type, unsupported provider or empty fields
        """
        try:
            channel_type = ChannelType(type)
        except ValueError as exc:
            raise ValidationError(f"unknown channel type: {type}") from exc
        if not is_supported(channel_type, provider):
            raise ValidationError(
                f"provider '{provider}' is not supported for {channel_type.value}"
            )

        now = self.clock()
        try:
            channel = NotificationChannel(
                name=name,
                type=channel_type,
                provider=provider,
                config=config or {},
                description=description,
                is_enabled=is_enabled,
                health_check_interval=health_check_interval,
                created_at=now,
                updated_at=now,
            )
        except PydanticValidationError as exc:
            raise ValidationError(f"invalid channel: {exc}") from exc

        saved = self.store.save_channel(channel)
        logger.info(
            "notification_channel_registered",
            channel_id=saved.id,
            channel=saved.type.value,
            provider=saved.provider,
        )
        return saved

    def update_channel(self, channel_id: str, **changes: Any) -> NotificationChannel:
        """Edit a channel (enable/disable, config, name...).

        Raises:
            NotFoundError: Unknown channel id
            ValidationError: Field not editable or provider unsupported
        """
        current = self.get_channel(channel_id)
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"fields cannot be edited: {', '.join(sorted(unknown))}")
        if "provider" in changes and not is_supported(current.type, changes["provider"]):
            raise ValidationError(
                f"provider '{changes['provider']}' is not supported for {current.type.value}"
            )
        if "health_check_interval" in changes and int(changes["health_check_interval"]) < 1:
            raise ValidationError("health_check_interval must be at least 1")

        changes["updated_at"] = self.clock()
        updated = self.store.update_channel(channel_id, changes)
        if updated is None:
            raise NotFoundError(f"channel not found: {channel_id}")
        logger.info(
            "notification_channel_updated",
            channel_id=channel_id,
            fields=sorted(k for k in changes if k != "updated_at"),
        )
        return updated

    def delete_channel(self, channel_id: str) -> None:
        """Remove a channel. Queued items pick a channel by type at dispatch.

        Raises:
            NotFoundError: Unknown channel id
        """
        if not self.store.delete_channel(channel_id):
            raise NotFoundError(f"channel not found: {channel_id}")
        logger.info("notification_channel_deleted", channel_id=channel_id)

    def get_channel(self, channel_id: str) -> NotificationChannel:
        channel = self.store.get_channel(channel_id)
        if channel is None:
            raise NotFoundError(f"channel not found: {channel_id}")
        return channel

    def list_channels(
        self, channel_type: Optional[ChannelType | str] = None
    ) -> List[NotificationChannel]:
        if channel_type is None:
            return self.store.list_channels()
        try:
            parsed = ChannelType(channel_type)
        except ValueError as exc:
            raise ValidationError(f"unknown channel type: {channel_type}") from exc
        return self.store.list_channels(parsed)

    # Dispatch

    def resolve(self, channel_type: ChannelType) -> NotificationChannel:
        """Return the channel to use for `channel_type`.

        Raises:
            NoHealthyChannelError: No enabled and healthy channel of that type
        """
        for channel in self.store.list_channels(channel_type):
            if channel.is_available:
                return channel
        raise NoHealthyChannelError(
            f"no enabled and healthy {ChannelType(channel_type).value} channel"
        )

    def get_adapter(self, channel: NotificationChannel) -> ChannelAdapter:
        return self.adapter_factory(channel, timeout=self.adapter_timeout)

    def record_success(self, channel_id: str) -> Optional[NotificationChannel]:
        channel = self.store.record_channel_success(channel_id, self.clock())
        if channel is None:
            logger.warning("channel_success_not_recorded", channel_id=channel_id)
        return channel

    def record_failure(
        self, channel_id: str, error: str, retryable: bool = True
    ) -> Optional[NotificationChannel]:
        """Count a failed delivery and flip health at the threshold."""
        now = self.clock()
        channel = self.store.record_channel_failure(
            channel_id, error, now, count_consecutive=retryable
        )
        if channel is None:
            logger.warning("channel_failure_not_recorded", channel_id=channel_id)
            return None

        if (
            retryable
            and channel.is_healthy
            and channel.consecutive_errors >= self.failure_threshold
        ):
            flipped = self.store.mark_channel_unhealthy(
                channel_id, self.failure_threshold, now
            )
            if flipped is not None:
                logger.warning(
                    "channel_marked_unhealthy",
                    channel_id=channel_id,
                    channel=flipped.type.value,
                    consecutive_errors=flipped.consecutive_errors,
                    threshold=self.failure_threshold,
                    error=error,
                )
                return flipped
        return channel

    # Health checks

    def check_channel(self, channel: NotificationChannel) -> OperationResult:
        """Probe one channel and store the result.

        Updates is_healthy and last_health_check only; delivery counters are
        left untouched.
        """
        try:
            result = self.get_adapter(channel).health_check()
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "channel_health_check_exception",
                channel_id=channel.id,
                error=str(e),
                exc_info=True,
            )
            result = OperationResult.transient_error(
                f"health check raised {type(e).__name__}: {e}",
                error_code="HEALTH_CHECK_ERROR",
            )

        self.store.record_health_check(
            channel.id,
            healthy=result.is_success,
            now=self.clock(),
            error=None if result.is_success else result.message,
        )
        logger.info(
            "channel_health_checked",
            channel_id=channel.id,
            channel=channel.type.value,
            healthy=result.is_success,
            message=result.message,
        )
        return result

    def run_health_checks(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Probe enabled channels whose health check interval has elapsed.

        Returns:
            Stats dict with checked, healthy and unhealthy counts
        """
        now = now or self.clock()
        stats = {"checked": 0, "healthy": 0, "unhealthy": 0}
        for channel in self.store.list_channels():
            if not channel.is_enabled:
                continue
            if channel.last_health_check is not None and (
                channel.last_health_check
                + timedelta(seconds=channel.health_check_interval)
                > now
            ):
                continue
            result = self.check_channel(channel)
            stats["checked"] += 1
            stats["healthy" if result.is_success else "unhealthy"] += 1
        if stats["checked"]:
            logger.info("channel_health_checks_completed", **stats)
        return stats

    def test_channel(
        self,
        channel_id: str,
        recipient: Optional[str] = None,
        message: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Probe a channel and optionally send a real test message.

        Returns:
            {"success": bool, "message": str}

        Raises:
            NotFoundError: Unknown channel id
        """
        channel = self.get_channel(channel_id)
        probe = self.check_channel(channel)
        if not probe.is_success:
            return {"success": False, "message": f"Health check failed: {probe.message}"}
        if not recipient:
            return {"success": True, "message": probe.message}

        outcome = self.get_adapter(channel).deliver(
            recipient, TEST_SUBJECT, message or TEST_MESSAGE
        )
        self.log_store.append_log(
            NotificationLog(
                channel=channel.type,
                channel_id=channel.id,
                provider=channel.provider,
                recipient=recipient,
                subject=TEST_SUBJECT,
                status=LogStatus.SENT if outcome.success else LogStatus.FAILED,
                error_message=outcome.error,
                created_at=self.clock(),
            )
        )
        if outcome.success:
            self.record_success(channel.id)
            return {"success": True, "message": f"Test message sent to {recipient}"}
        self.record_failure(channel.id, outcome.error or "unknown error", outcome.retryable)
        return {"success": False, "message": f"Test message failed: {outcome.error}"}

    # Bootstrap

    def bootstrap_channels(self, settings) -> List[NotificationChannel]:
        """Create channels for transports whose credentials are configured.

        A channel is only created when no channel of that type exists yet.

        Returns:
            Channels created
        """
        created = []
        interval = settings.worker.health_check_interval_seconds
        for name, channel_type, provider, config in _configured_transports(settings):
            if self.store.list_channels(channel_type):
                continue
            created.append(
                self.register_channel(
                    name=name,
                    type=channel_type.value,
                    provider=provider,
                    config=config,
                    description="Created from environment configuration",
                    health_check_interval=interval,
                )
            )
        if created:
            logger.info(
                "notification_channels_bootstrapped",
                channels=[c.name for c in created],
            )
        return created


def _configured_transports(settings):
    """Yield (name, type, provider, config) for each configured transport."""
    sendgrid = settings.sendgrid
    if sendgrid.SENDGRID_API_KEY:
        yield "SendGrid email", ChannelType.EMAIL, "sendgrid", {
            "api_key": sendgrid.SENDGRID_API_KEY,
            "from_email": sendgrid.SENDGRID_FROM_EMAIL,
            "api_url": sendgrid.SENDGRID_API_URL,
        }

    smtp = settings.smtp
    if smtp.SMTP_HOST:
        yield "SMTP email", ChannelType.EMAIL, "smtp", {
            "host": smtp.SMTP_HOST,
            "port": smtp.SMTP_PORT,
            "username": smtp.SMTP_USERNAME,
            "password": smtp.SMTP_PASSWORD,
            "use_tls": smtp.SMTP_USE_TLS,
            "from_email": smtp.SMTP_FROM_EMAIL,
        }

    twilio = settings.twilio
    if twilio.TWILIO_ACCOUNT_SID and twilio.TWILIO_AUTH_TOKEN:
        yield "Twilio SMS", ChannelType.SMS, "twilio", {
            "account_sid": twilio.TWILIO_ACCOUNT_SID,
            "auth_token": twilio.TWILIO_AUTH_TOKEN,
            "from_number": twilio.TWILIO_FROM_NUMBER,
            "api_url": twilio.TWILIO_API_URL,
        }

    notify = settings.gc_notify
    if notify.NOTIFY_USER_NAME and notify.NOTIFY_CLIENT_SECRET:
        yield "GC Notify SMS", ChannelType.SMS, "gc_notify", {
            "user_name": notify.NOTIFY_USER_NAME,
            "client_secret": notify.NOTIFY_CLIENT_SECRET,
            "api_url": notify.NOTIFY_API_URL,
            "template_id": notify.NOTIFY_SMS_TEMPLATE_ID,
        }

    push = settings.push
    if push.FCM_SERVER_KEY:
        yield "FCM push", ChannelType.PUSH, "fcm", {
            "server_key": push.FCM_SERVER_KEY,
            "api_url": push.FCM_API_URL,
        }

    telegram = settings.telegram
    if telegram.TELEGRAM_BOT_TOKEN:
        yield "Telegram bot", ChannelType.TELEGRAM, "telegram", {
            "bot_token": telegram.TELEGRAM_BOT_TOKEN,
            "api_url": telegram.TELEGRAM_API_URL,
        }

    discord = settings.discord
    if discord.DISCORD_WEBHOOK_URL:
        yield "Discord webhook", ChannelType.DISCORD, "discord", {
            "webhook_url": discord.DISCORD_WEBHOOK_URL,
            "username": discord.DISCORD_USERNAME,
        }

    webhook = settings.webhook
    if webhook.WEBHOOK_URL:
        yield "Webhook", ChannelType.WEBHOOK, "webhook", {
            "url": webhook.WEBHOOK_URL,
            "signing_secret": webhook.WEBHOOK_SIGNING_SECRET,
        }
