"""Channel adapters and the (type, provider) adapter registry."""

from typing import Dict, Tuple, Type

from courier.notifications.channels.base import ChannelAdapter, outcome_from_result
from courier.notifications.channels.discord import DiscordAdapter
from courier.notifications.channels.email import SendGridAdapter, SmtpAdapter
from courier.notifications.channels.push import FcmAdapter
from courier.notifications.channels.sms import GCNotifyAdapter, TwilioAdapter
from courier.notifications.channels.telegram import TelegramAdapter
from courier.notifications.channels.webhook import WebhookAdapter
from courier.notifications.models import ChannelType, NotificationChannel

ADAPTERS: Dict[Tuple[ChannelType, str], Type[ChannelAdapter]] = {
    (adapter.channel_type, adapter.provider): adapter
    for adapter in (
        SendGridAdapter,
        SmtpAdapter,
        TwilioAdapter,
        GCNotifyAdapter,
        FcmAdapter,
        TelegramAdapter,
        DiscordAdapter,
        WebhookAdapter,
    )
}


def is_supported(channel_type: ChannelType, provider: str) -> bool:
    return (ChannelType(channel_type), provider) in ADAPTERS


def build_adapter(channel: NotificationChannel, timeout: float = 10.0) -> ChannelAdapter:
    """Instantiate the adapter for a channel record.

    Raises:
        ValueError: No adapter for the channel's (type, provider)
    """
    adapter_cls = ADAPTERS.get((channel.type, channel.provider))
    if adapter_cls is None:
        raise ValueError(
            f"No adapter for channel type '{channel.type.value}' "
            f"with provider '{channel.provider}'"
        )
    return adapter_cls(config=channel.config, timeout=timeout)


__all__ = [
    "ADAPTERS",
    "ChannelAdapter",
    "DiscordAdapter",
    "FcmAdapter",
    "GCNotifyAdapter",
    "SendGridAdapter",
    "SmtpAdapter",
    "TelegramAdapter",
    "TwilioAdapter",
    "WebhookAdapter",
    "build_adapter",
    "is_supported",
    "outcome_from_result",
]
