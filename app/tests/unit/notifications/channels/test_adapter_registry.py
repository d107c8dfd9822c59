"""Unit tests for adapter lookup by (channel type, provider)."""

import pytest

from courier.notifications.channels import (
    ADAPTERS,
    SmtpAdapter,
    TelegramAdapter,
    build_adapter,
    is_supported,
)
from courier.notifications.models import ChannelType, NotificationChannel


@pytest.mark.unit
class TestAdapterLookup:
    def test_every_channel_type_has_an_adapter(self):
        assert {channel_type for channel_type, _ in ADAPTERS} == set(ChannelType)

    def test_is_supported(self):
        assert is_supported(ChannelType.EMAIL, "smtp")
        assert is_supported("sms", "gc_notify")
        assert not is_supported(ChannelType.SMS, "smtp")

    def test_build_adapter_passes_config_and_timeout(self):
        channel = NotificationChannel(
            name="bot", type=ChannelType.TELEGRAM, provider="telegram", config={"bot_token": "t"}
        )

        adapter = build_adapter(channel, timeout=4.0)

        assert isinstance(adapter, TelegramAdapter)
        assert adapter.config == {"bot_token": "t"}
        assert adapter.timeout == 4.0

    def test_build_adapter_copies_config(self):
        config = {"host": "localhost", "from_email": "a@example.com"}
        channel = NotificationChannel(
            name="mail", type=ChannelType.EMAIL, provider="smtp", config=config
        )

        adapter = build_adapter(channel)
        adapter.config["host"] = "changed"

        assert isinstance(adapter, SmtpAdapter)
        assert channel.config["host"] == "localhost"

    def test_unknown_provider(self):
        channel = NotificationChannel(name="x", type=ChannelType.PUSH, provider="apns")
        with pytest.raises(ValueError):
            build_adapter(channel)
