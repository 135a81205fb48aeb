"""Delivery channel registry — realtime push and email.

Fake adapters are the default; tests reach the same singletons through
`get_channel` to configure failures and inspect what was sent.
"""

from enum import Enum


class ChannelType(Enum):
    EMAIL = "email"
    PUSH = "push"


_channel_instances: dict[str, object] = {}


def get_channel(channel_type: str):
    """Return the configured channel adapter (singleton per channel type)."""
    channel_type = ChannelType(channel_type).value
    if channel_type not in _channel_instances:
        if channel_type == ChannelType.EMAIL.value:
            from aftersales.channel.fake_email import FakeEmailAdapter

            _channel_instances[channel_type] = FakeEmailAdapter()
        else:
            from aftersales.channel.fake_push import FakePushAdapter

            _channel_instances[channel_type] = FakePushAdapter()

    return _channel_instances[channel_type]


def set_channel(channel_type: str, adapter) -> None:
    """Install a specific adapter, e.g. a production email provider."""
    _channel_instances[ChannelType(channel_type).value] = adapter


def reset_channels():
    """Reset all channel singletons (useful for testing)."""
    _channel_instances.clear()
