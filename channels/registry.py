"""
Channel Registry — explicit name → channel lookup.

The assembly layer registers channels by name and passes the registry into
builders that accept channel names (discard channels, error channels,
reply_channel headers). Nothing is resolved through a global container.
"""
from __future__ import annotations

import structlog
from typing import Any, Optional, Union

from channels.base import MessageChannel, NullChannel
from channels.direct import DirectChannel
from channels.queue import QueueChannel
from config.settings import ChannelSettings, Settings
from core.errors import DestinationResolutionError

logger = structlog.get_logger()

ChannelRef = Union[MessageChannel, str]


class ChannelRegistry:

    def __init__(self):
        self._channels: dict[str, MessageChannel] = {}

    def register(self, channel: MessageChannel, name: str = "") -> MessageChannel:
        name = name or channel.name
        existing = self._channels.get(name)
        if existing is not None and existing is not channel:
            raise ValueError(f"Channel name '{name}' is already registered")
        self._channels[name] = channel
        return channel

    def get(self, name: str) -> Optional[MessageChannel]:
        return self._channels.get(name)

    def resolve(self, ref: ChannelRef) -> MessageChannel:
        """Return the channel itself, or look a name up; unknown names raise."""
        if isinstance(ref, MessageChannel):
            return ref
        channel = self._channels.get(ref)
        if channel is None:
            raise DestinationResolutionError(f"No channel named '{ref}' is registered")
        return channel

    def names(self) -> list[str]:
        return list(self._channels)

    def __contains__(self, name: str) -> bool:
        return name in self._channels

    def stats(self) -> dict[str, Any]:
        return {name: ch.metrics.stats for name, ch in self._channels.items()}

    @classmethod
    def from_settings(cls, settings: Settings) -> ChannelRegistry:
        registry = cls()
        for name, ch_settings in settings.channels.items():
            registry.register(create_channel(name, ch_settings))
        logger.info("channels_registered", channels=registry.names())
        return registry


def create_channel(name: str, ch_settings: ChannelSettings) -> MessageChannel:
    """Factory: build a channel from its settings."""
    kind = ch_settings.type
    if kind == "queue":
        return QueueChannel(name=name, capacity=ch_settings.capacity)
    if kind == "direct":
        return DirectChannel(name=name)
    if kind == "null":
        return NullChannel(name=name)
    raise ValueError(f"Unknown channel type '{kind}' for channel '{name}'")
