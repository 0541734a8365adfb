"""Message channels: direct, queue and null channels plus the name registry."""
from channels.base import (
    MessageChannel,
    PollableChannel,
    SubscribableChannel,
    NullChannel,
    ChannelMetrics,
    MessageHandler,
)
from channels.direct import DirectChannel
from channels.queue import QueueChannel
from channels.registry import ChannelRegistry, create_channel

__all__ = [
    "MessageChannel", "PollableChannel", "SubscribableChannel",
    "NullChannel", "ChannelMetrics", "MessageHandler",
    "DirectChannel", "QueueChannel",
    "ChannelRegistry", "create_channel",
]
