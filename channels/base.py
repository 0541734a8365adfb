"""
Channel abstractions — the send/receive endpoints connecting pipeline stages.

Provides:
- MessageChannel: send(message, timeout) → bool
- PollableChannel: receive(timeout) → Optional[Message]
- SubscribableChannel: push-style channels with subscribed handlers
- ChannelMetrics: per-channel send/receive/failure counters
- NullChannel: accepts and drops every message
"""
from __future__ import annotations

import abc
import itertools
import structlog
from typing import Any, Awaitable, Callable, Optional, Union

from models.schemas import Message

logger = structlog.get_logger()

# async or sync callable receiving a message
MessageHandler = Callable[[Message], Union[Any, Awaitable[Any]]]

_anonymous = itertools.count(1)


def _default_name(kind: str) -> str:
    return f"{kind}#{next(_anonymous)}"


# ══════════════════════════════════════════════════════════════
#  CHANNEL METRICS
# ══════════════════════════════════════════════════════════════

class ChannelMetrics:
    """Tracks per-channel send, receive and failure counts."""

    def __init__(self, channel: str):
        self.channel = channel
        self.sent: int = 0
        self.send_failures: int = 0
        self.received: int = 0

    def record_send(self, ok: bool = True):
        if ok:
            self.sent += 1
        else:
            self.send_failures += 1

    def record_receive(self):
        self.received += 1

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "sent": self.sent,
            "send_failures": self.send_failures,
            "received": self.received,
        }


# ══════════════════════════════════════════════════════════════
#  ABSTRACT CHANNELS
# ══════════════════════════════════════════════════════════════

class MessageChannel(abc.ABC):
    """A channel messages can be sent to."""

    def __init__(self, name: str = ""):
        self.name = name or _default_name(type(self).__name__)
        self.metrics = ChannelMetrics(self.name)

    @abc.abstractmethod
    async def send(self, message: Message, timeout: Optional[float] = None) -> bool:
        """
        Send a message, waiting at most `timeout` seconds.
        None waits indefinitely, 0 does not wait at all.
        Returns False if the message could not be sent in time.
        """
        ...

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}>"


class PollableChannel(MessageChannel):
    """A channel consumers pull messages from."""

    @abc.abstractmethod
    async def receive(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Return the next message, or None if none arrived within `timeout`."""
        ...


class SubscribableChannel(MessageChannel):
    """A channel that pushes every message to its subscribed handlers."""

    def __init__(self, name: str = ""):
        super().__init__(name)
        self._handlers: list[MessageHandler] = []

    def subscribe(self, handler: MessageHandler) -> bool:
        if handler in self._handlers:
            return False
        self._handlers.append(handler)
        logger.debug("channel_subscribed", channel=self.name, subscribers=len(self._handlers))
        return True

    def unsubscribe(self, handler: MessageHandler) -> bool:
        try:
            self._handlers.remove(handler)
        except ValueError:
            return False
        return True

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)


class NullChannel(MessageChannel):
    """Accepts every message and drops it."""

    def __init__(self, name: str = "null_channel"):
        super().__init__(name)

    async def send(self, message: Message, timeout: Optional[float] = None) -> bool:
        logger.debug("message_dropped", channel=self.name, message_id=message.id)
        self.metrics.record_send()
        return True
