"""
Direct Channel — synchronous, unbuffered point-to-point dispatch.

send() invokes one subscribed handler in the sender's own task and returns
once that handler is done. Subscribers are load-balanced round-robin; if a
handler raises, the next one is tried (failover) before the error is
reported to the sender.
"""
from __future__ import annotations

import structlog
from typing import Optional

from channels.base import SubscribableChannel
from core.callables import call
from core.errors import MessageDeliveryError
from models.schemas import Message

logger = structlog.get_logger()


class DirectChannel(SubscribableChannel):

    def __init__(self, name: str = "", failover: bool = True):
        super().__init__(name)
        self.failover = failover
        self._next_index = 0

    async def send(self, message: Message, timeout: Optional[float] = None) -> bool:
        handlers = list(self._handlers)
        if not handlers:
            self.metrics.record_send(ok=False)
            raise MessageDeliveryError(
                f"Dispatcher has no subscribers for channel '{self.name}'", message
            )

        start = self._next_index % len(handlers)
        self._next_index = start + 1
        ordered = handlers[start:] + handlers[:start]
        if not self.failover:
            ordered = ordered[:1]

        last_error: Optional[Exception] = None
        for handler in ordered:
            try:
                await call(handler, message)
                self.metrics.record_send()
                return True
            except Exception as e:
                last_error = e
                logger.warning("direct_dispatch_failed",
                               channel=self.name,
                               message_id=message.id,
                               error=str(e))

        self.metrics.record_send(ok=False)
        raise last_error
