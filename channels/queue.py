"""
Queue Channel — buffered, pollable channel backed by an asyncio.Queue.

Producers send() into the buffer, a polling consumer receive()s from it.
Single-process only; no persistence.

Timeout semantics for both directions:
    None  → wait until the operation can complete
    0     → do not wait
    > 0   → wait at most that many seconds
"""
from __future__ import annotations

import asyncio
import structlog
from typing import Optional

from channels.base import PollableChannel
from models.schemas import Message

logger = structlog.get_logger()


class QueueChannel(PollableChannel):

    def __init__(self, name: str = "", capacity: Optional[int] = None):
        super().__init__(name)
        if capacity is not None and capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity or 0)

    async def send(self, message: Message, timeout: Optional[float] = None) -> bool:
        try:
            if timeout is None:
                await self._queue.put(message)
            elif timeout <= 0:
                self._queue.put_nowait(message)
            else:
                await asyncio.wait_for(self._queue.put(message), timeout=timeout)
        except (asyncio.QueueFull, asyncio.TimeoutError):
            self.metrics.record_send(ok=False)
            logger.warning("queue_channel_full",
                           channel=self.name,
                           capacity=self.capacity,
                           timeout=timeout)
            return False
        self.metrics.record_send()
        return True

    async def receive(self, timeout: Optional[float] = None) -> Optional[Message]:
        try:
            if timeout is None:
                message = await self._queue.get()
            elif timeout <= 0:
                message = self._queue.get_nowait()
            else:
                message = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except (asyncio.QueueEmpty, asyncio.TimeoutError):
            return None
        self.metrics.record_receive()
        return message

    def purge(self) -> list[Message]:
        """Remove and return every buffered message."""
        drained = []
        while not self._queue.empty():
            drained.append(self._queue.get_nowait())
        if drained:
            logger.info("queue_channel_purged", channel=self.name, count=len(drained))
        return drained

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    @property
    def remaining_capacity(self) -> Optional[int]:
        if self.capacity is None:
            return None
        return self.capacity - self._queue.qsize()
