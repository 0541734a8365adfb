"""
Message sources — things a poller can pull from besides a PollableChannel.
"""
from __future__ import annotations

import abc
from typing import Any, Callable, Optional, Union

from channels.base import PollableChannel
from core.callables import call, describe
from models.schemas import Message


class MessageSource(abc.ABC):

    @abc.abstractmethod
    async def receive(self, timeout: Optional[float] = None) -> Optional[Message]:
        ...


class FunctionMessageSource(MessageSource):
    """
    Adapts a callable returning a payload, a Message or None.

    The callable is expected to return immediately, so the receive timeout
    does not apply. Extra headers are added to every message it produces.
    """

    def __init__(self, fn: Callable[[], Any], **headers: Any):
        self.fn = fn
        self.headers = headers

    async def receive(self, timeout: Optional[float] = None) -> Optional[Message]:
        result = await call(self.fn)
        if result is None:
            return None
        if isinstance(result, Message):
            return result.with_headers(**self.headers) if self.headers else result
        return Message(payload=result, headers=self.headers)

    def __repr__(self):
        return f"<FunctionMessageSource {describe(self.fn)}>"


Pollable = Union[PollableChannel, MessageSource]
