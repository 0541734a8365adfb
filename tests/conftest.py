"""Shared test fixtures for flowgate."""
import pytest
from typing import Any

from advice.chain import Advice, Invocation
from channels.queue import QueueChannel
from channels.registry import ChannelRegistry
from models.schemas import Message
from scheduling.triggers import PeriodicTrigger


class RecordingAdvice(Advice):
    """Appends enter/exit markers to a shared log around every invocation."""

    def __init__(self, label: str, log: list[str]):
        self.label = label
        self.log = log

    async def invoke(self, invocation: Invocation) -> Any:
        self.log.append(f"enter:{self.label}")
        try:
            return await invocation.proceed()
        finally:
            self.log.append(f"exit:{self.label}")

    @property
    def name(self) -> str:
        return self.label


class FailingChannel(QueueChannel):
    """A channel whose send always raises."""

    async def send(self, message, timeout=None):
        raise ConnectionError("channel unavailable")


class RefusingChannel(QueueChannel):
    """A channel whose send always times out."""

    async def send(self, message, timeout=None):
        return False


@pytest.fixture
def call_log() -> list[str]:
    return []


@pytest.fixture
def source() -> QueueChannel:
    return QueueChannel(name="source")


@pytest.fixture
def output() -> QueueChannel:
    return QueueChannel(name="output")


@pytest.fixture
def discard() -> QueueChannel:
    return QueueChannel(name="discard")


@pytest.fixture
def registry(output, discard) -> ChannelRegistry:
    reg = ChannelRegistry()
    reg.register(output)
    reg.register(discard)
    reg.register(QueueChannel(name="errors"))
    return reg


@pytest.fixture
def trigger() -> PeriodicTrigger:
    return PeriodicTrigger(period=0.01)


@pytest.fixture
def order() -> Message:
    return Message.of({"order_id": "ORD-1042", "status": "paid", "total": 420.0},
                      priority="high")


async def fill(channel: QueueChannel, *payloads: Any) -> list[Message]:
    messages = [Message.of(p) for p in payloads]
    for m in messages:
        assert await channel.send(m, timeout=0)
    return messages


def drain(channel: QueueChannel) -> list[Any]:
    return [m.payload for m in channel.purge()]
