"""
Advice chain — ordered interceptors wrapped around an invocation.

Each advice receives an Invocation and decides what to do around it:
run code before/after invocation.proceed(), transform the result, or
short-circuit by returning without proceeding at all.

The first advice in the chain is the outermost:

    chain = AdviceChain([a, b])
    handler = chain.wrap(target, "handle_message")
    await handler(msg)      # a → b → target → b → a
"""
from __future__ import annotations

import abc
import structlog
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional

from core.callables import describe
from models.schemas import Message

logger = structlog.get_logger()

Target = Callable[[Message], Awaitable[Any]]


@dataclass(frozen=True)
class Invocation:
    """One call passing through one advice."""
    name: str
    message: Message
    _next: Target

    async def proceed(self, message: Optional[Message] = None) -> Any:
        """Continue down the chain, optionally with a replacement message."""
        return await self._next(message if message is not None else self.message)


class Advice(abc.ABC):

    @abc.abstractmethod
    async def invoke(self, invocation: Invocation) -> Any:
        ...

    @property
    def name(self) -> str:
        return type(self).__name__


class FunctionAdvice(Advice):
    """Create an advice from an async function taking the invocation."""

    def __init__(self, fn: Callable[[Invocation], Awaitable[Any]], name: str = ""):
        self._fn = fn
        self._name = name or describe(fn)

    async def invoke(self, invocation: Invocation) -> Any:
        return await self._fn(invocation)

    @property
    def name(self) -> str:
        return self._name


def as_advice(advice: Any) -> Advice:
    if isinstance(advice, Advice):
        return advice
    if callable(advice):
        return FunctionAdvice(advice)
    raise TypeError(f"Not an advice: {advice!r}")


class AdviceChain:
    """Immutable, ordered sequence of advice. Order is fixed at construction."""

    def __init__(self, advice: Iterable[Advice] = ()):
        self._advice: tuple[Advice, ...] = tuple(as_advice(a) for a in advice)

    def wrap(self, target: Target, name: str) -> Target:
        if not self._advice:
            return target

        call_next = target
        for advice in reversed(self._advice):
            call_next = _bind(advice, call_next, name)
        return call_next

    @property
    def advice(self) -> tuple[Advice, ...]:
        return self._advice

    def __len__(self):
        return len(self._advice)

    def __iter__(self):
        return iter(self._advice)

    def __bool__(self):
        return bool(self._advice)

    def __repr__(self):
        return f"<AdviceChain [{', '.join(a.name for a in self._advice)}]>"


def _bind(advice: Advice, call_next: Target, name: str) -> Target:
    async def advised(message: Message) -> Any:
        return await advice.invoke(Invocation(name=name, message=message, _next=call_next))
    advised.__qualname__ = f"advised[{advice.name}]"
    return advised
