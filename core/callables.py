"""Helpers for user callbacks that may be plain functions or coroutines."""
from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Union

MaybeAwaitable = Union[Any, Awaitable[Any]]


async def maybe_await(value: MaybeAwaitable) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def call(fn: Callable[..., MaybeAwaitable], *args: Any) -> Any:
    """Call fn(*args) and await the result if fn turned out to be async."""
    return await maybe_await(fn(*args))


def describe(fn: Any) -> str:
    return getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None) or type(fn).__name__
