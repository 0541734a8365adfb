"""
Error handlers — where run-time processing errors go when a poller has one.

An error handler absorbs the error: once handle() returns normally the error
does not propagate further. Raising from handle() propagates to the poll cycle.
"""
from __future__ import annotations

import abc
import structlog
from typing import Any, Callable, Optional

from channels.base import MessageChannel
from channels.registry import ChannelRef, ChannelRegistry
from core.callables import call
from core.errors import DestinationResolutionError, MessagingError
from models.schemas import ErrorMessage, MessageHeaders

logger = structlog.get_logger()


class ErrorHandler(abc.ABC):

    @abc.abstractmethod
    async def handle(self, error: Exception) -> None:
        ...


def _failed_message(error: Exception):
    return error.failed_message if isinstance(error, MessagingError) else None


class LoggingErrorHandler(ErrorHandler):
    """Logs the error with its failed message and suppresses it."""

    async def handle(self, error: Exception) -> None:
        failed = _failed_message(error)
        logger.error("message_handling_error",
                     error=str(error),
                     error_type=type(error).__name__,
                     message_id=failed.id if failed is not None else None,
                     exc_info=error)


class FunctionErrorHandler(ErrorHandler):
    """Adapts a plain (sync or async) callable taking the error."""

    def __init__(self, fn: Callable[[Exception], Any]):
        self.fn = fn

    async def handle(self, error: Exception) -> None:
        await call(self.fn, error)


class MessagePublishingErrorHandler(ErrorHandler):
    """
    Publishes an ErrorMessage for each error.

    The target is the failed message's `error_channel` header (a channel or
    a registry name) when present, otherwise the default channel. Errors
    that cannot be published anywhere are logged.
    """

    def __init__(
        self,
        default_channel: Optional[ChannelRef] = None,
        registry: Optional[ChannelRegistry] = None,
        send_timeout: Optional[float] = 1.0,
    ):
        if isinstance(default_channel, str) and registry is None:
            raise ValueError("A registry is required to resolve a default error channel by name")
        self.default_channel = default_channel
        self.registry = registry
        self.send_timeout = send_timeout

    def _resolve(self, ref: Optional[ChannelRef]) -> Optional[MessageChannel]:
        if ref is None:
            return None
        if isinstance(ref, MessageChannel):
            return ref
        if self.registry is None:
            raise DestinationResolutionError(f"Cannot resolve error channel '{ref}' without a registry")
        return self.registry.resolve(ref)

    async def handle(self, error: Exception) -> None:
        failed = _failed_message(error)
        target_ref = failed.get_header(MessageHeaders.ERROR_CHANNEL) if failed is not None else None

        try:
            channel = self._resolve(target_ref) or self._resolve(self.default_channel)
        except DestinationResolutionError as resolve_error:
            logger.error("error_channel_unresolved",
                         error=str(error),
                         resolution_error=str(resolve_error),
                         exc_info=error)
            return

        if channel is None:
            logger.error("no_error_channel", error=str(error), exc_info=error)
            return

        error_message = ErrorMessage.for_error(error, failed)
        sent = await channel.send(error_message, timeout=self.send_timeout)
        if not sent:
            logger.error("error_message_send_timeout",
                         channel=channel.name,
                         error=str(error),
                         exc_info=error)
            return
        logger.debug("error_message_published", channel=channel.name, error_type=type(error).__name__)


def as_error_handler(handler: Any) -> ErrorHandler:
    if isinstance(handler, ErrorHandler):
        return handler
    if callable(handler):
        return FunctionErrorHandler(handler)
    raise TypeError(f"Not an error handler: {handler!r}")
