"""
Error taxonomy for configuration and message handling.

    IntegrationError
    ├── ValidationError            invalid configuration, raised at build time
    └── MessagingError             carries the failed message
        ├── RejectionError         filter rejected a message (throw_on_reject)
        ├── ReceiveTimeoutError    no message within the receive timeout
        ├── MessageDeliveryError   a channel could not deliver
        │   └── DestinationResolutionError
        └── HandlerError           raised while processing a polled message
            ├── SendTimeoutError
            └── DiscardDeliveryError
"""
from __future__ import annotations

from typing import Optional

from models.schemas import Message


class IntegrationError(Exception):
    """Base exception for all pipeline errors."""


class ValidationError(IntegrationError, ValueError):
    """Invalid configuration. Never reaches the running pipeline."""


class MessagingError(IntegrationError):

    def __init__(self, message: str, failed_message: Optional[Message] = None):
        self.failed_message = failed_message
        super().__init__(message)


class RejectionError(MessagingError):
    """Raised by a filter after discard processing when throw_on_reject is set."""

    def __init__(self, failed_message: Message, discard_error: Optional[BaseException] = None):
        self.discard_error = discard_error
        super().__init__(f"Message rejected by filter: {failed_message!r}", failed_message)


class ReceiveTimeoutError(MessagingError):
    """No message arrived within the receive timeout. Normal flow control."""


class MessageDeliveryError(MessagingError):
    pass


class DestinationResolutionError(MessageDeliveryError):
    pass


class HandlerError(MessagingError):
    """Any error raised while processing a polled message."""

    @classmethod
    def wrap(cls, error: BaseException, failed_message: Optional[Message] = None) -> HandlerError:
        if isinstance(error, HandlerError):
            if error.failed_message is None:
                error.failed_message = failed_message
            return error
        wrapped = cls(f"Failed to handle message: {error}", failed_message)
        wrapped.__cause__ = error
        return wrapped


class SendTimeoutError(HandlerError):

    def __init__(self, channel: str, timeout: Optional[float], failed_message: Optional[Message] = None):
        self.channel = channel
        self.timeout = timeout
        super().__init__(
            f"Failed to send message to channel '{channel}' within timeout: {timeout}",
            failed_message,
        )


class DiscardDeliveryError(HandlerError):
    """The discard channel did not accept a rejected message."""
