"""
Message Filter — a gate that admits or rejects messages.

Flow for each message:
    predicate(message) true   → FORWARDED, nothing else happens
    predicate(message) false  → send to discard channel (if configured)
                              → raise RejectionError (if throw_on_reject)
                              → otherwise DISCARDED

The discard send always happens before the rejection is raised, so a rejected
message reaches the discard channel even when the call ultimately fails.

discard_within_advice decides where the discard/throw step runs relative to
the filter's own advice chain:
    True  (default)  inside, e.g. as part of the same transaction
    False            after the advised call has returned, e.g. after commit
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from advice.chain import Advice, AdviceChain
from channels.base import MessageChannel
from core.callables import call
from core.errors import DiscardDeliveryError, RejectionError
from models.schemas import Message

logger = structlog.get_logger()

Predicate = Callable[[Message], Any]


class FilterOutcome(str, Enum):
    FORWARDED = "forwarded"
    DISCARDED = "discarded"
    # a rejection is not returned: it is raised as RejectionError


@dataclass(frozen=True)
class FilterResult:
    outcome: FilterOutcome
    message: Message

    @property
    def forwarded(self) -> bool:
        return self.outcome is FilterOutcome.FORWARDED


@dataclass(frozen=True)
class FilterConfig:
    """Frozen filter configuration. Build it with dsl.FilterSpec."""
    predicate: Predicate
    throw_on_reject: bool = False
    discard_channel: Optional[MessageChannel] = None
    discard_within_advice: bool = True
    advice_chain: tuple[Advice, ...] = ()
    send_timeout: Optional[float] = None
    name: str = ""


class MessageFilter:
    """
    Applies a FilterConfig to messages.

    Holds no per-message state, so one instance can serve concurrent
    invocations from a pooled poller.
    """

    def __init__(self, config: FilterConfig):
        self.config = config
        self.name = config.name or "filter"
        self._advised = AdviceChain(config.advice_chain).wrap(self._handle_request, "handle_request")

    async def apply(self, message: Message) -> FilterResult:
        """Evaluate one message; raises RejectionError for rejected messages when configured to."""
        result = await self._advised(message)
        if not isinstance(result, FilterResult):
            # an advice short-circuited without producing a decision
            result = FilterResult(FilterOutcome.DISCARDED, message)

        if result.outcome is FilterOutcome.DISCARDED and not self.config.discard_within_advice:
            await self._reject(message)
        return result

    async def __call__(self, message: Message) -> Optional[Message]:
        """Handler form: the message when forwarded, None when discarded."""
        result = await self.apply(message)
        return result.message if result.forwarded else None

    async def _handle_request(self, message: Message) -> FilterResult:
        if await call(self.config.predicate, message):
            return FilterResult(FilterOutcome.FORWARDED, message)
        if self.config.discard_within_advice:
            await self._reject(message)
        return FilterResult(FilterOutcome.DISCARDED, message)

    async def _reject(self, message: Message) -> None:
        discard_error = None
        if self.config.discard_channel is not None:
            discard_error = await self._discard(message)

        if self.config.throw_on_reject:
            logger.info("message_rejected", filter=self.name, message_id=message.id)
            raise RejectionError(message, discard_error) from discard_error
        if discard_error is not None:
            raise discard_error

        logger.debug("message_discarded", filter=self.name, message_id=message.id)

    async def _discard(self, message: Message) -> Optional[DiscardDeliveryError]:
        """Send to the discard channel; a failure is returned, not raised."""
        channel = self.config.discard_channel
        try:
            sent = await channel.send(message, timeout=self.config.send_timeout)
        except Exception as e:
            logger.error("discard_send_failed",
                         filter=self.name,
                         channel=channel.name,
                         message_id=message.id,
                         error=str(e))
            error = DiscardDeliveryError(
                f"Failed to send rejected message to discard channel '{channel.name}': {e}", message
            )
            error.__cause__ = e
            return error

        if not sent:
            logger.error("discard_send_timeout",
                         filter=self.name,
                         channel=channel.name,
                         message_id=message.id,
                         timeout=self.config.send_timeout)
            return DiscardDeliveryError(
                f"Discard channel '{channel.name}' did not accept the message "
                f"within {self.config.send_timeout}s",
                message,
            )
        return None
