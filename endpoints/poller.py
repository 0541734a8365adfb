"""
Polling Consumer — pulls messages from a source on a trigger schedule and
hands each one to a handler through the poller's advice chain.

Flow per cycle:
    Trigger fires
    → receive one message (bounded by receive_timeout), repeat up to
      max_messages_per_poll or until the source is empty
    → for each message: advice chain → handler → forward the result to the
      output channel (bounded by send_timeout)
    → errors go to the error handler, or propagate out of the cycle

States:
    IDLE → WAITING_FOR_TRIGGER → POLLING → PROCESSING → IDLE
    STOPPED is reachable from any state and is terminal.

Runs as a background task inside the application's event loop; poll_cycle()
can also be driven directly by an external scheduler.
"""
from __future__ import annotations

import asyncio
import structlog
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Optional

from advice.chain import Advice, AdviceChain
from advice.transaction import TransactionSynchronizationFactory, current_transaction
from channels.base import MessageChannel, MessageHandler
from channels.registry import ChannelRegistry
from core.callables import call
from core.errors import (
    DestinationResolutionError,
    HandlerError,
    ReceiveTimeoutError,
    SendTimeoutError,
)
from endpoints.source import Pollable
from models.schemas import Message, MessageHeaders, to_message
from scheduling.error_handlers import ErrorHandler
from scheduling.executors import TaskExecutor
from scheduling.triggers import Trigger, TriggerContext

logger = structlog.get_logger()

# upper bound for one cycle when max_messages_per_poll is unbounded, so a
# busy source cannot keep the poller off its trigger schedule forever
MAX_DRAIN_PER_CYCLE = 1000


def _failed(future: asyncio.Future) -> bool:
    return future.done() and not future.cancelled() and future.exception() is not None


class PollerState(str, Enum):
    IDLE = "idle"
    WAITING_FOR_TRIGGER = "waiting_for_trigger"
    POLLING = "polling"
    PROCESSING = "processing"
    STOPPED = "stopped"


@dataclass(frozen=True)
class PollerConfig:
    """Frozen poller configuration. Build it with dsl.PollerSpec or dsl.Pollers."""
    trigger: Trigger
    max_messages_per_poll: int = -1
    receive_timeout: float = 1.0
    send_timeout: Optional[float] = None
    advice_chain: tuple[Advice, ...] = ()
    task_executor: Optional[TaskExecutor] = None
    error_handler: Optional[ErrorHandler] = None
    transaction_synchronization_factory: Optional[TransactionSynchronizationFactory] = None

    @property
    def receive_limit(self) -> int:
        if self.max_messages_per_poll > 0:
            return self.max_messages_per_poll
        return MAX_DRAIN_PER_CYCLE


class PollingConsumer:
    """
    Polls `source` and passes every message to `handler`.

    A non-None handler result is sent to `output_channel`, or to the
    channel named by the request's reply_channel header (resolved through
    `registry` when it is a name).

    Shutdown: stop() interrupts a pending trigger wait or receive at once.
    Messages being processed, inline or on the task executor, are allowed
    to finish within `shutdown_timeout` seconds; whatever is still running
    then is cancelled. stop() returns only after all of them are done.
    """

    def __init__(
        self,
        source: Pollable,
        handler: MessageHandler,
        poller: PollerConfig,
        output_channel: Optional[MessageChannel] = None,
        name: str = "",
        registry: Optional[ChannelRegistry] = None,
        shutdown_timeout: float = 30.0,
    ):
        self.source = source
        self.handler = handler
        self.poller = poller
        self.output_channel = output_channel
        self.name = name or f"poller:{getattr(source, 'name', type(source).__name__)}"
        self.registry = registry
        self.shutdown_timeout = shutdown_timeout

        self._advised = AdviceChain(poller.advice_chain).wrap(self._invoke_handler, "handle_message")
        self._state = PollerState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._stopped = False
        self._trigger_context = TriggerContext()
        # executor futures not yet collected by a poll cycle
        self._in_flight: set[asyncio.Future] = set()

    # ── Lifecycle ─────────────────────────────────────────────

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the polling loop as a background task."""
        if self._stopped:
            raise RuntimeError(f"Poller '{self.name}' has been stopped and cannot be restarted")
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop(), name=self.name)
        logger.info("poller_started", poller=self.name, trigger=repr(self.poller.trigger))

    async def stop(self) -> None:
        """Stop the poller, draining the messages in flight first."""
        self._running = False
        self._stopped = True
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.shutdown_timeout
        task = self._task

        if task is not None and not task.done():
            if self._state is PollerState.PROCESSING:
                try:
                    await asyncio.wait_for(asyncio.shield(task), timeout=self.shutdown_timeout)
                except asyncio.TimeoutError:
                    logger.warning("poller_shutdown_timeout",
                                   poller=self.name,
                                   timeout=self.shutdown_timeout)
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        await self._drain_in_flight(max(deadline - loop.time(), 0))
        self._state = PollerState.STOPPED
        logger.info("poller_stopped", poller=self.name)

    async def _drain_in_flight(self, timeout: float) -> None:
        """Wait for executor work left behind by an interrupted cycle, then cancel the rest."""
        in_flight = list(self._in_flight)
        self._in_flight.clear()
        if not in_flight:
            return

        _, still_running = await asyncio.wait(in_flight, timeout=timeout)
        if still_running:
            logger.warning("poller_shutdown_timeout",
                           poller=self.name,
                           timeout=self.shutdown_timeout,
                           cancelled=len(still_running))
            for future in still_running:
                future.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)

        for future in in_flight:
            if not future.cancelled() and future.exception() is not None:
                self._log_unhandled(future.exception())

    async def _poll_loop(self) -> None:
        """Main scheduling loop — runs until stopped or the trigger is exhausted."""
        loop = asyncio.get_running_loop()
        try:
            while self._running:
                self._state = PollerState.WAITING_FOR_TRIGGER
                context = self._trigger_context.advance(now=loop.time())
                fire_at = self.poller.trigger.next_fire_time(context)
                if fire_at is None:
                    logger.info("poller_trigger_exhausted", poller=self.name)
                    break

                # always yield, even when the fire time has already passed
                await asyncio.sleep(max(fire_at - loop.time(), 0))
                self._trigger_context = context.advance(last_scheduled=fire_at, last_actual=loop.time())

                try:
                    await self.poll_cycle()
                except Exception as e:
                    logger.error("poll_cycle_error",
                                 poller=self.name,
                                 error=str(e),
                                 error_type=type(e).__name__,
                                 exc_info=True)

                self._trigger_context = self._trigger_context.advance(last_completion=loop.time())
        finally:
            self._running = False
            self._state = PollerState.STOPPED

    # ── Poll cycle ────────────────────────────────────────────

    async def poll_cycle(self) -> dict[str, int]:
        """
        Single poll cycle. Returns counts:
        {"received": N, "processed": N, "errors": N}
        where errors are the ones absorbed by the error handler.

        The first unhandled error stops the cycle: no further message is
        received. With a task executor the messages already submitted still
        finish; the first error is raised and any others are logged.
        """
        stats = {"received": 0, "processed": 0, "errors": 0}
        executor = self.poller.task_executor
        pending: list[asyncio.Future] = []
        errors: list[BaseException] = []

        try:
            while stats["received"] < self.poller.receive_limit and not self._stopped:
                if any(_failed(f) for f in pending):
                    break
                self._state = PollerState.POLLING
                message = await self._receive()
                if message is None:
                    break
                stats["received"] += 1

                self._state = PollerState.PROCESSING
                if executor is None:
                    stats[await self._process(message)] += 1
                else:
                    future = await executor.submit(partial(self._process, message))
                    self._in_flight.add(future)
                    pending.append(future)
        except Exception as e:
            errors.append(e)

        if pending:
            self._state = PollerState.PROCESSING
            # asyncio.wait leaves the futures running if this cycle is cancelled
            await asyncio.wait(pending)
            for future in pending:
                self._in_flight.discard(future)
                if future.cancelled():
                    logger.warning("message_processing_cancelled", poller=self.name)
                elif future.exception() is not None:
                    errors.append(future.exception())
                else:
                    stats[future.result()] += 1

        if not self._stopped:
            self._state = PollerState.IDLE
        if errors:
            for error in errors[1:]:
                self._log_unhandled(error)
            raise errors[0]

        if stats["received"]:
            logger.info("poll_cycle_complete", poller=self.name, **stats)
        return stats

    async def _receive(self) -> Optional[Message]:
        try:
            return await self.source.receive(timeout=self.poller.receive_timeout)
        except ReceiveTimeoutError:
            return None

    async def _process(self, message: Message) -> str:
        """Run one message through the advised handler; returns the stats key to bump."""
        try:
            await self._advised(message)
            return "processed"
        except Exception as e:
            error = HandlerError.wrap(e, message)
            if self.poller.error_handler is None:
                raise error
            await self.poller.error_handler.handle(error)
            return "errors"

    def _log_unhandled(self, error: BaseException) -> None:
        failed = getattr(error, "failed_message", None)
        logger.error("message_handling_error",
                     poller=self.name,
                     error=str(error),
                     error_type=type(error).__name__,
                     message_id=failed.id if failed is not None else None,
                     exc_info=error)

    # ── Innermost invocation ──────────────────────────────────

    async def _invoke_handler(self, message: Message) -> Any:
        self._register_synchronization(message)
        result = await call(self.handler, message)
        if result is not None:
            await self._forward(to_message(result, message), message)
        return result

    def _register_synchronization(self, message: Message) -> None:
        factory = self.poller.transaction_synchronization_factory
        if factory is None:
            return
        transaction = current_transaction()
        if transaction is None:
            logger.debug("no_transaction_for_synchronization", poller=self.name, message_id=message.id)
            return
        if transaction.bind_resource(("poller", self.name, message.id), message):
            transaction.register_synchronization(factory.create(message))

    async def _forward(self, reply: Message, request: Message) -> None:
        channel = self.output_channel or self._reply_channel(request)
        timeout = self.poller.send_timeout
        if not await channel.send(reply, timeout=timeout):
            raise SendTimeoutError(channel.name, timeout, request)

    def _reply_channel(self, request: Message) -> MessageChannel:
        ref = request.get_header(MessageHeaders.REPLY_CHANNEL)
        if isinstance(ref, MessageChannel):
            return ref
        if isinstance(ref, str) and self.registry is not None:
            return self.registry.resolve(ref)
        raise DestinationResolutionError(
            f"Poller '{self.name}' has no output channel and the message has no resolvable reply_channel",
            request,
        )
