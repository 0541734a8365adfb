"""
Minimal integration flows — a chain of steps fed by a subscribable channel.

Only what discard sub-flows need:

    builder = IntegrationFlowBuilder(DirectChannel())
    builder.handle(audit).filter(is_retryable).channel(retry_queue)
    flow = builder.get()
    flow.start()            # subscribes the flow to its input channel

Each step receives a message and returns the next one; a step returning
None ends the flow for that message.
"""
from __future__ import annotations

import structlog
from typing import Any, Awaitable, Callable, Optional

from channels.base import MessageChannel, MessageHandler, SubscribableChannel
from core.callables import call
from core.errors import SendTimeoutError, ValidationError
from models.schemas import Message, to_message

logger = structlog.get_logger()

Step = Callable[[Message], Awaitable[Optional[Message]]]


class IntegrationFlow:

    def __init__(self, input_channel: SubscribableChannel, steps: list[Step]):
        self.input_channel = input_channel
        self.steps = tuple(steps)

    async def __call__(self, message: Message) -> Optional[Message]:
        current: Optional[Message] = message
        for step in self.steps:
            current = await step(current)
            if current is None:
                return None
        return current

    def start(self) -> None:
        self.input_channel.subscribe(self)

    def stop(self) -> None:
        self.input_channel.unsubscribe(self)

    def __repr__(self):
        return f"<IntegrationFlow from={self.input_channel.name} steps={len(self.steps)}>"


class IntegrationFlowBuilder:

    def __init__(self, input_channel: SubscribableChannel, registry=None):
        if input_channel is None:
            raise ValidationError("input_channel must not be None")
        self.input_channel = input_channel
        self.registry = registry
        self._steps: list[Step] = []

    def handle(self, handler: MessageHandler) -> IntegrationFlowBuilder:
        """Invoke a handler; a non-None result continues the flow as a message."""
        if handler is None:
            raise ValidationError("handler must not be None")

        async def handle_step(message: Message) -> Optional[Message]:
            result = await call(handler, message)
            return None if result is None else to_message(result, message)

        self._steps.append(handle_step)
        return self

    def filter(self, selector: Any) -> IntegrationFlowBuilder:
        """Add a filter from a predicate or a FilterSpec."""
        from dsl.filter_spec import FilterSpec
        from endpoints.filter import MessageFilter

        if selector is None:
            raise ValidationError("filter selector must not be None")
        spec = selector if isinstance(selector, FilterSpec) else FilterSpec(selector)
        self._steps.append(MessageFilter(spec.build(self.registry)))
        return self

    def channel(self, channel: MessageChannel, timeout: Optional[float] = None) -> IntegrationFlowBuilder:
        """Terminal step: send the message to `channel`."""
        if channel is None:
            raise ValidationError("channel must not be None")

        async def channel_step(message: Message) -> Optional[Message]:
            if not await channel.send(message, timeout=timeout):
                raise SendTimeoutError(channel.name, timeout, message)
            return None

        self._steps.append(channel_step)
        return self

    def get(self) -> IntegrationFlow:
        return IntegrationFlow(self.input_channel, self._steps)
