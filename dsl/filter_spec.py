"""
FilterSpec — fluent builder for FilterConfig.

    config = (FilterSpec(lambda m: m.payload != "bad")
              .discard_channel(rejected)
              .throw_exception_on_rejection(True)
              .build())
    gate = MessageFilter(config)

Every setter validates its argument immediately and returns the same spec.
"""
from __future__ import annotations

import structlog
from typing import Any, Callable, Optional

from advice.chain import Advice, as_advice
from channels.base import MessageChannel
from channels.direct import DirectChannel
from channels.registry import ChannelRef, ChannelRegistry
from core.errors import DestinationResolutionError, ValidationError
from dsl.flows import IntegrationFlowBuilder
from endpoints.filter import FilterConfig, Predicate

logger = structlog.get_logger()


def _require_bool(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be a bool, got {value!r}")
    return value


class FilterSpec:

    def __init__(self, predicate: Predicate):
        if predicate is None:
            raise ValidationError("predicate must not be None")
        if not callable(predicate):
            raise ValidationError(f"predicate must be callable, got {predicate!r}")
        self._predicate = predicate
        self._throw_on_reject = False
        self._discard_channel: Optional[ChannelRef] = None
        self._discard_flow: Optional[Callable[[IntegrationFlowBuilder], Any]] = None
        self._discard_within_advice = True
        self._advice: list[Advice] = []
        self._send_timeout: Optional[float] = None
        self._name = ""
        self._components: list[Any] = []

    def id(self, name: str) -> FilterSpec:
        if not name:
            raise ValidationError("id must not be empty")
        self._name = name
        return self

    def throw_exception_on_rejection(self, throw_on_reject: bool = True) -> FilterSpec:
        """
        Raise RejectionError for rejected messages. Applies whether or not a
        discard channel is set; with one, the message is sent there first.
        """
        self._throw_on_reject = _require_bool("throw_on_reject", throw_on_reject)
        return self

    def discard_channel(self, channel: ChannelRef) -> FilterSpec:
        """A channel, or a registry name resolved at build(), for rejected messages."""
        if channel is None:
            raise ValidationError("discard_channel must not be None")
        if isinstance(channel, str):
            if not channel:
                raise ValidationError("discard_channel name must not be empty")
        elif not isinstance(channel, MessageChannel):
            raise ValidationError(f"discard_channel must be a channel or a name, got {channel!r}")
        self._discard_flow = None
        self._discard_channel = channel
        return self

    def discard_flow(self, configure: Callable[[IntegrationFlowBuilder], Any]) -> FilterSpec:
        """
        Run a sub-flow for rejected messages. At build() a direct channel
        named "<id>.discard" is created, the flow built by
        `configure(builder)` is subscribed to it, and that channel becomes
        the discard channel. Replaces any discard channel set earlier.
        """
        if configure is None:
            raise ValidationError("discard_flow must not be None")
        if not callable(configure):
            raise ValidationError(f"discard_flow must be callable, got {configure!r}")
        self._discard_flow = configure
        self._discard_channel = None
        return self

    def _build_discard_flow(self) -> MessageChannel:
        channel = DirectChannel(name=f"{self._name or 'filter'}.discard")
        builder = IntegrationFlowBuilder(channel)
        self._discard_flow(builder)
        flow = builder.get()
        flow.start()

        self._components.extend([channel, flow])
        logger.debug("discard_flow_configured", channel=channel.name, steps=len(flow.steps))
        return channel

    def discard_within_advice(self, discard_within_advice: bool) -> FilterSpec:
        """Run discard/throw inside the filter's advice chain (default) or after it."""
        self._discard_within_advice = _require_bool("discard_within_advice", discard_within_advice)
        return self

    def advice(self, *advice: Any) -> FilterSpec:
        for item in advice:
            if item is None:
                raise ValidationError("advice must not be None")
            try:
                self._advice.append(as_advice(item))
            except TypeError as e:
                raise ValidationError(str(e)) from e
        return self

    def send_timeout(self, timeout: Optional[float]) -> FilterSpec:
        """Timeout in seconds for discard sends; None waits indefinitely."""
        if timeout is not None and timeout < 0:
            raise ValidationError(f"send_timeout must not be negative, got {timeout}")
        self._send_timeout = timeout
        return self

    @property
    def components(self) -> list[Any]:
        """Channels and flows created by build(), for the assembly layer to register."""
        return list(self._components)

    def build(self, registry: Optional[ChannelRegistry] = None) -> FilterConfig:
        if self._discard_flow is not None and self._discard_channel is None:
            # built once; later builds share the same channel and flow
            self._discard_channel = self._build_discard_flow()

        discard = self._discard_channel
        if isinstance(discard, str):
            if registry is None:
                raise ValidationError(f"discard channel '{discard}' needs a registry to resolve")
            try:
                discard = registry.resolve(discard)
            except DestinationResolutionError as e:
                raise ValidationError(str(e)) from e

        return FilterConfig(
            predicate=self._predicate,
            throw_on_reject=self._throw_on_reject,
            discard_channel=discard,
            discard_within_advice=self._discard_within_advice,
            advice_chain=tuple(self._advice),
            send_timeout=self._send_timeout,
            name=self._name,
        )
