"""
Triggers — decide when a poller fires next.

Times are event-loop seconds (loop.time(), monotonic). A trigger returning
None means "no further executions" and ends the polling loop.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class TriggerContext:
    now: float = 0.0
    last_scheduled: Optional[float] = None     # when the previous run was planned
    last_actual: Optional[float] = None        # when it really started
    last_completion: Optional[float] = None    # when it finished

    def advance(self, **changes) -> TriggerContext:
        return replace(self, **changes)


class Trigger(abc.ABC):

    @abc.abstractmethod
    def next_fire_time(self, context: TriggerContext) -> Optional[float]:
        ...


class PeriodicTrigger(Trigger):
    """
    Fires every `period` seconds.

    fixed_rate=False (fixed delay): the period is measured from the
    completion of the previous run. fixed_rate=True: from its scheduled start,
    so a slow run is followed immediately by the next one.
    """

    def __init__(self, period: float, initial_delay: float = 0.0, fixed_rate: bool = False):
        if period < 0:
            raise ValueError(f"period must not be negative, got {period}")
        if initial_delay < 0:
            raise ValueError(f"initial_delay must not be negative, got {initial_delay}")
        self.period = period
        self.initial_delay = initial_delay
        self.fixed_rate = fixed_rate

    def next_fire_time(self, context: TriggerContext) -> Optional[float]:
        if context.last_scheduled is None:
            return context.now + self.initial_delay
        if self.fixed_rate:
            return context.last_scheduled + self.period
        base = context.last_completion if context.last_completion is not None else context.now
        return base + self.period

    def __repr__(self):
        kind = "fixed_rate" if self.fixed_rate else "fixed_delay"
        return f"<PeriodicTrigger {kind}={self.period}s initial_delay={self.initial_delay}s>"
