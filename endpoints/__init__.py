"""Endpoints: the message filter gate and the polling consumer."""
from endpoints.filter import FilterConfig, FilterOutcome, FilterResult, MessageFilter
from endpoints.poller import MAX_DRAIN_PER_CYCLE, PollerConfig, PollerState, PollingConsumer
from endpoints.selectors import Condition, ConditionSelector, PayloadTypeSelector
from endpoints.source import FunctionMessageSource, MessageSource

__all__ = [
    "FilterConfig", "FilterOutcome", "FilterResult", "MessageFilter",
    "MAX_DRAIN_PER_CYCLE", "PollerConfig", "PollerState", "PollingConsumer",
    "Condition", "ConditionSelector", "PayloadTypeSelector",
    "FunctionMessageSource", "MessageSource",
]
