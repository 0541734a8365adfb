"""Fluent configuration builders for filters, pollers and discard sub-flows."""
from dsl.filter_spec import FilterSpec
from dsl.flows import IntegrationFlow, IntegrationFlowBuilder
from dsl.poller_spec import Pollers, PollerSpec

__all__ = [
    "FilterSpec",
    "IntegrationFlow", "IntegrationFlowBuilder",
    "Pollers", "PollerSpec",
]
