"""
Message selectors — reusable predicates for filters.

Conditions address the message with dot notation rooted at `payload` or
`headers`, e.g. `payload.order.status` or `headers.priority`. Mapping keys
and object attributes are both followed.
"""
from __future__ import annotations

import re
import operator as op
from typing import Any

from pydantic import BaseModel

from models.schemas import Message


OPERATORS: dict[str, Any] = {
    "eq": op.eq,
    "neq": op.ne,
    "gt": op.gt,
    "gte": op.ge,
    "lt": op.lt,
    "lte": op.le,
    "in": lambda a, b: a in b,
    "contains": lambda a, b: b in str(a),
    "regex": lambda a, b: bool(re.search(str(b), str(a))),
    "exists": lambda a, b: a is not None,
    "not_exists": lambda a, b: a is None,
}


class Condition(BaseModel):
    field: str              # payload.<path> | headers.<path> | payload
    operator: str           # eq | neq | gt | gte | lt | lte | in | contains | regex | exists | not_exists
    value: Any = None


def get_nested_value(data: Any, field: str) -> Any:
    """Get a value using dot notation, e.g. 'order.status'."""
    current = data
    for part in field.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif current is not None and hasattr(current, part):
            current = getattr(current, part)
        else:
            return None
    return current


def message_value(message: Message, field: str) -> Any:
    return get_nested_value({"payload": message.payload, "headers": dict(message.headers)}, field)


def evaluate_condition(condition: Condition, message: Message) -> bool:
    """Evaluate a single condition against a message."""
    val = message_value(message, condition.field)
    fn = OPERATORS.get(condition.operator)
    if fn is None:
        return False
    try:
        if isinstance(condition.value, (int, float)) and not isinstance(condition.value, bool) and isinstance(val, str):
            val = float(val)
        return fn(val, condition.value)
    except (TypeError, ValueError):
        return False


class ConditionSelector:
    """Accepts a message when all conditions hold (AND logic). No conditions accepts everything."""

    def __init__(self, conditions: list[Condition]):
        unknown = [c.operator for c in conditions if c.operator not in OPERATORS]
        if unknown:
            raise ValueError(f"Unknown operators: {', '.join(unknown)}")
        self.conditions = tuple(conditions)

    @classmethod
    def from_config(cls, raw: list[dict[str, Any]]) -> ConditionSelector:
        return cls([Condition(**c) for c in raw])

    def __call__(self, message: Message) -> bool:
        return all(evaluate_condition(c, message) for c in self.conditions)


class PayloadTypeSelector:
    """Accepts messages whose payload is an instance of one of the given types."""

    def __init__(self, *types: type):
        if not types:
            raise ValueError("At least one payload type is required")
        self.types = types

    def __call__(self, message: Message) -> bool:
        return isinstance(message.payload, self.types)
