"""
Core data models for the flowgate pipeline.
These are the universal types shared across channels, advice and endpoints.
"""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional


# ──────────────────────────────────────────────────────────────
#  Header names
# ──────────────────────────────────────────────────────────────

class MessageHeaders:
    ID = "id"
    TIMESTAMP = "timestamp"
    REPLY_CHANNEL = "reply_channel"          # channel or registry name
    ERROR_CHANNEL = "error_channel"          # channel or registry name
    CORRELATION_ID = "correlation_id"

    # headers regenerated for every new message
    TRANSIENT = frozenset({ID, TIMESTAMP})


# ──────────────────────────────────────────────────────────────
#  Message — immutable payload + headers
# ──────────────────────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class Message:
    """
    A unit of data flowing through the pipeline.

    Headers are exposed read-only; use with_headers()/with_payload() to
    derive a new message instead of changing this one.
    """
    payload: Any
    headers: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        headers = dict(self.headers)
        headers.setdefault(MessageHeaders.ID, uuid.uuid4().hex)
        headers.setdefault(MessageHeaders.TIMESTAMP, time.time())
        object.__setattr__(self, "headers", MappingProxyType(headers))

    @classmethod
    def of(cls, payload: Any, **headers: Any) -> Message:
        return cls(payload=payload, headers=headers)

    @property
    def id(self) -> str:
        return self.headers[MessageHeaders.ID]

    @property
    def timestamp(self) -> float:
        return self.headers[MessageHeaders.TIMESTAMP]

    def get_header(self, name: str, default: Any = None) -> Any:
        return self.headers.get(name, default)

    def copyable_headers(self) -> dict[str, Any]:
        """Headers that carry over to a derived message (no id/timestamp)."""
        return {k: v for k, v in self.headers.items() if k not in MessageHeaders.TRANSIENT}

    def with_headers(self, **updates: Any) -> Message:
        return Message(payload=self.payload, headers={**self.copyable_headers(), **updates})

    def with_payload(self, payload: Any) -> Message:
        return Message(payload=payload, headers=self.copyable_headers())

    def __repr__(self):
        return f"<Message id={self.id[:8]} payload={self.payload!r}>"


@dataclass(frozen=True, eq=False, repr=False)
class ErrorMessage(Message):
    """Message whose payload is an exception raised while handling original_message."""
    original_message: Optional[Message] = None

    @classmethod
    def for_error(cls, error: BaseException, original: Optional[Message] = None) -> ErrorMessage:
        headers = original.copyable_headers() if original is not None else {}
        return cls(payload=error, headers=headers, original_message=original)

    def __repr__(self):
        return f"<ErrorMessage id={self.id[:8]} error={self.payload!r}>"


def to_message(result: Any, request: Optional[Message] = None) -> Message:
    """Wrap a handler result into a Message, inheriting the request headers."""
    if isinstance(result, Message):
        return result
    if request is None:
        return Message(payload=result)
    return request.with_payload(result)
