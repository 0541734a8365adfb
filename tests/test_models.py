"""Tests for messages, error messages and the error hierarchy."""
import pytest

from core.errors import (
    DiscardDeliveryError,
    HandlerError,
    IntegrationError,
    MessagingError,
    RejectionError,
    SendTimeoutError,
    ValidationError,
)
from models.schemas import ErrorMessage, Message, MessageHeaders, to_message


class TestMessage:
    def test_generates_id_and_timestamp(self):
        a, b = Message.of("x"), Message.of("x")
        assert a.id != b.id
        assert a.timestamp > 0

    def test_headers_are_read_only(self):
        msg = Message.of("x", priority="high")
        with pytest.raises(TypeError):
            msg.headers["priority"] = "low"

    def test_payload_is_frozen(self):
        msg = Message.of("x")
        with pytest.raises(Exception):
            msg.payload = "y"

    def test_with_headers_derives_new_message(self):
        msg = Message.of("x", priority="high")
        derived = msg.with_headers(priority="low", source="api")

        assert msg.get_header("priority") == "high"
        assert derived.get_header("priority") == "low"
        assert derived.get_header("source") == "api"
        assert derived.id != msg.id

    def test_with_payload_keeps_headers(self):
        msg = Message.of("x", correlation_id="c-1")
        derived = msg.with_payload("y")
        assert derived.payload == "y"
        assert derived.get_header(MessageHeaders.CORRELATION_ID) == "c-1"

    def test_explicit_id_preserved(self):
        msg = Message(payload=1, headers={MessageHeaders.ID: "fixed"})
        assert msg.id == "fixed"

    def test_equality_is_identity(self):
        msg = Message.of("x")
        assert msg == msg
        assert msg != Message.of("x")


class TestToMessage:
    def test_message_passes_through(self):
        msg = Message.of("x")
        assert to_message(msg) is msg

    def test_payload_inherits_request_headers(self):
        request = Message.of("x", reply_channel="replies")
        reply = to_message({"ok": True}, request)
        assert reply.payload == {"ok": True}
        assert reply.get_header(MessageHeaders.REPLY_CHANNEL) == "replies"

    def test_payload_without_request(self):
        assert to_message(5).payload == 5


class TestErrorMessage:
    def test_for_error_carries_original(self):
        original = Message.of("x", error_channel="errors")
        error = HandlerError("failed", original)
        msg = ErrorMessage.for_error(error, original)

        assert msg.payload is error
        assert msg.original_message is original
        assert msg.get_header(MessageHeaders.ERROR_CHANNEL) == "errors"

    def test_for_error_without_original(self):
        msg = ErrorMessage.for_error(RuntimeError("boom"))
        assert msg.original_message is None


class TestErrors:
    def test_hierarchy(self):
        assert issubclass(ValidationError, IntegrationError)
        assert issubclass(ValidationError, ValueError)
        assert issubclass(RejectionError, MessagingError)
        assert issubclass(SendTimeoutError, HandlerError)
        assert issubclass(DiscardDeliveryError, HandlerError)

    def test_rejection_error_carries_message(self):
        msg = Message.of("bad")
        error = RejectionError(msg)
        assert error.failed_message is msg
        assert error.discard_error is None

    def test_wrap_plain_exception(self):
        msg = Message.of("x")
        cause = KeyError("k")
        wrapped = HandlerError.wrap(cause, msg)
        assert wrapped.failed_message is msg
        assert wrapped.__cause__ is cause

    def test_wrap_keeps_handler_errors(self):
        msg = Message.of("x")
        error = SendTimeoutError("out", 1.0)
        assert HandlerError.wrap(error, msg) is error
        assert error.failed_message is msg

    def test_send_timeout_message(self):
        error = SendTimeoutError("output", 0.5)
        assert "output" in str(error)
        assert error.timeout == 0.5
