"""Tests for triggers, task executors and error handlers."""
import asyncio
import pytest

from channels.queue import QueueChannel
from core.errors import HandlerError
from models.schemas import ErrorMessage, Message
from scheduling.error_handlers import (
    FunctionErrorHandler,
    LoggingErrorHandler,
    MessagePublishingErrorHandler,
    as_error_handler,
)
from scheduling.executors import InlineTaskExecutor, PooledTaskExecutor
from scheduling.triggers import PeriodicTrigger, TriggerContext

from conftest import RefusingChannel


class TestPeriodicTrigger:
    def test_first_fire_after_initial_delay(self):
        trigger = PeriodicTrigger(5.0, initial_delay=2.0)
        assert trigger.next_fire_time(TriggerContext(now=100.0)) == 102.0

    def test_fixed_delay_measured_from_completion(self):
        trigger = PeriodicTrigger(5.0)
        ctx = TriggerContext(now=110.0, last_scheduled=100.0, last_actual=100.0, last_completion=108.0)
        assert trigger.next_fire_time(ctx) == 113.0

    def test_fixed_rate_measured_from_schedule(self):
        trigger = PeriodicTrigger(5.0, fixed_rate=True)
        ctx = TriggerContext(now=110.0, last_scheduled=100.0, last_actual=100.0, last_completion=108.0)
        assert trigger.next_fire_time(ctx) == 105.0

    def test_negative_values_rejected(self):
        with pytest.raises(ValueError):
            PeriodicTrigger(-1)
        with pytest.raises(ValueError):
            PeriodicTrigger(1, initial_delay=-1)

    def test_context_advance_is_a_copy(self):
        ctx = TriggerContext(now=1.0)
        later = ctx.advance(now=2.0, last_scheduled=1.5)
        assert ctx.now == 1.0 and ctx.last_scheduled is None
        assert later.now == 2.0 and later.last_scheduled == 1.5


class TestInlineExecutor:
    @pytest.mark.asyncio
    async def test_future_is_done_on_return(self):
        async def task():
            return 42

        future = await InlineTaskExecutor().submit(task)
        assert future.done()
        assert future.result() == 42

    @pytest.mark.asyncio
    async def test_exception_captured_in_future(self):
        async def task():
            raise ValueError("bad")

        future = await InlineTaskExecutor().submit(task)
        with pytest.raises(ValueError):
            future.result()


class TestPooledExecutor:
    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        executor = PooledTaskExecutor(concurrency=2)
        active = {"now": 0, "peak": 0}

        async def task():
            active["now"] += 1
            active["peak"] = max(active["peak"], active["now"])
            await asyncio.sleep(0.01)
            active["now"] -= 1

        futures = [await executor.submit(task) for _ in range(5)]
        await asyncio.gather(*futures)

        assert active["peak"] == 2
        assert executor.active_count == 0

    @pytest.mark.asyncio
    async def test_submit_after_shutdown(self):
        executor = PooledTaskExecutor(concurrency=1)
        await executor.shutdown()

        async def task():
            return None

        with pytest.raises(RuntimeError):
            await executor.submit(task)

    @pytest.mark.asyncio
    async def test_shutdown_cancels_after_timeout(self):
        executor = PooledTaskExecutor(concurrency=1)

        async def stuck():
            await asyncio.sleep(10)

        future = await executor.submit(stuck)
        await executor.shutdown(wait=True, timeout=0.01)
        assert future.cancelled()

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            PooledTaskExecutor(concurrency=0)


class TestErrorHandlers:
    @pytest.mark.asyncio
    async def test_logging_handler_absorbs(self):
        await LoggingErrorHandler().handle(HandlerError("failed", Message.of("x")))

    @pytest.mark.asyncio
    async def test_function_handler(self):
        seen = []

        async def record(error):
            seen.append(error)

        error = RuntimeError("x")
        await as_error_handler(record).handle(error)
        assert seen == [error]
        assert isinstance(as_error_handler(seen.append), FunctionErrorHandler)

    def test_as_error_handler_rejects_non_callables(self):
        with pytest.raises(TypeError):
            as_error_handler("nope")

    @pytest.mark.asyncio
    async def test_publishes_to_default_channel(self):
        errors = QueueChannel(name="errors")
        failed = Message.of("x")
        error = HandlerError("failed", failed)

        await MessagePublishingErrorHandler(errors).handle(error)

        published = errors.purge()[0]
        assert isinstance(published, ErrorMessage)
        assert published.payload is error
        assert published.original_message is failed

    @pytest.mark.asyncio
    async def test_error_channel_header_wins(self, registry):
        default = QueueChannel(name="default_errors")
        failed = Message.of("x", error_channel="errors")

        await MessagePublishingErrorHandler(default, registry).handle(HandlerError("failed", failed))

        assert registry.get("errors").queue_size == 1
        assert default.queue_size == 0

    @pytest.mark.asyncio
    async def test_unresolvable_header_is_logged_not_raised(self):
        failed = Message.of("x", error_channel="nowhere")
        await MessagePublishingErrorHandler().handle(HandlerError("failed", failed))

    @pytest.mark.asyncio
    async def test_refused_send_is_logged_not_raised(self):
        handler = MessagePublishingErrorHandler(RefusingChannel(name="full"), send_timeout=0.01)
        await handler.handle(HandlerError("failed", Message.of("x")))

    def test_default_name_needs_registry(self):
        with pytest.raises(ValueError):
            MessagePublishingErrorHandler("errors")
