"""
Task executors — where a poller runs the processing of each message.

    InlineTaskExecutor   runs the task to completion inside submit()
    PooledTaskExecutor   runs up to `concurrency` tasks at once as asyncio tasks

submit() always returns a future; the caller awaits it (or gathers several)
to learn the outcome.
"""
from __future__ import annotations

import abc
import asyncio
import structlog
from typing import Any, Awaitable, Callable, Optional

logger = structlog.get_logger()

Task = Callable[[], Awaitable[Any]]


class TaskExecutor(abc.ABC):

    @abc.abstractmethod
    async def submit(self, task: Task) -> asyncio.Future:
        ...

    async def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; optionally wait for running tasks."""


class InlineTaskExecutor(TaskExecutor):
    """No concurrency: the task has finished by the time submit() returns."""

    async def submit(self, task: Task) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        try:
            future.set_result(await task())
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
        return future


class PooledTaskExecutor(TaskExecutor):
    """
    Runs tasks concurrently on the event loop, at most `concurrency` at a time.

    submit() waits for a free slot before scheduling, so a producer that
    submits faster than tasks complete is slowed down instead of piling up
    an unbounded number of pending tasks.
    """

    def __init__(self, concurrency: int = 5, name: str = "pool"):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.concurrency = concurrency
        self.name = name
        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._shutdown = False

    async def submit(self, task: Task) -> asyncio.Future:
        if self._shutdown:
            raise RuntimeError(f"Executor '{self.name}' has been shut down")
        await self._semaphore.acquire()
        try:
            running = asyncio.create_task(task(), name=f"{self.name}-worker")
        except BaseException:
            self._semaphore.release()
            raise
        self._tasks.add(running)
        running.add_done_callback(self._on_done)
        return running

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._semaphore.release()

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    async def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        self._shutdown = True
        pending = list(self._tasks)
        if not pending:
            return
        if wait:
            done, still_running = await asyncio.wait(pending, timeout=timeout)
            pending = list(still_running)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("executor_shutdown", executor=self.name, cancelled=len(pending))
