"""
Retry advice — re-run the advised invocation on failure.

Uses tenacity with exponential backoff. When every attempt has failed the
last error is re-raised, unless a recovery callback is configured; its
return value then becomes the result of the invocation.
"""
from __future__ import annotations

import structlog
from typing import Any, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from advice.chain import Advice, Invocation
from core.callables import call
from models.schemas import Message

logger = structlog.get_logger()

RecoveryCallback = Callable[[Message, BaseException], Any]


class RetryAdvice(Advice):

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_initial: float = 0.1,
        backoff_max: float = 10.0,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        recovery_callback: Optional[RecoveryCallback] = None,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self.retry_on = retry_on
        self.recovery_callback = recovery_callback

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_initial, max=self.backoff_max),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=self._log_retry,
            reraise=self.recovery_callback is None,
        )

    @staticmethod
    def _log_retry(retry_state) -> None:
        outcome = retry_state.outcome
        logger.warning("invocation_retry",
                       attempt=retry_state.attempt_number,
                       error=str(outcome.exception()) if outcome is not None else None)

    async def invoke(self, invocation: Invocation) -> Any:
        try:
            async for attempt in self._retrying():
                with attempt:
                    return await invocation.proceed()
        except RetryError as e:
            error = e.last_attempt.exception()
            logger.error("invocation_retries_exhausted",
                         invocation=invocation.name,
                         message_id=invocation.message.id,
                         attempts=self.max_attempts,
                         error=str(error))
            return await call(self.recovery_callback, invocation.message, error)
