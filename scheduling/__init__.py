"""Scheduling collaborators for pollers: triggers, task executors and error handlers."""
from scheduling.triggers import Trigger, TriggerContext, PeriodicTrigger
from scheduling.executors import TaskExecutor, InlineTaskExecutor, PooledTaskExecutor
from scheduling.error_handlers import (
    ErrorHandler,
    LoggingErrorHandler,
    FunctionErrorHandler,
    MessagePublishingErrorHandler,
    as_error_handler,
)

__all__ = [
    "Trigger", "TriggerContext", "PeriodicTrigger",
    "TaskExecutor", "InlineTaskExecutor", "PooledTaskExecutor",
    "ErrorHandler", "LoggingErrorHandler", "FunctionErrorHandler",
    "MessagePublishingErrorHandler", "as_error_handler",
]
