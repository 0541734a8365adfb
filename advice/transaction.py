"""
Transaction support — a transaction boundary as just another advice.

    TransactionInterceptor(manager, attribute_source)
        asks the attribute source whether the invocation is transactional,
        begins a transaction, proceeds, then commits on normal return or
        rolls back on error.

The active transaction is bound to a ContextVar, so code running inside the
advised call (handlers, pollers registering synchronizations) can reach it
through current_transaction().

Synchronization callbacks registered on a transaction always run at
completion: before_commit → commit → after_commit on success,
after_rollback on failure, and after_completion in both cases.
"""
from __future__ import annotations

import abc
import asyncio
import fnmatch
import structlog
from contextvars import ContextVar
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict

from advice.chain import Advice, Invocation
from channels.base import MessageChannel
from core.callables import call, describe
from core.errors import IntegrationError
from models.schemas import Message

logger = structlog.get_logger()


class TransactionTimedOutError(IntegrationError):
    pass


class UnexpectedRollbackError(IntegrationError):
    """Commit was requested but a joined participant had marked the transaction rollback-only."""


# ──────────────────────────────────────────────────────────────
#  Attributes — which invocations are transactional, and how
# ──────────────────────────────────────────────────────────────

class Propagation(str, Enum):
    REQUIRED = "required"           # join the current transaction or start one
    REQUIRES_NEW = "requires_new"   # always start a new one
    SUPPORTS = "supports"           # join if present, otherwise run without


class TransactionAttribute(BaseModel):
    model_config = ConfigDict(frozen=True)

    propagation: Propagation = Propagation.REQUIRED
    isolation: str = "default"
    timeout: Optional[float] = None          # seconds
    read_only: bool = False
    no_rollback_for: tuple[str, ...] = ()    # exception class names that still commit

    def rollback_on(self, error: BaseException) -> bool:
        names = {cls.__name__ for cls in type(error).__mro__}
        return not names.intersection(self.no_rollback_for)


class TransactionAttributeSource(abc.ABC):

    @abc.abstractmethod
    def get_attribute(self, invocation_name: str) -> Optional[TransactionAttribute]:
        """Return the attribute for this invocation, or None if it is not transactional."""
        ...


class MatchAlwaysTransactionAttributeSource(TransactionAttributeSource):
    """Every invocation is transactional with the same attribute."""

    def __init__(self, attribute: Optional[TransactionAttribute] = None):
        self.attribute = attribute or TransactionAttribute()

    def get_attribute(self, invocation_name: str) -> Optional[TransactionAttribute]:
        return self.attribute


class NameMatchTransactionAttributeSource(TransactionAttributeSource):
    """Match invocation names against fnmatch patterns; first match wins."""

    def __init__(self, attributes: dict[str, TransactionAttribute]):
        self.attributes = dict(attributes)

    def get_attribute(self, invocation_name: str) -> Optional[TransactionAttribute]:
        for pattern, attribute in self.attributes.items():
            if fnmatch.fnmatchcase(invocation_name, pattern):
                return attribute
        return None


# ──────────────────────────────────────────────────────────────
#  Synchronization
# ──────────────────────────────────────────────────────────────

class TransactionSynchronization:
    """Callbacks around transaction completion. All hooks default to no-ops."""

    async def before_commit(self, status: TransactionStatus) -> None:
        pass

    async def after_commit(self, status: TransactionStatus) -> None:
        pass

    async def after_rollback(self, status: TransactionStatus) -> None:
        pass

    async def after_completion(self, status: TransactionStatus, committed: bool) -> None:
        pass


class TransactionStatus:
    """State of one transaction, owned by the task that began it."""

    def __init__(self, name: str, attribute: TransactionAttribute, transaction: Any = None):
        self.name = name
        self.attribute = attribute
        self.transaction = transaction
        self.rollback_only = False
        self.global_rollback_only = False     # set by a participant that joined this transaction
        self.completed = False
        self.committed: Optional[bool] = None
        self.synchronizations: list[TransactionSynchronization] = []
        self.resources: dict[Any, Any] = {}

    def set_rollback_only(self) -> None:
        self.rollback_only = True

    def set_global_rollback_only(self) -> None:
        self.global_rollback_only = True

    def bind_resource(self, key: Any, value: Any) -> bool:
        """Bind a resource to this transaction once; False if the key is already bound."""
        if key in self.resources:
            return False
        self.resources[key] = value
        return True

    def register_synchronization(self, synchronization: TransactionSynchronization) -> None:
        if self.completed:
            raise RuntimeError(f"Transaction '{self.name}' has already completed")
        self.synchronizations.append(synchronization)

    def __repr__(self):
        state = "active" if not self.completed else ("committed" if self.committed else "rolled back")
        return f"<TransactionStatus {self.name} {state}>"


_current_transaction: ContextVar[Optional[TransactionStatus]] = ContextVar(
    "current_transaction", default=None
)


def current_transaction() -> Optional[TransactionStatus]:
    return _current_transaction.get()


# ──────────────────────────────────────────────────────────────
#  Transaction managers
# ──────────────────────────────────────────────────────────────

class TransactionManager(abc.ABC):
    """
    Begins, commits and rolls back transactions and drives the registered
    synchronizations. Subclasses implement the resource-specific _do_* hooks.
    """

    async def begin(self, attribute: TransactionAttribute, name: str = "") -> TransactionStatus:
        transaction = await self._do_begin(attribute)
        status = TransactionStatus(name=name, attribute=attribute, transaction=transaction)
        logger.debug("transaction_begun", transaction=name, propagation=attribute.propagation.value)
        return status

    async def commit(self, status: TransactionStatus) -> None:
        if status.global_rollback_only:
            logger.warning("transaction_unexpected_rollback", transaction=status.name)
            await self.rollback(status)
            raise UnexpectedRollbackError(
                f"Transaction '{status.name}' rolled back because a participant marked it rollback-only"
            )
        if status.rollback_only:
            logger.debug("transaction_rollback_only", transaction=status.name)
            await self.rollback(status)
            return

        try:
            for sync in list(status.synchronizations):
                await sync.before_commit(status)
            await self._do_commit(status)
        except Exception:
            await self.rollback(status)
            raise

        status.completed = True
        status.committed = True
        for sync in list(status.synchronizations):
            await self._run_callback(sync.after_commit, status)
        await self._complete(status, committed=True)
        logger.debug("transaction_committed", transaction=status.name)

    async def rollback(self, status: TransactionStatus) -> None:
        try:
            await self._do_rollback(status)
        finally:
            status.completed = True
            status.committed = False
            for sync in list(status.synchronizations):
                await self._run_callback(sync.after_rollback, status)
            await self._complete(status, committed=False)
            logger.debug("transaction_rolled_back", transaction=status.name)

    async def _complete(self, status: TransactionStatus, committed: bool) -> None:
        for sync in list(status.synchronizations):
            await self._run_callback(sync.after_completion, status, committed)

    @staticmethod
    async def _run_callback(callback: Callable[..., Awaitable[Any]], *args: Any) -> None:
        # the outcome is already decided; a failing callback must not change it
        try:
            await callback(*args)
        except Exception as e:
            logger.error("transaction_synchronization_failed",
                         callback=describe(callback),
                         error=str(e),
                         exc_info=True)

    @abc.abstractmethod
    async def _do_begin(self, attribute: TransactionAttribute) -> Any:
        ...

    @abc.abstractmethod
    async def _do_commit(self, status: TransactionStatus) -> None:
        ...

    @abc.abstractmethod
    async def _do_rollback(self, status: TransactionStatus) -> None:
        ...


class PseudoTransactionManager(TransactionManager):
    """
    A transaction manager with no underlying resource.

    Gives non-transactional sources a transaction boundary so that
    synchronization callbacks (e.g. move the message elsewhere on rollback)
    still fire at the right moment.
    """

    async def _do_begin(self, attribute: TransactionAttribute) -> Any:
        return None

    async def _do_commit(self, status: TransactionStatus) -> None:
        pass

    async def _do_rollback(self, status: TransactionStatus) -> None:
        pass


# ──────────────────────────────────────────────────────────────
#  Interceptor
# ──────────────────────────────────────────────────────────────

class TransactionInterceptor(Advice):

    def __init__(
        self,
        transaction_manager: Optional[TransactionManager] = None,
        attribute_source: Optional[TransactionAttributeSource] = None,
    ):
        self.transaction_manager = transaction_manager or PseudoTransactionManager()
        self.attribute_source = attribute_source or MatchAlwaysTransactionAttributeSource()

    async def invoke(self, invocation: Invocation) -> Any:
        attribute = self.attribute_source.get_attribute(invocation.name)
        if attribute is None:
            return await invocation.proceed()

        existing = current_transaction()
        if attribute.propagation == Propagation.SUPPORTS and existing is None:
            return await invocation.proceed()
        if existing is not None and attribute.propagation != Propagation.REQUIRES_NEW:
            return await self._join(existing, invocation, attribute)

        manager = self.transaction_manager
        status = await manager.begin(attribute, invocation.name)
        token = _current_transaction.set(status)
        try:
            try:
                result = await self._proceed(invocation, attribute)
            except asyncio.CancelledError:
                await manager.rollback(status)
                raise
            except Exception as e:
                if attribute.rollback_on(e):
                    await manager.rollback(status)
                else:
                    await manager.commit(status)
                raise
            await manager.commit(status)
            return result
        finally:
            _current_transaction.reset(token)

    async def _join(self, existing: TransactionStatus, invocation: Invocation,
                    attribute: TransactionAttribute) -> Any:
        try:
            return await invocation.proceed()
        except Exception as e:
            if attribute.rollback_on(e):
                existing.set_global_rollback_only()
            raise

    @staticmethod
    async def _proceed(invocation: Invocation, attribute: TransactionAttribute) -> Any:
        if attribute.timeout is None:
            return await invocation.proceed()
        try:
            return await asyncio.wait_for(invocation.proceed(), timeout=attribute.timeout)
        except asyncio.TimeoutError as e:
            raise TransactionTimedOutError(
                f"Transaction '{invocation.name}' timed out after {attribute.timeout}s"
            ) from e


# ──────────────────────────────────────────────────────────────
#  Per-message synchronizations for pollers
# ──────────────────────────────────────────────────────────────

SyncCallback = Callable[[Message, TransactionStatus], Any]


class TransactionSynchronizationFactory(abc.ABC):

    @abc.abstractmethod
    def create(self, message: Message) -> TransactionSynchronization:
        ...


class _MessageSynchronization(TransactionSynchronization):

    def __init__(self, message: Message, factory: DefaultTransactionSynchronizationFactory):
        self.message = message
        self.factory = factory

    async def before_commit(self, status: TransactionStatus) -> None:
        if self.factory.on_before_commit is not None:
            await call(self.factory.on_before_commit, self.message, status)

    async def after_commit(self, status: TransactionStatus) -> None:
        if self.factory.on_after_commit is not None:
            await call(self.factory.on_after_commit, self.message, status)

    async def after_rollback(self, status: TransactionStatus) -> None:
        if self.factory.on_after_rollback is not None:
            await call(self.factory.on_after_rollback, self.message, status)


class DefaultTransactionSynchronizationFactory(TransactionSynchronizationFactory):
    """
    Builds a synchronization bound to one polled message. Each callback
    receives (message, status) and may be sync or async; use send_to() to
    route the message to a channel.
    """

    def __init__(
        self,
        before_commit: Optional[SyncCallback] = None,
        after_commit: Optional[SyncCallback] = None,
        after_rollback: Optional[SyncCallback] = None,
    ):
        self.on_before_commit = before_commit
        self.on_after_commit = after_commit
        self.on_after_rollback = after_rollback

    def create(self, message: Message) -> TransactionSynchronization:
        return _MessageSynchronization(message, self)


def send_to(channel: MessageChannel, timeout: Optional[float] = None) -> SyncCallback:
    """Synchronization callback that forwards the message to `channel`."""

    async def forward(message: Message, status: TransactionStatus) -> None:
        if not await channel.send(message, timeout=timeout):
            logger.error("synchronization_send_failed",
                         channel=channel.name,
                         transaction=status.name,
                         message_id=message.id)

    return forward
