"""Advice: interceptors composed around endpoint invocations."""
from advice.chain import Advice, AdviceChain, FunctionAdvice, Invocation, as_advice
from advice.retry import RetryAdvice
from advice.transaction import (
    Propagation,
    TransactionAttribute,
    TransactionAttributeSource,
    MatchAlwaysTransactionAttributeSource,
    NameMatchTransactionAttributeSource,
    TransactionManager,
    PseudoTransactionManager,
    TransactionStatus,
    TransactionSynchronization,
    TransactionSynchronizationFactory,
    DefaultTransactionSynchronizationFactory,
    TransactionInterceptor,
    TransactionTimedOutError,
    UnexpectedRollbackError,
    current_transaction,
    send_to,
)

__all__ = [
    "Advice", "AdviceChain", "FunctionAdvice", "Invocation", "as_advice",
    "RetryAdvice",
    "Propagation", "TransactionAttribute", "TransactionAttributeSource",
    "MatchAlwaysTransactionAttributeSource", "NameMatchTransactionAttributeSource",
    "TransactionManager", "PseudoTransactionManager", "TransactionStatus",
    "TransactionSynchronization", "TransactionSynchronizationFactory",
    "DefaultTransactionSynchronizationFactory", "TransactionInterceptor",
    "TransactionTimedOutError", "UnexpectedRollbackError", "current_transaction", "send_to",
]
