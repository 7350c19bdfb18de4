"""Run functions and Flask handlers inside a database transaction.

Commit on success, roll back on failure, and reuse the transaction that is
already open when one wrapped call invokes another within the same request.
"""

from __future__ import annotations

from .api.transactional import ErrorHandler, Handler, Transactional
from .core.context import (
    Context,
    DeadlineExceeded,
    current_context,
    transaction_from,
    use_context,
    with_transaction,
)
from .factory import create_app
from .uow import (
    BeginError,
    CommitError,
    Database,
    ErrorKind,
    Executor,
    NoRowsError,
    RollbackError,
    SQLAlchemyDatabase,
    SQLAlchemyTransaction,
    Transaction,
    TransactionDoneError,
    TransactionError,
    matches,
)

__all__ = [
    "BeginError",
    "CommitError",
    "Context",
    "Database",
    "DeadlineExceeded",
    "ErrorHandler",
    "ErrorKind",
    "Executor",
    "Handler",
    "NoRowsError",
    "RollbackError",
    "SQLAlchemyDatabase",
    "SQLAlchemyTransaction",
    "Transaction",
    "TransactionDoneError",
    "TransactionError",
    "Transactional",
    "create_app",
    "current_context",
    "matches",
    "transaction_from",
    "use_context",
    "with_transaction",
]
