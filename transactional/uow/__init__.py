"""Transaction contracts, the SQLAlchemy collaborator and the executor.

This package re-exports the SQLAlchemy-backed transaction handle and database
used by the request layer, alongside the abstract contracts, the error
taxonomy and the executor that settles each transaction.
"""

from .base import Database, Transaction, UnitOfWork
from .errors import (
    BeginError,
    CommitError,
    ErrorKind,
    NoRowsError,
    RollbackError,
    TransactionDoneError,
    TransactionError,
    matches,
)
from .executor import Executor, rollback
from .sqlalchemy_uow import SQLAlchemyDatabase, SQLAlchemyTransaction

__all__ = [
    "BeginError",
    "CommitError",
    "Database",
    "ErrorKind",
    "Executor",
    "NoRowsError",
    "RollbackError",
    "SQLAlchemyDatabase",
    "SQLAlchemyTransaction",
    "Transaction",
    "TransactionDoneError",
    "TransactionError",
    "UnitOfWork",
    "matches",
    "rollback",
]
