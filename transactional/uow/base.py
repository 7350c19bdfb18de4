"""
Abstract transaction contracts.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, TypeVar

from transactional.uow.errors import ErrorKind

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from transactional.core.context import Context

T = TypeVar("T")


class Transaction(ABC):
    """
    Handle to one in-progress database transaction.

    Responsibilities:
    - Terminate exactly once, through either :meth:`commit` or :meth:`rollback`.
    - Raise :class:`~transactional.uow.errors.TransactionDoneError` on any
      termination attempt after the first.

    The handle is owned by the invocation that began it and is passed by
    reference, never copied, to the unit of work and to nested invocations.
    """

    id: str

    @abstractmethod
    def commit(self) -> None: ...
    @abstractmethod
    def rollback(self) -> None: ...
    @property
    @abstractmethod
    def finished(self) -> bool: ...


class Database(Protocol):
    """Capability to open transactions and recognise driver error conditions."""

    def begin(self, ctx: Context) -> Transaction: ...
    def classify(self, exc: BaseException) -> ErrorKind | None: ...


UnitOfWork = Callable[[Transaction], T]
