"""
Transaction-level exceptions and error classification.

These exceptions are **framework-agnostic**: they never import Flask or HTTP
helpers. Translation to HTTP responses (RFC 7807) happens at the request
boundary in ``transactional/api/transactional.py`` and
``transactional/core/errors.py``.

Classification is done by explicit kind comparison. Exceptions raised by this
package carry an :class:`ErrorKind` in their ``kind`` attribute; foreign
exceptions (driver errors) are classified by the database collaborator's
``classify`` callable. Wrapping never hides the original cause: the chain is
walked through ``__cause__`` and through the members of compound errors.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from enum import Enum
from typing import Any, ClassVar


class ErrorKind(str, Enum):
    """Underlying conditions callers need to recognise after wrapping."""

    NO_ROWS = "no_rows"
    ALREADY_FINISHED = "already_finished"


Classifier = Callable[[BaseException], "ErrorKind | None"]


# --------------------------------------------------------------------------- #
# Base types
# --------------------------------------------------------------------------- #


class TransactionError(Exception):
    """
    Base class for all errors raised by the transaction layer.

    Notes
    -----
    - ``kind`` is ``None`` unless the error *is* one of the recognised
      underlying conditions.
    - Wrapper errors keep their cause in ``__cause__``.
    """

    kind: ClassVar[ErrorKind | None] = None


class TransactionDoneError(TransactionError):
    """Raised by commit/rollback on a transaction that was already terminated."""

    kind = ErrorKind.ALREADY_FINISHED

    def __init__(
        self, message: str = "transaction has already been committed or rolled back"
    ) -> None:
        super().__init__(message)


class NoRowsError(TransactionError):
    """Raised by application code when a query matched no row."""

    kind = ErrorKind.NO_ROWS

    def __init__(self, message: str = "no rows in result set") -> None:
        super().__init__(message)


# --------------------------------------------------------------------------- #
# Wrappers
# --------------------------------------------------------------------------- #


class BeginError(TransactionError):
    """
    Raised when a transaction could not be opened.

    :param cause: Error reported by the database collaborator.
    :type cause: BaseException
    """

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"failed to begin transaction: {cause}")
        self.__cause__ = cause


class CommitError(TransactionError):
    """
    Raised when commit fails for a reason other than "already finished".

    The unit of work already produced its value; it is kept in ``result``.
    Callers must treat the error as authoritative regardless of that value.

    :param cause: Error reported by the commit call.
    :type cause: BaseException
    :param result: Value returned by the unit of work.
    :type result: Any
    """

    def __init__(self, cause: BaseException, result: Any = None) -> None:
        super().__init__(f"failed to commit transaction: {cause}")
        self.__cause__ = cause
        self.result = result


class RollbackError(TransactionError):
    """
    Raised when rollback itself fails after the unit of work failed.

    Both errors stay diagnosable, in order: ``original`` first, then
    ``rollback_error``.

    :param original: Error that triggered the rollback.
    :type original: BaseException
    :param rollback_error: Error raised by the rollback call.
    :type rollback_error: BaseException
    """

    def __init__(self, original: BaseException, rollback_error: BaseException) -> None:
        super().__init__(f"failed to rollback: {original}: {rollback_error}")
        self.original = original
        self.rollback_error = rollback_error
        self.__cause__ = rollback_error

    @property
    def errors(self) -> tuple[BaseException, BaseException]:
        return (self.original, self.rollback_error)


# --------------------------------------------------------------------------- #
# Classification
# --------------------------------------------------------------------------- #


def iter_errors(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and every error it wraps, each at most once."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        current = stack.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        if isinstance(current, RollbackError):
            # original first
            stack.append(current.rollback_error)
            stack.append(current.original)
        elif current.__cause__ is not None:
            stack.append(current.__cause__)


def kind_of(exc: BaseException, classify: Classifier | None = None) -> ErrorKind | None:
    """Return the kind of ``exc`` alone, without walking its chain."""
    kind = getattr(exc, "kind", None)
    if isinstance(kind, ErrorKind):
        return kind
    if classify is not None:
        return classify(exc)
    return None


def matches(
    exc: BaseException, kind: ErrorKind, classify: Classifier | None = None
) -> bool:
    """
    Check whether ``exc`` or anything it wraps is of ``kind``.

    :param exc: Error to inspect.
    :param kind: Condition looked for.
    :param classify: Optional collaborator classifier for foreign exceptions.
    :returns: ``True`` if any error in the chain matches.
    :rtype: bool
    """
    return any(kind_of(err, classify) is kind for err in iter_errors(exc))


__all__ = [
    "BeginError",
    "Classifier",
    "CommitError",
    "ErrorKind",
    "NoRowsError",
    "RollbackError",
    "TransactionDoneError",
    "TransactionError",
    "iter_errors",
    "kind_of",
    "matches",
]
