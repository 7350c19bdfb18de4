"""Immutable, request-scoped execution context.

A :class:`Context` is a small key/value carrier that is extended, never
mutated: every ``with_*`` call returns a new instance. The context that is
active for the running call chain lives in a :class:`contextvars.ContextVar`
and is bound with :func:`use_context`, so nested invocations inside the same
request (or thread/task) see what their caller attached.

The active transaction handle is stored under a module-private key instance
that nothing outside this module can construct or look up by name.
"""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from transactional.uow.base import Transaction


class DeadlineExceeded(TimeoutError):
    """Raised when work is attempted on a context whose deadline has passed."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


def _empty() -> Mapping[Any, Any]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class Context:
    """
    Immutable key/value bag with an optional deadline.

    :param values: Read-only mapping of attached values.
    :type values: Mapping[Any, Any]
    :param deadline: Absolute :func:`time.monotonic` timestamp after which
        :meth:`err` reports :class:`DeadlineExceeded`, or ``None``.
    :type deadline: float | None
    """

    values: Mapping[Any, Any] = field(default_factory=_empty)
    deadline: float | None = None

    @classmethod
    def background(cls) -> Context:
        """Return an empty context without deadline."""
        return _BACKGROUND

    def value(self, key: Any, default: Any = None) -> Any:
        return self.values.get(key, default)

    def with_value(self, key: Any, value: Any) -> Context:
        """Return a derived context that also carries ``key -> value``."""
        values = dict(self.values)
        values[key] = value
        return replace(self, values=MappingProxyType(values))

    def with_deadline(self, deadline: float) -> Context:
        """Return a derived context expiring at ``deadline`` (monotonic clock).

        A parent deadline that is already earlier is kept.
        """
        if self.deadline is not None and self.deadline <= deadline:
            return self
        return replace(self, deadline=deadline)

    def with_timeout(self, seconds: float) -> Context:
        return self.with_deadline(time.monotonic() + seconds)

    def remaining(self) -> float | None:
        """Seconds left before the deadline, ``None`` when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def err(self) -> DeadlineExceeded | None:
        """Return the reason this context is done, or ``None`` while it is live."""
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return DeadlineExceeded()
        return None


_BACKGROUND = Context()

_current: ContextVar[Context] = ContextVar("transactional_context")


def current_context() -> Context:
    """Return the context bound to the running call chain (background if none)."""
    return _current.get(_BACKGROUND)


@contextmanager
def use_context(ctx: Context) -> Iterator[Context]:
    """Bind ``ctx`` as the current context for the duration of the block."""
    token = _current.set(ctx)
    try:
        yield ctx
    finally:
        _current.reset(token)


class _TransactionKey:
    __slots__ = ()

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return "<transaction key>"


_TX_KEY = _TransactionKey()


def with_transaction(ctx: Context, tx: Transaction) -> Context:
    """Return a derived context carrying the active transaction handle."""
    return ctx.with_value(_TX_KEY, tx)


def transaction_from(ctx: Context) -> Transaction | None:
    """Return the transaction handle attached to ``ctx``, if any."""
    return ctx.value(_TX_KEY)


__all__ = [
    "Context",
    "DeadlineExceeded",
    "current_context",
    "transaction_from",
    "use_context",
    "with_transaction",
]
