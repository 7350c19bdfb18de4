"""
SQLAlchemy implementation of the transaction collaborator.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any
from uuid import uuid4

from sqlalchemy.engine import Engine, Result
from sqlalchemy.exc import NoResultFound, ResourceClosedError
from sqlalchemy.orm import Session

from transactional.core.context import Context
from transactional.uow.base import Transaction
from transactional.uow.errors import ErrorKind, TransactionDoneError

log = logging.getLogger(__name__)

_ISOLATION_LEVELS = (
    "READ COMMITTED",
    "REPEATABLE READ",
    "SERIALIZABLE",
    "READ UNCOMMITTED",
    "AUTOCOMMIT",
)


class SQLAlchemyTransaction(Transaction):
    """
    Transaction handle backed by a dedicated SQLAlchemy session.

    The session is created for this transaction only and is closed as soon as
    the transaction is committed or rolled back, which returns the connection
    to the engine's pool.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.id = uuid4().hex[:12]
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def execute(self, statement: Any, params: Mapping[str, Any] | None = None) -> Result[Any]:
        self._ensure_active()
        return self.session.execute(statement, params)

    def scalars(self, statement: Any, params: Mapping[str, Any] | None = None):
        self._ensure_active()
        return self.session.scalars(statement, params)

    def commit(self) -> None:
        self._ensure_active()
        try:
            self.session.commit()
        except ResourceClosedError as exc:
            self._finish(exc)
            raise TransactionDoneError() from exc
        except BaseException as exc:
            self._finish(exc)
            raise
        self._finish()

    def rollback(self) -> None:
        self._ensure_active()
        try:
            self.session.rollback()
        except BaseException as exc:
            self._finish(exc)
            raise
        self._finish()

    # ----------------------------- Internals ----------------------------------

    def _ensure_active(self) -> None:
        if self._finished:
            raise TransactionDoneError()

    def _finish(self, pending: BaseException | None = None) -> None:
        """Mark the handle finished and close its session.

        A close failure is raised unless ``pending`` is already propagating;
        then it is only logged so ``pending`` keeps surfacing.
        """
        self._finished = True
        try:
            self.session.close()
        except Exception:
            if pending is None:
                raise
            log.warning("transaction.close_failed", extra={"tx_id": self.id}, exc_info=True)


class SQLAlchemyDatabase:
    """
    Open transactions on a SQLAlchemy engine.

    Parameters
    ----------
    bind:
        An :class:`~sqlalchemy.engine.Engine` or a zero-argument callable
        returning one. The callable form resolves the engine lazily, which is
        how the Flask-SQLAlchemy engine (only available inside an application
        context) is plugged in.
    isolation_level:
        Optional isolation level applied to the connection of every new
        transaction (``"READ COMMITTED"``, ``"SERIALIZABLE"``, ...). ``None``
        keeps the engine default.
    session_options:
        Extra keyword arguments for :class:`~sqlalchemy.orm.Session`.
        ``expire_on_commit`` defaults to ``False`` so values returned by a unit
        of work stay readable after commit.
    """

    def __init__(
        self,
        bind: Engine | Callable[[], Engine],
        *,
        isolation_level: str | None = None,
        session_options: Mapping[str, Any] | None = None,
    ) -> None:
        self._bind = bind
        self.isolation_level = isolation_level.upper().strip() if isolation_level else None
        self.session_options: dict[str, Any] = {"expire_on_commit": False}
        self.session_options.update(session_options or {})
        if self.isolation_level and self.isolation_level not in _ISOLATION_LEVELS:
            log.warning("Unknown isolation_level '%s'; attempting as-is.", self.isolation_level)

    @property
    def engine(self) -> Engine:
        if isinstance(self._bind, Engine):
            return self._bind
        return self._bind()

    def begin(self, ctx: Context) -> SQLAlchemyTransaction:
        """
        Begin a transaction and acquire its connection.

        :param ctx: Context whose deadline governs the begin call.
        :raises DeadlineExceeded: When the context expired before or while the
            connection was acquired.
        """
        err = ctx.err()
        if err is not None:
            raise err

        session = Session(bind=self.engine, **self.session_options)
        try:
            session.begin()
            if self.isolation_level:
                session.connection(execution_options={"isolation_level": self.isolation_level})
            else:
                session.connection()
            err = ctx.err()
            if err is not None:
                raise err
        except BaseException:
            session.close()
            raise
        return SQLAlchemyTransaction(session)

    def classify(self, exc: BaseException) -> ErrorKind | None:
        """Map SQLAlchemy exceptions onto :class:`ErrorKind`."""
        if isinstance(exc, NoResultFound):
            return ErrorKind.NO_ROWS
        if isinstance(exc, ResourceClosedError):
            return ErrorKind.ALREADY_FINISHED
        return None
