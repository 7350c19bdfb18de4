"""Run Flask handlers and plain functions inside a database transaction.

:class:`Transactional` sits between the request layer and the
:class:`~transactional.uow.executor.Executor`. Each call first looks at the
current execution context:

* a transaction is already attached (an outer wrapped handler or ``run`` call
  is in progress): the handle is reused, nothing new is begun and the outer
  invocation keeps ownership of the commit;
* nothing is attached: the executor begins a transaction and the handler runs
  under a derived context carrying the new handle, so nested calls find it.

At the HTTP boundary "no rows" errors become ``404 Not Found``; every other
error reaches the error handler unchanged.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

from flask import Flask, Request, Response, current_app, has_app_context, request
from flask.typing import ResponseReturnValue
from flask_sqlalchemy import SQLAlchemy

from transactional.core.context import (
    Context,
    current_context,
    transaction_from,
    use_context,
    with_transaction,
)
from transactional.core.errors import NotFound
from transactional.uow.base import Database, Transaction, UnitOfWork
from transactional.uow.errors import ErrorKind, matches
from transactional.uow.executor import Executor, rollback
from transactional.uow.sqlalchemy_uow import SQLAlchemyDatabase

log = logging.getLogger(__name__)

T = TypeVar("T")


class Handler(Protocol):
    """HTTP handler that runs against a transaction and may raise."""

    def __call__(
        self, tx: Transaction, response: Response, request: Request, /, *args: Any, **kwargs: Any
    ) -> ResponseReturnValue | None: ...


ErrorHandler = Callable[[Exception], ResponseReturnValue]


class Transactional:
    """
    Wrap functions and Flask handlers within a transaction.

    Parameters
    ----------
    database:
        Collaborator opening transactions. May be left out and supplied later
        through :meth:`init_app`.
    begin_timeout:
        Default seconds a wrapped request may wait for its transaction to
        begin. The ``TX_BEGIN_TIMEOUT`` setting of the running app wins when
        present.

    Examples
    --------
    >>> tx = Transactional.with_db(engine)
    >>> @bp.get("/items/<int:item_id>")
    ... @tx.wrap
    ... def get_item(tx, response, request, item_id):
    ...     return {"name": tx.execute(stmt, {"id": item_id}).scalar_one()}
    """

    def __init__(
        self, database: Database | None = None, *, begin_timeout: float | None = None
    ) -> None:
        self._executor: Executor[Any] | None = None
        if database is not None:
            self._executor = Executor(database)
        self.begin_timeout = begin_timeout

    @classmethod
    def with_db(cls, bind: Any, **options: Any) -> Transactional:
        """Create a wrapper over an engine (or engine factory) via SQLAlchemy."""
        return cls(SQLAlchemyDatabase(bind, **options))

    def init_app(self, app: Flask, db: SQLAlchemy) -> None:
        """
        Bind the wrapper to the Flask-SQLAlchemy engine of ``app``.

        Each application gets its own executor, stored in
        ``app.extensions["transactional"]`` and resolved through
        :data:`flask.current_app`, so several apps may share this instance
        with different ``TX_ISOLATION_LEVEL`` settings. A wrapper created with
        an explicit database keeps using it for every app.

        :param app: Application whose ``TX_*`` settings are consulted.
        :param db: Flask-SQLAlchemy extension providing the engine.
        """
        executor = self._executor
        if executor is None:
            executor = Executor(
                SQLAlchemyDatabase(
                    lambda: db.engine,
                    isolation_level=app.config.get("TX_ISOLATION_LEVEL"),
                )
            )
        app.extensions["transactional"] = executor

    @property
    def database(self) -> Database:
        return self.executor.database

    @property
    def executor(self) -> Executor[Any]:
        if self._executor is not None:
            return self._executor
        if has_app_context():
            executor = current_app.extensions.get("transactional")
            if executor is not None:
                return executor
        raise RuntimeError("Transactional is not initialized. Call init_app() first.")

    # ----------------------------- Functions ----------------------------------

    def run(self, fn: UnitOfWork[T], ctx: Context | None = None) -> T:
        """
        Run ``fn`` in the transaction of ``ctx``, beginning one if needed.

        When ``ctx`` already carries a transaction, ``fn`` runs against it and
        its errors propagate untouched: the invocation that began the
        transaction performs the single rollback.

        :param fn: Unit of work receiving the transaction handle.
        :param ctx: Context to inspect; the current context when omitted.
        :returns: Value returned by ``fn``.
        """
        if ctx is None:
            ctx = current_context()

        tx = transaction_from(ctx)
        if tx is not None:
            log.debug("transaction.reuse", extra={"tx_id": tx.id})
            return fn(tx)

        def unit(tx: Transaction) -> T:
            with use_context(with_transaction(ctx, tx)):
                return fn(tx)

        return self.executor.run(unit, ctx)

    def run_in_transaction(
        self, fn: Callable[[Transaction], object], ctx: Context | None = None
    ) -> None:
        """Run ``fn`` for its side effects only. See :meth:`run`."""
        self.run(fn, ctx)

    # ------------------------------- HTTP -------------------------------------

    def wrap(
        self,
        handler: Handler | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> Any:
        """
        Turn ``handler`` into a Flask view running inside a transaction.

        Usable as ``tx.wrap(handler, error_handler)``, ``@tx.wrap`` or
        ``@tx.wrap(error_handler=...)``.

        The handler is called as ``handler(tx, response, request, **view_args)``.
        It may fill ``response`` and return ``None``, or return any Flask
        response value.

        :param handler: Handler to wrap.
        :param error_handler: Renders errors raised by the handler, begin or
            commit. When ``None`` the error is raised so the application's
            Flask error handlers render it.
        :returns: Flask view function.
        """
        if handler is None:
            return functools.partial(self.wrap, error_handler=error_handler)

        @functools.wraps(handler)
        def view(*args: Any, **kwargs: Any) -> ResponseReturnValue:
            try:
                return self._dispatch(handler, args, kwargs)
            except Exception as exc:
                err = self.translate_exception(exc)
                if error_handler is not None:
                    return error_handler(err)
                if err is exc:
                    raise
                raise err

        return view

    def translate_exception(self, exc: Exception) -> Exception:
        """
        Map transaction-layer errors onto HTTP-visible errors.

        :param exc: Error raised while serving the request.
        :returns: :class:`NotFound` chained to ``exc`` for "no rows" errors,
            otherwise ``exc`` itself.
        :rtype: Exception
        """
        if matches(exc, ErrorKind.NO_ROWS, self.database.classify):
            not_found = NotFound()
            not_found.__cause__ = exc
            return not_found
        return exc

    # ----------------------------- Internals ----------------------------------

    def _dispatch(self, handler: Handler, args: tuple[Any, ...], kwargs: dict[str, Any]):
        ctx = current_context()
        tx = transaction_from(ctx)
        if tx is not None:
            log.debug("transaction.reuse", extra={"tx_id": tx.id})
            try:
                return self._serve(handler, tx, args, kwargs)
            except BaseException as exc:
                surfaced = rollback(tx, exc, self.database.classify)
                if surfaced is exc:
                    raise
                raise surfaced

        timeout = current_app.config.get("TX_BEGIN_TIMEOUT") or self.begin_timeout
        if timeout:
            ctx = ctx.with_timeout(timeout)

        def unit(tx: Transaction) -> ResponseReturnValue:
            with use_context(with_transaction(ctx, tx)):
                return self._serve(handler, tx, args, kwargs)

        return self.executor.run(unit, ctx)

    def _serve(
        self, handler: Handler, tx: Transaction, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> ResponseReturnValue:
        response = current_app.response_class()
        rv = handler(tx, response, request, *args, **kwargs)
        return response if rv is None else rv


__all__ = ["ErrorHandler", "Handler", "Transactional"]
