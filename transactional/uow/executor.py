"""
Run a unit of work inside one database transaction.

The executor begins a transaction, hands the handle to the unit of work and
settles it: commit when the unit of work returns, rollback when it raises.
Exactly one of the two is issued on every path except a failed begin.
"""

from __future__ import annotations

import logging
from typing import Generic, TypeVar

from transactional.core.context import Context, current_context
from transactional.uow.base import Database, Transaction, UnitOfWork
from transactional.uow.errors import (
    BeginError,
    Classifier,
    CommitError,
    ErrorKind,
    RollbackError,
    matches,
)

log = logging.getLogger(__name__)

T = TypeVar("T")


def rollback(
    tx: Transaction, exc: BaseException, classify: Classifier | None = None
) -> BaseException:
    """
    Roll ``tx`` back after ``exc`` and return the error to surface.

    - rollback succeeds: ``exc`` unchanged.
    - rollback fails because the transaction was already finished: ``exc``
      unchanged; someone else terminated the transaction first.
    - rollback fails otherwise: a :class:`RollbackError` holding ``exc`` and
      the rollback failure.

    :param tx: Handle to roll back.
    :param exc: Error that triggered the rollback.
    :param classify: Collaborator classifier for driver errors.
    :returns: Error the caller should raise.
    :rtype: BaseException
    """
    try:
        tx.rollback()
    except Exception as rerr:
        if matches(rerr, ErrorKind.ALREADY_FINISHED, classify):
            log.debug("transaction.already_finished", extra={"tx_id": tx.id, "outcome": "rollback"})
            return exc
        log.error(
            "transaction.rollback_failed",
            extra={"tx_id": tx.id, "outcome": "rollback"},
            exc_info=rerr,
        )
        return RollbackError(exc, rerr)
    log.debug("transaction.rollback", extra={"tx_id": tx.id, "outcome": "rollback"})
    return exc


class Executor(Generic[T]):
    """
    Begin, run and settle one transaction per call.

    :param database: Collaborator opening transactions.
    :type database: Database
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    def run(self, fn: UnitOfWork[T], ctx: Context | None = None) -> T:
        """
        Run ``fn`` in a new transaction and return its result.

        :param fn: Unit of work receiving the transaction handle.
        :param ctx: Context governing the begin call; the current context when
            omitted.
        :raises BeginError: The transaction could not be opened.
        :raises CommitError: Commit failed; the result is on ``.result``.
        :raises RollbackError: ``fn`` failed and so did the rollback.
        :returns: Value returned by ``fn``.
        """
        if ctx is None:
            ctx = current_context()

        try:
            tx = self.database.begin(ctx)
        except Exception as exc:
            log.warning("transaction.begin_failed: %s", exc)
            raise BeginError(exc) from exc
        log.debug("transaction.begin", extra={"tx_id": tx.id})

        try:
            result = fn(tx)
        except BaseException as exc:
            surfaced = rollback(tx, exc, self.database.classify)
            if surfaced is exc:
                raise
            raise surfaced

        try:
            tx.commit()
        except Exception as exc:
            if matches(exc, ErrorKind.ALREADY_FINISHED, self.database.classify):
                # whoever finished the transaction already reported its outcome
                log.debug(
                    "transaction.already_finished", extra={"tx_id": tx.id, "outcome": "commit"}
                )
                return result
            raise CommitError(exc, result) from exc

        log.debug("transaction.commit", extra={"tx_id": tx.id, "outcome": "commit"})
        return result


__all__ = ["Executor", "rollback"]
