"""Integration tests for the SQLAlchemy collaborator and the executor on SQLite."""

from __future__ import annotations

import time

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, NoResultFound, ResourceClosedError

from transactional.core.context import Context, DeadlineExceeded
from transactional.core.extensions import db, transactional
from transactional.uow.errors import (
    BeginError,
    ErrorKind,
    TransactionDoneError,
    matches,
)
from transactional.uow.executor import Executor
from transactional.uow.sqlalchemy_uow import SQLAlchemyDatabase, SQLAlchemyTransaction

from tests.helpers.fakes import FailingSession

INSERT = text("INSERT INTO items (name) VALUES (:name)")


class TestSQLAlchemyTransaction:
    def test_commit_persists_and_finishes_handle(self, app, count_items):
        with app.app_context():
            tx = SQLAlchemyDatabase(db.engine).begin(Context.background())
            tx.execute(INSERT, {"name": "kettlebell"})
            tx.commit()

            assert tx.finished
            with pytest.raises(TransactionDoneError):
                tx.commit()
            with pytest.raises(TransactionDoneError):
                tx.rollback()

        assert count_items() == 1

    def test_rollback_discards_changes(self, app, count_items):
        with app.app_context():
            tx = SQLAlchemyDatabase(db.engine).begin(Context.background())
            tx.execute(INSERT, {"name": "barbell"})
            tx.rollback()

        assert count_items() == 0

    def test_expired_context_prevents_begin(self, app):
        expired = Context.background().with_deadline(time.monotonic() - 1)

        with app.app_context():
            with pytest.raises(DeadlineExceeded):
                SQLAlchemyDatabase(db.engine).begin(expired)

            with pytest.raises(BeginError) as info:
                Executor(SQLAlchemyDatabase(db.engine)).run(lambda tx: None, expired)

        assert isinstance(info.value.__cause__, DeadlineExceeded)

    def test_lazy_engine_and_isolation_level(self, app, count_items):
        database = SQLAlchemyDatabase(lambda: db.engine, isolation_level="serializable")

        with app.app_context():
            Executor(database).run(lambda tx: tx.execute(INSERT, {"name": "rope"}))

        assert database.isolation_level == "SERIALIZABLE"
        assert count_items() == 1

    def test_rollback_failure_is_not_hidden_by_close_failure(self):
        """
        GIVEN a session whose rollback and close both fail
        WHEN the handle is rolled back
        THEN the rollback failure surfaces and the handle is finished.
        """
        lost = ConnectionError("connection lost")
        session = FailingSession(rollback_error=lost, close_error=RuntimeError("close"))
        tx = SQLAlchemyTransaction(session)

        with pytest.raises(ConnectionError) as info:
            tx.rollback()

        assert info.value is lost
        assert tx.finished
        assert session.closed == 1

    def test_commit_failure_is_not_hidden_by_close_failure(self):
        lost = ConnectionError("connection lost")
        tx = SQLAlchemyTransaction(
            FailingSession(commit_error=lost, close_error=RuntimeError("close"))
        )

        with pytest.raises(ConnectionError) as info:
            tx.commit()

        assert info.value is lost

    def test_close_failure_after_clean_rollback_is_raised(self):
        tx = SQLAlchemyTransaction(FailingSession(close_error=RuntimeError("close")))

        with pytest.raises(RuntimeError, match="close"):
            tx.rollback()

        assert tx.finished

    def test_classify_maps_driver_errors(self):
        database = SQLAlchemyDatabase(lambda: None)  # engine never resolved

        assert database.classify(NoResultFound()) is ErrorKind.NO_ROWS
        assert database.classify(ResourceClosedError("closed")) is ErrorKind.ALREADY_FINISHED
        assert database.classify(ValueError()) is None


class TestAppBinding:
    def test_each_app_keeps_its_own_isolation_level(self, make_app):
        """
        GIVEN two apps initialised on the shared wrapper with different
        ``TX_ISOLATION_LEVEL`` settings
        WHEN the database is resolved inside each app context
        THEN each app sees its own setting.
        """
        default_app = make_app(TX_ISOLATION_LEVEL=None)
        strict_app = make_app(TX_ISOLATION_LEVEL="SERIALIZABLE")

        with default_app.app_context():
            assert transactional.database.isolation_level is None
        with strict_app.app_context():
            assert transactional.database.isolation_level == "SERIALIZABLE"
            assert transactional.run(lambda tx: tx.execute(text("SELECT 1")).scalar_one()) == 1

    def test_shared_wrapper_outside_app_context_is_not_initialized(self, app):
        with pytest.raises(RuntimeError, match="not initialized"):
            transactional.run(lambda tx: None)


class TestRunOnSQLite:
    def test_failure_rolls_back_every_statement(self, app, count_items):
        def unit(tx):
            tx.execute(INSERT, {"name": "plate"})
            tx.execute(INSERT, {"name": "plate"})  # unique violation

        with app.app_context(), pytest.raises(IntegrityError):
            transactional.run(unit)

        assert count_items() == 0

    def test_nested_runs_commit_once_together(self, app, count_items):
        ids = []

        def inner(tx):
            ids.append(tx.id)
            tx.execute(INSERT, {"name": "inner"})

        def outer(tx):
            ids.append(tx.id)
            tx.execute(INSERT, {"name": "outer"})
            transactional.run_in_transaction(inner)
            return tx.scalars(text("SELECT name FROM items ORDER BY name")).all()

        with app.app_context():
            names = transactional.run(outer)

        assert names == ["inner", "outer"]
        assert ids[0] == ids[1]
        assert count_items() == 2

    def test_missing_row_is_classified_as_no_rows(self, app):
        def unit(tx):
            return tx.execute(text("SELECT name FROM items WHERE id = 404")).scalar_one()

        with app.app_context():
            with pytest.raises(NoResultFound) as info:
                transactional.run(unit)

            assert matches(info.value, ErrorKind.NO_ROWS, transactional.database.classify)
