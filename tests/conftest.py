"""Global pytest fixtures for the transaction wrapper.

Unit tests run against in-memory fakes of the database collaborator; the
integration tests build the real application on a shared in-memory SQLite
connection.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from typing import Any

import pytest
from flask import Flask
from sqlalchemy import text
from sqlalchemy.pool import StaticPool

from transactional import Transactional, create_app
from transactional.core import errors
from transactional.core.extensions import db

from tests.helpers.fakes import FakeDatabase


class TestConfig:
    """Testing configuration for creating the Flask app.

    Notes
    -----
    - Uses a single in-memory SQLite connection (``StaticPool``) so every
      transaction sees the same database.
    - Leaves the begin call unbounded.
    """

    TESTING = True
    DEBUG = False
    PROPAGATE_EXCEPTIONS = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {
        "poolclass": StaticPool,
        "connect_args": {"check_same_thread": False},
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    TX_BEGIN_TIMEOUT = None
    TX_ISOLATION_LEVEL = None
    LOG_LEVEL = "WARNING"


@pytest.fixture()
def app() -> Generator[Flask, None, None]:
    """Create the application with an ``items`` table.

    Yields
    ------
    flask.Flask
        Application instance with :class:`TestConfig` applied. A fresh
        instance per test lets each test register its own routes.
    """
    os.environ.pop("DATABASE_URL", None)
    application = create_app(TestConfig)
    with application.app_context():
        with db.engine.begin() as conn:
            conn.execute(
                text(
                    "CREATE TABLE IF NOT EXISTS items ("
                    "id INTEGER PRIMARY KEY, name TEXT NOT NULL UNIQUE)"
                )
            )
    yield application
    with application.app_context():
        with db.engine.begin() as conn:
            conn.execute(text("DROP TABLE IF EXISTS items"))
        db.engine.dispose()


@pytest.fixture()
def make_app() -> Generator[Any, None, None]:
    """Return a factory building extra apps from :class:`TestConfig` overrides.

    Engines of every app built are disposed after the test.
    """
    built: list[Flask] = []

    def _make(**overrides: Any) -> Flask:
        config = type("OverrideConfig", (TestConfig,), overrides)
        application = create_app(config)
        built.append(application)
        return application

    yield _make
    for application in built:
        with application.app_context():
            db.engine.dispose()


@pytest.fixture()
def client(app: Flask) -> Any:
    """Return a Flask test client."""

    return app.test_client()


@pytest.fixture()
def count_items(app: Flask):
    """Return a callable counting committed rows in ``items``."""

    def _count() -> int:
        with app.app_context():
            with db.engine.connect() as conn:
                return conn.execute(text("SELECT COUNT(*) FROM items")).scalar_one()

    return _count


@pytest.fixture()
def fake_db() -> FakeDatabase:
    """Fake database collaborator with default (succeeding) transactions."""

    return FakeDatabase()


@pytest.fixture()
def fake_app() -> Flask:
    """Bare Flask app with the problem+json error handlers only."""

    application = Flask(__name__)
    application.config["TESTING"] = True
    errors.init_app(application)
    return application


@pytest.fixture()
def wrapper(fake_db: FakeDatabase) -> Transactional:
    """Transaction wrapper bound to :func:`fake_db`."""

    return Transactional(fake_db)
