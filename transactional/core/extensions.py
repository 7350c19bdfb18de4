"""Global Flask extension instances and initialization helpers."""

from __future__ import annotations

from flask import Flask
from flask_sqlalchemy import SQLAlchemy

from transactional.api.transactional import Transactional

# Global singletons (import-safe)
db: SQLAlchemy = SQLAlchemy()
transactional = Transactional()


def init_app(app: Flask) -> None:
    """Initialize SQLAlchemy and bind the transaction wrapper to its engine.

    Parameters
    ----------
    app: flask.Flask
        Application used to bind extension instances. ``TX_ISOLATION_LEVEL``
        is read once here; ``TX_BEGIN_TIMEOUT`` is read per request.
    """
    db.init_app(app)
    transactional.init_app(app, db)
