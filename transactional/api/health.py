"""Health check endpoint."""

from __future__ import annotations

from flask import Blueprint, Request, Response, current_app
from sqlalchemy import text

from transactional.api.deps import json_response, timing
from transactional.core.errors import render_error
from transactional.core.extensions import transactional
from transactional.uow.sqlalchemy_uow import SQLAlchemyTransaction

bp = Blueprint("health", __name__)


def _database_health(tx: SQLAlchemyTransaction, response: Response, request: Request):
    """Return application and database health information."""

    tx.execute(text("SELECT 1"))
    version = current_app.config.get("APP_VERSION", "dev")
    payload = {"status": "ok", "db": "ok", "tx_id": tx.id, "version": version}
    return json_response(payload)


healthcheck = timing(transactional.wrap(_database_health, render_error))
bp.add_url_rule("/health", endpoint="healthcheck", view_func=healthcheck, methods=["GET"])
