"""API package: the transaction wrapper and the blueprints built on it."""

from __future__ import annotations

from flask import Flask

from .transactional import ErrorHandler, Handler, Transactional


def init_app(app: Flask) -> None:
    """Register the health blueprint under ``API_BASE_PREFIX``."""

    from transactional.api.health import bp as health_bp

    api_base = app.config.get("API_BASE_PREFIX", "/api")
    app.register_blueprint(health_bp, url_prefix=api_base.rstrip("/") or None)


__all__ = ["ErrorHandler", "Handler", "Transactional", "init_app"]
