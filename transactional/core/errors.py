"""Centralized JSON (RFC 7807) error rendering for wrapped handlers."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from flask import Flask, Response, jsonify, request
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.exceptions import HTTPException

from transactional.core.logger import ensure_request_id
from transactional.uow.errors import BeginError, CommitError

log = logging.getLogger(__name__)


def _http_status_to_code(status_code: int) -> str:
    """Map common HTTP status codes to canonical, stable error codes."""
    mapping = {
        400: "bad_request",
        404: "not_found",
        405: "method_not_allowed",
        409: "conflict",
        422: "unprocessable_entity",
        500: "internal_server_error",
        503: "service_unavailable",
    }
    return mapping.get(status_code, "error")


def _as_problem(
    *,
    status: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build an RFC 7807 Problem Details dict.

    :param status: HTTP status code.
    :param code: Stable machine-consumable error code.
    :param message: Human-readable error summary (safe for clients).
    :param details: Optional safe, structured details.
    :returns: Problem+JSON dictionary.
    :rtype: dict
    """
    problem = {
        "type": "about:blank",
        "title": HTTPStatus(status).phrase,
        "status": status,
        "detail": message,
        "instance": request.path if request else None,
        "code": code,
    }
    if details:
        problem["details"] = details
    problem["request_id"] = ensure_request_id()
    return problem


def problem_response(problem: dict[str, Any]) -> Response:
    """
    Return a Flask response with ``application/problem+json`` media type.

    :param problem: Problem details payload.
    :returns: Flask JSON Response with proper MIME type and status.
    :rtype: flask.Response
    """
    resp = jsonify(problem)
    resp.mimetype = "application/problem+json"
    resp.status_code = int(problem["status"])
    return resp


class APIError(Exception):
    """
    Represent a JSON-serializable API error.

    Parameters
    ----------
    message : str
        Human-readable description presented to clients.
    status_code : int, optional
        HTTP status code to return. Defaults to ``400``.
    code : str, optional
        Machine-readable identifier, typically snake_case. Defaults to
        ``"bad_request"``.
    details : dict[str, Any] | None, optional
        Optional structured payload included in the response body.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        code: str = "bad_request",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.code = code
        self.details = details or {}

    def to_problem(self) -> dict[str, Any]:
        """Serialize error metadata into an RFC 7807 problem."""
        return _as_problem(
            status=self.status_code,
            code=self.code,
            message=self.message,
            details=self.details or None,
        )


class NotFound(APIError):
    """404 when the queried row does not exist."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, status_code=HTTPStatus.NOT_FOUND, code="not_found")


class Conflict(APIError):
    """409 for uniqueness/constraint collisions."""

    def __init__(self, message: str = "Conflict") -> None:
        super().__init__(message, status_code=HTTPStatus.CONFLICT, code="conflict")


class ServiceUnavailable(APIError):
    """503 when the database cannot open a transaction."""

    def __init__(self, message: str = "Service temporarily unavailable") -> None:
        super().__init__(
            message, status_code=HTTPStatus.SERVICE_UNAVAILABLE, code="service_unavailable"
        )


def render_error(err: Exception) -> Response:
    """
    Render any exception as a problem+json response.

    Usable directly as the ``error_handler`` of
    :meth:`transactional.api.transactional.Transactional.wrap`.
    """
    if isinstance(err, APIError):
        problem = err.to_problem()
        level = log.error if err.status_code >= 500 else log.warning
        level(
            "APIError: code=%s status=%s msg=%s request_id=%s",
            err.code,
            err.status_code,
            err.message,
            problem.get("request_id"),
        )
        return problem_response(problem)

    if isinstance(err, HTTPException):
        status = int(err.code or HTTPStatus.INTERNAL_SERVER_ERROR)
        error_code = _http_status_to_code(status)
        message = (err.description or error_code.replace("_", " ").capitalize()).strip()
        problem = _as_problem(status=status, code=error_code, message=message)
        level = log.error if status >= 500 else log.warning
        level(
            "HTTPException: code=%s status=%s detail=%s request_id=%s",
            error_code,
            status,
            message,
            problem.get("request_id"),
        )
        return problem_response(problem)

    # Driver failures raised while flushing at commit time render like the
    # same failures raised by a statement.
    db_error = err.__cause__ if isinstance(err, CommitError) else err

    if isinstance(db_error, IntegrityError):
        # Do not leak raw DB error to clients
        problem = Conflict("Resource conflict").to_problem()
        log.error("IntegrityError: request_id=%s", problem.get("request_id"), exc_info=err)
        return problem_response(problem)

    if isinstance(err, BeginError) or isinstance(db_error, OperationalError):
        problem = ServiceUnavailable().to_problem()
        log.error(
            "%s: request_id=%s", type(err).__name__, problem.get("request_id"), exc_info=err
        )
        return problem_response(problem)

    problem = _as_problem(
        status=HTTPStatus.INTERNAL_SERVER_ERROR,
        code="internal_server_error",
        message="Unexpected error",
    )
    log.error("Unhandled exception: request_id=%s", problem.get("request_id"), exc_info=err)
    return problem_response(problem)


def init_app(app: Flask) -> None:
    """
    Attach JSON error handlers to the Flask app.

    Notes
    -----
    - Guarantees RFC 7807 responses for all handled errors.
    - Errors re-raised by wrapped handlers without an explicit
      ``error_handler`` end up here.
    - Emits 5xx with ``exc_info`` for traceability; 4xx as warnings.
    """

    @app.errorhandler(APIError)
    def handle_api_error(err: APIError):
        return render_error(err)

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        if err.code == HTTPStatus.NOT_FOUND and request:
            return render_error(NotFound(f"Route '{request.path}' not found"))
        return render_error(err)

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        return render_error(err)
