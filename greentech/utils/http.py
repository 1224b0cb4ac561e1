"""
JSON envelope for the status and /api routes.

Every response body is ``{"ok": bool, "data": ..., "error": ...}``. Client
errors (4xx) carry the exception's own message; server errors are logged
with their traceback and answered with a fixed message, so broker URLs,
store responses and SQL never reach a dashboard.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable

from flask import Response, jsonify

from greentech.domain.exceptions import GreenTechError
from greentech.utils.time import iso_now

_log = logging.getLogger(__name__)

_SERVER_ERROR_MESSAGES: dict[int, str] = {
    500: "An internal error occurred",
    502: "Upstream service unavailable",
}


def safe_error(exc: BaseException, status: int = 500, *, context: str = "") -> Response:
    """Log ``exc`` in full and answer with the generic message for ``status``."""
    _log.error("API error [%s] %s: %s", status, context, exc, exc_info=exc)
    return error_response(_SERVER_ERROR_MESSAGES.get(status, _SERVER_ERROR_MESSAGES[500]), status)


def success_response(data: Any = None, status: int = 200, *, message: str | None = None) -> Response:
    payload: dict[str, Any] = {"ok": True, "data": data, "error": None}
    if message is not None:
        payload["message"] = message
    response = jsonify(payload)
    response.status_code = status
    return response


def error_response(message: str, status: int = 500, *, details: dict | None = None) -> Response:
    error: dict[str, Any] = {"message": message, "timestamp": iso_now()}
    body: dict[str, Any] = {"ok": False, "data": None, "error": error, "message": message}
    if details:
        error.update(details)
        body["details"] = details
    response = jsonify(body)
    response.status_code = status
    return response


def safe_route(error_message: str) -> Callable:
    """
    Wrap a route so domain errors map to their ``http_status``.

    ``ValidationError`` and ``NotFoundError`` keep their message and detail;
    store, broker and unexpected failures become a logged generic 5xx::

        @analytics_api.get("/history")
        @safe_route("Failed to get analytics history")
        def get_history():
            ...
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Response:
            try:
                return fn(*args, **kwargs)
            except GreenTechError as exc:
                if exc.http_status >= 500:
                    return safe_error(exc, exc.http_status, context=error_message)
                return error_response(str(exc) or error_message, exc.http_status, details=exc.detail or None)
            except Exception as exc:
                return safe_error(exc, 500, context=error_message)

        return wrapper

    return decorator
