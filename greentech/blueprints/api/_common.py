"""
Shared plumbing for the /api blueprints: service lookup from the app's
container, request parsing and the response envelope.
"""
from __future__ import annotations

from flask import current_app, request

from greentech.utils.http import error_response, success_response


def _container():
    container = current_app.config.get("CONTAINER")
    if container is None:
        raise RuntimeError("ServiceContainer not found in app config")
    return container


def get_telemetry():
    return _container().telemetry


def get_alert_service():
    return _container().alert_service


def get_analytics_service():
    return _container().analytics_service


def get_json() -> dict:
    """Request body as a dict; empty when missing or not JSON."""
    return request.get_json(silent=True) or {}


def get_limit(default: int, maximum: int) -> int:
    """``?limit=`` clamped to ``[1, maximum]``."""
    limit = request.args.get("limit", default=default, type=int)
    return max(1, min(limit, maximum))


def success(data=None, status: int = 200, *, message: str | None = None):
    return success_response(data, status, message=message)


def fail(message: str, status: int = 400, *, details: dict | None = None):
    return error_response(message, status, details=details)
