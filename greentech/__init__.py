from __future__ import annotations

import atexit
import contextlib
import dataclasses
import logging
import signal
import threading
from typing import Any

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from greentech.blueprints.api.alerts import alerts_api
from greentech.blueprints.api.analytics import analytics_api
from greentech.blueprints.api.telemetry import telemetry_api
from greentech.blueprints.status.routes import status_bp
from greentech.config import AppConfig, load_config, setup_logging

_CONFIG_FIELDS = {f.name for f in dataclasses.fields(AppConfig) if f.init}


def _normalize_overrides(overrides: dict[str, Any] | None) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in (overrides or {}).items():
        name = key if key in _CONFIG_FIELDS else key.lower()
        if name not in _CONFIG_FIELDS:
            raise KeyError(f"Unknown configuration key: {key}")
        normalized[name] = value
    return normalized


def create_app(
    config_overrides: dict[str, Any] | None = None,
    *,
    container=None,
    start_pipeline: bool | None = None,
) -> Flask:
    """
    Build the Flask application.

    Args:
        config_overrides: AppConfig field values that take precedence over the environment
        container: Pre-built ServiceContainer (tests); built from config otherwise
        start_pipeline: Connect to the broker and start background jobs;
            defaults to ``config.start_pipeline``
    """
    if container is not None:
        config = container.config
    else:
        config = load_config(**_normalize_overrides(config_overrides))

    # Configure logging early so container startup (store, broker link) is visible
    setup_logging(debug=config.DEBUG, log_level=config.log_level)

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())

    if container is None:
        from greentech.services.container import ServiceContainer

        container = ServiceContainer.build(config)
    flask_app.config["CONTAINER"] = container

    # ── Error handling ─────────────────────────────────────────────
    # Domain exceptions carry their own ``http_status``; anything else on
    # /api/ becomes a generic JSON 500 without a stack trace.
    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        if not request.path.startswith(("/api/", "/status")):
            raise exc
        from greentech.domain.exceptions import GreenTechError
        from greentech.utils.http import error_response, safe_error

        if isinstance(exc, HTTPException):
            status = int(exc.code or 500)
            if status >= 500:
                return safe_error(exc, status, context="http-exception")
            return error_response(exc.description or "Request failed", status)

        if isinstance(exc, GreenTechError):
            status = exc.http_status
            if status >= 500:
                return safe_error(exc, status, context=type(exc).__name__)
            return error_response(str(exc) or "Request failed", status)

        return safe_error(exc, 500, context="unhandled")

    flask_app.register_blueprint(status_bp, url_prefix="/status")
    flask_app.register_blueprint(telemetry_api, url_prefix="/api/telemetry")
    flask_app.register_blueprint(analytics_api, url_prefix="/api/analytics")
    flask_app.register_blueprint(alerts_api, url_prefix="/api/alerts")

    for bp_name in flask_app.blueprints:
        logging.info(" Registered blueprint: %s", bp_name)

    if start_pipeline is None:
        start_pipeline = config.start_pipeline

    if start_pipeline:
        container.start_pipeline()
        _register_shutdown(container)
    else:
        logging.info("Skipping telemetry pipeline (start_pipeline=False)")

    logging.getLogger(__name__).info("GreenTech telemetry API initialized.")
    return flask_app


def _register_shutdown(container) -> None:
    """Stop the pipeline on interpreter exit and on SIGINT/SIGTERM."""
    shutdown_lock = threading.Lock()
    shutdown_done = False

    def _graceful_shutdown(reason: str = "unknown") -> None:
        nonlocal shutdown_done
        with shutdown_lock:
            if shutdown_done:
                return
            shutdown_done = True
        logging.info("Graceful shutdown initiated (%s)", reason)
        try:
            container.shutdown()
        except Exception as exc:
            logging.warning("Error during graceful shutdown: %s", exc)

    def _signal_handler(signum: int, _frame: object) -> None:
        sig_name = signal.Signals(signum).name
        logging.info("Received %s, shutting down", sig_name)
        _graceful_shutdown(sig_name)
        raise SystemExit(0)

    atexit.register(_graceful_shutdown, "atexit")

    # signal.signal only works from the main thread
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(OSError, ValueError):
            signal.signal(sig, _signal_handler)
