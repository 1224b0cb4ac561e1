"""Centralized exception hierarchy for GreenTech.

All domain and service exceptions inherit from :class:`GreenTechError` so that
callers can catch a single base class when they need a broad safety net, yet
still match on specific subclasses where narrower handling is appropriate.

Blueprint-level error handling (see ``greentech.utils.http.safe_route``) maps
these to the correct HTTP status codes automatically.

Hierarchy
---------
::

    GreenTechError (base, maps to 500)
    ├── ValidationError          (400, bad input from caller)
    ├── NotFoundError            (404, entity does not exist)
    ├── ServiceError             (500, business-logic failure)
    │   ├── StoreError           (500, record store / persistence)
    │   └── ExternalServiceError (502, third-party / network)
    └── ConfigurationError       (500, missing / invalid config)
"""

from __future__ import annotations


class GreenTechError(Exception):
    """Base exception for all GreenTech application errors.

    Parameters
    ----------
    message:
        Human-readable description (logged server-side, **not** leaked to
        the HTTP client unless the exception class opts in).
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


# ── Client errors (4xx) ──────────────────────────────────────────────


class ValidationError(GreenTechError):
    """Caller supplied invalid or incomplete input (HTTP 400)."""

    http_status: int = 400


class NotFoundError(GreenTechError):
    """Requested entity does not exist (HTTP 404)."""

    http_status: int = 404


# ── Server errors (5xx) ──────────────────────────────────────────────


class ServiceError(GreenTechError):
    """Business-logic failure in a service method (HTTP 500)."""

    http_status: int = 500


class StoreError(ServiceError):
    """Record store failure: unreachable backend, rejected query (HTTP 500)."""

    http_status: int = 500


class ExternalServiceError(ServiceError):
    """Third-party or network dependency failure (HTTP 502)."""

    http_status: int = 502


class ConfigurationError(GreenTechError):
    """Missing or invalid application configuration (HTTP 500)."""

    http_status: int = 500
