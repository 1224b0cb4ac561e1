"""
Domain Package
==============
Value objects and pure logic for greenhouse telemetry, analytics and alerts.
"""

from .agronomics import AnalyticsResult, ScoreSnapshot, apply_insight, compute_analytics, compute_trend
from .alerts import AlertCondition, AlertKind, AlertRecord, CooldownLedger
from .exceptions import (
    ConfigurationError,
    ExternalServiceError,
    GreenTechError,
    NotFoundError,
    ServiceError,
    StoreError,
    ValidationError,
)
from .telemetry import ConnectionState, PendingCommand, SensorState, SensorStateStore, Topic

__all__ = [
    # Analytics
    "AnalyticsResult",
    "ScoreSnapshot",
    "apply_insight",
    "compute_analytics",
    "compute_trend",
    # Alerts
    "AlertCondition",
    "AlertKind",
    "AlertRecord",
    "CooldownLedger",
    # Telemetry
    "ConnectionState",
    "PendingCommand",
    "SensorState",
    "SensorStateStore",
    "Topic",
    # Errors
    "ConfigurationError",
    "ExternalServiceError",
    "GreenTechError",
    "NotFoundError",
    "ServiceError",
    "StoreError",
    "ValidationError",
]
