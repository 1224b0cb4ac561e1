"""
Common Enumerations
====================

Application-wide enums shared by the telemetry, analytics and alert layers.
All of them are ``str`` enums so they serialise straight into JSON payloads
and store records.
"""

from enum import Enum


class OperatingMode(str, Enum):
    """Controller operating mode as published on ``greenhouse/mode``."""
    AUTO = "AUTO"
    MANUAL = "MANUAL"

    def __str__(self) -> str:
        return self.value


class ConnectionPhase(str, Enum):
    """Liveness phases of the broker link."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"

    def __str__(self) -> str:
        return self.value


class AlertSeverity(str, Enum):
    """
    Alert severity levels.
    Used by: alert_service, alert repository, API
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def __str__(self) -> str:
        return self.value


class AlertCategory(str, Enum):
    """Alert categories as stored in the ``alerts`` table."""
    SENSOR = "sensor"
    SYSTEM = "system"
    IRRIGATION = "irrigation"
    CLIMATE = "climate"
    MAINTENANCE = "maintenance"
    ANALYTICS = "analytics"

    def __str__(self) -> str:
        return self.value


class VPDStatus(str, Enum):
    """Vapor pressure deficit buckets."""
    OPTIMAL = "optimal"
    LOW = "low"
    HIGH = "high"
    EXTREME = "extreme"

    def __str__(self) -> str:
        return self.value


class TrendDirection(str, Enum):
    """Plant health trend computed from historical snapshots."""
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


class TemperatureStatus(str, Enum):
    OPTIMAL = "optimal"
    WARM = "warm"
    HOT = "hot"
    COOL = "cool"
    COLD = "cold"

    def __str__(self) -> str:
        return self.value


class HumidityStatus(str, Enum):
    OPTIMAL = "optimal"
    DRY = "dry"
    HUMID = "humid"
    VERY_HUMID = "very_humid"

    def __str__(self) -> str:
        return self.value


class SoilStatus(str, Enum):
    OPTIMAL = "optimal"
    LOW = "low"
    VERY_LOW = "very_low"
    HIGH = "high"
    VERY_HIGH = "very_high"

    def __str__(self) -> str:
        return self.value


class RiskLevel(str, Enum):
    """
    Risk levels reported by the insight generator.
    Used by: insight_generator, agronomics.apply_insight
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def __str__(self) -> str:
        return self.value
