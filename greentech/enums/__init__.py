"""
Enums Module
============

Enumeration types for the GreenTech telemetry core.
"""

from greentech.enums.common import (
    AlertCategory,
    AlertSeverity,
    ConnectionPhase,
    HumidityStatus,
    OperatingMode,
    RiskLevel,
    SoilStatus,
    TemperatureStatus,
    TrendDirection,
    VPDStatus,
)

__all__ = [
    "AlertCategory",
    "AlertSeverity",
    "ConnectionPhase",
    "HumidityStatus",
    "OperatingMode",
    "RiskLevel",
    "SoilStatus",
    "TemperatureStatus",
    "TrendDirection",
    "VPDStatus",
]
