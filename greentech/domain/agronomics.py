"""
Greenhouse Analytics Engine
===========================

Pure scoring of a single reading (temperature, humidity, soil moisture) plus a
trend over previously stored score snapshots.

Everything here is deterministic and free of I/O. Inputs are sanitised before
any score is computed so that NaN, infinities or out-of-range values can never
leak into a score; a missing or NaN value is treated as the worst case for that
variable.

Scores (all integers clamped to 0-100):
- plant health: 100 minus additive per-variable penalties
- irrigation need: step function of soil moisture
- climate risk: additive temperature/humidity penalties
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from greentech.enums.common import (
    HumidityStatus,
    RiskLevel,
    SoilStatus,
    TemperatureStatus,
    TrendDirection,
    VPDStatus,
)
from greentech.utils.psychrometrics import (
    calculate_dew_point_c,
    calculate_heat_index_c,
    calculate_vpd_kpa,
)
from greentech.utils.time import parse_timestamp

if TYPE_CHECKING:
    from greentech.schemas.insights import AIInsight

logger = logging.getLogger(__name__)

# Sanitising bounds and worst-case substitutes for missing/NaN inputs
TEMPERATURE_BOUNDS_C = (-40.0, 60.0)
PERCENT_BOUNDS = (0.0, 100.0)
WORST_TEMPERATURE_C = 60.0
WORST_HUMIDITY = 0.0
WORST_SOIL_MOISTURE = 0.0

VPD_BOUNDS_KPA = (0.0, 5.0)
VPD_IDEAL_KPA = (0.6, 1.0)
VPD_MIN_KPA = 0.4
VPD_MAX_KPA = 1.2

# Trend window
TREND_RECENT = 5
TREND_OLDER = 5
TREND_MIN_OLDER = 3
TREND_DELTA = 5.0

FALLBACK_RECOMMENDATION = "Conditions are within optimal ranges. Keep monitoring."


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoreSnapshot:
    """One stored analytics row, as used for trend computation and history."""

    plant_health_score: int
    irrigation_need_score: int
    climate_risk_score: int
    created_at: Optional[datetime] = None
    recommendations: Tuple[str, ...] = ()
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    soil_moisture: Optional[float] = None
    id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ScoreSnapshot":
        snapshot = row.get("snapshot") or {}
        recommendations = row.get("recommendations") or ()
        return cls(
            plant_health_score=int(row.get("plant_health_score") or 0),
            irrigation_need_score=int(row.get("irrigation_need_score") or 0),
            climate_risk_score=int(row.get("climate_risk_score") or 0),
            created_at=parse_timestamp(row.get("created_at")),
            recommendations=tuple(str(r) for r in recommendations),
            temperature=snapshot.get("temp"),
            humidity=snapshot.get("humidity"),
            soil_moisture=snapshot.get("soil_moisture"),
            id=str(row["id"]) if row.get("id") is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "plant_health_score": self.plant_health_score,
            "irrigation_need_score": self.irrigation_need_score,
            "climate_risk_score": self.climate_risk_score,
            "recommendations": list(self.recommendations),
            "snapshot": {
                "temp": self.temperature,
                "humidity": self.humidity,
                "soil_moisture": self.soil_moisture,
            },
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class SeriesPoint:
    """
    One chart sample. Stored snapshots carry their scores; live samples
    taken between saves carry readings only.
    """

    time: datetime
    temperature: Optional[float]
    humidity: Optional[float]
    soil_moisture: Optional[float]
    plant_health_score: Optional[int] = None
    irrigation_need_score: Optional[int] = None
    climate_risk_score: Optional[int] = None
    live: bool = False

    @classmethod
    def from_snapshot(cls, snapshot: ScoreSnapshot) -> "SeriesPoint":
        return cls(
            time=snapshot.created_at,  # type: ignore[arg-type]
            temperature=snapshot.temperature,
            humidity=snapshot.humidity,
            soil_moisture=snapshot.soil_moisture,
            plant_health_score=snapshot.plant_health_score,
            irrigation_need_score=snapshot.irrigation_need_score,
            climate_risk_score=snapshot.climate_risk_score,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time.isoformat(),
            "temp": self.temperature,
            "humidity": self.humidity,
            "soil_moisture": self.soil_moisture,
            "plant_health_score": self.plant_health_score,
            "irrigation_need_score": self.irrigation_need_score,
            "climate_risk_score": self.climate_risk_score,
            "live": self.live,
        }


def merge_series(history: Sequence[ScoreSnapshot], live: Sequence[SeriesPoint]) -> List[SeriesPoint]:
    """
    Chart series, oldest first: stored snapshots that have a timestamp and
    a temperature or humidity reading, followed by the live samples.
    """
    stored = [
        SeriesPoint.from_snapshot(s)
        for s in history
        if s.created_at is not None and (s.temperature is not None or s.humidity is not None)
    ]
    stored.sort(key=lambda point: point.time)
    return stored + list(live)



@dataclass(frozen=True)
class AnalyticsResult:
    """One scoring pass over a reading."""

    plant_health_score: int
    irrigation_need_score: int
    climate_risk_score: int
    vpd: float
    vpd_status: VPDStatus
    trend: TrendDirection
    recommendations: Tuple[str, ...]
    summary: str
    temperature_status: TemperatureStatus
    humidity_status: HumidityStatus
    soil_status: SoilStatus
    dew_point: Optional[float] = None
    heat_index: Optional[float] = None
    temperature: float = 0.0
    humidity: float = 0.0
    soil_moisture: float = 0.0
    risk_level: Optional[RiskLevel] = None
    predicted_impact: Optional[str] = None
    insight_source: str = "local"

    def to_snapshot_values(self) -> Dict[str, Any]:
        """Column values for a new row in the ``analytics`` table."""
        return {
            "plant_health_score": self.plant_health_score,
            "irrigation_need_score": self.irrigation_need_score,
            "climate_risk_score": self.climate_risk_score,
            "recommendations": list(self.recommendations),
            "snapshot": {
                "temp": self.temperature,
                "humidity": self.humidity,
                "soil_moisture": self.soil_moisture,
            },
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plant_health_score": self.plant_health_score,
            "irrigation_need_score": self.irrigation_need_score,
            "climate_risk_score": self.climate_risk_score,
            "vpd": self.vpd,
            "vpd_status": self.vpd_status.value,
            "trend": self.trend.value,
            "recommendations": list(self.recommendations),
            "summary": self.summary,
            "metrics": {
                "temperature_status": self.temperature_status.value,
                "humidity_status": self.humidity_status.value,
                "soil_status": self.soil_status.value,
                "dew_point": self.dew_point,
                "heat_index": self.heat_index,
            },
            "inputs": {
                "temperature": self.temperature,
                "humidity": self.humidity,
                "soil_moisture": self.soil_moisture,
            },
            "risk_level": self.risk_level.value if self.risk_level else None,
            "predicted_impact": self.predicted_impact,
            "insight_source": self.insight_source,
        }


# ---------------------------------------------------------------------------
# Input sanitising
# ---------------------------------------------------------------------------

def _sanitize(value: Any, bounds: Tuple[float, float], worst: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return worst
    if math.isnan(number):
        return worst
    low, high = bounds
    return min(max(number, low), high)


def sanitize_inputs(temperature: Any, humidity: Any, soil_moisture: Any) -> Tuple[float, float, float]:
    """Clamp raw readings into sane bounds; missing/NaN become the worst case."""
    return (
        _sanitize(temperature, TEMPERATURE_BOUNDS_C, WORST_TEMPERATURE_C),
        _sanitize(humidity, PERCENT_BOUNDS, WORST_HUMIDITY),
        _sanitize(soil_moisture, PERCENT_BOUNDS, WORST_SOIL_MOISTURE),
    )


def _clamp_score(score: float) -> int:
    return int(min(max(score, 0), 100))


# ---------------------------------------------------------------------------
# Physical quantities
# ---------------------------------------------------------------------------

def compute_vpd(temperature: float, humidity: float) -> float:
    """Vapor pressure deficit in kPa, clamped to [0, 5]."""
    vpd = calculate_vpd_kpa(temperature, humidity)
    if vpd is None or math.isnan(vpd):
        return VPD_BOUNDS_KPA[0]
    return min(max(vpd, VPD_BOUNDS_KPA[0]), VPD_BOUNDS_KPA[1])


def vpd_status(vpd: float) -> VPDStatus:
    if VPD_IDEAL_KPA[0] <= vpd <= VPD_IDEAL_KPA[1]:
        return VPDStatus.OPTIMAL
    if vpd < 0.3:
        return VPDStatus.EXTREME
    if vpd < VPD_MIN_KPA:
        return VPDStatus.LOW
    if vpd > VPD_MAX_KPA:
        return VPDStatus.EXTREME if vpd > 1.6 else VPDStatus.HIGH
    return VPDStatus.OPTIMAL


def temperature_status(temperature: float) -> TemperatureStatus:
    if 18 <= temperature <= 28:
        return TemperatureStatus.OPTIMAL
    if temperature > 30:
        return TemperatureStatus.HOT
    if temperature > 28:
        return TemperatureStatus.WARM
    if temperature < 16:
        return TemperatureStatus.COLD
    return TemperatureStatus.COOL


def humidity_status(humidity: float) -> HumidityStatus:
    if 45 <= humidity <= 70:
        return HumidityStatus.OPTIMAL
    if humidity > 80:
        return HumidityStatus.VERY_HUMID
    if humidity > 70:
        return HumidityStatus.HUMID
    if humidity < 35:
        return HumidityStatus.DRY
    return HumidityStatus.OPTIMAL


def soil_status(soil_moisture: float) -> SoilStatus:
    if 50 <= soil_moisture <= 80:
        return SoilStatus.OPTIMAL
    if soil_moisture < 25:
        return SoilStatus.VERY_LOW
    if soil_moisture < 45:
        return SoilStatus.LOW
    if soil_moisture > 90:
        return SoilStatus.VERY_HIGH
    return SoilStatus.HIGH


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------

def plant_health_score(temperature: float, humidity: float, soil_moisture: float, vpd: float) -> int:
    """
    Plant health index (0-100).

    Each variable contributes at most one penalty; the tiers per variable are
    mutually exclusive and the penalties add up.
    """
    score = 100

    if soil_moisture < 20:
        score -= 50
    elif soil_moisture < 35:
        score -= 30
    elif soil_moisture < 45:
        score -= 15
    elif soil_moisture > 95:
        score -= 20

    if temperature <= 10 or temperature >= 35:
        score -= 25
    elif temperature < 15 or temperature > 30:
        score -= 15
    elif temperature < 18 or temperature > 28:
        score -= 5

    if humidity >= 85 or humidity <= 25:
        score -= 15
    elif humidity > 75 or humidity < 35:
        score -= 8

    if vpd < 0.2 or vpd > 1.8:
        score -= 10
    elif vpd < 0.4 or vpd > 1.4:
        score -= 5

    return _clamp_score(score)


def irrigation_need_score(soil_moisture: float) -> int:
    """Irrigation need (0-100), non-increasing in soil moisture."""
    if soil_moisture >= 60:
        return 0
    if soil_moisture >= 45:
        return 15
    if soil_moisture >= 35:
        return 40
    if soil_moisture >= 25:
        return 70
    return 95


def climate_risk_score(temperature: float, humidity: float) -> int:
    risk = 0
    if temperature > 32 or temperature < 12:
        risk += 40
    elif temperature > 28 or temperature < 16:
        risk += 20

    if humidity > 80:
        risk += 35
    elif humidity > 70:
        risk += 15

    if humidity < 30 and temperature > 25:
        risk += 20

    return _clamp_score(risk)


# ---------------------------------------------------------------------------
# Narrative
# ---------------------------------------------------------------------------

def build_recommendations(
    temperature: float,
    humidity: float,
    soil_moisture: float,
    vpd: float,
    vpd_state: VPDStatus,
) -> List[str]:
    """Ordered rule-based recommendations; never empty."""
    recs: List[str] = []

    if soil_moisture < 35:
        recs.append("Increase irrigation: soil moisture is low. Turn on the pump or water manually.")
    elif soil_moisture < 45:
        recs.append("Monitor soil moisture; consider a short irrigation cycle soon.")
    elif soil_moisture > 90:
        recs.append("Soil is very wet; avoid overwatering to prevent root rot.")

    if temperature > 30:
        recs.append("High temperature. Ensure ventilation is on and consider shading.")
    elif temperature > 28:
        recs.append("Temperature rising; increase ventilation to keep plants comfortable.")
    elif temperature < 16:
        recs.append("Low temperature; check heating or reduce ventilation to retain warmth.")

    if humidity > 75:
        recs.append("High humidity increases disease risk. Improve air circulation.")
    elif humidity < 40 and temperature > 22:
        recs.append("Low humidity; misting or humidifier can help in dry heat.")

    # EXTREME covers both ends of the scale
    if vpd_state == VPDStatus.LOW or (vpd_state == VPDStatus.EXTREME and vpd < VPD_MIN_KPA):
        recs.append("VPD is low (high humidity + temp); reduce misting or increase ventilation.")
    elif vpd_state in (VPDStatus.HIGH, VPDStatus.EXTREME):
        recs.append("VPD is high (dry air); consider misting or increasing humidity.")

    if not recs:
        recs.append(FALLBACK_RECOMMENDATION)
    return recs


def build_summary(health: int, risk: int) -> str:
    if health >= 80 and risk < 25:
        return "Greenhouse conditions are excellent. Plants are in good health."
    if health >= 60:
        return "Greenhouse is in good shape with minor adjustments possible."
    if health >= 40:
        return "Some stress factors detected. Review recommendations below."
    return "Conditions need attention. Follow recommendations to improve plant health."


# ---------------------------------------------------------------------------
# Trend
# ---------------------------------------------------------------------------

HistoryItem = Union[ScoreSnapshot, Mapping[str, Any], int, float]


def _health_of(item: HistoryItem) -> Optional[float]:
    if isinstance(item, ScoreSnapshot):
        value: Any = item.plant_health_score
    elif isinstance(item, Mapping):
        value = item.get("plant_health_score")
    else:
        value = item
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def compute_trend(history: Optional[Sequence[HistoryItem]]) -> TrendDirection:
    """
    Health trend from stored snapshots, ordered newest first.

    The mean of the five most recent scores is compared with the mean of the
    next five. Fewer than five snapshots gives UNKNOWN; fewer than three older
    ones gives STABLE.
    """
    if not history:
        return TrendDirection.UNKNOWN

    scores = [s for s in (_health_of(item) for item in history) if s is not None]
    if len(scores) < TREND_RECENT:
        return TrendDirection.UNKNOWN

    recent = scores[:TREND_RECENT]
    older = scores[TREND_RECENT:TREND_RECENT + TREND_OLDER]
    if len(older) < TREND_MIN_OLDER:
        return TrendDirection.STABLE

    delta = sum(recent) / len(recent) - sum(older) / len(older)
    if delta > TREND_DELTA:
        return TrendDirection.IMPROVING
    if delta < -TREND_DELTA:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def compute_analytics(
    temperature: Any,
    humidity: Any,
    soil_moisture: Any,
    history: Optional[Sequence[HistoryItem]] = None,
) -> AnalyticsResult:
    """
    Score one reading.

    Args:
        temperature: Air temperature in °C
        humidity: Relative humidity percentage
        soil_moisture: Soil moisture percentage
        history: Previous snapshots, newest first; omitted means trend UNKNOWN

    Returns:
        AnalyticsResult with clamped scores and a non-empty recommendation list
    """
    temp_c, rh, soil = sanitize_inputs(temperature, humidity, soil_moisture)

    vpd = compute_vpd(temp_c, rh)
    vpd_state = vpd_status(vpd)
    health = plant_health_score(temp_c, rh, soil, vpd)
    risk = climate_risk_score(temp_c, rh)

    dew_point = calculate_dew_point_c(temp_c, rh)
    heat_index = calculate_heat_index_c(temp_c, rh)

    return AnalyticsResult(
        plant_health_score=health,
        irrigation_need_score=irrigation_need_score(soil),
        climate_risk_score=risk,
        vpd=round(vpd, 3),
        vpd_status=vpd_state,
        trend=compute_trend(history),
        recommendations=tuple(build_recommendations(temp_c, rh, soil, vpd, vpd_state)),
        summary=build_summary(health, risk),
        temperature_status=temperature_status(temp_c),
        humidity_status=humidity_status(rh),
        soil_status=soil_status(soil),
        dew_point=round(dew_point, 1) if dew_point is not None else None,
        heat_index=round(heat_index, 1) if heat_index is not None else None,
        temperature=temp_c,
        humidity=rh,
        soil_moisture=soil,
    )


def apply_insight(result: AnalyticsResult, insight: Optional["AIInsight"]) -> AnalyticsResult:
    """
    Overlay an external insight on a locally computed result.

    AI recommendations come first, followed by local ones not already present.
    Returns ``result`` unchanged when ``insight`` is None.
    """
    if insight is None:
        return result

    merged: List[str] = []
    for rec in list(insight.recommendations) + list(result.recommendations):
        text = str(rec).strip()
        if text and text not in merged:
            merged.append(text)

    return replace(
        result,
        summary=(insight.summary or "").strip() or result.summary,
        recommendations=tuple(merged) or result.recommendations,
        risk_level=insight.risk_level,
        predicted_impact=insight.predicted_impact,
        insight_source="ai",
    )
