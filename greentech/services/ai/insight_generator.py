"""
AI Insight Generator
====================

Asks an LLM backend for a short structured narrative over the current
analytics result. The generator is strictly optional: when no backend is
configured, or the backend fails or answers with something that does not
validate as an :class:`AIInsight`, it returns ``None`` and the local
rule-based narrative stays in place.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Optional

from pydantic import ValidationError as PydanticValidationError

from greentech.domain.agronomics import AnalyticsResult
from greentech.domain.telemetry import SensorState
from greentech.schemas.insights import AIInsight

if TYPE_CHECKING:
    from greentech.services.ai.llm_backends import LLMBackend

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """\
You are an expert agricultural data analyst for smart greenhouses. Analyze \
the sensor readings and computed analytics you are given.

Response format (JSON):
{
  "summary": "<1-2 sentences>",
  "recommendations": ["<2-4 actionable strings>"],
  "riskLevel": "low" | "medium" | "high",
  "predictedImpact": "<1 sentence, only if risk is medium or high>"
}

Respond ONLY with valid JSON, no markdown or extra text."""


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```) if present."""
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        lines = [ln for ln in cleaned.split("\n") if not ln.strip().startswith("```")]
        cleaned = "\n".join(lines).strip()
    return cleaned


def parse_insight(text: str) -> Optional[AIInsight]:
    """Parse raw model output into an :class:`AIInsight`, or ``None`` if malformed."""
    cleaned = strip_code_fences(text)
    if not cleaned:
        return None
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning("Insight response was not valid JSON")
        return None
    if not isinstance(data, dict):
        logger.warning("Insight response was JSON but not an object")
        return None
    try:
        return AIInsight.model_validate(data)
    except PydanticValidationError as exc:
        logger.warning("Insight response failed validation: %s", exc.errors()[:3])
        return None


class InsightGenerator:
    """
    Builds the insight prompt and validates the answer.

    Parameters
    ----------
    backend:
        A :class:`LLMBackend`, or ``None`` to disable insights.
    max_tokens:
        Token budget for the answer.
    temperature:
        Sampling temperature.
    """

    def __init__(
        self,
        backend: "LLMBackend" | None = None,
        max_tokens: int = 400,
        temperature: float = 0.5,
    ):
        self._backend = backend
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def available(self) -> bool:
        return self._backend is not None

    @property
    def provider_name(self) -> str:
        if self._backend is not None:
            return self._backend.name
        return "none"

    def build_prompt(self, result: AnalyticsResult, state: Optional[SensorState] = None) -> str:
        temperature = state.temperature if state is not None else result.temperature
        humidity = state.humidity if state is not None else result.humidity
        soil = state.soil_moisture if state is not None else result.soil_moisture
        return "\n".join(
            [
                "Current readings:",
                f"- Temperature: {temperature}°C",
                f"- Humidity: {humidity}%",
                f"- Soil moisture: {soil}%",
                "",
                "Computed analytics:",
                f"- Plant health score: {result.plant_health_score}/100",
                f"- Irrigation need: {result.irrigation_need_score}/100",
                f"- Climate risk: {result.climate_risk_score}/100",
                f"- VPD (Vapor Pressure Deficit): {result.vpd} kPa ({result.vpd_status.value})",
                f"- Trend: {result.trend.value}",
                (
                    f"- Status: Temp {result.temperature_status.value}, "
                    f"Humidity {result.humidity_status.value}, Soil {result.soil_status.value}"
                ),
            ]
        )

    def generate(self, result: AnalyticsResult, state: Optional[SensorState] = None) -> Optional[AIInsight]:
        """
        Request an insight for ``result``.

        Returns ``None`` when unavailable, on backend errors and on malformed
        responses; never raises.
        """
        if not self.available:
            return None

        try:
            text = self._backend.complete_json(  # type: ignore[union-attr]
                _SYSTEM_PROMPT,
                self.build_prompt(result, state),
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except Exception as exc:
            logger.warning("Insight generation failed (%s): %s", self.provider_name, exc)
            return None

        insight = parse_insight(text)
        if insight is not None:
            logger.debug("Insight received from %s (risk=%s)", self.provider_name, insight.risk_level.value)
        return insight
