"""
Insight Schemas
===============

Pydantic models for the optional LLM insight response and for the command
requests accepted by the telemetry API.
"""

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from greentech.enums.common import RiskLevel


class AIInsight(BaseModel):
    """Structured narrative returned by the insight generator."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    summary: str = Field(default="", description="One or two sentence overview")
    recommendations: List[str] = Field(default_factory=list, description="Actionable recommendations")
    risk_level: RiskLevel = Field(
        ...,
        validation_alias=AliasChoices("risk_level", "riskLevel"),
        description="Overall risk (low, medium, high)",
    )
    predicted_impact: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("predicted_impact", "predictedImpact"),
        description="Expected impact if risk is medium or high",
    )

    @field_validator("risk_level", mode="before")
    @classmethod
    def normalize_risk_level(cls, v):
        if isinstance(v, str):
            return RiskLevel(v.strip().lower())
        return v

    @field_validator("recommendations", mode="before")
    @classmethod
    def drop_blank_recommendations(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [str(item).strip() for item in v if str(item).strip()]


class CommandRequest(BaseModel):
    """Body of ``POST /api/telemetry/commands``."""

    topic: str = Field(..., min_length=1, description="Control topic, e.g. greenhouse/irrigation")
    payload: str = Field(..., min_length=1, description="Literal payload, e.g. ON")

    @field_validator("payload", mode="before")
    @classmethod
    def normalize_payload(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v
