"""
Result types shared by every stage of a scan.

All models are frozen once built and serialize with camelCase keys, which is
the shape streamed to clients.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

InputType = Literal["email", "username", "image_url", "unknown"]
Severity = Literal["low", "medium", "high", "critical"]
RiskLevel = Literal["low", "medium", "high"]
Impact = Literal["positive", "negative", "neutral"]
EventStatus = Literal["pending", "processing", "complete", "error", "skipped"]
RecommendationCategory = Literal["account_security", "privacy", "platform_action", "monitoring"]
Urgency = Literal["immediate", "soon", "when_possible"]
DataSourceType = Literal["api", "public_check", "heuristic"]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class InputClassification(WireModel):
    type: InputType
    value: str
    confidence: float = Field(ge=0, le=1)
    is_valid: bool
    validation_message: Optional[str] = None


class BreachSource(WireModel):
    name: str
    domain: Optional[str] = None
    breach_date: Optional[str] = None
    data_classes: Optional[list[str]] = None
    pwn_count: Optional[int] = None


class BreachResult(WireModel):
    found: bool
    breach_count: int = Field(default=0, ge=0)
    sources: list[BreachSource] = Field(default_factory=list)
    severity: Severity = "low"
    api_available: bool
    limitation_note: Optional[str] = None
    provider: Optional[str] = None

    @model_validator(mode="after")
    def _not_found_is_empty(self) -> "BreachResult":
        if not self.found and (self.breach_count or self.sources):
            raise ValueError("a breach result that was not found cannot carry sources")
        return self


class PlatformMatch(WireModel):
    platform: str
    url: Optional[str] = None
    available: bool
    confidence: float = Field(ge=0, le=1)


class CorrelationResult(WireModel):
    matches: list[PlatformMatch] = Field(default_factory=list)
    risk: RiskLevel = "low"
    checked_platforms: list[str] = Field(default_factory=list)
    limitation_note: Optional[str] = None

    @model_validator(mode="after")
    def _matches_were_checked(self) -> "CorrelationResult":
        unknown = {m.platform for m in self.matches} - set(self.checked_platforms)
        if unknown:
            raise ValueError(f"matches reference unchecked platforms: {sorted(unknown)}")
        return self

    @property
    def found_count(self) -> int:
        """Platforms where the identifier appears to be taken."""
        return sum(1 for m in self.matches if not m.available)


class ExposureIndicator(WireModel):
    source: str
    match_confidence: float = Field(ge=0, le=1)
    url: Optional[str] = None


class ImageRiskResult(WireModel):
    analyzed: bool
    perceptual_hash: Optional[str] = None
    exposure_indicators: list[ExposureIndicator] = Field(default_factory=list)
    risk_level: RiskLevel = "low"
    disclaimer: str
    limitation_note: Optional[str] = None


class VerdictFactor(WireModel):
    factor: str
    impact: Impact
    weight: int


class Verdict(WireModel):
    exposure_score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    summary: str
    factors: list[VerdictFactor] = Field(default_factory=list)


class Recommendation(WireModel):
    priority: int = Field(ge=1)
    category: RecommendationCategory
    title: str
    description: str
    urgency: Urgency


class Guidance(WireModel):
    recommendations: list[Recommendation] = Field(default_factory=list)


class DataSource(WireModel):
    name: str
    type: DataSourceType
    description: str


class Transparency(WireModel):
    what_was_checked: list[str] = Field(default_factory=list)
    what_was_not_checked: list[str] = Field(default_factory=list)
    data_sources: list[DataSource] = Field(default_factory=list)
    legal_scope: str
    timestamp: str = Field(default_factory=utc_now_iso)


class ChainEvent(WireModel):
    id: str
    module: str
    message: str
    status: EventStatus
    timestamp: str = Field(default_factory=utc_now_iso)
    details: Optional[dict[str, Any]] = None


class ScanResult(WireModel):
    id: str
    input: InputClassification
    breach: Optional[BreachResult] = None
    correlation: Optional[CorrelationResult] = None
    image_risk: Optional[ImageRiskResult] = None
    verdict: Verdict
    guidance: Guidance
    transparency: Transparency
    completed_at: str = Field(default_factory=utc_now_iso)
