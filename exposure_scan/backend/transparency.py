from __future__ import annotations

from typing import Optional

from exposure_scan.backend.models import (
    BreachResult,
    CorrelationResult,
    DataSource,
    ImageRiskResult,
    InputClassification,
    Transparency,
)

NEVER_CHECKED: tuple[str, ...] = (
    "Dark web or hidden services",
    "Private or password-protected databases",
    "Encrypted or access-restricted systems",
    "Private social media messages or posts",
    "Non-public company databases",
)

SCORING_SOURCE = DataSource(
    name="Risk Scoring Algorithm",
    type="heuristic",
    description="Weighted combination of breach severity, platform presence and image exposure indicators",
)

LEGAL_SCOPE = (
    "This scan analyzes only publicly accessible information. No private systems, restricted "
    "databases or confidential data sources were accessed. The analysis provides exposure "
    "awareness, not forensic proof. Verify results independently before making critical "
    "security decisions."
)


def generate_transparency(
    classification: InputClassification,
    breach: Optional[BreachResult] = None,
    correlation: Optional[CorrelationResult] = None,
    image_risk: Optional[ImageRiskResult] = None,
) -> Transparency:
    checked: list[str] = [f"Input type classification ({classification.type})"]
    not_checked: list[str] = []
    sources: list[DataSource] = []

    if breach is not None:
        provider = breach.provider or "breach database"
        if breach.api_available:
            checked.append(f"Known data breach databases ({provider})")
            sources.append(
                DataSource(
                    name=provider,
                    type="api",
                    description="Database of publicly disclosed data breaches",
                )
            )
        else:
            reason = breach.limitation_note or "provider not configured or unavailable"
            not_checked.append(f"Data breach databases ({reason})")

    if correlation is not None and correlation.checked_platforms:
        checked.append(f"Username availability on {len(correlation.checked_platforms)} platforms")
        sources.append(
            DataSource(
                name="Platform Availability Checks",
                type="public_check",
                description="HTTP requests to public profile URLs on major platforms",
            )
        )

    if image_risk is not None:
        if image_risk.analyzed:
            checked.append("Image URL accessibility and content type verification")
            if image_risk.perceptual_hash:
                checked.append("Perceptual hash generation (URL-based)")
        else:
            not_checked.append("Image content analysis (unable to access image)")

    not_checked.extend(NEVER_CHECKED)
    sources.append(SCORING_SOURCE)

    return Transparency(
        what_was_checked=checked,
        what_was_not_checked=not_checked,
        data_sources=sources,
        legal_scope=LEGAL_SCOPE,
    )
