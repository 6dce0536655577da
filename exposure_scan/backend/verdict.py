from __future__ import annotations

from typing import Optional

from exposure_scan.backend.models import (
    BreachResult,
    CorrelationResult,
    ImageRiskResult,
    InputClassification,
    RiskLevel,
    Verdict,
    VerdictFactor,
)

SEVERITY_BASE_SCORES: dict[str, int] = {
    "low": 10,
    "medium": 20,
    "high": 35,
    "critical": 50,
}

BREACH_WEIGHT = 50
BREACH_COUNT_CAP = 20
SENSITIVE_DATA_BONUS = 15
CLEAN_BREACH_WEIGHT = 20

CORRELATION_WEIGHT = 25
CORRELATION_CAP = 25
UNIQUE_USERNAME_WEIGHT = 10

IMAGE_WEIGHT = 30
IMAGE_CAP = 30
NO_IMAGE_EXPOSURE_WEIGHT = 10

BREACH_SCORE_FLOOR = 20


def risk_level(score_0_100: int) -> RiskLevel:
    if score_0_100 >= 60:
        return "high"
    if score_0_100 >= 30:
        return "medium"
    return "low"


def _plural(n: int, word: str, suffix: str = "s") -> str:
    return f"{n} {word}{'' if n == 1 else suffix}"


def _percent_half_up(score: int, weight: int) -> int:
    # integer half-up rounding of 100 * score / weight
    return (200 * score + weight) // (2 * weight)


def generate_verdict(
    classification: InputClassification,
    breach: Optional[BreachResult] = None,
    correlation: Optional[CorrelationResult] = None,
    image_risk: Optional[ImageRiskResult] = None,
) -> Verdict:
    """
    Combine partial results into:
    - exposure score (0-100)
    - risk tier
    - labeled factors, in breach -> correlation -> image order
    - summary text
    """
    factors: list[VerdictFactor] = []
    total = 0
    max_weight = 0

    if breach is not None:
        if breach.found:
            total += SEVERITY_BASE_SCORES[breach.severity] + min(breach.breach_count * 2, BREACH_COUNT_CAP)
            max_weight += BREACH_WEIGHT
            factors.append(
                VerdictFactor(
                    factor=f"Found in {_plural(breach.breach_count, 'data breach', 'es')}",
                    impact="negative",
                    weight=BREACH_WEIGHT,
                )
            )
            if breach.severity == "critical":
                total += SENSITIVE_DATA_BONUS
                max_weight += SENSITIVE_DATA_BONUS
                factors.append(
                    VerdictFactor(
                        factor="Breaches include sensitive data types (passwords, financial data)",
                        impact="negative",
                        weight=SENSITIVE_DATA_BONUS,
                    )
                )
        elif breach.api_available:
            # Clean result widens the denominator only
            max_weight += CLEAN_BREACH_WEIGHT
            factors.append(
                VerdictFactor(factor="No known breaches detected", impact="positive", weight=CLEAN_BREACH_WEIGHT)
            )

    if correlation is not None:
        found = correlation.found_count
        if found > 0:
            contribution = min(found * 5, CORRELATION_CAP)
            total += contribution
            max_weight += CORRELATION_WEIGHT
            factors.append(
                VerdictFactor(
                    factor=f"Username found on {_plural(found, 'platform')}",
                    impact="negative" if found >= 3 else "neutral",
                    weight=contribution,
                )
            )
        elif correlation.checked_platforms:
            max_weight += UNIQUE_USERNAME_WEIGHT
            factors.append(
                VerdictFactor(
                    factor="Username appears unique across checked platforms",
                    impact="positive",
                    weight=UNIQUE_USERNAME_WEIGHT,
                )
            )

    if image_risk is not None and image_risk.analyzed:
        indicators = len(image_risk.exposure_indicators)
        if indicators > 0:
            contribution = min(indicators * 10, IMAGE_CAP)
            total += contribution
            max_weight += IMAGE_WEIGHT
            factors.append(
                VerdictFactor(
                    factor=f"Image found on {_plural(indicators, 'external site')}",
                    impact="negative",
                    weight=contribution,
                )
            )
        else:
            max_weight += NO_IMAGE_EXPOSURE_WEIGHT
            factors.append(
                VerdictFactor(
                    factor="No widespread image exposure detected",
                    impact="positive",
                    weight=NO_IMAGE_EXPOSURE_WEIGHT,
                )
            )

    score = 0 if max_weight == 0 else _percent_half_up(total, max_weight)
    score = max(0, min(100, score))
    if breach is not None and breach.found:
        score = max(score, BREACH_SCORE_FLOOR)

    level = risk_level(score)
    return Verdict(
        exposure_score=score,
        risk_level=level,
        summary=build_summary(classification, breach, correlation, score, level, factors),
        factors=factors,
    )


_SUBJECTS = {
    "email": "this email address",
    "username": "this username",
    "image_url": "this image",
}


def build_summary(
    classification: InputClassification,
    breach: Optional[BreachResult],
    correlation: Optional[CorrelationResult],
    score: int,
    level: RiskLevel,
    factors: list[VerdictFactor],
) -> str:
    subject = _SUBJECTS.get(classification.type, "this input")

    if score == 0 and not factors:
        return (
            f"Not enough information was available about {subject} to calculate an exposure score. "
            "Checks may have been unavailable, so this is not the same as a clean result."
        )

    parts: list[str] = []
    breached = breach is not None and breach.found
    correlated = correlation is not None and correlation.found_count > 0

    if level == "high":
        parts.append(f"High exposure risk: {subject} shows significant public exposure.")
        if breached:
            parts.append(
                f"It appears in {_plural(breach.breach_count, 'known data breach', 'es')}, "
                "so credentials or personal information may have been compromised."
            )
        if correlated:
            parts.append("The same username is present on multiple platforms, which makes accounts easy to link.")
        parts.append("Take immediate action to secure the associated accounts.")
    elif level == "medium":
        parts.append(f"Medium exposure risk: {subject} has moderate public exposure.")
        if breached:
            parts.append(f"It was found in {_plural(breach.breach_count, 'data breach', 'es')}.")
        if correlated:
            parts.append("The username appears on multiple platforms, which could allow account correlation.")
        parts.append("Review your security settings and consider enabling additional protections.")
    else:
        parts.append(f"Low exposure risk: {subject} shows minimal public exposure in the checks performed.")
        if breached:
            parts.append(f"It was found in {_plural(breach.breach_count, 'data breach', 'es')}.")
        elif breach is not None and breach.api_available:
            parts.append("No known breaches were detected.")
        parts.append("Keep up good security hygiene to stay that way.")

    return " ".join(parts)
