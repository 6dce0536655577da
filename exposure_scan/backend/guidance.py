from __future__ import annotations

from typing import Optional

from exposure_scan.backend.models import (
    BreachResult,
    CorrelationResult,
    Guidance,
    ImageRiskResult,
    InputClassification,
    Recommendation,
)

PASSWORD_MANAGER_THEME = "password manager"


class _Recommendations:
    """Collects recommendations and hands out 1-based priorities in emission order."""

    def __init__(self) -> None:
        self.items: list[Recommendation] = []

    def add(self, category: str, title: str, description: str, urgency: str) -> None:
        self.items.append(
            Recommendation(
                priority=len(self.items) + 1,
                category=category,
                title=title,
                description=description,
                urgency=urgency,
            )
        )

    def has_theme(self, theme: str) -> bool:
        return any(theme in r.title.lower() for r in self.items)


def generate_guidance(
    classification: InputClassification,
    breach: Optional[BreachResult] = None,
    correlation: Optional[CorrelationResult] = None,
    image_risk: Optional[ImageRiskResult] = None,
) -> Guidance:
    recs = _Recommendations()

    if breach is not None and breach.found:
        if breach.severity in ("critical", "high"):
            recs.add(
                "account_security",
                "Change passwords immediately",
                "Credentials tied to this email may have been exposed. Change the password on every "
                "account that uses it, starting with email and financial accounts, and make each one unique.",
                "immediate",
            )
            recs.add(
                "account_security",
                "Enable two-factor authentication",
                "Turn on 2FA for important accounts. Prefer an authenticator app over SMS codes.",
                "immediate",
            )
        else:
            recs.add(
                "account_security",
                "Review and update passwords",
                "This email appears in lower-severity breaches. Update passwords on accounts that use it.",
                "soon",
            )
        recs.add(
            "monitoring",
            "Monitor for suspicious activity",
            "Watch for unexpected login attempts, password reset emails and unfamiliar transactions. "
            "Enable login notifications where available.",
            "soon",
        )

    found = correlation.found_count if correlation is not None else 0
    if found >= 3:
        recs.add(
            "privacy",
            "Vary usernames across platforms",
            "Reusing one username everywhere makes your accounts easy to link. Consider different "
            "usernames for different kinds of accounts.",
            "when_possible",
        )
    if found >= 1:
        recs.add(
            "privacy",
            "Review privacy settings on found platforms",
            f"The username was found on {found} platform{'' if found == 1 else 's'}. Check what each "
            "profile shows publicly and tighten the privacy settings.",
            "soon",
        )

    if image_risk is not None and image_risk.analyzed and image_risk.exposure_indicators:
        recs.add(
            "platform_action",
            "Review image sharing settings",
            "The image appears on other sites. Where a use is unauthorized, request removal through "
            "the hosting platform's reporting tools.",
            "soon",
        )

    if not recs.items:
        recs.add(
            "monitoring",
            "Stay vigilant",
            "No major exposure was found. Keep using unique passwords and 2FA, and stay alert to phishing.",
            "when_possible",
        )
        recs.add(
            "privacy",
            "Periodic security check-ups",
            "New breaches are disclosed regularly. Re-run an exposure check from time to time.",
            "when_possible",
        )

    if not recs.has_theme(PASSWORD_MANAGER_THEME):
        recs.add(
            "account_security",
            "Use a password manager",
            "A password manager generates and stores a strong, unique password for every account.",
            "when_possible",
        )

    return Guidance(recommendations=recs.items)
