import pytest

from exposure_scan.backend.classifier import classify_input
from exposure_scan.backend.guidance import _Recommendations, generate_guidance
from exposure_scan.backend.models import (
    BreachResult,
    BreachSource,
    CorrelationResult,
    ExposureIndicator,
    ImageRiskResult,
    PlatformMatch,
)

EMAIL = classify_input("someone@mail.io")
USERNAME = classify_input("j_doe99")


def breached(severity):
    return BreachResult(
        found=True, breach_count=1, sources=[BreachSource(name="B")], severity=severity, api_available=True
    )


def correlation(found, total=6):
    names = [f"P{i}" for i in range(total)]
    matches = [PlatformMatch(platform=n, available=i >= found, confidence=0.8) for i, n in enumerate(names)]
    return CorrelationResult(matches=matches, checked_platforms=names)


def titles(guidance):
    return [r.title for r in guidance.recommendations]


@pytest.mark.parametrize("severity", ["high", "critical"])
def test_severe_breach_guidance(severity):
    guidance = generate_guidance(EMAIL, breached(severity))
    first, second = guidance.recommendations[:2]

    assert (first.priority, first.title, first.urgency) == (1, "Change passwords immediately", "immediate")
    assert (second.priority, second.title, second.urgency) == (2, "Enable two-factor authentication", "immediate")
    assert titles(guidance) == [
        "Change passwords immediately",
        "Enable two-factor authentication",
        "Monitor for suspicious activity",
        "Use a password manager",
    ]


@pytest.mark.parametrize("severity", ["low", "medium"])
def test_mild_breach_guidance(severity):
    guidance = generate_guidance(EMAIL, breached(severity))
    assert titles(guidance) == [
        "Review and update passwords",
        "Monitor for suspicious activity",
        "Use a password manager",
    ]
    assert guidance.recommendations[0].urgency == "soon"


def test_widespread_username_guidance():
    guidance = generate_guidance(USERNAME, None, correlation(3))
    assert titles(guidance)[:2] == ["Vary usernames across platforms", "Review privacy settings on found platforms"]
    assert "3 platforms" in guidance.recommendations[1].description
    assert guidance.recommendations[0].urgency == "when_possible"


def test_single_platform_guidance():
    guidance = generate_guidance(USERNAME, None, correlation(1))
    assert titles(guidance) == ["Review privacy settings on found platforms", "Use a password manager"]
    assert "1 platform." in guidance.recommendations[0].description


def test_image_guidance():
    image = ImageRiskResult(
        analyzed=True, exposure_indicators=[ExposureIndicator(source="s.io", match_confidence=0.9)], disclaimer="d"
    )
    guidance = generate_guidance(classify_input("https://cdn.site.org/me.png"), None, None, image)
    assert guidance.recommendations[0].title == "Review image sharing settings"
    assert guidance.recommendations[0].category == "platform_action"


def test_fallback_guidance():
    guidance = generate_guidance(USERNAME, None, correlation(0))
    assert [(r.priority, r.title, r.urgency) for r in guidance.recommendations] == [
        (1, "Stay vigilant", "when_possible"),
        (2, "Periodic security check-ups", "when_possible"),
        (3, "Use a password manager", "when_possible"),
    ]


def test_priorities_are_contiguous():
    guidance = generate_guidance(EMAIL, breached("critical"), correlation(4))
    assert [r.priority for r in guidance.recommendations] == list(range(1, len(guidance.recommendations) + 1))


def test_password_manager_is_never_duplicated():
    for _ in range(2):
        guidance = generate_guidance(EMAIL, breached("high"), correlation(3))
        assert sum("password manager" in t.lower() for t in titles(guidance)) == 1


def test_password_manager_theme_match_is_case_insensitive():
    recs = _Recommendations()
    recs.add("account_security", "Install a Password Manager", "d", "soon")
    assert recs.has_theme("password manager")
