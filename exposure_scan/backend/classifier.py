from __future__ import annotations

import re

from exposure_scan.backend.models import InputClassification

# Checked in this order; the first pattern that matches decides the type.
EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
IMAGE_URL_RE = re.compile(r"https?://.+\.(?:jpg|jpeg|png|gif|webp|svg|bmp)(?:\?.*)?", re.IGNORECASE)
URL_RE = re.compile(r"https?://.+", re.IGNORECASE)
USERNAME_RE = re.compile(r"[A-Za-z0-9_.-]{3,30}")
LOOSE_USERNAME_RE = re.compile(r"[A-Za-z0-9_.-]+")

IMAGE_HINTS = ("image", "photo", "avatar", "img")


def classify_input(raw: str) -> InputClassification:
    """
    Decide whether raw text is an email, an image URL or a username.

    Pure function: the same text always yields the same classification.
    """
    value = (raw or "").strip()

    if not value:
        return InputClassification(
            type="unknown",
            value=value,
            confidence=0,
            is_valid=False,
            validation_message="Input is required",
        )

    if EMAIL_RE.fullmatch(value):
        return InputClassification(type="email", value=value.lower(), confidence=0.95, is_valid=True)

    if IMAGE_URL_RE.fullmatch(value):
        return InputClassification(type="image_url", value=value, confidence=0.9, is_valid=True)

    if URL_RE.fullmatch(value):
        lowered = value.lower()
        if any(hint in lowered for hint in IMAGE_HINTS):
            return InputClassification(type="image_url", value=value, confidence=0.7, is_valid=True)
        return InputClassification(
            type="image_url",
            value=value,
            confidence=0.5,
            is_valid=True,
            validation_message="URL detected, treating it as a possible image URL",
        )

    if USERNAME_RE.fullmatch(value):
        return InputClassification(type="username", value=value, confidence=0.85, is_valid=True)

    if LOOSE_USERNAME_RE.fullmatch(value):
        return InputClassification(
            type="username",
            value=value,
            confidence=0.6,
            is_valid=True,
            validation_message="Treating as username",
        )

    return InputClassification(
        type="unknown",
        value=value,
        confidence=0,
        is_valid=False,
        validation_message="Unable to classify input. Enter an email address, a username or an image URL.",
    )
