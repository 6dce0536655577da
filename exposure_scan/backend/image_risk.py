"""
Image exposure estimate.

Only accessibility and content type are checked. No reverse image search is
wired in, so exposure indicators stay empty and the hash is derived from the
URL rather than the pixels.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional

import httpx

from exposure_scan.backend.models import ImageRiskResult

logger = logging.getLogger(__name__)

IMAGE_DISCLAIMER = (
    "This does not confirm misuse. It estimates public exposure risk based on "
    "image accessibility analysis."
)

IMAGE_USER_AGENT = "exposure-scan/1.0 image check"

NO_REVERSE_SEARCH_NOTE = (
    "Full reverse image search requires a dedicated provider. Without one, only "
    "image accessibility is verified. The identifier shown is derived from the URL, "
    "not the actual image content."
)


def url_fingerprint(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:32]


def _not_analyzed(note: str) -> ImageRiskResult:
    return ImageRiskResult(
        analyzed=False,
        risk_level="low",
        exposure_indicators=[],
        disclaimer=IMAGE_DISCLAIMER,
        limitation_note=note,
    )


async def analyze_image_exposure(
    url: str,
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ImageRiskResult:
    """HEAD the image and report what could be verified. Never raises."""
    try:
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": IMAGE_USER_AGENT},
            transport=transport,
        ) as client:
            response = await client.head(url)
    except (httpx.HTTPError, httpx.InvalidURL, UnicodeError) as e:
        # IDNA and surrogate failures surface as UnicodeError while the request is built
        logger.warning(f"Image check failed for {url}: {e.__class__.__name__}")
        return _not_analyzed(
            f"Failed to analyze image: {e.__class__.__name__}. "
            "The URL may be inaccessible or the request timed out."
        )

    if not response.is_success:
        logger.info(f"Image URL returned HTTP {response.status_code}")
        return _not_analyzed(
            f"Unable to access the image (HTTP {response.status_code}). "
            "The URL may be invalid, expired, or access-restricted."
        )

    content_type = response.headers.get("content-type", "")
    if not content_type.lower().startswith("image/"):
        return _not_analyzed(
            f"The URL does not appear to point to an image (content-type: {content_type or 'missing'})."
        )

    logger.info(f"Image accessible ({content_type})")
    return ImageRiskResult(
        analyzed=True,
        perceptual_hash=url_fingerprint(url),
        exposure_indicators=[],
        risk_level="low",
        disclaimer=IMAGE_DISCLAIMER,
        limitation_note=NO_REVERSE_SEARCH_NOTE,
    )
