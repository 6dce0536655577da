"""
k-anonymity password check against Pwned Passwords.

Only the first five hex characters of the SHA-1 hash ever leave the process.
"""

from __future__ import annotations

import hashlib
import logging
import re
from typing import Optional

import httpx

from exposure_scan.backend.breach_store import BreachStore
from exposure_scan.backend.models import Severity

logger = logging.getLogger(__name__)

PWNED_RANGE_URL = "https://api.pwnedpasswords.com/range/{prefix}"
SHA1_RE = re.compile(r"[0-9a-fA-F]{40}")
PREFIX_RE = re.compile(r"[0-9a-fA-F]{5}")


def password_hash_prefix(value: str) -> tuple[str, str]:
    """Return (prefix, suffix) of the upper-case SHA-1.

    A 40-hex input is taken to be an already computed SHA-1 digest.
    """
    if SHA1_RE.fullmatch(value):
        digest = value.upper()
    else:
        digest = hashlib.sha1(value.encode("utf-8")).hexdigest().upper()
    return digest[:5], digest[5:]


def parse_range_body(body: str) -> list[tuple[str, int]]:
    entries = []
    for line in body.splitlines():
        suffix, sep, count = line.strip().partition(":")
        if not sep:
            continue
        try:
            entries.append((suffix.upper(), int(count)))
        except ValueError:
            continue
    return entries


async def fetch_pwned_range(
    prefix: str,
    timeout: float = 5.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[tuple[str, int]]:
    """Fetch every suffix sharing ``prefix``. Failures yield an empty list."""
    url = PWNED_RANGE_URL.format(prefix=prefix.upper())
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(url, headers={"Add-Padding": "true"})
    except httpx.HTTPError as e:
        logger.warning(f"Pwned Passwords range fetch failed for {prefix}: {e.__class__.__name__}")
        return []

    if response.status_code != 200:
        logger.warning(f"Pwned Passwords API error for {prefix}: {response.status_code}")
        return []

    # Padding entries carry a zero count
    return [(s, c) for s, c in parse_range_body(response.text) if c > 0]


def password_severity(count: int) -> Severity:
    if count > 10000:
        return "critical"
    if count > 1000:
        return "high"
    if count > 100:
        return "medium"
    return "low"


async def check_password(
    value: str,
    store: BreachStore,
    live: bool = True,
    timeout: float = 5.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    prefix, suffix = password_hash_prefix(value)
    source = "local"
    count = store.password_range(prefix).get(suffix)

    if count is None and live:
        entries = await fetch_pwned_range(prefix, timeout=timeout, transport=transport)
        if entries:
            store.upsert_password_range(prefix, entries)
            source = "pwned_passwords"
        count = store.password_range(prefix).get(suffix)

    logger.info(f"Password check for prefix {prefix}: {'found' if count else 'not found'} ({source})")

    if not count:
        return {
            "found": False,
            "count": 0,
            "severity": None,
            "prefix": prefix,
            "source": source,
            "message": "Password not found in known breaches.",
        }

    return {
        "found": True,
        "count": count,
        "severity": password_severity(count),
        "prefix": prefix,
        "source": source,
        "message": f"This password has appeared {count:,} times in known data breaches.",
    }


async def lookup_range(
    prefix: str,
    store: BreachStore,
    live: bool = True,
    timeout: float = 5.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> tuple[list[tuple[str, int]], str]:
    """Return every known (suffix, count) for a 5-char SHA-1 prefix, and where it came from.

    The caller hashes locally and matches the suffix itself, so the service
    never sees more than the prefix.
    """
    if not PREFIX_RE.fullmatch(prefix or ""):
        raise ValueError("Prefix must be exactly 5 hex characters (first 5 chars of the SHA-1 hash)")
    prefix = prefix.upper()

    cached = store.password_range(prefix)
    if cached or not live:
        return sorted(cached.items()), "local"

    entries = await fetch_pwned_range(prefix, timeout=timeout, transport=transport)
    if not entries:
        return [], "local"
    store.upsert_password_range(prefix, entries)
    logger.info(f"Cached {len(entries)} range entries for prefix {prefix}")
    return sorted(store.password_range(prefix).items()), "pwned_passwords"


def format_range(entries: list[tuple[str, int]]) -> str:
    return "\n".join(f"{suffix}:{count}" for suffix, count in entries)
