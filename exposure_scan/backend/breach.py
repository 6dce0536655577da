"""
Breach lookup.

A breach data provider answers "which known breaches include this email". The
lookup wraps whichever provider is configured and always hands back a valid
BreachResult: an unreachable or misconfigured provider becomes a degraded
result with ``api_available=False`` and a limitation note, never an exception.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Optional
from urllib.parse import quote

import httpx

from exposure_scan.backend.breach_store import BreachStore, hash_email
from exposure_scan.backend.config import Settings
from exposure_scan.backend.models import BreachResult, BreachSource, Severity

logger = logging.getLogger(__name__)

HIBP_BREACHED_ACCOUNT_URL = "https://haveibeenpwned.com/api/v3/breachedaccount/{account}"
HIBP_USER_AGENT = "exposure-scan/1.0"

SENSITIVE_DATA_CLASSES = {
    "passwords",
    "credit cards",
    "social security numbers",
    "bank account numbers",
    "financial data",
}

RECENT_YEARS = 2


@dataclass(frozen=True)
class BreachEntry:
    name: str
    domain: Optional[str] = None
    breach_date: Optional[str] = None
    data_classes: tuple[str, ...] = ()
    pwn_count: Optional[int] = None

    def to_source(self) -> BreachSource:
        return BreachSource(
            name=self.name,
            domain=self.domain,
            breach_date=self.breach_date,
            data_classes=list(self.data_classes) if self.data_classes else None,
            pwn_count=self.pwn_count,
        )


@dataclass(frozen=True)
class BreachLookup:
    """Raw provider answer, before severity is applied."""

    found: bool
    entries: tuple[BreachEntry, ...] = ()
    source_available: bool = True
    note: Optional[str] = None

    @classmethod
    def unavailable(cls, note: str) -> "BreachLookup":
        return cls(found=False, source_available=False, note=note)


class BreachProvider(ABC):
    """Source of breach membership for an email address."""

    name: str = "breach-provider"
    description: str = ""

    @abstractmethod
    async def lookup(self, email: str) -> BreachLookup:
        """Must return ``BreachLookup.unavailable(...)`` instead of raising on backend failure."""


class LocalBreachProvider(BreachProvider):
    name = "Local breach cache"
    description = "Locally imported breach sources, matched by hashed email"

    def __init__(self, store: BreachStore):
        self.store = store

    async def lookup(self, email: str) -> BreachLookup:
        stored = self.store.breaches_for_email(email)
        if not stored:
            return BreachLookup(
                found=False,
                note=(
                    f"Checked against {self.store.breach_count()} known breach sources. "
                    "Email not found in database."
                ),
            )
        entries = tuple(
            BreachEntry(
                name=b.name,
                domain=b.domain,
                breach_date=b.breach_date,
                data_classes=b.data_classes,
                pwn_count=b.pwn_count or None,
            )
            for b in stored
        )
        return BreachLookup(found=True, entries=entries)


class HibpBreachProvider(BreachProvider):
    name = "Have I Been Pwned"
    description = "Public breach database aggregating known data breaches"

    def __init__(
        self,
        api_key: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = (api_key or "").strip()
        self.timeout = timeout
        self.transport = transport

    async def lookup(self, email: str) -> BreachLookup:
        if not self.api_key:
            return BreachLookup.unavailable(
                "Breach check unavailable: no breach database credential configured."
            )

        url = HIBP_BREACHED_ACCOUNT_URL.format(account=quote(email, safe=""))
        headers = {"hibp-api-key": self.api_key, "User-Agent": HIBP_USER_AGENT}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, headers=headers, params={"truncateResponse": "false"})
        except httpx.HTTPError as e:
            logger.warning(f"HIBP request failed: {e.__class__.__name__}")
            return BreachLookup.unavailable("Breach database is currently unavailable.")

        if response.status_code == 404:
            return BreachLookup(found=False, note="Email not found in any known breach.")
        if response.status_code == 401:
            logger.error("HIBP rejected the configured API key")
            return BreachLookup.unavailable("Breach check unavailable: credential rejected.")
        if response.status_code == 429:
            logger.warning("HIBP rate limit hit")
            return BreachLookup.unavailable("Breach check rate-limited. Please try again later.")
        if response.status_code != 200:
            logger.warning(f"HIBP API error: {response.status_code}")
            return BreachLookup.unavailable("Breach database is currently unavailable.")

        try:
            payload = response.json()
        except ValueError:
            logger.warning("HIBP returned a non-JSON body")
            return BreachLookup.unavailable("Breach database returned an unreadable response.")

        entries = tuple(
            BreachEntry(
                name=item.get("Name") or item.get("Title") or "Unknown",
                domain=item.get("Domain") or None,
                breach_date=item.get("BreachDate"),
                data_classes=tuple(item.get("DataClasses") or ()),
                pwn_count=item.get("PwnCount"),
            )
            for item in payload
            if isinstance(item, dict)
        )
        return BreachLookup(found=bool(entries), entries=entries)


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year - years, day=28)


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def is_sensitive(source: BreachSource) -> bool:
    return any((dc or "").strip().lower() in SENSITIVE_DATA_CLASSES for dc in source.data_classes or ())


def is_recent(source: BreachSource, today: Optional[date] = None) -> bool:
    breach_day = _parse_date(source.breach_date)
    if breach_day is None:
        return False
    cutoff = _years_before(today or date.today(), RECENT_YEARS)
    return breach_day > cutoff


def calculate_severity(sources: list[BreachSource], today: Optional[date] = None) -> Severity:
    """Ranked policy: each tier is checked before the next one down."""
    count = len(sources)
    has_sensitive = any(is_sensitive(s) for s in sources)
    has_recent = any(is_recent(s, today) for s in sources)

    if count >= 10 or (has_sensitive and has_recent):
        return "critical"
    if count >= 5 or has_sensitive:
        return "high"
    if count >= 2 or has_recent:
        return "medium"
    return "low"


async def check_breaches(email: str, provider: BreachProvider, today: Optional[date] = None) -> BreachResult:
    """Look up ``email`` with ``provider``. Never raises."""
    tag = hash_email(email)[:8]
    logger.info(f"Breach lookup via {provider.name} for email hash {tag}")
    try:
        lookup = await provider.lookup(email)
    except Exception as e:
        logger.error(f"Breach lookup failed for email hash {tag}: {e.__class__.__name__}: {e}")
        return BreachResult(
            found=False,
            api_available=False,
            limitation_note="Breach lookup error. Results could not be verified.",
            provider=provider.name,
        )

    if not lookup.source_available:
        logger.warning(f"Breach provider unavailable: {lookup.note}")
        return BreachResult(
            found=False,
            api_available=False,
            limitation_note=lookup.note,
            provider=provider.name,
        )

    sources = [entry.to_source() for entry in lookup.entries]
    if not lookup.found or not sources:
        logger.info(f"No breaches found for email hash {tag}")
        return BreachResult(
            found=False,
            api_available=True,
            limitation_note=lookup.note,
            provider=provider.name,
        )

    severity = calculate_severity(sources, today)
    logger.info(f"Found {len(sources)} breaches for email hash {tag} (severity={severity})")
    return BreachResult(
        found=True,
        breach_count=len(sources),
        sources=sources,
        severity=severity,
        api_available=True,
        limitation_note=lookup.note,
        provider=provider.name,
    )


def build_breach_provider(settings: Settings, store: BreachStore) -> BreachProvider:
    """Pick the provider the settings ask for."""
    if settings.uses_remote_breach_provider:
        return HibpBreachProvider(settings.hibp_api_key, timeout=settings.probe_timeout)
    return LocalBreachProvider(store)
