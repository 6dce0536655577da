"""
Platform correlation.

Probes a fixed panel of public profile URLs for a username. Every probe is
independent and time-bounded; a probe that fails is read as "probably
available" with low confidence instead of failing the scan.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, Optional
from urllib.parse import quote

import httpx

from exposure_scan.backend.models import CorrelationResult, PlatformMatch, RiskLevel

logger = logging.getLogger(__name__)

PROBE_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

CORRELATION_NOTE = (
    "Platform checks use basic HTTP requests. Some platforms may block automated "
    "access, leading to false negatives. Results should be verified manually for "
    "critical decisions."
)

LOCAL_PART_RE = re.compile(r"[A-Za-z0-9._-]+")

# (available, confidence) when nothing usable came back
UNKNOWN_OUTCOME = (True, 0.2)


@dataclass(frozen=True)
class PlatformCheck:
    name: str
    url_template: str

    def profile_url(self, username: str) -> str:
        return self.url_template.format(username=quote(username, safe=""))


PLATFORMS: tuple[PlatformCheck, ...] = (
    PlatformCheck("GitHub", "https://github.com/{username}"),
    PlatformCheck("Twitter/X", "https://twitter.com/{username}"),
    PlatformCheck("Instagram", "https://instagram.com/{username}"),
    PlatformCheck("Reddit", "https://reddit.com/user/{username}"),
    PlatformCheck("LinkedIn", "https://linkedin.com/in/{username}"),
    PlatformCheck("Medium", "https://medium.com/@{username}"),
    PlatformCheck("YouTube", "https://youtube.com/@{username}"),
    PlatformCheck("TikTok", "https://tiktok.com/@{username}"),
    PlatformCheck("Pinterest", "https://pinterest.com/{username}"),
    PlatformCheck("Twitch", "https://twitch.tv/{username}"),
)

DEFAULT_PANEL_SIZE = 6


def interpret_status(status: Optional[int]) -> tuple[bool, float]:
    """Map a probe outcome to (available, confidence). ``None`` means the probe failed."""
    if status is None:
        return UNKNOWN_OUTCOME
    if status == 200:
        return False, 0.8
    if status == 404:
        return True, 0.7
    return True, 0.3


async def probe_profile(
    client: httpx.AsyncClient,
    check: PlatformCheck,
    username: str,
    timeout: float,
) -> Optional[int]:
    """HEAD the profile URL. Returns the status code, or None on error/timeout."""
    url = check.profile_url(username)
    try:
        response = await asyncio.wait_for(client.head(url), timeout=timeout)
    except (httpx.HTTPError, asyncio.TimeoutError) as e:
        logger.info(f"Probe for {check.name} did not complete: {e.__class__.__name__}")
        return None
    return response.status_code


def make_match(check: PlatformCheck, username: str, status: Optional[int]) -> PlatformMatch:
    available, confidence = interpret_status(status)
    return PlatformMatch(
        platform=check.name,
        url=None if available else check.profile_url(username),
        available=available,
        confidence=confidence,
    )


def correlation_risk(matches: Iterable[PlatformMatch]) -> RiskLevel:
    confident = sum(1 for m in matches if not m.available and m.confidence >= 0.5)
    if confident >= 4:
        return "high"
    if confident >= 2:
        return "medium"
    return "low"


def username_from_email(email: str) -> Optional[str]:
    """The email local part, if it is usable as a username."""
    local, sep, _ = email.partition("@")
    if not sep:
        return None
    if len(local) < 3 or not LOCAL_PART_RE.fullmatch(local):
        return None
    return local


def empty_result(note: str) -> CorrelationResult:
    return CorrelationResult(matches=[], risk="low", checked_platforms=[], limitation_note=note)


def note_email_source(result: CorrelationResult, username: str) -> CorrelationResult:
    note = f'Checked username "{username}" extracted from email. {result.limitation_note or ""}'.strip()
    return result.model_copy(update={"limitation_note": note})


class PlatformCorrelator:
    """Fans out one probe per panel platform under a shared deadline."""

    def __init__(
        self,
        platforms: tuple[PlatformCheck, ...] = PLATFORMS,
        panel_size: int = DEFAULT_PANEL_SIZE,
        timeout: float = 5.0,
        deadline: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        size = max(1, min(panel_size, len(platforms)))
        self.panel = platforms[:size]
        self.timeout = timeout
        self.deadline = deadline
        self.transport = transport

    @property
    def platform_names(self) -> list[str]:
        return [p.name for p in self.panel]

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": PROBE_USER_AGENT},
            transport=self.transport,
        )

    async def iter_probes(self, username: str) -> AsyncIterator[PlatformMatch]:
        """Yield one match per panel platform, in completion order.

        Probes still running at the deadline are cancelled and reported with the
        unknown outcome, so the caller always gets a full set.
        """
        loop = asyncio.get_running_loop()
        async with self._client() as client:
            tasks = {
                asyncio.create_task(probe_profile(client, check, username, self.timeout)): check
                for check in self.panel
            }
            pending = set(tasks)
            stop_at = loop.time() + self.deadline
            try:
                while pending:
                    remaining = stop_at - loop.time()
                    if remaining <= 0:
                        break
                    done, pending = await asyncio.wait(
                        pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                    )
                    for task in done:
                        check = tasks[task]
                        status = None
                        if task.exception() is not None:
                            logger.error(f"Probe for {check.name} raised: {task.exception()!r}")
                        else:
                            status = task.result()
                        yield make_match(check, username, status)

                if pending:
                    logger.warning(f"Probe deadline reached with {len(pending)} platforms pending")
                    for task in pending:
                        task.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)
                    for task in list(pending):
                        yield make_match(tasks[task], username, None)
                    pending = set()
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()

    def build_result(self, matches: Iterable[PlatformMatch]) -> CorrelationResult:
        order = {name: i for i, name in enumerate(self.platform_names)}
        ordered = sorted(matches, key=lambda m: order.get(m.platform, len(order)))
        return CorrelationResult(
            matches=ordered,
            risk=correlation_risk(ordered),
            checked_platforms=self.platform_names,
            limitation_note=CORRELATION_NOTE,
        )

    async def correlate(self, username: str) -> CorrelationResult:
        logger.info(f"Correlating username across {len(self.panel)} platforms")
        matches = [m async for m in self.iter_probes(username)]
        result = self.build_result(matches)
        logger.info(f"Correlation finished: {result.found_count} found, risk={result.risk}")
        return result

    async def correlate_email(self, email: str) -> CorrelationResult:
        username = username_from_email(email)
        if username is None:
            return empty_result(
                "Email username part is too short or contains invalid characters for platform correlation."
            )
        return note_email_source(await self.correlate(username), username)
