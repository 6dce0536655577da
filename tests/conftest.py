from __future__ import annotations

import asyncio
from datetime import date, timedelta

import httpx
import pytest

from exposure_scan.backend.breach import BreachEntry, BreachLookup, BreachProvider
from exposure_scan.backend.correlate import PlatformCorrelator


def days_ago(n: int) -> str:
    return (date.today() - timedelta(days=n)).isoformat()


class StaticBreachProvider(BreachProvider):
    """Returns a canned lookup and remembers what it was asked."""

    name = "Static test provider"
    description = "Canned breach data for tests"

    def __init__(self, lookup: BreachLookup):
        self.result = lookup
        self.calls: list[str] = []

    async def lookup(self, email: str) -> BreachLookup:
        self.calls.append(email)
        return self.result


class ExplodingBreachProvider(BreachProvider):
    name = "Exploding test provider"

    async def lookup(self, email: str) -> BreachLookup:
        raise RuntimeError("backend exploded")


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []

        def recording_handler(request: httpx.Request):
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)


def status_by_host(statuses: dict[str, int], default: int = 404) -> RecordingTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(statuses.get(request.url.host, default))

    return RecordingTransport(handler)


def timing_out() -> RecordingTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    return RecordingTransport(handler)


def hanging() -> RecordingTransport:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(30)
        return httpx.Response(200)

    return RecordingTransport(handler)


@pytest.fixture
def three_breaches() -> BreachLookup:
    return BreachLookup(
        found=True,
        entries=(
            BreachEntry(
                name="RecentShop",
                domain="recentshop.io",
                breach_date=days_ago(120),
                data_classes=("Email addresses", "Passwords"),
                pwn_count=120000,
            ),
            BreachEntry(
                name="OldForum",
                domain="oldforum.net",
                breach_date="2014-05-01",
                data_classes=("Email addresses", "Usernames"),
                pwn_count=50000,
            ),
            BreachEntry(
                name="Newsletter",
                breach_date="2016-09-12",
                data_classes=("Email addresses",),
                pwn_count=9000,
            ),
        ),
    )


@pytest.fixture
def make_correlator():
    def factory(transport, panel_size=6, timeout=1.0, deadline=2.0):
        return PlatformCorrelator(panel_size=panel_size, timeout=timeout, deadline=deadline, transport=transport)

    return factory
