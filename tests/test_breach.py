import asyncio
import json
from datetime import date

import httpx
import pytest
from pydantic import ValidationError

from conftest import ExplodingBreachProvider, RecordingTransport, StaticBreachProvider
from exposure_scan.backend.breach import (
    BreachLookup,
    HibpBreachProvider,
    LocalBreachProvider,
    calculate_severity,
    check_breaches,
)
from exposure_scan.backend.breach_store import BreachStore, StoredBreach
from exposure_scan.backend.models import BreachResult, BreachSource

TODAY = date(2025, 6, 1)
ORDER = ["low", "medium", "high", "critical"]


def source(name="X", breach_date="2015-01-01", data_classes=("Email addresses",)):
    return BreachSource(name=name, breach_date=breach_date, data_classes=list(data_classes))


@pytest.mark.parametrize(
    "sources, expected",
    [
        ([source()], "low"),
        ([source(), source()], "medium"),
        ([source(breach_date="2024-12-01")], "medium"),
        ([source(data_classes=("Passwords",))], "high"),
        ([source()] * 5, "high"),
        ([source()] * 10, "critical"),
        ([source(breach_date="2024-12-01", data_classes=("Passwords",))], "critical"),
        ([source(data_classes=("CREDIT CARDS",)), source(breach_date="2024-01-01")], "critical"),
    ],
)
def test_severity_ladder(sources, expected):
    assert calculate_severity(sources, today=TODAY) == expected


def test_severity_is_monotonic_in_count():
    for classes in (("Email addresses",), ("Passwords",)):
        for breach_date in ("2010-01-01", "2025-01-01"):
            previous = -1
            for n in range(1, 13):
                rank = ORDER.index(calculate_severity([source(breach_date=breach_date, data_classes=classes)] * n, TODAY))
                assert rank >= previous
                previous = rank


def test_recency_cutoff_on_leap_day():
    leap_day = date(2024, 2, 29)
    assert calculate_severity([source(breach_date="2022-03-01")], today=leap_day) == "medium"
    assert calculate_severity([source(breach_date="2022-02-28")], today=leap_day) == "low"


def test_unparseable_dates_are_not_recent():
    assert calculate_severity([source(breach_date="sometime")], today=TODAY) == "low"


def test_not_found_result_cannot_carry_sources():
    with pytest.raises(ValidationError):
        BreachResult(found=False, breach_count=1, sources=[source()], api_available=True)


def test_check_breaches_found(three_breaches):
    provider = StaticBreachProvider(three_breaches)
    result = asyncio.run(check_breaches("someone@mail.io", provider))

    assert result.found
    assert result.breach_count == 3
    assert [s.name for s in result.sources] == ["RecentShop", "OldForum", "Newsletter"]
    assert result.severity == "critical"
    assert result.api_available
    assert result.provider == "Static test provider"
    assert provider.calls == ["someone@mail.io"]


def test_check_breaches_clean():
    provider = StaticBreachProvider(BreachLookup(found=False, note="Nothing here."))
    result = asyncio.run(check_breaches("someone@mail.io", provider))
    assert not result.found
    assert result.breach_count == 0
    assert result.sources == []
    assert result.api_available
    assert result.limitation_note == "Nothing here."


def test_check_breaches_unavailable_provider():
    provider = StaticBreachProvider(BreachLookup.unavailable("No credential configured."))
    result = asyncio.run(check_breaches("someone@mail.io", provider))
    assert not result.found
    assert not result.api_available
    assert result.limitation_note == "No credential configured."


def test_check_breaches_never_raises():
    result = asyncio.run(check_breaches("someone@mail.io", ExplodingBreachProvider()))
    assert not result.found
    assert not result.api_available
    assert "error" in result.limitation_note.lower()


def test_local_provider_matches_imported_emails():
    store = BreachStore()
    store.upsert_breach(
        StoredBreach(name="Canva", domain="canva.com", breach_date="2019-05-24", data_classes=("Passwords",)),
        ["jane.doe@gmail.com"],
    )
    provider = LocalBreachProvider(store)

    hit = asyncio.run(provider.lookup("janedoe@gmail.com"))
    assert hit.found and hit.source_available
    assert hit.entries[0].name == "Canva"

    miss = asyncio.run(provider.lookup("nobody@mail.io"))
    assert not miss.found and miss.source_available
    assert miss.note == "Checked against 8 known breach sources. Email not found in database."


def hibp_transport(status, payload=None):
    def handler(request):
        if payload is None:
            return httpx.Response(status)
        return httpx.Response(status, content=json.dumps(payload), headers={"content-type": "application/json"})

    return RecordingTransport(handler)


def test_hibp_without_key_is_unavailable():
    transport = hibp_transport(200, [])
    lookup = asyncio.run(HibpBreachProvider("", transport=transport).lookup("a@b.io"))
    assert not lookup.source_available
    assert "credential" in lookup.note
    assert transport.requests == []


def test_hibp_found():
    transport = hibp_transport(
        200,
        [
            {
                "Name": "Adobe",
                "Domain": "adobe.com",
                "BreachDate": "2013-10-04",
                "DataClasses": ["Email addresses", "Passwords"],
                "PwnCount": 152445165,
            }
        ],
    )
    lookup = asyncio.run(HibpBreachProvider("secret-key", transport=transport).lookup("a@b.io"))

    assert lookup.found and lookup.source_available
    assert lookup.entries[0].name == "Adobe"
    assert lookup.entries[0].data_classes == ("Email addresses", "Passwords")
    request = transport.requests[0]
    assert request.headers["hibp-api-key"] == "secret-key"
    assert request.url.path.endswith("/breachedaccount/a@b.io")
    assert request.url.params["truncateResponse"] == "false"


@pytest.mark.parametrize(
    "status, available, fragment",
    [
        (404, True, "not found"),
        (401, False, "credential rejected"),
        (429, False, "rate-limited"),
        (503, False, "unavailable"),
    ],
)
def test_hibp_status_mapping(status, available, fragment):
    lookup = asyncio.run(HibpBreachProvider("key", transport=hibp_transport(status)).lookup("a@b.io"))
    assert not lookup.found
    assert lookup.source_available is available
    assert fragment in lookup.note


def test_hibp_transport_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    lookup = asyncio.run(HibpBreachProvider("key", transport=httpx.MockTransport(handler)).lookup("a@b.io"))
    assert not lookup.source_available
