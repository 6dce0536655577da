"""
Local breach cache.

Holds breach source metadata, hashed email memberships and Pwned Passwords
range entries. Raw email addresses are never stored: only
sha256(normalize_email(email)).
"""

from __future__ import annotations

import hashlib
import logging
import threading
from collections import OrderedDict, defaultdict
from dataclasses import dataclass, replace
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

GMAIL_DOMAINS = {"gmail.com", "googlemail.com"}
# Each live range holds roughly a thousand suffixes
MAX_PASSWORD_PREFIXES = 1024


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8", errors="ignore")).hexdigest()


def normalize_email(email: str) -> str:
    value = (email or "").strip().lower()
    if "@" not in value:
        return value
    local, domain = value.rsplit("@", 1)
    local = local.split("+", 1)[0]
    if domain in GMAIL_DOMAINS:
        local = local.replace(".", "")
    return f"{local}@{domain}"


def hash_email(email: str) -> str:
    return sha256_hex(normalize_email(email))


@dataclass(frozen=True)
class StoredBreach:
    name: str
    domain: Optional[str] = None
    breach_date: Optional[str] = None
    description: Optional[str] = None
    data_classes: tuple[str, ...] = ()
    pwn_count: int = 0
    is_verified: bool = True

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "domain": self.domain,
            "breach_date": self.breach_date,
            "description": self.description,
            "data_classes": list(self.data_classes),
            "pwn_count": self.pwn_count,
            "is_verified": self.is_verified,
        }


# Public breach catalog loaded on startup (metadata only, no accounts)
KNOWN_BREACHES: tuple[StoredBreach, ...] = (
    StoredBreach(
        name="Collection #1",
        domain="mega.nz",
        breach_date="2019-01-17",
        description="Compilation of email addresses and passwords aggregated from thousands of sources",
        data_classes=("Email addresses", "Passwords"),
        pwn_count=772904991,
    ),
    StoredBreach(
        name="LinkedIn",
        domain="linkedin.com",
        breach_date="2021-06-22",
        description="Scraped public profile data",
        data_classes=("Email addresses", "Names", "Phone numbers", "Professional information"),
        pwn_count=700000000,
    ),
    StoredBreach(
        name="Facebook",
        domain="facebook.com",
        breach_date="2021-04-03",
        description="Phone numbers and personal data scraped from profiles",
        data_classes=("Email addresses", "Phone numbers", "Names", "Dates of birth", "Geographic locations"),
        pwn_count=533000000,
    ),
    StoredBreach(
        name="Twitter",
        domain="twitter.com",
        breach_date="2023-01-05",
        description="Email addresses linked to public profiles",
        data_classes=("Email addresses", "Names", "Usernames"),
        pwn_count=211524284,
    ),
    StoredBreach(
        name="Adobe",
        domain="adobe.com",
        breach_date="2013-10-04",
        description="Customer accounts including encrypted passwords and hints",
        data_classes=("Email addresses", "Passwords", "Password hints", "Usernames"),
        pwn_count=152445165,
    ),
    StoredBreach(
        name="MyFitnessPal",
        domain="myfitnesspal.com",
        breach_date="2018-02-01",
        data_classes=("Email addresses", "Passwords", "Usernames", "IP addresses"),
        pwn_count=143606147,
    ),
    StoredBreach(
        name="Canva",
        domain="canva.com",
        breach_date="2019-05-24",
        data_classes=("Email addresses", "Passwords", "Usernames", "Names", "Geographic locations"),
        pwn_count=137272116,
    ),
    StoredBreach(
        name="Dropbox",
        domain="dropbox.com",
        breach_date="2012-07-01",
        data_classes=("Email addresses", "Passwords"),
        pwn_count=68648009,
    ),
)


class BreachStore:
    """Thread-safe in-memory breach cache with idempotent upserts."""

    def __init__(self, seed: bool = True, max_password_prefixes: int = MAX_PASSWORD_PREFIXES):
        self._lock = threading.Lock()
        self._breaches: dict[str, StoredBreach] = {}
        self._memberships: dict[str, set[str]] = defaultdict(set)
        self.max_password_prefixes = max(1, max_password_prefixes)
        self._password_ranges: OrderedDict[str, dict[str, int]] = OrderedDict()
        if seed:
            for breach in KNOWN_BREACHES:
                self.upsert_breach(breach)

    def upsert_breach(self, breach: StoredBreach, emails: Iterable[str] = ()) -> int:
        """Insert or update a breach by name and link emails to it.

        Returns how many email memberships were newly added.
        """
        hashes = {hash_email(e) for e in emails if e and e.strip()}
        added = 0
        with self._lock:
            existing = self._breaches.get(breach.name)
            if existing is not None:
                # fields left empty on re-import keep their stored values
                breach = replace(
                    breach,
                    domain=breach.domain or existing.domain,
                    breach_date=breach.breach_date or existing.breach_date,
                    description=breach.description or existing.description,
                    data_classes=breach.data_classes or existing.data_classes,
                    pwn_count=breach.pwn_count or existing.pwn_count,
                )
            self._breaches[breach.name] = breach
            for h in hashes:
                if breach.name not in self._memberships[h]:
                    self._memberships[h].add(breach.name)
                    added += 1
        logger.info(f"Upserted breach {breach.name!r}, {added} new email memberships")
        return added

    def breaches_for_email(self, email: str) -> list[StoredBreach]:
        h = hash_email(email)
        with self._lock:
            names = sorted(self._memberships.get(h, ()))
            return [self._breaches[n] for n in names if n in self._breaches]

    def list_breaches(self) -> list[StoredBreach]:
        with self._lock:
            return sorted(self._breaches.values(), key=lambda b: (-b.pwn_count, b.name))

    def breach_count(self) -> int:
        with self._lock:
            return len(self._breaches)

    def password_range(self, prefix: str) -> dict[str, int]:
        with self._lock:
            bucket = self._password_ranges.get(prefix.upper())
            if bucket is None:
                return {}
            self._password_ranges.move_to_end(prefix.upper())
            return dict(bucket)

    def upsert_password_range(self, prefix: str, entries: Iterable[tuple[str, int]]) -> int:
        prefix = prefix.upper()
        added = 0
        with self._lock:
            bucket = self._password_ranges.setdefault(prefix, {})
            self._password_ranges.move_to_end(prefix)
            for suffix, count in entries:
                suffix = suffix.upper()
                if suffix not in bucket:
                    added += 1
                bucket[suffix] = count
            # least recently used prefixes go first
            while len(self._password_ranges) > self.max_password_prefixes:
                evicted, _ = self._password_ranges.popitem(last=False)
                logger.info(f"Evicted password range {evicted} from cache")
        return added

    def stats(self) -> dict:
        with self._lock:
            return {
                "total_breaches": len(self._breaches),
                "total_email_hashes": sum(1 for v in self._memberships.values() if v),
                "total_password_hashes": sum(len(v) for v in self._password_ranges.values()),
            }
