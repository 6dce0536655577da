"""
Email enrichment: domain facts and the address variants that normalize to the
same breach-store key.
"""

from __future__ import annotations

from exposure_scan.backend.breach_store import GMAIL_DOMAINS, BreachStore, hash_email, sha256_hex

DISPOSABLE_DOMAINS = frozenset(
    {
        "tempmail.com",
        "guerrillamail.com",
        "10minutemail.com",
        "mailinator.com",
        "throwaway.email",
        "temp-mail.org",
        "fakeinbox.com",
        "trashmail.com",
        "dispostable.com",
        "tempmailaddress.com",
        "getairmail.com",
        "yopmail.com",
    }
)

MAX_VARIATIONS = 10
MAX_VARIATION_HASHES = 5


def email_domain(email: str) -> str:
    _, sep, domain = (email or "").strip().lower().rpartition("@")
    return domain if sep else ""


def is_disposable(domain: str) -> bool:
    domain = domain.lower()
    return any(domain == d or domain.endswith(f".{d}") for d in DISPOSABLE_DOMAINS)


def email_variations(email: str) -> list[str]:
    """Spellings of the same mailbox, starting with the address as given."""
    value = (email or "").strip().lower()
    local, sep, domain = value.rpartition("@")
    if not sep:
        return [value]

    variations = [value]

    def add(candidate):
        if candidate not in variations:
            variations.append(candidate)

    base = local.split("+", 1)[0]
    if domain in GMAIL_DOMAINS:
        base = base.replace(".", "")
        for gmail_domain in ("gmail.com", "googlemail.com"):
            add(f"{base}@{gmail_domain}")
        for i in range(1, len(base)):
            add(f"{base[:i]}.{base[i:]}@gmail.com")
    elif base != local:
        add(f"{base}@{domain}")
    return variations


def enrich_email(email: str, store: BreachStore) -> dict:
    domain = email_domain(email)
    variations = email_variations(email)
    return {
        "email": email,
        "normalized_hash": hash_email(email),
        "domain": {
            "domain": domain,
            "valid": bool(domain),
            "disposable": is_disposable(domain),
        },
        "variations": variations[:MAX_VARIATIONS],
        # first 16 hex chars only
        "variation_hashes": [sha256_hex(v)[:16] + "..." for v in variations[:MAX_VARIATION_HASHES]],
        "known_breaches": len(store.breaches_for_email(email)),
    }
