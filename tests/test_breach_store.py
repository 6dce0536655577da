from exposure_scan.backend.breach_store import (
    KNOWN_BREACHES,
    BreachStore,
    StoredBreach,
    hash_email,
    normalize_email,
)


def test_normalize_email():
    assert normalize_email("  John.Doe+news@Gmail.com ") == "johndoe@gmail.com"
    assert normalize_email("j.o.h.n@googlemail.com") == "john@googlemail.com"
    assert normalize_email("First.Last+promo@company.org") == "first.last@company.org"


def test_hash_email_matches_variants():
    assert hash_email("johndoe@gmail.com") == hash_email("John.Doe+x@GMAIL.com")
    assert len(hash_email("a@b.io")) == 64


def test_store_is_seeded_with_catalog():
    store = BreachStore()
    listed = store.list_breaches()
    assert len(listed) == len(KNOWN_BREACHES)
    assert listed[0].name == "Collection #1"
    assert [b.pwn_count for b in listed] == sorted((b.pwn_count for b in listed), reverse=True)
    assert store.stats()["total_email_hashes"] == 0


def test_unseeded_store_is_empty():
    assert BreachStore(seed=False).stats() == {
        "total_breaches": 0,
        "total_email_hashes": 0,
        "total_password_hashes": 0,
    }


def test_upsert_is_idempotent():
    store = BreachStore(seed=False)
    breach = StoredBreach(name="ShopLeak", domain="shop.io", breach_date="2022-01-01", pwn_count=10)
    emails = ["alice@shop.io", "bob@shop.io"]

    assert store.upsert_breach(breach, emails) == 2
    before = store.stats()
    assert store.upsert_breach(breach, emails) == 0
    assert store.stats() == before


def test_breaches_for_email_uses_normalized_hash():
    store = BreachStore(seed=False)
    store.upsert_breach(StoredBreach(name="A"), ["jane.doe@gmail.com"])
    store.upsert_breach(StoredBreach(name="B"), ["janedoe+news@gmail.com"])

    found = store.breaches_for_email("JaneDoe@gmail.com")
    assert [b.name for b in found] == ["A", "B"]
    assert store.breaches_for_email("someone@else.io") == []


def test_reimport_keeps_fields_left_empty():
    store = BreachStore(seed=False)
    store.upsert_breach(StoredBreach(name="A", pwn_count=500))
    store.upsert_breach(StoredBreach(name="A", domain="a.io"))
    (breach,) = store.list_breaches()
    assert breach.pwn_count == 500
    assert breach.domain == "a.io"


def test_password_ranges():
    store = BreachStore(seed=False)
    assert store.upsert_password_range("5baa6", [("abc", 3), ("DEF", 4)]) == 2
    assert store.upsert_password_range("5BAA6", [("ABC", 5)]) == 0
    assert store.password_range("5baa6") == {"ABC": 5, "DEF": 4}
    assert store.stats()["total_password_hashes"] == 2


def test_to_dict_shape():
    data = KNOWN_BREACHES[0].to_dict()
    assert set(data) == {"name", "domain", "breach_date", "description", "data_classes", "pwn_count", "is_verified"}
    assert isinstance(data["data_classes"], list)


def test_password_ranges_are_bounded():
    store = BreachStore(seed=False, max_password_prefixes=2)
    store.upsert_password_range("AAAAA", [("X1", 1)])
    store.upsert_password_range("BBBBB", [("X2", 2)])
    # reading AAAAA makes BBBBB the least recently used
    assert store.password_range("AAAAA") == {"X1": 1}
    store.upsert_password_range("CCCCC", [("X3", 3)])

    assert store.password_range("BBBBB") == {}
    assert store.password_range("AAAAA") == {"X1": 1}
    assert store.password_range("CCCCC") == {"X3": 3}
    assert store.stats()["total_password_hashes"] == 2
