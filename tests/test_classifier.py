import pytest

from exposure_scan.backend.classifier import classify_input


@pytest.mark.parametrize(
    "raw, kind, confidence",
    [
        ("a@b.com", "email", 0.95),
        ("https://x.com/photo.jpg", "image_url", 0.9),
        ("https://cdn.site.org/pic.PNG?size=large", "image_url", 0.9),
        ("https://site.org/users/42/avatar", "image_url", 0.7),
        ("j_doe99", "username", 0.85),
        ("ab", "username", 0.6),
    ],
)
def test_classification_types(raw, kind, confidence):
    result = classify_input(raw)
    assert result.type == kind
    assert result.confidence == confidence
    assert result.is_valid


def test_empty_input_is_invalid():
    result = classify_input("   ")
    assert result.type == "unknown"
    assert result.confidence == 0
    assert not result.is_valid
    assert result.validation_message == "Input is required"


def test_email_is_trimmed_and_lower_cased():
    assert classify_input("  Jane.Doe@Mail.COM ").value == "jane.doe@mail.com"


def test_email_wins_over_username_pattern():
    # "user.name@host.io" is also close to the username charset
    assert classify_input("user.name@host.io").type == "email"


def test_generic_url_is_speculative():
    result = classify_input("https://site.org/about")
    assert result.type == "image_url"
    assert result.confidence == 0.5
    assert result.validation_message


def test_long_username_falls_back():
    result = classify_input("a" * 31)
    assert result.type == "username"
    assert result.confidence == 0.6
    assert result.validation_message == "Treating as username"


@pytest.mark.parametrize("raw", ["hello world", "user@nodomain", "name!"])
def test_unclassifiable_input(raw):
    result = classify_input(raw)
    assert result.type == "unknown"
    assert result.confidence == 0
    assert not result.is_valid


def test_classification_is_idempotent():
    assert classify_input("j_doe99") == classify_input("j_doe99")
    assert classify_input("a@b.com").to_wire() == classify_input("a@b.com").to_wire()
