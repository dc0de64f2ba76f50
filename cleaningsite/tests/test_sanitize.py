import pytest

from cleaningsite.sanitize import (
    honeypot_field,
    sanitize_email,
    sanitize_filename,
    sanitize_object,
    sanitize_phone,
    sanitize_string,
    validate_honeypot,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("  hello   world ", "hello world"),
        ("line\r\nbreak\ttab", "line break tab"),
        ("nul\x00byte\x1b", "nulbyte"),
        (None, ""),
        (42, ""),
    ],
)
def test_sanitize_string(raw, expected):
    assert sanitize_string(raw) == expected


def test_sanitize_email_lowercases_and_strips_unsafe_characters():
    assert sanitize_email(" Ada.Lovelace+news@Example.COM ") == "ada.lovelace+news@example.com"
    assert sanitize_email("a<b>@c d.com") == "ab@cd.com"
    assert sanitize_email(None) == ""


def test_sanitize_phone_keeps_dialable_characters():
    assert sanitize_phone(" +1 (413) 555-0199 ext.7 ") == "+1 (413) 555-0199 7"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\me\\cv final.pdf", "cv_final.pdf"),
        (".hidden.docx", "hidden.docx"),
        ("r\u00e9sum\u00e9!!.pdf", "r_sum_.pdf"),
        ("", "file"),
    ],
)
def test_sanitize_filename(raw, expected):
    assert sanitize_filename(raw) == expected


def test_sanitize_filename_truncates_but_keeps_extension():
    cleaned = sanitize_filename("a" * 400 + ".pdf")
    assert len(cleaned) == 255
    assert cleaned.endswith(".pdf")


def test_sanitize_object_recurses_and_keeps_non_strings():
    cleaned = sanitize_object(
        {"name": " Ada ", "services": [" a ", "b\x00"], "meta": {"note": " x "}, "count": 3, "consent": True}
    )
    assert cleaned == {"name": "Ada", "services": ["a", "b"], "meta": {"note": "x"}, "count": 3, "consent": True}


@pytest.mark.parametrize("payload", [None, [1, 2], "text", 5])
def test_sanitize_object_non_mapping_is_empty(payload):
    assert sanitize_object(payload) == {}


def test_honeypot_checks():
    assert validate_honeypot(None)
    assert validate_honeypot("   ")
    assert not validate_honeypot("http://spam.example")

    check = honeypot_field("website")
    assert check({"name": "Ada"})
    assert check({"website": ""})
    assert not check({"website": "filled"})
    assert check("not a dict")
