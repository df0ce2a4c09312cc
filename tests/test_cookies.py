from __future__ import annotations

from datetime import datetime, timezone

import pytest

from wire_requests import Cookie, CookieError, CookieTampered
from wire_requests.abstraction.cookies import domain_match, path_match
from wire_requests.tools.cookie_date import format_cookie_date, parse_cookie_date

KEY = "k" * 32
EPOCH_1994 = datetime(1994, 11, 6, 8, 49, 37, tzinfo=timezone.utc)


# ───────────────────────── Set-Cookie parsing ──────────────────────────


def test_parse_all_attributes():
    c = Cookie.parse("sid=abc; Path=/app; Domain=.Example.COM; Secure; HttpOnly; SameSite=lax")
    assert c.name == "sid"
    assert c.value == "abc"
    assert c.domain == "example.com"
    assert c.path == "/app"
    assert c.secure and c.http_only
    assert c.same_site == "Lax"
    assert not c.persistent


def test_parse_first_attribute_occurrence_wins():
    c = Cookie.parse("a=1; Path=/x; path=/y; DOMAIN=one.com; Domain=two.com")
    assert c.path == "/x"
    assert c.domain == "one.com"


def test_parse_max_age_takes_precedence_over_expires():
    c = Cookie.parse("a=1; Expires=Wed, 21 Oct 2015 07:28:00 GMT; Max-Age=60", now=1000.0)
    assert c.max_age == 60
    assert c.expiry_time == 1060.0


def test_parse_expires_only():
    c = Cookie.parse("a=1; Expires=Wed, 21 Oct 2015 07:28:00 GMT")
    assert c.expires == datetime(2015, 10, 21, 7, 28, tzinfo=timezone.utc)
    assert c.expiry_time == c.expires.timestamp()
    assert c.persistent


@pytest.mark.parametrize("attribute", ["Max-Age=soon", "Expires=not a date", "Max-Age="])
def test_parse_drops_malformed_expiry(attribute: str):
    c = Cookie.parse(f"a=1; {attribute}")
    assert c.expiry_time is None
    assert not c.persistent


def test_parse_unknown_same_site_is_dropped():
    assert Cookie.parse("a=1; SameSite=None").same_site is None


def test_constructor_rejects_unknown_same_site():
    with pytest.raises(CookieError):
        Cookie(name="a", value="1", same_site="None")  # type: ignore[arg-type]


@pytest.mark.parametrize("header", ["novalue", "a b=1", "bad;=1", "a=1 2"])
def test_parse_rejects_invalid_pair(header: str):
    with pytest.raises(CookieError):
        Cookie.parse(header)


def test_parse_keeps_quoted_value():
    assert Cookie.parse('a="quoted"').value == '"quoted"'


def test_path_without_leading_slash_becomes_root():
    assert Cookie.parse("a=1; Path=relative").path == "/"


def test_prefix_is_stripped_and_restored():
    c = Cookie.parse("__Host-id=1; Secure; Path=/")
    assert c.name == "id"
    assert c.host_prefix and not c.secure_prefix
    assert c.full_name == "__Host-id"
    assert c.name_value_pair == "__Host-id=1"

    s = Cookie.parse("__Secure-id=1; Secure")
    assert s.secure_prefix and s.full_name == "__Secure-id"


# ───────────────────────── rendering ──────────────────────────


def test_render():
    c = Cookie(
        name="a",
        value="b",
        domain="example.com",
        path="/",
        secure=True,
        http_only=True,
        same_site="Strict",
    )
    assert c.render() == "a=b; Domain=example.com; Path=/; Secure; HttpOnly; SameSite=Strict"
    assert str(c) == c.render()


def test_render_parses_back():
    original = Cookie.parse("a=b; Expires=Wed, 21 Oct 2015 07:28:00 GMT; Path=/x; HttpOnly")
    again = Cookie.parse(original.render())
    assert again == original


def test_empty_value_renders_name_equals():
    assert Cookie(name="a").name_value_pair == "a="


# ───────────────────────── copy-on-write ──────────────────────────


def test_with_helpers_return_new_cookie():
    c = Cookie(name="a", value="1")
    changed = c.with_value("2").with_secure(True).with_path("/x").with_domain("Example.com")
    assert (c.value, c.secure, c.path, c.domain) == ("1", False, None, None)
    assert (changed.value, changed.secure, changed.path, changed.domain) == ("2", True, "/x", "example.com")


def test_with_max_age_makes_cookie_persistent():
    c = Cookie(name="a", value="1")
    assert not c.persistent
    assert c.with_max_age(60).persistent
    assert c.with_max_age(60).with_max_age(None).expiry_time is None


def test_with_same_site_normalizes_case():
    assert Cookie(name="a").with_same_site("strict").same_site == "Strict"  # type: ignore[arg-type]


def test_create_derives_expires_and_max_age():
    c = Cookie.create("a", "1", expiry_time=2000.0, now=1000.0)
    assert c.max_age == 1000
    assert c.expires == datetime.fromtimestamp(2000, tz=timezone.utc)
    assert c.expiry_time == 2000.0
    assert not c.is_expired(1999.0)
    assert c.is_expired(2000.0)


# ───────────────────────── signing ──────────────────────────


def test_sign_and_verify():
    c = Cookie(name="sid", value="payload")
    signed = c.sign(KEY)
    assert len(signed.value) == 64 + len("payload")
    assert signed.value.endswith("payload")
    assert signed.verify(KEY) == c


def test_verify_detects_tampering():
    signed = Cookie(name="sid", value="payload").sign(KEY)
    forged = signed.with_value(signed.value[:-1] + "X")
    with pytest.raises(CookieTampered):
        forged.verify(KEY)
    with pytest.raises(CookieTampered):
        signed.verify("x" * 32)


def test_signature_is_bound_to_name():
    signed = Cookie(name="sid", value="payload").sign(KEY)
    with pytest.raises(CookieTampered):
        Cookie(name="other", value=signed.value).verify(KEY)


def test_short_key_is_rejected():
    with pytest.raises(CookieError):
        Cookie(name="a", value="1").sign("short")


# ───────────────────────── cookie-date ──────────────────────────


@pytest.mark.parametrize(
    "value",
    [
        "Sun, 06 Nov 1994 08:49:37 GMT",
        "Sunday, 06-Nov-94 08:49:37 GMT",
        "Sun Nov  6 08:49:37 1994",
    ],
)
def test_cookie_date_formats(value: str):
    assert parse_cookie_date(value) == EPOCH_1994


@pytest.mark.parametrize(
    "value",
    [
        "garbage",
        "31 Feb 2020 00:00:00",
        "01 Jan 1600 00:00:00",
        "01 Jan 2020 24:00:00",
        "Jan 2020 00:00:00",
    ],
)
def test_cookie_date_invalid(value: str):
    assert parse_cookie_date(value) is None


def test_two_digit_years():
    assert parse_cookie_date("01 Jan 69 00:00:00").year == 2069
    assert parse_cookie_date("01 Jan 70 00:00:00").year == 1970


def test_format_cookie_date():
    moment = datetime(2015, 10, 21, 7, 28, tzinfo=timezone.utc)
    assert format_cookie_date(moment) == "Wed, 21 Oct 2015 07:28:00 GMT"


# ───────────────────────── matching ──────────────────────────


@pytest.mark.parametrize(
    "host, domain, expected",
    [
        ("example.com", "example.com", True),
        ("www.example.com", "example.com", True),
        ("WWW.Example.com", "example.com", True),
        ("example.com", "www.example.com", False),
        ("badexample.com", "example.com", False),
        ("192.168.0.1", "192.168.0.1", True),
        ("192.168.0.1", "168.0.1", False),
    ],
)
def test_domain_match(host: str, domain: str, expected: bool):
    assert domain_match(host, domain) is expected


@pytest.mark.parametrize(
    "req_path, cookie_path, expected",
    [
        ("/", "/", True),
        ("/a", "/a", True),
        ("/a/b", "/a", True),
        ("/a/b", "/a/", True),
        ("/ab", "/a", False),
        ("/", "/a", False),
    ],
)
def test_path_match(req_path: str, cookie_path: str, expected: bool):
    assert path_match(req_path, cookie_path) is expected


def test_empty_quoted_value_is_accepted():
    c = Cookie.parse('sid=""; Max-Age=0; Path=/')
    assert c.value == '""'
    assert c.is_expired()
