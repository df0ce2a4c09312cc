from __future__ import annotations

import hashlib
import hmac
import ipaddress
import re
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Literal, Optional

from ..exceptions import CookieError, CookieTampered
from ..tools.cookie_date import format_cookie_date, parse_cookie_date

SameSite = Literal["Lax", "Strict"]

HOST_PREFIX = "__Host-"
SECURE_PREFIX = "__Secure-"

_NAME = re.compile(r'^[^\x00-\x1f\x7f\x20()<>@,;:\\"/\[\]?={}]+$')
_VALUE = re.compile(r'^[^\x00-\x1f\x7f\x20,;\\"]*$')
_QUOTED = re.compile(r'^".*"$')
_DOMAIN = re.compile(r"^(?:[a-zA-Z0-9\-._~]|%[a-fA-F0-9]{2}|[!$&'()*+,;=])*$")
_PATH = re.compile(r"^[^\x00-\x1f\x7f;]*$")
_MAX_AGE = re.compile(r"^-?[0-9]+$")

_SAME_SITE: dict[str, SameSite] = {"lax": "Lax", "strict": "Strict"}

SIGNATURE_LENGTH = 64
MIN_KEY_LENGTH = 32


def is_ip_address(host: str) -> bool:
    try:
        ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class Cookie:
    """
    A dataclass containing the information about a cookie.

    Instances are immutable: every ``with_*`` helper returns a new cookie.
    Please, see the MDN Web Docs for the attribute semantics:
    https://developer.mozilla.org/en-US/docs/Web/HTTP/Headers/Set-Cookie
    """

    name: str
    """
    The name used in the Cookie header, without a ``__Host-``/``__Secure-`` prefix.
    """

    value: Optional[str] = None
    """
    The value sent with the Cookie header (quotes are kept as received).
    """

    expires: Optional[datetime] = None
    """
    The ``Expires`` attribute as an aware UTC datetime.
    """

    max_age: Optional[int] = None
    """
    The ``Max-Age`` attribute in seconds, may be zero or negative.
    """

    domain: Optional[str] = None
    """
    The ``Domain`` attribute, lower-cased and without a leading dot.
    """

    path: Optional[str] = None
    """
    The ``Path`` attribute; values not starting with ``/`` become ``/``.
    """

    secure: bool = False
    """
    Whether the cookie is only sent over https.
    """

    http_only: bool = False
    """
    Whether the cookie is hidden from scripts.
    """

    same_site: Optional[SameSite] = None
    """
    The ``SameSite`` policy.
    """

    host_prefix: bool = False
    """
    The name was received with the ``__Host-`` prefix.
    """

    secure_prefix: bool = False
    """
    The name was received with the ``__Secure-`` prefix.
    """

    expiry_time: Optional[float] = field(default=None, compare=False)
    """
    Absolute expiry as a Unix timestamp; ``None`` for a session cookie.
    Derived from ``Max-Age`` (relative to receipt) first, then ``Expires``.
    """

    def __post_init__(self) -> None:
        name = self.name
        if name.startswith(HOST_PREFIX):
            name = name[len(HOST_PREFIX):]
            object.__setattr__(self, "host_prefix", True)
        elif name.startswith(SECURE_PREFIX):
            name = name[len(SECURE_PREFIX):]
            object.__setattr__(self, "secure_prefix", True)
        if not _NAME.match(name):
            raise CookieError(f"Invalid cookie name: {self.name!r}")
        object.__setattr__(self, "name", name)

        if self.value is not None:
            unquoted = self.value[1:-1] if _QUOTED.match(self.value) else self.value
            if not _VALUE.match(unquoted):
                raise CookieError(f"Invalid cookie value: {self.value!r}")

        object.__setattr__(self, "domain", _filter_domain(self.domain))
        object.__setattr__(self, "path", _filter_path(self.path))

        if self.same_site is not None:
            same_site = _SAME_SITE.get(str(self.same_site).lower())
            if same_site is None:
                raise CookieError(
                    f'Invalid SameSite attribute {self.same_site!r}: must be "Lax" or "Strict"'
                )
            object.__setattr__(self, "same_site", same_site)

        if self.expiry_time is None:
            if self.max_age is not None:
                object.__setattr__(self, "expiry_time", time.time() + self.max_age)
            elif self.expires is not None:
                object.__setattr__(self, "expiry_time", self.expires.timestamp())

    # ────── construction ──────
    @classmethod
    def parse(cls, set_cookie: str, now: Optional[float] = None) -> "Cookie":
        """Build a cookie from a ``Set-Cookie`` header value.

        Attribute names are case-insensitive and the first occurrence of each
        one wins. A malformed ``Expires`` or ``Max-Age`` is dropped instead of
        failing the parse; an unknown ``SameSite`` value is dropped as well.

        Raises :class:`CookieError` when there is no name-value pair or the
        name, value, Domain or Path are invalid.
        """
        pair, *attributes = set_cookie.split(";")
        if "=" not in pair:
            raise CookieError("Invalid cookie: a name-value pair is required")
        name, value = (part.strip() for part in pair.split("=", 1))

        seen: dict[str, str | bool] = {}
        for attribute in attributes:
            key, eq, attr_value = attribute.partition("=")
            key = key.strip().lower()
            if key and key not in seen:
                seen[key] = attr_value.strip() if eq else True

        expires = None
        if isinstance(seen.get("expires"), str):
            expires = parse_cookie_date(seen["expires"])  # type: ignore[arg-type]

        max_age = None
        raw_max_age = seen.get("max-age")
        if isinstance(raw_max_age, str) and _MAX_AGE.match(raw_max_age):
            max_age = int(raw_max_age)

        same_site = seen.get("samesite")
        if not isinstance(same_site, str) or same_site.lower() not in _SAME_SITE:
            same_site = None

        if now is None:
            now = time.time()
        if max_age is not None:
            expiry_time: Optional[float] = now + max_age
        elif expires is not None:
            expiry_time = expires.timestamp()
        else:
            expiry_time = None

        domain = seen.get("domain")
        path = seen.get("path")
        return cls(
            name=name,
            value=value or None,
            expires=expires,
            max_age=max_age,
            domain=domain if isinstance(domain, str) else None,
            path=path if isinstance(path, str) else None,
            secure=bool(seen.get("secure")),
            http_only=bool(seen.get("httponly")),
            same_site=same_site,  # type: ignore[arg-type]
            expiry_time=expiry_time,
        )

    @classmethod
    def create(
        cls,
        name: str,
        value: Optional[str] = None,
        expiry_time: Optional[float] = None,
        domain: Optional[str] = None,
        path: Optional[str] = None,
        secure: bool = False,
        http_only: bool = False,
        same_site: Optional[SameSite] = None,
        now: Optional[float] = None,
    ) -> "Cookie":
        """Build a cookie from an absolute expiry time, deriving Expires and Max-Age."""
        expires = max_age = None
        if expiry_time is not None:
            now = time.time() if now is None else now
            expires = datetime.fromtimestamp(int(expiry_time), tz=timezone.utc)
            max_age = int(expiry_time - now)
        return cls(
            name=name,
            value=value,
            expires=expires,
            max_age=max_age,
            domain=domain,
            path=path,
            secure=secure,
            http_only=http_only,
            same_site=same_site,
            expiry_time=expiry_time,
        )

    # ────── rendering ──────
    @property
    def full_name(self) -> str:
        """The name with its ``__Host-``/``__Secure-`` prefix restored."""
        if self.host_prefix:
            return HOST_PREFIX + self.name
        if self.secure_prefix:
            return SECURE_PREFIX + self.name
        return self.name

    @property
    def name_value_pair(self) -> str:
        return f"{self.full_name}={self.value or ''}"

    def render(self) -> str:
        """``Set-Cookie`` wire format."""
        parts = [self.name_value_pair]
        if self.expires is not None:
            parts.append(f"Expires={format_cookie_date(self.expires)}")
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.domain is not None:
            parts.append(f"Domain={self.domain}")
        if self.path is not None:
            parts.append(f"Path={self.path}")
        if self.secure:
            parts.append("Secure")
        if self.http_only:
            parts.append("HttpOnly")
        if self.same_site is not None:
            parts.append(f"SameSite={self.same_site}")
        return "; ".join(parts)

    def __str__(self) -> str:
        return self.render()

    # ────── matching ──────
    @property
    def persistent(self) -> bool:
        return self.expiry_time is not None

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expiry_time is None:
            return False
        return (time.time() if now is None else now) >= self.expiry_time

    def matches_domain(self, host: str) -> bool:
        """RFC 6265 §5.1.3 domain-match; a cookie without Domain matches any host."""
        if self.domain is None:
            return True
        return domain_match(host, self.domain)

    def matches_path(self, path: str) -> bool:
        """RFC 6265 §5.1.4 path-match; a cookie without Path matches any path."""
        if self.path is None:
            return True
        return path_match(path, self.path)

    # ────── copy-on-write ──────
    def with_value(self, value: Optional[str]) -> "Cookie":
        return replace(self, value=value)

    def with_max_age(self, max_age: Optional[int]) -> "Cookie":
        # expiry is recomputed from the new Max-Age (or Expires) in __post_init__
        return replace(self, max_age=max_age, expiry_time=None)

    def with_domain(self, domain: Optional[str]) -> "Cookie":
        return replace(self, domain=domain)

    def with_path(self, path: Optional[str]) -> "Cookie":
        return replace(self, path=path)

    def with_secure(self, secure: bool) -> "Cookie":
        return replace(self, secure=secure)

    def with_http_only(self, http_only: bool) -> "Cookie":
        return replace(self, http_only=http_only)

    def with_same_site(self, same_site: Optional[SameSite]) -> "Cookie":
        return replace(self, same_site=same_site)

    # ────── signing ──────
    def _digest(self, key: str, value: str) -> str:
        if len(key) < MIN_KEY_LENGTH:
            raise CookieError(f"Invalid key: must be at least {MIN_KEY_LENGTH} characters long")
        return hmac.new(key.encode(), (self.name + value).encode(), hashlib.sha256).hexdigest()

    def sign(self, key: str) -> "Cookie":
        """Prefix the value with an HMAC-SHA256 hex digest of name and value."""
        if not self.value:
            return self
        return self.with_value(self._digest(key, self.value) + self.value)

    def verify(self, key: str) -> "Cookie":
        """Strip and check the digest added by :meth:`sign`.

        Raises :class:`CookieTampered` when the digest does not match.
        """
        if not self.value:
            return self
        signature, original = self.value[:SIGNATURE_LENGTH], self.value[SIGNATURE_LENGTH:]
        if not hmac.compare_digest(self._digest(key, original), signature):
            raise CookieTampered(f"The cookie {self.full_name!r} is modified")
        return self.with_value(original or None)


def _filter_domain(domain: Optional[str]) -> Optional[str]:
    if domain is None:
        return None
    if not _DOMAIN.match(domain):
        raise CookieError(f"Invalid cookie Domain attribute: {domain!r}")
    if domain in ("", "."):
        return None
    return domain.lstrip(".").lower()


def _filter_path(path: Optional[str]) -> Optional[str]:
    if path is None:
        return None
    if not _PATH.match(path):
        raise CookieError(f"Invalid cookie Path attribute: {path!r}")
    if not path.startswith("/"):
        return "/"
    return path


def domain_match(host: str, cookie_domain: str) -> bool:
    host = host.lower()
    if host == cookie_domain.lower():
        return True
    if is_ip_address(host):
        return False
    return host.endswith("." + cookie_domain.lower())


def path_match(req_path: str, cookie_path: str) -> bool:
    if not req_path.startswith("/"):
        req_path = "/" + req_path
    if cookie_path == "/" or req_path == cookie_path:
        return True
    if not req_path.startswith(cookie_path):
        return False
    # next character after the cookie path must be '/'
    return cookie_path.endswith("/") or req_path[len(cookie_path)] == "/"
