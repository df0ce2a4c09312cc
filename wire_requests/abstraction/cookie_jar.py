from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional

import structlog

from ..exceptions import CookieError
from .cookies import Cookie, domain_match, path_match
from .http import URL
from .request import Request
from .response import Response

log = structlog.get_logger(__name__)

CookieKey = tuple[str, str, str]

_FLAGS = {True: "TRUE", False: "FALSE"}
_PARSE_FLAG = {"TRUE": True, "FALSE": False}
FILE_FIELDS = 11


def default_path(request_path: str) -> str:
    """RFC 6265 §5.1.4 default-path: the "directory" of the request path."""
    if not request_path.startswith("/"):
        return "/"
    cut = request_path.rfind("/")
    if cut == 0:
        return "/"
    return request_path[:cut]


@dataclass
class StoredCookie:
    """A cookie as kept by the jar, with the RFC 6265 §5.3 storage fields."""

    cookie: Cookie
    """The cookie as received."""

    domain: str
    """Effective domain: the Domain attribute or the request host."""

    path: str
    """Effective path: the Path attribute or the default path of the request."""

    creation_time: float
    """Kept across replacements of the same (name, domain, path)."""

    last_access_time: float
    """Updated every time the cookie is attached to a request."""

    host_only: bool
    """No Domain attribute was given: only the exact host gets the cookie."""

    @property
    def key(self) -> CookieKey:
        return (self.cookie.full_name, self.domain, self.path)

    @property
    def name(self) -> str:
        return self.cookie.full_name

    @property
    def value(self) -> Optional[str]:
        return self.cookie.value

    @property
    def expiry_time(self) -> Optional[float]:
        return self.cookie.expiry_time

    @property
    def persistent(self) -> bool:
        return self.cookie.persistent

    @property
    def secure_only(self) -> bool:
        return self.cookie.secure

    @property
    def http_only(self) -> bool:
        return self.cookie.http_only

    def is_expired(self, now: Optional[float] = None) -> bool:
        return self.cookie.is_expired(now)

    def for_url_match(self, url: URL) -> bool:
        """Domain (host-only aware), path and Secure checks; expiry is checked by the jar."""
        host = url.host
        if self.host_only:
            if host != self.domain.lower():
                return False
        elif not domain_match(host, self.domain):
            return False

        if not path_match(url.path, self.path):
            return False

        if self.secure_only and not url.secure:
            return False

        return True

    def to_line(self) -> str:
        return " ".join(
            [
                self.name,
                self.value or "",
                str(int(self.expiry_time)) if self.expiry_time is not None else "0",
                self.domain,
                self.path,
                str(int(self.creation_time)),
                str(int(self.last_access_time)),
                _FLAGS[self.persistent],
                _FLAGS[self.host_only],
                _FLAGS[self.secure_only],
                _FLAGS[self.http_only],
            ]
        )

    @classmethod
    def from_line(cls, line: str) -> "StoredCookie":
        """Inverse of :meth:`to_line`; raises ``ValueError`` on a malformed line."""
        fields = line.split(" ")
        if len(fields) != FILE_FIELDS:
            raise ValueError(f"expected {FILE_FIELDS} fields, got {len(fields)}")
        (
            name, value, expiry, domain, path, created, accessed,
            persistent, host_only, secure, http_only,
        ) = fields
        flags = [_PARSE_FLAG[flag] for flag in (persistent, host_only, secure, http_only)]
        persistent_flag, host_only_flag, secure_flag, http_only_flag = flags
        cookie = Cookie(
            name=name,
            value=value or None,
            domain=None if host_only_flag else domain,
            path=path,
            secure=secure_flag,
            http_only=http_only_flag,
            expiry_time=float(expiry) if persistent_flag else None,
        )
        return cls(
            cookie=cookie,
            domain=domain,
            path=path,
            creation_time=float(created),
            last_access_time=float(accessed),
            host_only=host_only_flag,
        )


class CookieJar:
    """In-memory RFC 6265 cookie store, optionally persisted to a file.

    Entries are indexed by their identity key ``(name, domain, path)``; the
    index keeps insertion order, which is also the order cookies are sent in.
    """

    def __init__(self, *, max_cookies: int = 3000, max_cookies_per_domain: int = 50) -> None:
        self.max_cookies = max_cookies
        self.max_cookies_per_domain = max_cookies_per_domain
        self._storage: dict[CookieKey, StoredCookie] = {}

    # ────── dunder helpers ──────
    def __iter__(self) -> Iterator[StoredCookie]:
        return iter(list(self._storage.values()))

    def __len__(self) -> int:
        return len(self._storage)

    def __bool__(self) -> bool:
        return bool(self._storage)

    # ────── CRUD ──────
    def get(self, name: str, domain: str | None = None, path: str | None = None) -> StoredCookie | None:
        """Get a cookie by name, and optionally domain and path."""
        return next(
            (
                c
                for c in self._storage.values()
                if c.name == name
                and (domain is None or c.domain == domain)
                and (path is None or c.path == path)
            ),
            None,
        )

    def delete(self, name: str, domain: str, path: str | None = None) -> StoredCookie | None:
        """Delete a cookie by name, domain and path."""
        entry = self.get(name, domain, path)
        if entry is not None:
            del self._storage[entry.key]
        return entry

    def add(self, cookie: Cookie | Iterable[Cookie], url: URL | str) -> None:
        """Store locally built cookies as if *url* had set them."""
        url = url if isinstance(url, URL) else URL(url)
        cookies = [cookie] if isinstance(cookie, Cookie) else list(cookie)
        for c in cookies:
            self.store(c, url)

    # ────── storage algorithm ──────
    def store(self, cookie: Cookie, url: URL, now: Optional[float] = None) -> StoredCookie | None:
        """Run the RFC 6265 §5.3 storage steps for one cookie received from *url*.

        Returns the stored entry, or ``None`` when the cookie was rejected or
        was already expired (which deletes any cookie with the same key).
        """
        now = time.time() if now is None else now
        host = url.host

        if cookie.domain is not None:
            if not domain_match(host, cookie.domain):
                log.debug("cookie_rejected", reason="domain_mismatch", cookie=cookie.full_name, host=host, domain=cookie.domain)
                return None
            domain, host_only = cookie.domain, False
        else:
            domain, host_only = host, True

        # no Path attribute: RFC 6265 default-path, the parent directory of the request path
        path = cookie.path if cookie.path is not None else default_path(url.path)

        if cookie.secure_prefix and not cookie.secure:
            log.debug("cookie_rejected", reason="secure_prefix", cookie=cookie.full_name)
            return None
        if cookie.host_prefix and (not cookie.secure or not host_only or path != "/"):
            log.debug("cookie_rejected", reason="host_prefix", cookie=cookie.full_name)
            return None

        key = (cookie.full_name, domain, path)
        old = self._storage.pop(key, None)
        if cookie.is_expired(now):
            return None

        entry = StoredCookie(
            cookie=cookie,
            domain=domain,
            path=path,
            creation_time=old.creation_time if old is not None else now,
            last_access_time=now,
            host_only=host_only,
        )
        self._storage[key] = entry
        self._enforce_limits(domain, now)
        return entry

    def store_from_response(self, request: Request, response: Response, now: Optional[float] = None) -> list[Cookie]:
        """Ingest every ``Set-Cookie`` of *response*; one bad header never aborts the rest."""
        if not request.url.host:
            return []
        stored: list[Cookie] = []
        for raw in response.headers.get_all("Set-Cookie"):
            try:
                cookie = Cookie.parse(raw, now)
            except CookieError as e:
                log.debug("set_cookie_unparsable", header=raw, error=str(e))
                continue
            if self.store(cookie, request.url, now) is not None:
                stored.append(cookie)
        return stored

    def _enforce_limits(self, domain: str, now: float) -> None:
        if len(self._storage) > self.max_cookies:
            self.clear_expired(now)
        while len(self._storage) > self.max_cookies:
            self._evict(self._storage.values())

        same_domain = [c for c in self._storage.values() if c.domain == domain]
        for _ in range(len(same_domain) - self.max_cookies_per_domain):
            self._evict(same_domain)
            same_domain = [c for c in self._storage.values() if c.domain == domain]

    def _evict(self, entries: Iterable[StoredCookie]) -> None:
        oldest = min(entries, key=lambda c: c.creation_time)
        del self._storage[oldest.key]
        log.debug("cookie_evicted", cookie=oldest.name, domain=oldest.domain)

    # ────── retrieval algorithm ──────
    def for_url(self, url: URL | str, now: Optional[float] = None) -> list[StoredCookie]:
        """Cookies a browser would send to *url*, in insertion order.

        Expired cookies met on the way are evicted.
        """
        url = url if isinstance(url, URL) else URL(url)
        now = time.time() if now is None else now
        selected: list[StoredCookie] = []
        for key, entry in list(self._storage.items()):
            if entry.is_expired(now):
                del self._storage[key]
                continue
            if entry.for_url_match(url):
                entry.last_access_time = now
                selected.append(entry)
        return selected

    @staticmethod
    def to_cookie_header(cookies: Iterable[StoredCookie]) -> str:
        """Serialize cookies into one ``Cookie`` header value."""
        return "; ".join(c.cookie.name_value_pair for c in cookies)

    def apply_to_request(self, request: Request, now: Optional[float] = None) -> Request:
        cookies = self.for_url(request.url, now)
        if not cookies:
            return request
        return request.with_added_header("Cookie", self.to_cookie_header(cookies))

    # ────── housekeeping ──────
    def clear_expired(self, now: Optional[float] = None) -> int:
        expired = [key for key, c in self._storage.items() if c.is_expired(now)]
        for key in expired:
            del self._storage[key]
        return len(expired)

    def clear_session(self) -> int:
        session = [key for key, c in self._storage.items() if not c.persistent]
        for key in session:
            del self._storage[key]
        return len(session)

    def clear_all(self) -> None:
        self._storage.clear()

    # ────── persistence ──────
    def persist(self, path: str | Path) -> None:
        """Write one cookie per line; see :meth:`StoredCookie.to_line`."""
        lines = [c.to_line() + "\n" for c in self._storage.values()]
        Path(path).write_text("".join(lines), encoding="utf-8")

    def load(self, path: str | Path) -> int:
        """Merge cookies from *path*; lines that are not 11 valid fields are skipped."""
        loaded = 0
        for number, line in enumerate(Path(path).read_text(encoding="utf-8").splitlines(), 1):
            if not line.strip():
                continue
            try:
                entry = StoredCookie.from_line(line)
            except (ValueError, KeyError) as e:
                log.debug("cookie_line_skipped", file=str(path), line=number, error=str(e))
                continue
            self._storage[entry.key] = entry
            loaded += 1
        return loaded
