from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Iterable, Iterator, Mapping, Union
from urllib.parse import SplitResult, urljoin, urlsplit, urlunsplit

_TOKEN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
_FORBIDDEN_VALUE = re.compile(r"[\r\n\x00]")

DEFAULT_PORTS = {"http": 80, "https": 443}


class HttpMethod(Enum):
    """HTTP request methods understood by the session."""

    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"
    CONNECT = "CONNECT"
    TRACE = "TRACE"

    @classmethod
    def coerce(cls, method: "HttpMethod | str") -> str:
        """Upper-cased method string; unknown extension methods pass through."""
        if isinstance(method, HttpMethod):
            return method.value
        return str(method).strip().upper()


@dataclass(frozen=True)
class URL:
    """An absolute (or scheme-relative) request URL."""

    full_url: str
    """The URL exactly as given."""

    @cached_property
    def _parts(self) -> SplitResult:
        return urlsplit(self.full_url)

    @property
    def scheme(self) -> str:
        return self._parts.scheme.lower()

    @property
    def host(self) -> str:
        """Lower-cased host without brackets, empty when absent."""
        return self._parts.hostname or ""

    @property
    def domain(self) -> str:
        """Alias of :attr:`host`."""
        return self.host

    @property
    def port(self) -> int | None:
        """Explicit port, ``None`` when the URL does not carry one.

        Raises ``ValueError`` for an out-of-range or non-numeric port.
        """
        return self._parts.port

    @property
    def effective_port(self) -> int:
        port = self.port
        if port is not None:
            return port
        return DEFAULT_PORTS["https"] if self.secure else DEFAULT_PORTS["http"]

    @property
    def path(self) -> str:
        return self._parts.path or "/"

    @property
    def query(self) -> str:
        return self._parts.query

    @property
    def target(self) -> str:
        """Origin-form request target: ``path[?query]``."""
        if self.query:
            return f"{self.path}?{self.query}"
        return self.path

    @property
    def secure(self) -> bool:
        return self.scheme == "https"

    @property
    def authority(self) -> str:
        """Value for the ``Host`` header; the port is omitted when it is the default."""
        host = self.host
        if ":" in host:
            host = f"[{host}]"
        port = self.port
        if port is not None and port != DEFAULT_PORTS.get(self.scheme):
            return f"{host}:{port}"
        return host

    def with_scheme(self, scheme: str) -> "URL":
        p = self._parts
        return URL(urlunsplit((scheme, p.netloc, p.path, p.query, p.fragment)))

    def join(self, location: str) -> "URL":
        """Resolve *location* (absolute, scheme-relative or relative) against this URL.

        Raises ``ValueError`` when the result cannot be parsed.
        """
        joined = URL(urljoin(self.full_url, location.strip()))
        # force parsing of the authority so that bad ports surface here
        joined.port  # noqa: B018
        return joined

    def __str__(self) -> str:
        return self.full_url


HeaderSource = Union["Headers", Mapping[str, Union[str, Iterable[str]]], Iterable[tuple[str, str]], None]


def _as_values(value: str | Iterable[str]) -> list[str]:
    if isinstance(value, (str, bytes)):
        values = [value.decode("latin-1") if isinstance(value, bytes) else value]
    else:
        values = [str(v) for v in value]
    for v in values:
        if _FORBIDDEN_VALUE.search(v):
            raise ValueError(f"Invalid header value: {v!r}")
    return values


def _check_name(name: str) -> str:
    if not _TOKEN.match(name):
        raise ValueError(f"Invalid header name: {name!r}")
    return name


@dataclass(frozen=True)
class Headers:
    """Immutable, ordered, case-insensitive header multi-map.

    Every value is kept as its own entry so that repeated headers such as
    ``Set-Cookie`` survive untouched.
    """

    pairs: tuple[tuple[str, str], ...] = ()

    @classmethod
    def of(cls, source: HeaderSource = None) -> "Headers":
        if source is None:
            return cls()
        if isinstance(source, Headers):
            return source
        pairs: list[tuple[str, str]] = []
        items = source.items() if isinstance(source, Mapping) else source
        for name, value in items:
            _check_name(name)
            pairs.extend((name, v) for v in _as_values(value))
        return cls(tuple(pairs))

    # ────── lookup ──────
    def get_all(self, name: str) -> list[str]:
        key = name.lower()
        return [v for n, v in self.pairs if n.lower() == key]

    def get(self, name: str, default: str | None = None) -> str | None:
        values = self.get_all(name)
        return values[0] if values else default

    def get_line(self, name: str) -> str:
        """All values of *name* joined the way they go on the wire."""
        separator = "; " if name.lower() == "cookie" else ", "
        return separator.join(self.get_all(name))

    def has(self, name: str) -> bool:
        key = name.lower()
        return any(n.lower() == key for n, _ in self.pairs)

    def names(self) -> list[str]:
        """Header names in first-seen order and casing."""
        seen: dict[str, str] = {}
        for n, _ in self.pairs:
            seen.setdefault(n.lower(), n)
        return list(seen.values())

    def items(self) -> list[tuple[str, str]]:
        return list(self.pairs)

    def as_dict(self) -> dict[str, list[str]]:
        return {n: self.get_all(n) for n in self.names()}

    # ────── copy-on-write ──────
    def with_header(self, name: str, value: str | Iterable[str]) -> "Headers":
        """Replace every value of *name*, keeping the position of the first one."""
        _check_name(name)
        values = _as_values(value)
        key = name.lower()
        pairs: list[tuple[str, str]] = []
        placed = False
        for n, v in self.pairs:
            if n.lower() == key:
                if not placed:
                    pairs.extend((name, new) for new in values)
                    placed = True
                continue
            pairs.append((n, v))
        if not placed:
            pairs.extend((name, new) for new in values)
        return Headers(tuple(pairs))

    def with_added_header(self, name: str, value: str | Iterable[str]) -> "Headers":
        _check_name(name)
        return Headers(self.pairs + tuple((name, v) for v in _as_values(value)))

    def without_header(self, name: str) -> "Headers":
        key = name.lower()
        return Headers(tuple((n, v) for n, v in self.pairs if n.lower() != key))

    # ────── dunder helpers ──────
    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self.names())

    def __bool__(self) -> bool:
        return bool(self.pairs)
