from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable, Optional

from .http import URL, HeaderSource, Headers, HttpMethod


@dataclass(frozen=True)
class Request:
    """Represents all the data passed in the request."""

    method: str
    """The method used in the request (upper-case)."""

    url: URL
    """The URL of the request."""

    headers: Headers = field(default_factory=Headers)
    """The headers of the request."""

    body: bytes = b""
    """The body of the request."""

    protocol_version: str = "1.1"
    """HTTP version written on the request line."""

    @classmethod
    def build(
        cls,
        method: HttpMethod | str,
        url: URL | str,
        *,
        headers: HeaderSource = None,
        body: bytes | str | None = None,
        protocol_version: str = "1.1",
    ) -> "Request":
        if isinstance(body, str):
            body = body.encode("utf-8")
        return cls(
            method=HttpMethod.coerce(method),
            url=url if isinstance(url, URL) else URL(url),
            headers=Headers.of(headers),
            body=body if body is not None else b"",
            protocol_version=protocol_version,
        )

    # ────── copy-on-write ──────
    def with_method(self, method: HttpMethod | str) -> "Request":
        return replace(self, method=HttpMethod.coerce(method))

    def with_url(self, url: URL | str) -> "Request":
        return replace(self, url=url if isinstance(url, URL) else URL(url))

    def with_header(self, name: str, value: str | Iterable[str]) -> "Request":
        return replace(self, headers=self.headers.with_header(name, value))

    def with_added_header(self, name: str, value: str | Iterable[str]) -> "Request":
        return replace(self, headers=self.headers.with_added_header(name, value))

    def without_header(self, name: str) -> "Request":
        return replace(self, headers=self.headers.without_header(name))

    def with_body(self, body: Optional[bytes]) -> "Request":
        return replace(self, body=body or b"")

    def with_protocol_version(self, version: str) -> "Request":
        return replace(self, protocol_version=version)
