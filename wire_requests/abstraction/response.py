from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Iterable, Optional

from .http import URL, Headers
from .request import Request

if TYPE_CHECKING:
    from .cookies import Cookie


@dataclass(frozen=True)
class Response:
    """Represents the response of a request."""

    status_code: int
    """The status code of the response."""

    reason: str = ""
    """The reason phrase of the status line."""

    headers: Headers = field(default_factory=Headers)
    """The headers of the response. ``Set-Cookie`` keeps one entry per occurrence."""

    body: bytes = b""
    """The body of the response, after unchunking/decoding when enabled."""

    protocol_version: str = "1.1"
    """HTTP version of the status line."""

    request: Optional[Request] = None
    """The request that produced this response (the last hop of a redirect chain)."""

    url: Optional[URL] = None
    """The URL of the response. Due to redirects, it can differ from the first request URL."""

    cookies: list["Cookie"] = field(default_factory=list)
    """The cookies set by this response."""

    duration: float = 0.0
    """The duration of the last hop in seconds."""

    @property
    def text(self) -> str:
        """The body decoded with the ``Content-Type`` charset (utf-8 fallback)."""
        from ..tools.http_utils import guess_encoding

        try:
            return self.body.decode(guess_encoding(self.headers), errors="replace")
        except LookupError:  # unknown charset name
            return self.body.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    @property
    def location(self) -> Optional[str]:
        return self.headers.get("Location")

    def with_body(self, body: bytes) -> "Response":
        return replace(self, body=body)

    def with_header(self, name: str, value: str | Iterable[str]) -> "Response":
        return replace(self, headers=self.headers.with_header(name, value))

    def without_header(self, name: str) -> "Response":
        return replace(self, headers=self.headers.without_header(name))
