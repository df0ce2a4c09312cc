from __future__ import annotations

import os
import ssl
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Mapping

import structlog

from .abstraction.http import _FORBIDDEN_VALUE, _TOKEN

log = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Dataclass config
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class SessionConfig:
    """
    Session options. Unknown keys and values of the wrong type are ignored by
    :meth:`from_options` / :meth:`updated`, never rejected.

    Example::

        cfg = SessionConfig.from_options({
            "redirects": True,
            "max_redirects": 5,
            "cookies_file": "cookies.txt",
            "timeout": 5.0,
        })
    """

    # --- request -----------------------------------------------------------
    headers: dict[str, Any] = field(default_factory=dict)
    """Extra headers set on every request (override request headers of the same name)."""

    timeout: float = 30.0
    """Seconds for connect and for every read/write on the socket; fresh per hop."""

    ssl_context: ssl.SSLContext | None = None
    """TLS context for https; ``ssl.create_default_context()`` when ``None``."""

    # --- cookies -----------------------------------------------------------
    cookies: bool = True
    """Send and store cookies."""

    cookies_file: str | None = None
    """File the jar is loaded from at construction and persisted to on close."""

    max_cookies: int = 3000
    """Jar-wide ceiling; the oldest cookies are evicted beyond it."""

    max_cookies_per_domain: int = 50
    """Per-domain ceiling; the oldest cookies of the domain are evicted beyond it."""

    # --- redirects ---------------------------------------------------------
    redirects: bool = False
    """Follow redirects."""

    max_redirects: int = 10
    """Redirect bound. The count is checked before it is incremented, so
    ``max_redirects + 1`` redirects are followed at most."""

    strict_redirects: bool = True
    """RFC 7231 behaviour: keep the method on 301/302/307/308; only 303 turns
    into GET. When disabled every redirect is re-sent as a bodiless GET."""

    redirects_schemes: list[str] = field(default_factory=lambda: ["http", "https"])
    """Schemes a redirect may lead to."""

    referer_header: bool = True
    """Send the previous URL as ``Referer`` on redirect hops."""

    redirects_history: bool = True
    """Record every followed redirect (URI + response headers)."""

    # --- response body -----------------------------------------------------
    receive_body: bool = True
    """Read the whole response; when disabled only the head is read."""

    unchunk_body: bool = True
    """Reverse ``Transfer-Encoding: chunked``."""

    decode_body: bool = True
    """Reverse ``Content-Encoding`` gzip/deflate/compress."""

    # --- debug trace -------------------------------------------------------
    debug: bool = False
    """Write the ``||`` connection/request/response trace."""

    debug_file: str | None = None
    """Append the trace to this file instead of stdout."""

    debug_request_body: bool = False
    """Include request bodies in the trace."""

    debug_response_body: bool = False
    """Include response bodies in the trace."""

    # ------------------------------------------------------------------ utils
    @classmethod
    def from_options(cls, options: Mapping[str, Any] | None = None) -> "SessionConfig":
        return cls().updated(options)

    def updated(self, options: Mapping[str, Any] | None = None) -> "SessionConfig":
        """Copy with every recognised, correctly typed option of *options* applied."""
        changes: dict[str, Any] = {}
        for key, value in (options or {}).items():
            check = _CHECKS.get(key)
            if check is None or value is None:
                log.debug("config_option_ignored", option=key, reason="unknown" if check is None else "none")
                continue
            accepted, normalized = check(value)
            if not accepted:
                log.debug("config_option_ignored", option=key, reason="type", value_type=type(value).__name__)
                continue
            changes[key] = normalized
        return replace(self, **changes)

    def as_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# ---------------------------------------------------------------------------
# Per-option type checks: value -> (accepted, normalized value)
# ---------------------------------------------------------------------------
Check = Callable[[Any], tuple[bool, Any]]


def _bool(value: Any) -> tuple[bool, Any]:
    return isinstance(value, bool), value


def _int(value: Any) -> tuple[bool, Any]:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0, value


def _timeout(value: Any) -> tuple[bool, Any]:
    ok = isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
    return ok, float(value) if ok else value


def _path(value: Any) -> tuple[bool, Any]:
    ok = isinstance(value, (str, os.PathLike))
    return ok, os.fspath(value) if ok else value


def _header_value(value: Any) -> bool:
    if isinstance(value, str):
        return not _FORBIDDEN_VALUE.search(value)
    return isinstance(value, (list, tuple)) and all(isinstance(v, str) and _header_value(v) for v in value)


def _headers(value: Any) -> tuple[bool, Any]:
    if not isinstance(value, Mapping):
        return False, value
    kept: dict[str, Any] = {}
    for name, item in value.items():
        if isinstance(name, str) and _TOKEN.match(name) and _header_value(item):
            kept[name] = item
        else:
            log.debug("config_header_ignored", header=repr(name), value_type=type(item).__name__)
    return True, kept


def _schemes(value: Any) -> tuple[bool, Any]:
    ok = isinstance(value, (list, tuple, set, frozenset)) and all(isinstance(s, str) for s in value)
    return ok, [s.lower() for s in value] if ok else value


def _ssl_context(value: Any) -> tuple[bool, Any]:
    return isinstance(value, ssl.SSLContext), value


_CHECKS: dict[str, Check] = {
    "headers": _headers,
    "timeout": _timeout,
    "ssl_context": _ssl_context,
    "cookies": _bool,
    "cookies_file": _path,
    "max_cookies": _int,
    "max_cookies_per_domain": _int,
    "redirects": _bool,
    "max_redirects": _int,
    "strict_redirects": _bool,
    "redirects_schemes": _schemes,
    "referer_header": _bool,
    "redirects_history": _bool,
    "receive_body": _bool,
    "unchunk_body": _bool,
    "decode_body": _bool,
    "debug": _bool,
    "debug_file": _path,
    "debug_request_body": _bool,
    "debug_response_body": _bool,
}
