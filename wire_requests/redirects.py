"""
Redirect following.

:func:`follow_redirect` inspects one response and returns the request for
the next hop, or ``None`` when the response is terminal. The per-call
:class:`RedirectState` carries the hop counter and the history through the
session loop.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

import structlog

from .abstraction.http import URL, Headers

if TYPE_CHECKING:
    from .abstraction.request import Request
    from .abstraction.response import Response
    from .config import SessionConfig

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RedirectStep:
    """One followed redirect."""

    uri: URL
    """Resolved target of the ``Location`` header."""

    headers: Headers
    """Full headers of the redirecting response."""


@dataclass
class RedirectState:
    count: int = 0
    history: list[RedirectStep] = field(default_factory=list)


def is_redirect(status_code: int) -> bool:
    """201, or a code strictly between 300 and 400."""
    return status_code == 201 or 300 < status_code < 400


def follow_redirect(
    request: "Request",
    response: "Response",
    config: "SessionConfig",
    state: RedirectState,
) -> Optional["Request"]:
    """Next request of the chain, or ``None`` when *response* ends it.

    The counter is compared before it is incremented, so a chain of
    redirects stops after ``max_redirects + 1`` hops. A ``Location`` that
    does not resolve to an absolute http(s)-like URL ends the chain instead
    of raising.
    """
    location = response.location
    if not (config.redirects and location and is_redirect(response.status_code)):
        return None

    if state.count > config.max_redirects:
        log.warning("redirect_limit_reached", url=str(request.url), max_redirects=config.max_redirects)
        return None

    try:
        target = request.url.join(location)
    except ValueError as e:
        log.warning("redirect_location_invalid", location=location, error=str(e))
        return None
    if not target.host:
        log.warning("redirect_location_invalid", location=location, error="no host")
        return None

    if target.scheme not in config.redirects_schemes:
        log.info("redirect_scheme_refused", location=str(target), scheme=target.scheme)
        return None

    new = request
    if response.status_code == 303 or not config.strict_redirects:
        new = (
            new.with_method("GET")
            .with_body(b"")
            .without_header("Content-Length")
            .without_header("Content-Type")
        )

    if config.redirects_history:
        state.history.append(RedirectStep(uri=target, headers=response.headers))

    if config.referer_header:
        new = new.with_header("Referer", str(request.url))

    state.count += 1
    log.debug(
        "redirect_followed",
        status=response.status_code,
        location=str(target),
        method=new.method,
        hop=state.count,
    )
    return new.with_url(target)
