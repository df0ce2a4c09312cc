from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .abstraction.request import Request


class ClientError(Exception):
    """Base exception class.

    Raised as-is for local failures that are neither a bad request nor a
    network problem: socket write/read errors and unparsable responses.
    """

    def __init__(self, message: str = "", request: Optional["Request"] = None) -> None:
        self.request = request
        super().__init__(message)


class RequestError(ClientError):
    """The request is malformed or inconsistent (missing host, body on GET...)."""


class NetworkError(ClientError):
    """The remote socket could not be reached."""


class NetworkTimeout(NetworkError):
    """A read or write on an open connection timed out."""


class CookieError(ValueError):
    """A cookie string or attribute is not RFC 6265 compliant."""


class CookieTampered(CookieError):
    """The signature of a signed cookie does not match its value."""
