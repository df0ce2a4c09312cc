from .session import Session
from .config import SessionConfig
from .abstraction.http import HttpMethod, URL, Headers
from .abstraction.request import Request
from .abstraction.response import Response
from .abstraction.cookies import Cookie
from .abstraction.cookie_jar import CookieJar, StoredCookie
from .redirects import RedirectStep
from .debug import DebugSink, FileDebugSink, StreamDebugSink
from .exceptions import (
    ClientError,
    CookieError,
    CookieTampered,
    NetworkError,
    NetworkTimeout,
    RequestError,
)

__all__ = [
    "Session",
    "SessionConfig",
    "HttpMethod",
    "URL",
    "Headers",
    "Request",
    "Response",
    "Cookie",
    "CookieJar",
    "StoredCookie",
    "RedirectStep",
    "DebugSink",
    "FileDebugSink",
    "StreamDebugSink",
    "ClientError",
    "CookieError",
    "CookieTampered",
    "NetworkError",
    "NetworkTimeout",
    "RequestError",
]

__version__ = "0.1.0"
