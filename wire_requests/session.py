from __future__ import annotations

"""
wire_requests.session: stateful HTTP/1.x client over plain sockets.

Main methods
============
* ``Session.send_request``: send a :class:`Request`, following redirects
  when enabled, and return the final :class:`Response`.
* ``Session.request`` / ``get`` / ``post``: build the request for you.

Every hop runs the same pipeline: prepare the request, add the jar's
cookies, write it to a fresh socket, read and parse the response, store its
``Set-Cookie`` headers, decode the body and decide whether to redirect.

Cookie jar (RFC 6265): domain, path, secure, host-only, expiry, limits.
One ``Session`` is one set of cookies; use a fresh instance per test. Not
safe for concurrent use from several threads.
"""

from contextlib import AbstractContextManager
from dataclasses import replace
from pathlib import Path
from time import perf_counter
from typing import Any, Optional

import structlog

from .abstraction.cookie_jar import CookieJar
from .abstraction.http import URL, HeaderSource, HttpMethod
from .abstraction.request import Request
from .abstraction.response import Response
from .config import SessionConfig
from .debug import DebugSink, make_debug_sink
from .exceptions import ClientError, RequestError
from .redirects import RedirectState, RedirectStep, follow_redirect
from .tools.content import decode_response
from .tools.http_utils import parse_response, serialize_request
from .transport import Transport, remote_socket

__all__ = ["Session"]

log = structlog.get_logger(__name__)

_BODYLESS_METHODS = ("GET", "HEAD")


def _read_body(body: Any) -> bytes:
    """Body bytes from ``bytes``, ``str`` or a readable object."""
    if body is None:
        return b""
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode("utf-8")
    read = getattr(body, "read", None)
    if callable(read):
        data = read()
        return data.encode("utf-8") if isinstance(data, str) else bytes(data)
    raise RequestError(f"Body is not readable: {type(body).__name__}")


class Session(AbstractContextManager):
    """Socket transport + redirect engine + a single cookie jar."""

    # construction / teardown ────────────────────────────────────────
    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        *,
        transport: Optional[Transport] = None,
        debug_sink: Optional[DebugSink] = None,
        **options: Any,
    ) -> None:
        self.config = (config or SessionConfig()).updated(options)
        """Effective options; keyword options override *config*."""

        self.transport = transport or Transport(self.config.ssl_context)
        """Opens one connection per hop."""

        self.debug_sink = debug_sink or make_debug_sink(self.config)
        """Receives the ``||`` trace, ``None`` when tracing is off."""

        self.cookies = CookieJar(
            max_cookies=self.config.max_cookies,
            max_cookies_per_domain=self.config.max_cookies_per_domain,
        )
        """The cookie jar, shared by every request of this session."""

        self._history: list[RedirectStep] = []

        if self.config.cookies and self.config.cookies_file and Path(self.config.cookies_file).is_file():
            loaded = self.cookies.load(self.config.cookies_file)
            self.cookies.clear_expired()
            log.debug("cookies_loaded", file=self.config.cookies_file, count=loaded)

    def close(self) -> None:
        """Drop session and expired cookies, then persist the jar to ``cookies_file``."""
        if self.config.cookies and self.config.cookies_file:
            self.cookies.clear_session()
            self.cookies.clear_expired()
            self.cookies.persist(self.config.cookies_file)
            log.debug("cookies_persisted", file=self.config.cookies_file, count=len(self.cookies))

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    # redirects history ───────────────────────────────────────────────
    @property
    def redirects_history(self) -> list[RedirectStep]:
        """Redirects followed by the last ``send_request`` call."""
        return list(self._history)

    def clear_redirects_history(self) -> None:
        self._history = []

    # public: HTTP ────────────────────────────────────────────────────
    def request(
        self,
        method: HttpMethod | str,
        url: URL | str,
        *,
        headers: HeaderSource = None,
        body: Any = None,
    ) -> Response:
        return self.send_request(
            Request.build(method, url, headers=headers, body=_read_body(body))
        )

    def get(self, url: URL | str, **kwargs: Any) -> Response:
        return self.request(HttpMethod.GET, url, **kwargs)

    def post(self, url: URL | str, **kwargs: Any) -> Response:
        return self.request(HttpMethod.POST, url, **kwargs)

    def send_request(self, request: Request) -> Response:
        """Send *request* and follow redirects as configured.

        Raises :class:`~wire_requests.exceptions.ClientError` (or a subclass)
        for invalid requests and transport failures; HTTP error statuses are
        returned, not raised.
        """
        state = RedirectState()
        current = request
        try:
            while True:
                prepared = self._prepare(current)
                response = self._send_once(prepared)
                current = follow_redirect(prepared, response, self.config, state)
                if current is None:
                    return response
        finally:
            self._history = state.history

    # per-hop pipeline ────────────────────────────────────────────────
    def _prepare(self, request: Request) -> Request:
        try:
            for name, value in self.config.headers.items():
                request = request.with_header(name, value)
        except (TypeError, ValueError) as e:
            raise RequestError(f"Invalid session header: {e}", request) from e

        if not request.method:
            request = request.with_method(HttpMethod.GET)
        if not request.protocol_version:
            request = request.with_protocol_version("1.1")
        if request.protocol_version == "1.1":
            request = request.with_header("Connection", "close")

        url = request.url
        if not url.scheme:
            url = URL("http://" + url.full_url.lstrip("/"))
            request = request.with_url(url)
        if not url.host:
            raise RequestError(f"Missing host in request URL: {url}", request)
        try:
            authority = url.authority
        except ValueError as e:
            raise RequestError(f"Invalid port in request URL: {url}", request) from e
        request = request.with_header("Host", authority)

        if request.body:
            if request.method in _BODYLESS_METHODS:
                raise RequestError(f"{request.method} request cannot have a body", request)
            if not request.headers.has("Content-Length"):
                request = request.with_header("Content-Length", str(len(request.body)))
        return request

    def _send_once(self, request: Request) -> Response:
        url = request.url
        started = perf_counter()
        try:
            sent, raw = self._exchange(request)
        except ClientError as e:
            if e.request is None:
                e.request = request
            raise

        try:
            response = parse_response(raw)
        except ValueError as e:
            raise ClientError(f"Unable to parse response from {url}: {e}", sent) from e

        stored = []
        if self.config.cookies:
            stored = self.cookies.store_from_response(sent, response)

        if self.config.receive_body:
            response = decode_response(
                response,
                unchunk_body=self.config.unchunk_body,
                decode_body=self.config.decode_body,
            )
        response = replace(
            response,
            request=sent,
            url=url,
            cookies=stored,
            duration=perf_counter() - started,
        )

        if self.debug_sink is not None:
            self.debug_sink.on_response_received(response)
        log.debug("response_received", method=sent.method, url=str(url), status=response.status_code)
        return response

    def _exchange(self, request: Request) -> tuple[Request, bytes]:
        """One connection: write the request, read the raw response, close."""
        url = request.url
        port = url.effective_port
        conn = self.transport.connect(url.scheme, url.host, port, self.config.timeout)
        try:
            if self.debug_sink is not None:
                self.debug_sink.on_connect(remote_socket(url.scheme, url.host, port))

            # cookies go on this hop only, the next hop asks the jar again
            sent = self.cookies.apply_to_request(request) if self.config.cookies else request
            try:
                raw_request = serialize_request(sent)
            except UnicodeEncodeError as e:
                raise RequestError(f"Request head is not latin-1 encodable: {e}", sent) from e

            self.transport.send(conn, raw_request)
            if self.debug_sink is not None:
                self.debug_sink.on_request_sent(sent, raw_request)

            raw = self.transport.receive(
                conn,
                receive_body=self.config.receive_body,
                expect_body=sent.method != "HEAD",
            )
        finally:
            self.transport.close(conn)
        return sent, raw
