"""
Debug trace observers.

The session reports its connection, request and response events to a
:class:`DebugSink`. Sinks render the line-prefixed trace::

    || *  tcp://example.com:80
    ||
    || -> GET / HTTP/1.1
    || -> Host: example.com
    || ->
    ||
    || <- HTTP/1.1 200 OK
    || <- Content-Length: 5
    || <-
    || <- [5 BYTES OF BODY]

and decide where it goes. A failing sink never breaks the request.
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional, TextIO

import structlog

from .tools.http_utils import HEAD_END, format_head, status_line

if TYPE_CHECKING:
    from .abstraction.request import Request
    from .abstraction.response import Response
    from .config import SessionConfig

log = structlog.get_logger(__name__)

CRLF = "\r\n"


def _size_line(prefix: str, size: int) -> str:
    unit = "BYTE" if size == 1 else "BYTES"
    return f"{prefix} [{size} {unit} OF BODY]{CRLF}"


def _body_block(prefix: str, body: bytes) -> str:
    text = body.decode("utf-8", errors="replace")
    return f"{prefix} [BEGIN BODY]{CRLF}{text}{CRLF}{prefix} [END BODY]{CRLF}"


class DebugSink:
    """Base observer; subclasses only implement :meth:`write`."""

    def __init__(self, *, request_body: bool = False, response_body: bool = False) -> None:
        self.request_body = request_body
        """Dump request bodies instead of their size."""

        self.response_body = response_body
        """Dump response bodies instead of their size."""

    # ────── events ──────
    def on_connect(self, remote: str) -> None:
        self._emit(f"|| *  {remote}{CRLF}||{CRLF}")

    def on_request_sent(self, request: "Request", raw: bytes) -> None:
        head = raw.partition(HEAD_END)[0].decode("latin-1")
        message = "".join(f"|| -> {line}{CRLF}" for line in head.split(CRLF))
        message += f"|| ->{CRLF}"
        if request.body:
            if self.request_body:
                message += _body_block("|| ->", request.body)
            else:
                message += _size_line("|| ->", len(request.body))
        message += f"||{CRLF}"
        self._emit(message)

    def on_response_received(self, response: "Response") -> None:
        head = format_head(status_line(response), response.headers, one_line_per_value=True)
        message = "".join(f"|| <- {line}{CRLF}" for line in head.split(CRLF))
        message += f"|| <-{CRLF}"
        if response.body:
            if self.response_body:
                message += _body_block("|| <-", response.body)
            else:
                message += _size_line("|| <-", len(response.body))
        message += CRLF
        self._emit(message)

    # ────── output ──────
    def write(self, message: str) -> None:
        raise NotImplementedError

    def _emit(self, message: str) -> None:
        try:
            self.write(message)
        except Exception as e:  # the trace must never break the request path
            log.warning("debug_sink_failed", sink=type(self).__name__, error=str(e))


class StreamDebugSink(DebugSink):
    """Writes the trace to a text stream, stdout by default."""

    def __init__(self, stream: Optional[TextIO] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.stream = stream

    def write(self, message: str) -> None:
        stream = self.stream or sys.stdout
        stream.write(message)
        stream.flush()


class FileDebugSink(DebugSink):
    """Appends the trace to a file."""

    def __init__(self, path: str | Path, **kwargs) -> None:
        super().__init__(**kwargs)
        self.path = Path(path)

    def write(self, message: str) -> None:
        with self.path.open("a", encoding="utf-8", newline="") as fh:
            fh.write(message)


def make_debug_sink(config: "SessionConfig") -> Optional[DebugSink]:
    """Sink described by the ``debug*`` options, ``None`` when debugging is off."""
    if not config.debug:
        return None
    options = {
        "request_body": config.debug_request_body,
        "response_body": config.debug_response_body,
    }
    if config.debug_file is not None:
        return FileDebugSink(config.debug_file, **options)
    return StreamDebugSink(**options)
