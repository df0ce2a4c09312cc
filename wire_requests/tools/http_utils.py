"""
HTTP/1.x wire helpers: request serialization, response parsing, charset.

No sockets here: every function is pure, which keeps them easy to test
separately from the transport.
"""
from __future__ import annotations

import re

from ..abstraction.http import Headers
from ..abstraction.request import Request
from ..abstraction.response import Response

CRLF = "\r\n"
HEAD_END = b"\r\n\r\n"

_STATUS_LINE = re.compile(r"^HTTP/(\d(?:\.\d)?) (\d{3})(?: (.*))?$")


# ───────────────────── request → bytes ───────────────────────────────


def format_head(start_line: str, headers: Headers, *, one_line_per_value: bool = False) -> str:
    """Start line plus header lines, without the terminating blank line."""
    lines = [start_line]
    if one_line_per_value:
        lines.extend(f"{name}: {value}" for name, value in headers.items())
    else:
        lines.extend(f"{name}: {headers.get_line(name)}" for name in headers.names())
    return CRLF.join(lines)


def request_line(request: Request) -> str:
    return f"{request.method} {request.url.target} HTTP/{request.protocol_version}"


def serialize_request(request: Request) -> bytes:
    """``METHOD target HTTP/x.y`` + headers + blank line + body.

    Raises ``UnicodeEncodeError`` for header text outside latin-1.
    """
    head = format_head(request_line(request), request.headers) + CRLF + CRLF
    return head.encode("latin-1") + request.body


# ───────────────────── bytes → response ──────────────────────────────


def status_line(response: Response) -> str:
    line = f"HTTP/{response.protocol_version} {response.status_code}"
    return f"{line} {response.reason}" if response.reason else line


def parse_response(raw: bytes) -> Response:
    """Parse a raw HTTP/1.x response.

    ``Set-Cookie`` (like every other header) keeps one entry per occurrence.
    Raises ``ValueError`` when the status line or a header line is malformed.
    """
    if not raw:
        raise ValueError("Invalid response: no data received")

    head, sep, body = raw.partition(HEAD_END)
    if not sep and b"\n\n" in raw:
        head, _, body = raw.partition(b"\n\n")

    lines = head.decode("latin-1").replace("\r\n", "\n").split("\n")
    match = _STATUS_LINE.match(lines[0].strip())
    if match is None:
        raise ValueError(f"Invalid response status line: {lines[0][:80]!r}")
    version, code, reason = match.groups()

    pairs: list[tuple[str, str]] = []
    for line in lines[1:]:
        if not line:
            continue
        if line[0] in " \t" and pairs:
            # obsolete line folding
            name, value = pairs[-1]
            pairs[-1] = (name, f"{value} {line.strip()}")
            continue
        name, colon, value = line.partition(":")
        if not colon or not name.strip():
            raise ValueError(f"Invalid response header line: {line[:80]!r}")
        pairs.append((name.strip(), value.strip()))

    return Response(
        status_code=int(code),
        reason=(reason or "").strip(),
        headers=Headers(tuple(pairs)),
        body=body,
        protocol_version=version,
    )


# ───────────────────── charset helper ────────────────────────────────


def guess_encoding(headers: Headers) -> str:
    ctype = headers.get("content-type", "") or ""
    if "charset=" in ctype:
        return (
            ctype.split("charset=", 1)[1].split(";", 1)[0].strip(" \"'") or "utf-8"
        )
    return "utf-8"
