"""
Body normalization: ``Transfer-Encoding: chunked`` and ``Content-Encoding``.

Both transforms degrade instead of failing: malformed framing keeps what
was decoded so far, a body that does not decompress is passed through.
"""
from __future__ import annotations

import zlib
from typing import Callable

import structlog

from ..abstraction.response import Response

log = structlog.get_logger(__name__)


def unchunk(data: bytes) -> bytes:
    """Reverse chunked transfer coding.

    Chunk extensions (``;name=value``) are ignored, the zero-size chunk ends
    the body and trailers are dropped.
    """
    result = bytearray()
    pos = 0
    while pos < len(data):
        line_end = data.find(b"\r\n", pos)
        if line_end == -1:
            break
        size_field = data[pos:line_end].split(b";", 1)[0].strip()
        try:
            size = int(size_field, 16)
        except ValueError:
            log.debug("unchunk_malformed", offset=pos)
            break
        if size == 0:
            break
        start = line_end + 2
        result += data[start:start + size]
        if start + size > len(data):
            log.debug("unchunk_truncated", offset=pos, size=size)
            break
        # skip the CRLF that closes the chunk
        pos = start + size + 2
    return bytes(result)


def _gunzip(data: bytes) -> bytes:
    # a body may hold several concatenated gzip members
    out = []
    while data:
        d = zlib.decompressobj(16 + zlib.MAX_WBITS)
        out.append(d.decompress(data))
        out.append(d.flush())
        if not d.eof:
            raise zlib.error("incomplete gzip member")
        data = d.unused_data.lstrip(b"\x00")
    return b"".join(out)


def _inflate(data: bytes) -> bytes:
    # "deflate" is zlib-wrapped per RFC 9110, raw DEFLATE is common in the wild
    try:
        return zlib.decompress(data)
    except zlib.error:
        return zlib.decompress(data, -zlib.MAX_WBITS)


def _uncompress(data: bytes) -> bytes:
    return zlib.decompress(data)


DECODERS: dict[str, Callable[[bytes], bytes]] = {
    "gzip": _gunzip,
    "x-gzip": _gunzip,
    "deflate": _inflate,
    "compress": _uncompress,
    "x-compress": _uncompress,
}


def _try_decompress(data: bytes, encoding: str) -> bytes | None:
    decoder = DECODERS.get(encoding.strip().lower())
    if decoder is None:
        return None
    if not data:
        return data
    try:
        return decoder(data)
    except zlib.error as e:
        log.warning("content_decode_failed", encoding=encoding, error=str(e))
        return None


def decompress(data: bytes, encoding: str) -> bytes:
    """Decode *data* for a ``Content-Encoding`` value; unknown or broken input is returned as-is."""
    decoded = _try_decompress(data, encoding)
    return data if decoded is None else decoded


def is_chunked(response: Response) -> bool:
    codings = response.headers.get_line("Transfer-Encoding").lower()
    return codings.split(",")[-1].strip() == "chunked" if codings else False


def decode_response(response: Response, *, unchunk_body: bool = True, decode_body: bool = True) -> Response:
    """Apply unchunking and content decoding, then fix up the framing headers.

    ``Content-Length`` is recomputed after each transform and the stale
    ``Transfer-Encoding`` / ``Content-Encoding`` header is removed. A body
    that fails to decode is left untouched, headers included.
    """
    if unchunk_body and is_chunked(response):
        response = (
            response.with_body(unchunk(response.body))
            .without_header("Transfer-Encoding")
        )
        response = response.with_header("Content-Length", str(len(response.body)))

    encoding = response.headers.get_line("Content-Encoding")
    decoded = _try_decompress(response.body, encoding) if decode_body and encoding else None
    if decoded is not None:
        response = response.with_body(decoded).without_header("Content-Encoding")
        response = response.with_header("Content-Length", str(len(response.body)))

    return response
