"""
Blocking socket transport.

One connection serves exactly one request/response cycle: the session
opens it, writes the serialized request, reads the raw response and closes
it on every exit path.
"""
from __future__ import annotations

import re
import socket
import ssl
from typing import Optional

import structlog

from .exceptions import ClientError, NetworkError, NetworkTimeout

log = structlog.get_logger(__name__)

READ_BUFFER = 65536
HEAD_END = b"\r\n\r\n"

_CONTENT_LENGTH = re.compile(rb"^content-length:[ \t]*(\d+)\s*$", re.IGNORECASE | re.MULTILINE)
_CHUNKED = re.compile(rb"^transfer-encoding:.*\bchunked\b", re.IGNORECASE | re.MULTILINE)
_STATUS = re.compile(rb"^HTTP/\S+ (\d{3})")


def remote_socket(scheme: str, host: str, port: int) -> str:
    """``ssl://host:port`` / ``tcp://host:port`` label used by the debug trace."""
    transport = "ssl" if scheme == "https" else "tcp"
    return f"{transport}://{host}:{port}"


def _chunked_complete(body: bytes) -> bool:
    pos = 0
    while True:
        line_end = body.find(b"\r\n", pos)
        if line_end == -1:
            return False
        try:
            size = int(body[pos:line_end].split(b";", 1)[0].strip(), 16)
        except ValueError:
            # broken framing: stop waiting, the decoder degrades on its own
            return True
        if size == 0:
            return HEAD_END in body[line_end:]
        pos = line_end + 2 + size + 2
        if pos > len(body):
            return False


def response_complete(raw: bytes, expect_body: bool = True) -> bool:
    """Whether *raw* already holds a full response according to its framing.

    Without ``Content-Length`` or chunked framing the body is delimited by
    the peer closing the connection, so this returns ``False``.
    """
    head_end = raw.find(HEAD_END)
    if head_end == -1:
        return False
    head, body = raw[:head_end], raw[head_end + len(HEAD_END):]

    status = _STATUS.match(head)
    if not expect_body or (status and status[1] in (b"204", b"304")):
        return True
    if _CHUNKED.search(head):
        return _chunked_complete(body)
    length = _CONTENT_LENGTH.search(head)
    if length:
        return len(body) >= int(length[1])
    return False


class Transport:
    """Plain TCP or TLS sockets, one per send/receive cycle."""

    def __init__(self, ssl_context: Optional[ssl.SSLContext] = None) -> None:
        self.ssl_context = ssl_context
        """TLS context for https; the platform default when ``None``."""

    # ────── connect ──────
    def connect(self, scheme: str, host: str, port: int, timeout: float) -> socket.socket:
        """Open the connection; DNS, refusal and connect timeouts raise :class:`NetworkError`."""
        remote = remote_socket(scheme, host, port)
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as e:
            raise NetworkError(f"Remote socket connection error {remote}: {e}") from e

        if scheme == "https":
            context = self.ssl_context or ssl.create_default_context()
            try:
                sock = context.wrap_socket(sock, server_hostname=host)
            except OSError as e:
                sock.close()
                raise NetworkError(f"TLS handshake with {remote} failed: {e}") from e

        # read/write share the connect timeout
        sock.settimeout(timeout)
        log.debug("connected", remote=remote)
        return sock

    # ────── write ──────
    def send(self, conn: socket.socket, data: bytes) -> None:
        try:
            conn.sendall(data)
        except TimeoutError as e:
            raise NetworkTimeout("Socket connection timed out while writing") from e
        except OSError as e:
            raise ClientError(f"Unable to write data to the socket: {e}") from e

    # ────── read ──────
    def receive(self, conn: socket.socket, *, receive_body: bool = True, expect_body: bool = True) -> bytes:
        """Read the raw response.

        With *receive_body* the whole response is buffered until the peer
        closes or the framing says it is complete. Without it, bytes are read
        one at a time up to the blank line that ends the head; anything after
        it stays unread.
        """
        try:
            if receive_body:
                return self._read_all(conn, expect_body)
            return self._read_head(conn)
        except TimeoutError as e:
            raise NetworkTimeout("Socket connection timed out") from e
        except OSError as e:
            raise ClientError(f"Unable to read data from the socket: {e}") from e

    @staticmethod
    def _read_all(conn: socket.socket, expect_body: bool) -> bytes:
        buffer = bytearray()
        while True:
            try:
                chunk = conn.recv(READ_BUFFER)
            except ssl.SSLEOFError:
                # peer closed without close_notify
                break
            if not chunk:
                break
            buffer += chunk
            if response_complete(buffer, expect_body):
                break
        return bytes(buffer)

    @staticmethod
    def _read_head(conn: socket.socket) -> bytes:
        buffer = bytearray()
        while not buffer.endswith(HEAD_END):
            try:
                byte = conn.recv(1)
            except ssl.SSLEOFError:
                break
            if not byte:
                break
            buffer += byte
        return bytes(buffer)

    # ────── cleanup ──────
    def close(self, conn: socket.socket) -> None:
        try:
            conn.close()
        except OSError as e:
            log.debug("close_failed", error=str(e))
