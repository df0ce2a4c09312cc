from __future__ import annotations

import socket
import threading
import time
from typing import Callable, Iterable, Iterator, Union

import pytest
import structlog

from wire_requests.transport import Transport

Scripted = Union[bytes, Exception]


def pytest_configure(config):  # noqa: ANN001
    # library events go to stdlib logging, stdout is reserved for the debug trace
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def raw_response(
    status: str = "200 OK",
    headers: Iterable[tuple[str, str]] = (),
    body: bytes = b"",
) -> bytes:
    """Raw HTTP/1.1 response bytes."""
    lines = [f"HTTP/1.1 {status}"]
    lines.extend(f"{name}: {value}" for name, value in headers)
    if body:
        lines.append(f"Content-Length: {len(body)}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + body


class ScriptedTransport(Transport):
    """Answers every hop with the next scripted response, no sockets involved."""

    def __init__(self, responses: Iterable[Scripted]) -> None:
        super().__init__()
        self.responses = list(responses)
        self.connections: list[tuple[str, str, int, float]] = []
        self.sent: list[bytes] = []
        self.closed = 0

    def connect(self, scheme, host, port, timeout):  # noqa: ANN001
        self.connections.append((scheme, host, port, timeout))
        return object()

    def send(self, conn, data):  # noqa: ANN001
        self.sent.append(data)

    def receive(self, conn, *, receive_body=True, expect_body=True):  # noqa: ANN001
        if not self.responses:
            raise AssertionError("no scripted response left")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self, conn):  # noqa: ANN001
        self.closed += 1

    @property
    def sent_heads(self) -> list[str]:
        return [raw.partition(b"\r\n\r\n")[0].decode("latin-1") for raw in self.sent]

    @property
    def sent_bodies(self) -> list[bytes]:
        return [raw.partition(b"\r\n\r\n")[2] for raw in self.sent]


@pytest.fixture
def response_bytes() -> Callable[..., bytes]:
    return raw_response


@pytest.fixture
def scripted() -> Callable[..., ScriptedTransport]:
    """``scripted(resp1, resp2, ...)`` builds a transport replaying the given responses."""

    def make(*responses: Scripted) -> ScriptedTransport:
        return ScriptedTransport(responses)

    return make


# ───────────────────────── live test server ──────────────────────────


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture(scope="session")
def live_server() -> Iterator[str]:
    """Base URL of ``test_server.app`` served by uvicorn in a background thread."""
    uvicorn = pytest.importorskip("uvicorn")
    from test_server.app import app

    port = _free_port()
    server = uvicorn.Server(uvicorn.Config(app, host="127.0.0.1", port=port, log_level="warning"))
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()

    deadline = time.monotonic() + 10
    while not server.started:
        if not thread.is_alive() or time.monotonic() > deadline:
            pytest.fail("test server did not start")
        time.sleep(0.05)

    yield f"http://127.0.0.1:{port}"

    server.should_exit = True
    thread.join(timeout=5)
