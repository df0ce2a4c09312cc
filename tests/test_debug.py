from __future__ import annotations

import io

from wire_requests import DebugSink, FileDebugSink, Session, StreamDebugSink
from wire_requests.debug import make_debug_sink
from wire_requests.config import SessionConfig


def test_trace_on_stdout(capsys, scripted, response_bytes):
    transport = scripted(response_bytes(body=b"hello"))
    Session(transport=transport, debug=True).get("http://example.com/")

    out = capsys.readouterr().out
    assert out.startswith("|| *  tcp://example.com:80\r\n||\r\n")
    assert "|| -> GET / HTTP/1.1\r\n" in out
    assert "|| -> Host: example.com\r\n" in out
    assert "|| ->\r\n||\r\n" in out
    assert "|| <- HTTP/1.1 200 OK\r\n|| <- Content-Length: 5\r\n|| <-\r\n" in out
    assert out.endswith("|| <- [5 BYTES OF BODY]\r\n\r\n")


def test_trace_shows_request_body_size(capsys, scripted, response_bytes):
    Session(transport=scripted(response_bytes()), debug=True).post("http://example.com/", body=b"x")
    assert "|| -> [1 BYTE OF BODY]\r\n" in capsys.readouterr().out


def test_trace_dumps_bodies_when_asked(capsys, scripted, response_bytes):
    session = Session(
        transport=scripted(response_bytes(body=b"pong")),
        debug=True,
        debug_request_body=True,
        debug_response_body=True,
    )
    session.post("http://example.com/", body=b"ping")

    out = capsys.readouterr().out
    assert "|| -> [BEGIN BODY]\r\nping\r\n|| -> [END BODY]\r\n" in out
    assert "|| <- [BEGIN BODY]\r\npong\r\n|| <- [END BODY]\r\n" in out


def test_trace_lists_each_set_cookie(capsys, scripted, response_bytes):
    transport = scripted(response_bytes(headers=[("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")]))
    Session(transport=transport, debug=True).get("http://example.com/")

    out = capsys.readouterr().out
    assert "|| <- Set-Cookie: a=1\r\n|| <- Set-Cookie: b=2\r\n" in out


def test_trace_to_file(tmp_path, scripted, response_bytes):
    path = tmp_path / "trace.log"
    session = Session(transport=scripted(response_bytes(), response_bytes()), debug=True, debug_file=str(path))
    session.get("http://example.com/one")
    session.get("http://example.com/two")

    trace = path.read_bytes().decode("utf-8")
    assert trace.count("|| *  tcp://example.com:80") == 2
    assert "|| -> GET /one HTTP/1.1\r\n" in trace
    assert "|| -> GET /two HTTP/1.1\r\n" in trace


def test_no_trace_when_debug_is_off(capsys, scripted, response_bytes):
    Session(transport=scripted(response_bytes())).get("http://example.com/")
    assert capsys.readouterr().out == ""


def test_explicit_sink_and_stream():
    stream = io.StringIO()
    sink = StreamDebugSink(stream)
    sink.on_connect("ssl://example.com:443")
    assert stream.getvalue() == "|| *  ssl://example.com:443\r\n||\r\n"


def test_failing_sink_does_not_break_request(scripted, response_bytes):
    class Broken(DebugSink):
        def write(self, message: str) -> None:
            raise OSError("disk full")

    response = Session(transport=scripted(response_bytes()), debug_sink=Broken()).get("http://example.com/")
    assert response.status_code == 200


def test_make_debug_sink():
    assert make_debug_sink(SessionConfig()) is None
    assert isinstance(make_debug_sink(SessionConfig(debug=True)), StreamDebugSink)
    sink = make_debug_sink(SessionConfig(debug=True, debug_file="trace.log", debug_response_body=True))
    assert isinstance(sink, FileDebugSink)
    assert sink.response_body and not sink.request_body
