import gzip

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response, StreamingResponse

APP_TITLE = "Test Server"
COOKIE_CHALLENGE = "js_challenge"
REDIRECT_TARGET = "/api/protected"      # ← where to redirect after the challenge is passed
STREAM_PARTS = [b"alpha-", b"beta-", b"gamma"]

app = FastAPI(title=APP_TITLE)


@app.get("/api/base")
async def api_base():
    """
    Simple JSON endpoint without conditions.
    """
    return JSONResponse({"ok": True, "endpoint": "/api/base"}, status_code=200)


@app.get("/redirect-base")
async def redirect_base():
    """Simple 302 to /api/base (relative Location, no cookies)."""
    return RedirectResponse(url="/api/base", status_code=302)


@app.get("/redirect-loop")
async def redirect_loop():
    """301 to itself, forever."""
    return RedirectResponse(url="/redirect-loop", status_code=301)


@app.post("/submit")
async def submit(request: Request):
    """Accepts a form body and answers 303 See Other to the echo endpoint."""
    await request.body()
    return RedirectResponse(url="/echo", status_code=303)


@app.api_route("/echo", methods=["GET", "POST", "PUT"])
async def echo(request: Request):
    """Method, body and cookies as seen by the server."""
    body = await request.body()
    return JSONResponse(
        {
            "method": request.method,
            "body": body.decode("utf-8", errors="replace"),
            "cookies": dict(request.cookies),
        },
        status_code=200,
    )


# ----------------- cookies -----------------
@app.get("/login")
async def login():
    """
    Sets COOKIE_CHALLENGE and redirects to /api/protected.
    The next hop is accepted only if the client sends the cookie back.
    """
    resp = RedirectResponse(url=REDIRECT_TARGET, status_code=302)
    resp.set_cookie(key=COOKIE_CHALLENGE, value="passed", path="/", samesite="lax")
    resp.set_cookie(key="tracking", value="1", path="/api", httponly=True)
    return resp


@app.get("/api/protected")
async def api_protected(request: Request):
    """
    JSON page available only after COOKIE_CHALLENGE is set.
    """
    if COOKIE_CHALLENGE not in request.cookies:
        return JSONResponse(
            {"ok": False, "error": "challenge not passed"}, status_code=403
        )
    return JSONResponse(
        {
            "ok": True,
            "message": "Access granted, cookie accepted",
            "cookie_value": request.cookies.get(COOKIE_CHALLENGE),
            "cookies": dict(request.cookies),
        },
        status_code=200,
    )


@app.get("/cookies")
async def cookies_echo(request: Request):
    return JSONResponse({"cookies": dict(request.cookies)}, status_code=200)


@app.get("/cookies/logout")
async def logout():
    """Expires COOKIE_CHALLENGE."""
    resp = JSONResponse({"ok": True}, status_code=200)
    resp.delete_cookie(key=COOKIE_CHALLENGE, path="/")
    return resp


# ----------------- body encodings -----------------
@app.get("/stream")
async def stream():
    """No Content-Length: uvicorn answers with Transfer-Encoding: chunked."""

    async def parts():
        for part in STREAM_PARTS:
            yield part

    return StreamingResponse(parts(), media_type="text/plain")


@app.get("/gzip")
async def gzipped():
    payload = gzip.compress(b'{"compressed": true}')
    return Response(
        content=payload,
        media_type="application/json",
        headers={"Content-Encoding": "gzip"},
    )


@app.get("/gzip-broken")
async def gzip_broken():
    """Claims gzip but is not."""
    return Response(
        content=b"definitely not gzip",
        media_type="text/plain",
        headers={"Content-Encoding": "gzip"},
    )


# ----------------- headers echo -----------------
@app.get("/headers")
async def headers_echo(request: Request):
    """
    Behavior:
      - returns JSON["headers"] like httpbin.org/headers (headers as seen by the app code)
      - returns JSON["raw_headers"], list of [name, value] as received by ASGI,
        so the client's casing and duplication of header lines can be checked.
    """
    normalized = {k: v for k, v in request.headers.items()}

    # request.scope['headers'] is list[tuple[bytes, bytes]]
    raw = [
        [name_b.decode("latin-1"), val_b.decode("latin-1")]
        for name_b, val_b in request.scope.get("headers", [])
    ]

    return JSONResponse(
        {"headers": normalized, "raw_headers": raw, "path": str(request.url.path)},
        status_code=200,
    )
