"""
Tests for the request body cap on the upload route
"""
import asyncio

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from api.uploads.middleware import PART_OVERHEAD, UploadBodyLimitMiddleware
from core.errors import register_exception_handlers
from main import settings

MAX_FILE_SIZE = 1024
LIMIT = MAX_FILE_SIZE + PART_OVERHEAD


@pytest.fixture(name="limited_client")
def limited_client_fixture():
    limited_app = FastAPI()
    register_exception_handlers(limited_app)

    @limited_app.post("/upload")
    async def upload(request: Request):
        body = await request.body()
        return {"received": len(body)}

    @limited_app.post("/other")
    async def other(request: Request):
        body = await request.body()
        return {"received": len(body)}

    limited_app.add_middleware(
        UploadBodyLimitMiddleware, path="/upload", max_file_size=MAX_FILE_SIZE, max_files=1
    )
    return TestClient(limited_app)


def test_body_under_limit_passes(limited_client):
    response = limited_client.post("/upload", content=b"x" * 100)
    assert response.status_code == 200
    assert response.json() == {"received": 100}


def test_content_length_over_limit_is_refused(limited_client):
    response = limited_client.post("/upload", content=b"x" * (LIMIT + 1))
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Upload exceeds the maximum request size"
    assert body["errors"][0]["field"] == "content"


def test_streamed_body_over_limit_is_cut_off(limited_client):
    def chunks():
        for _ in range(LIMIT // 1024 + 2):
            yield b"x" * 1024

    response = limited_client.post("/upload", content=chunks())
    assert response.status_code == 400
    assert response.json()["message"] == "Upload exceeds the maximum request size"


def test_other_routes_are_not_limited(limited_client):
    response = limited_client.post("/other", content=b"x" * (LIMIT + 1))
    assert response.status_code == 200


BOUNDARY = "fraboundary"


def _multipart_chunks(filename: str, size: int, chunk_size: int = 64 * 1024):
    yield (
        f"--{BOUNDARY}\r\n"
        f'Content-Disposition: form-data; name="content"; filename="{filename}"\r\n'
        "Content-Type: text/csv\r\n\r\n"
    ).encode()
    sent = 0
    while sent < size:
        n = min(chunk_size, size - sent)
        yield b"1" * n
        sent += n
    yield f"\r\n--{BOUNDARY}--\r\n".encode()


def _run_streamed(middleware_factory, chunks):
    """
    Drive the middleware with a body delivered chunk by chunk and report
    (bytes pulled from the client, response status, response body).
    """
    chunks = list(chunks)
    pulled = 0
    sent = []

    async def downstream(scope, receive, send):
        more_body = True
        while more_body:
            message = await receive()
            more_body = message.get("more_body", False)
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"ok"})

    async def receive():
        nonlocal pulled
        if not chunks:
            return {"type": "http.disconnect"}
        chunk = chunks.pop(0)
        pulled += len(chunk)
        return {"type": "http.request", "body": chunk, "more_body": bool(chunks)}

    async def send(message):
        sent.append(message)

    scope = {
        "type": "http",
        "method": "POST",
        "path": "/upload",
        "headers": [(b"content-type", f"multipart/form-data; boundary={BOUNDARY}".encode())],
    }
    asyncio.run(middleware_factory(downstream)(scope, receive, send))
    status = sent[0]["status"]
    body = b"".join(m.get("body", b"") for m in sent[1:])
    return pulled, status, body


def test_oversized_part_is_cut_off_mid_stream():
    max_file_size = 1024 * 1024
    total = 8 * max_file_size

    pulled, status, body = _run_streamed(
        lambda app: UploadBodyLimitMiddleware(
            app, path="/upload", max_file_size=max_file_size, max_files=10
        ),
        _multipart_chunks("big.csv", total),
    )

    assert status == 400
    assert b"File exceeds maximum size of 1MB." in body
    # Stopped reading right after the part crossed the limit
    assert pulled < max_file_size + 2 * 64 * 1024
    assert pulled < total


def test_parts_within_limit_are_streamed_through():
    max_file_size = 1024 * 1024

    pulled, status, body = _run_streamed(
        lambda app: UploadBodyLimitMiddleware(
            app, path="/upload", max_file_size=max_file_size, max_files=1
        ),
        _multipart_chunks("readings.csv", max_file_size),
    )

    assert status == 200
    assert body == b"ok"
    assert pulled > max_file_size


def test_early_rejection_carries_cors_headers(client):
    response = client.post(
        "/api/v1/upload",
        content=b"x",
        headers={"Origin": settings.client_origin, "Content-Length": str(10 ** 10)},
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Upload exceeds the maximum request size"
    assert response.headers["access-control-allow-origin"] == settings.client_origin
