"""
Transport-level caps on upload request bodies.

Starlette parses the whole multipart body before the endpoint runs, so
this ASGI middleware bounds the bytes it will accept for the upload route:

- a too-large Content-Length is refused up front,
- a body that keeps streaming past the request cap is cut off as soon as
  it crosses it,
- a multipart body is also fed through a streaming parser so that a single
  part growing past the per-file limit is cut off mid-stream.
"""
from fastapi import HTTPException, status
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from api.uploads.validation import UPLOAD_FIELD, size_exceeded_message
from core.logger import logger
from core.models import ApiResponse, ErrorDetail

# Allowance per part for multipart boundaries and headers
PART_OVERHEAD = 16 * 1024


UPLOAD_TOO_LARGE_MESSAGE = "Upload exceeds the maximum request size"


class UploadTooLarge(HTTPException):
    """
    An HTTPException so that it survives FastAPI's body parsing and is
    rendered by the regular exception handlers.
    """

    def __init__(self, message: str = UPLOAD_TOO_LARGE_MESSAGE):
        super().__init__(status.HTTP_400_BAD_REQUEST, message)


class PartSizeGuard:
    """
    Watches a multipart body chunk by chunk and raises UploadTooLarge once
    any single part carries more than max_part_size bytes.
    """

    def __init__(self, boundary: bytes, max_part_size: int):
        self.max_part_size = max_part_size
        self.part_size = 0
        self._parser = MultipartParser(boundary, {
            "on_part_begin": self._on_part_begin,
            "on_part_data": self._on_part_data,
        })

    @classmethod
    def for_scope(cls, scope: Scope, max_part_size: int) -> "PartSizeGuard | None":
        headers = dict(scope.get("headers") or [])
        content_type, params = parse_options_header(headers.get(b"content-type"))
        if content_type.lower() != b"multipart/form-data" or b"boundary" not in params:
            return None
        return cls(params[b"boundary"], max_part_size)

    def _on_part_begin(self) -> None:
        self.part_size = 0

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self.part_size += end - start
        if self.part_size > self.max_part_size:
            raise UploadTooLarge(size_exceeded_message(self.max_part_size))

    def feed(self, chunk: bytes) -> None:
        """
        Parse the next chunk. Malformed bodies stop the guard; the form
        parser downstream reports them.
        """
        if self._parser is None or not chunk:
            return
        try:
            self._parser.write(chunk)
        except MultipartParseError as e:
            logger.debug("Not guarding malformed multipart body: %s", e)
            self._parser = None


class UploadBodyLimitMiddleware:
    def __init__(self, app: ASGIApp, path: str, max_file_size: int, max_files: int):
        self.app = app
        self.path = path.rstrip("/")
        self.max_file_size = max_file_size
        self.max_body_size = max_files * (max_file_size + PART_OVERHEAD)

    def _applies(self, scope: Scope) -> bool:
        return (
            scope["type"] == "http"
            and scope["method"] == "POST"
            and scope["path"].rstrip("/") == self.path
        )

    async def _reject(self, scope: Scope, receive: Receive, send: Send, message: str) -> None:
        response = ApiResponse.error(
            message, [ErrorDetail(field=UPLOAD_FIELD, message=message)],
        ).to_response(status.HTTP_400_BAD_REQUEST, headers={"Connection": "close"})
        await response(scope, receive, send)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if not self._applies(scope):
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers") or [])
        content_length = headers.get(b"content-length")
        if content_length is not None and content_length.isdigit():
            if int(content_length) > self.max_body_size:
                logger.info("Refused upload with Content-Length %s", content_length.decode())
                await self._reject(scope, receive, send, UPLOAD_TOO_LARGE_MESSAGE)
                return

        guard = PartSizeGuard.for_scope(scope, self.max_file_size)
        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                body = message.get("body", b"")
                received += len(body)
                if received > self.max_body_size:
                    raise UploadTooLarge()
                if guard is not None:
                    guard.feed(body)
            return message

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracking_send)
        except UploadTooLarge as e:
            logger.info("Aborted upload body after %d bytes: %s", received, e.detail)
            if response_started:
                raise
            await self._reject(scope, receive, send, e.detail)
