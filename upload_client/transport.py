"""
Multipart upload over httpx with byte-level progress reporting
"""
import io
import mimetypes
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

import httpx

from api.uploads.validation import UPLOAD_FIELD

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class SelectedFile:
    """A file picked for upload, described the way a browser would"""

    name: str
    size: int
    content_type: str
    path: Path | None = None
    data: bytes | None = None

    @classmethod
    def from_path(cls, path: str | Path, content_type: str | None = None) -> "SelectedFile":
        path = Path(path)
        if content_type is None:
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(name=path.name, size=path.stat().st_size, content_type=content_type, path=path)

    @classmethod
    def from_bytes(cls, name: str, data: bytes, content_type: str | None = None) -> "SelectedFile":
        if content_type is None:
            content_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
        return cls(name=name, size=len(data), content_type=content_type, data=data)

    def open(self) -> BinaryIO:
        if self.path is not None:
            return open(self.path, "rb")
        return io.BytesIO(self.data or b"")


class ProgressByteStream(httpx.AsyncByteStream):
    """
    Wraps a request body and reports (bytes_sent, total) after each chunk
    has been handed to the transport.
    """

    def __init__(self, inner: httpx.AsyncByteStream, total: int, on_progress: ProgressCallback):
        self._inner = inner
        self._total = total
        self._on_progress = on_progress

    async def __aiter__(self) -> AsyncIterator[bytes]:
        sent = 0
        async for chunk in self._inner:
            yield chunk
            sent += len(chunk)
            self._on_progress(sent, self._total)

    async def aclose(self) -> None:
        await self._inner.aclose()


async def send_upload(
    client: httpx.AsyncClient,
    url: str,
    selected: SelectedFile,
    body: BinaryIO,
    on_progress: ProgressCallback,
) -> httpx.Response:
    """
    POST one file under the upload field and return the fully read
    response. The response is always closed before returning.
    """
    request = client.build_request(
        "POST", url, files={UPLOAD_FIELD: (selected.name, body, selected.content_type)}
    )
    total = int(request.headers.get("Content-Length", selected.size))
    request.stream = ProgressByteStream(request.stream, total, on_progress)

    response = await client.send(request, stream=True)
    try:
        await response.aread()
    finally:
        await response.aclose()
    return response
