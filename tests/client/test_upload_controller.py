"""
Tests for the client-side upload state machine
"""
import asyncio
import json

import httpx
import pytest

from upload_client.controller import (
    InvalidTransition, UploadController, UploadPhase
)
from upload_client.transport import SelectedFile

API_BASE = "http://fra.test/api/v1"

MANIFEST = {
    "filesCount": 1,
    "files": [{
        "originalName": "readings.csv",
        "filename": "readings-1700000000000-1-0123456789abcdef.csv",
        "path": "public/readings-1700000000000-1-0123456789abcdef.csv",
        "size": 2048,
        "mimetype": "text/csv",
    }],
}


def ok_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200, json={"success": True, "message": "Files uploaded successfully", "data": MANIFEST}
    )


class Recorder:
    """Collects every callback the controller makes"""

    def __init__(self):
        self.states = []
        self.notices = []
        self.manifests = []

    def controller(self, handler) -> UploadController:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return UploadController(
            API_BASE,
            client=client,
            on_upload_complete=self.manifests.append,
            on_state_change=self.states.append,
            on_notice=lambda level, message: self.notices.append((level, message)),
        )


@pytest.fixture(name="recorder")
def recorder_fixture():
    return Recorder()


def csv_file(size: int = 2048) -> SelectedFile:
    return SelectedFile.from_bytes("readings.csv", b"1" * size, "text/csv")


def test_select_allowed_file(recorder):
    controller = recorder.controller(ok_handler)

    assert controller.select(csv_file())
    assert controller.state.phase == UploadPhase.SELECTED
    assert controller.state.selected_file.name == "readings.csv"


def test_select_disallowed_type_stays_idle(recorder):
    controller = recorder.controller(ok_handler)

    assert not controller.select(SelectedFile.from_bytes("photo.jpg", b"\xff\xd8", "image/jpeg"))
    assert controller.state.phase == UploadPhase.IDLE
    assert controller.state.selected_file is None
    assert recorder.notices == [
        ("warning", "Invalid file type. Only csv, txt, xlsx, xml files are allowed.")
    ]


def test_select_oversized_file_stays_idle(recorder):
    controller = recorder.controller(ok_handler)

    assert not controller.select(csv_file(10 * 1024 * 1024 + 1))
    assert controller.state.phase == UploadPhase.IDLE
    assert recorder.notices == [("warning", "File exceeds maximum size of 10MB.")]


def test_start_without_selection_is_invalid(recorder):
    controller = recorder.controller(ok_handler)

    with pytest.raises(InvalidTransition):
        controller.start_upload()


def test_successful_upload(recorder):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return ok_handler(request)

    async def scenario():
        controller = recorder.controller(handler)
        controller.select(csv_file())
        await controller.start_upload()
        await controller.aclose()
        return controller

    controller = asyncio.run(scenario())

    assert controller.state.phase == UploadPhase.COMPLETED
    assert controller.state.progress_percent == 100
    assert seen["url"] == f"{API_BASE}/upload"
    assert b'name="content"; filename="readings.csv"' in seen["body"]

    assert len(recorder.manifests) == 1
    assert recorder.manifests[0].filesCount == 1
    assert recorder.manifests[0].files[0].originalName == "readings.csv"
    assert recorder.notices == [("success", "File uploaded successfully")]

    progress = [s.progress_percent for s in recorder.states if s.phase == UploadPhase.UPLOADING]
    assert progress == sorted(progress)


def test_server_rejection_fails_with_message(recorder):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={
            "success": False,
            "message": "Invalid file type. Only csv, txt, xlsx, xml files are allowed.",
        })

    async def scenario():
        controller = recorder.controller(handler)
        controller.select(csv_file())
        await controller.start_upload()
        return controller

    controller = asyncio.run(scenario())

    assert controller.state.phase == UploadPhase.FAILED
    assert controller.state.progress_percent == 0
    assert controller.state.error.startswith("Invalid file type")
    assert recorder.manifests == []
    assert recorder.notices[-1][0] == "error"


def test_server_error_without_envelope(recorder):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, content=b"<html>Bad Gateway</html>")

    async def scenario():
        controller = recorder.controller(handler)
        controller.select(csv_file())
        await controller.start_upload()
        return controller

    controller = asyncio.run(scenario())

    assert controller.state.phase == UploadPhase.FAILED
    assert controller.state.error == "Upload failed"


def test_malformed_success_response(recorder):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=json.dumps({"success": True}).encode())

    async def scenario():
        controller = recorder.controller(handler)
        controller.select(csv_file())
        await controller.start_upload()
        return controller

    controller = asyncio.run(scenario())

    assert controller.state.phase == UploadPhase.FAILED
    assert controller.state.error == "Unexpected response from server"


def test_network_error(recorder):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        controller = recorder.controller(handler)
        controller.select(csv_file())
        await controller.start_upload()
        return controller

    controller = asyncio.run(scenario())

    assert controller.state.phase == UploadPhase.FAILED
    assert controller.state.error == "Network error during upload"


def test_retry_after_failure(recorder):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(500, json={"success": False, "message": "Internal server error"})
        return ok_handler(request)

    async def scenario():
        controller = recorder.controller(handler)
        controller.select(csv_file())
        await controller.start_upload()
        assert controller.state.phase == UploadPhase.FAILED
        await controller.start_upload()
        return controller

    controller = asyncio.run(scenario())

    assert controller.state.phase == UploadPhase.COMPLETED
    assert controller.state.attempt_id == 2
    assert len(recorder.manifests) == 1


def test_cancel_mid_upload(recorder):
    async def scenario():
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(10)
            return ok_handler(request)

        controller = recorder.controller(handler)
        controller.select(csv_file())
        task = controller.start_upload()
        await started.wait()

        with pytest.raises(InvalidTransition):
            controller.select(csv_file())

        controller.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return controller

    controller = asyncio.run(scenario())

    assert controller.state.phase == UploadPhase.FAILED
    assert controller.state.progress_percent == 0
    assert controller.state.error == "Upload cancelled"
    assert recorder.manifests == []
    assert ("success", "File uploaded successfully") not in recorder.notices


def test_clear_returns_to_idle(recorder):
    async def scenario():
        controller = recorder.controller(ok_handler)
        controller.select(csv_file())
        await controller.start_upload()
        controller.clear()
        return controller

    controller = asyncio.run(scenario())

    assert controller.state.phase == UploadPhase.IDLE
    assert controller.state.selected_file is None
    assert controller.state.progress_percent == 0


def test_clear_from_idle_is_invalid(recorder):
    controller = recorder.controller(ok_handler)

    with pytest.raises(InvalidTransition):
        controller.clear()


def test_cancel_when_not_uploading_is_invalid(recorder):
    controller = recorder.controller(ok_handler)
    controller.select(csv_file())

    with pytest.raises(InvalidTransition):
        controller.cancel()


def test_unreadable_file_fails_the_attempt(recorder, tmp_path):
    path = tmp_path / "readings.csv"
    path.write_bytes(b"1,2\n")

    async def scenario():
        controller = recorder.controller(ok_handler)
        controller.select(SelectedFile.from_path(path))
        path.unlink()
        await controller.start_upload()
        return controller

    controller = asyncio.run(scenario())

    assert controller.state.phase == UploadPhase.FAILED
    assert controller.state.error == "Could not read the selected file"
    assert controller.state.progress_percent == 0
    assert recorder.manifests == []
    # A new selection is possible again
    assert controller.select(csv_file())
