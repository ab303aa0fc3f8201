"""
Client-side upload state machine.

One controller drives one upload attempt at a time through

    Idle -> Selected -> Uploading -> Completed | Failed -> Idle

Each transition is a named method; anything else raises InvalidTransition.
Progress and terminal callbacks carry the attempt id they were started
with, so once an attempt has been cancelled or cleared its late callbacks
are ignored.
"""
import asyncio
import itertools
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum

import httpx
from pydantic import ValidationError as PydanticValidationError

from api.uploads.models import UploadManifest
from api.uploads.validation import MAX_FILE_SIZE, Rejected, check_size, validate_upload
from upload_client.transport import SelectedFile, send_upload

logger = logging.getLogger(__name__)


class UploadPhase(str, Enum):
    IDLE = "idle"
    SELECTED = "selected"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadState:
    phase: UploadPhase = UploadPhase.IDLE
    selected_file: SelectedFile | None = None
    progress_percent: int = 0
    attempt_id: int = 0
    error: str | None = None


class InvalidTransition(RuntimeError):
    pass


NOTICE_LEVELS = {"success": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


def _log_notice(level: str, message: str) -> None:
    logger.log(NOTICE_LEVELS.get(level, logging.INFO), message)


class UploadController:
    def __init__(
        self,
        api_base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        on_upload_complete: Callable[[UploadManifest], None] | None = None,
        on_state_change: Callable[[UploadState], None] | None = None,
        on_notice: Callable[[str, str], None] = _log_notice,
        max_file_size: int = MAX_FILE_SIZE,
        timeout: float = 60.0,
    ):
        self.upload_url = f"{api_base_url.rstrip('/')}/upload"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._on_upload_complete = on_upload_complete
        self._on_state_change = on_state_change
        self._on_notice = on_notice
        self._max_file_size = max_file_size
        self._attempts = itertools.count(1)
        self._state = UploadState()
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> UploadState:
        return self._state

    def _set_state(self, state: UploadState) -> None:
        self._state = state
        if self._on_state_change:
            self._on_state_change(state)

    def _require(self, *phases: UploadPhase) -> None:
        if self._state.phase not in phases:
            raise InvalidTransition(f"Not allowed while {self._state.phase.value}")

    def _is_current(self, attempt_id: int) -> bool:
        return (
            self._state.phase == UploadPhase.UPLOADING
            and self._state.attempt_id == attempt_id
        )

    # User actions

    def select(self, selected: SelectedFile) -> bool:
        """
        Pick a file. Returns False (state back to Idle, warning emitted)
        if the file's type or size is not acceptable.
        """
        if self._state.phase == UploadPhase.UPLOADING:
            raise InvalidTransition("Cannot select a file while an upload is in progress")

        verdict = validate_upload(selected.name, selected.content_type)
        if not isinstance(verdict, Rejected):
            verdict = check_size(selected.size, self._max_file_size, selected.name)

        if isinstance(verdict, Rejected):
            self._set_state(UploadState())
            self._on_notice("warning", verdict.message)
            return False

        self._set_state(UploadState(phase=UploadPhase.SELECTED, selected_file=selected))
        return True

    def start_upload(self) -> asyncio.Task:
        """
        Begin the transfer of the selected file. A Failed attempt may be
        retried the same way. Must be called from a running event loop.
        """
        self._require(UploadPhase.SELECTED, UploadPhase.FAILED)
        attempt_id = next(self._attempts)
        self._set_state(replace(
            self._state,
            phase=UploadPhase.UPLOADING,
            progress_percent=0,
            attempt_id=attempt_id,
            error=None,
        ))
        self._task = asyncio.get_running_loop().create_task(self._run(attempt_id))
        return self._task

    def cancel(self) -> None:
        """Abort the in-flight transfer; the attempt ends as Failed"""
        self._require(UploadPhase.UPLOADING)
        self._abort()
        self._fail_current("Upload cancelled")

    def clear(self) -> None:
        """Drop the selection and return to Idle, aborting any transfer"""
        self._require(
            UploadPhase.SELECTED, UploadPhase.UPLOADING,
            UploadPhase.COMPLETED, UploadPhase.FAILED,
        )
        self._abort()
        self._set_state(UploadState())

    async def aclose(self) -> None:
        """Teardown: abort any transfer and release the HTTP client"""
        task = self._abort()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        if self._state.phase == UploadPhase.UPLOADING:
            self._fail_current("Upload cancelled")
        if self._owns_client:
            await self._client.aclose()

    # Transfer

    def _abort(self) -> asyncio.Task | None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        return task

    async def _run(self, attempt_id: int) -> None:
        selected = self._state.selected_file
        try:
            with selected.open() as body:
                response = await send_upload(
                    self._client,
                    self.upload_url,
                    selected,
                    body,
                    on_progress=lambda sent, total: self._on_progress(attempt_id, sent, total),
                )
        except OSError as e:
            logger.warning("Could not read %s: %s", selected.name, e)
            self._on_failed(attempt_id, "Could not read the selected file")
            return
        except httpx.HTTPError as e:
            logger.warning("Upload of %s failed: %s", selected.name, e)
            self._on_failed(attempt_id, "Network error during upload")
            return

        if not response.is_success:
            self._on_failed(attempt_id, _error_message(response))
            return

        try:
            manifest = UploadManifest.model_validate(response.json()["data"])
        except (json.JSONDecodeError, KeyError, TypeError, PydanticValidationError):
            self._on_failed(attempt_id, "Unexpected response from server")
            return

        self._on_completed(attempt_id, manifest)

    # Transitions driven by the transfer

    def _on_progress(self, attempt_id: int, sent: int, total: int) -> None:
        if not self._is_current(attempt_id) or total <= 0:
            return
        percent = min(100, sent * 100 // total)
        if percent > self._state.progress_percent:
            self._set_state(replace(self._state, progress_percent=percent))

    def _on_completed(self, attempt_id: int, manifest: UploadManifest) -> None:
        if not self._is_current(attempt_id):
            return
        self._task = None
        self._set_state(replace(self._state, phase=UploadPhase.COMPLETED, progress_percent=100))
        self._on_notice("success", "File uploaded successfully")
        if self._on_upload_complete:
            self._on_upload_complete(manifest)

    def _on_failed(self, attempt_id: int, message: str) -> None:
        if not self._is_current(attempt_id):
            return
        self._task = None
        self._fail_current(message)

    def _fail_current(self, message: str) -> None:
        self._set_state(replace(
            self._state, phase=UploadPhase.FAILED, progress_percent=0, error=message
        ))
        self._on_notice("error", message)


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or "Upload failed"
    except (json.JSONDecodeError, AttributeError):
        return "Upload failed"
