"""
Services for the Upload API

Ingest is all-or-nothing: every part is validated and staged (with the
size ceiling enforced chunk by chunk) before anything is committed, and a
failure while committing removes whatever was already stored.
"""
import asyncio
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from api.uploads.analysis import AnalysisService
from api.uploads.models import ManifestEntry, StoredFile, UploadManifest
from api.uploads.naming import generate_storage_key
from api.uploads.storage import FileStore, StorageError, discard_staged
from api.uploads.validation import (
    Accepted, Rejected, RejectReason, check_size, validate_upload
)
from core.config import Settings
from core.errors import InternalError, UploadTimeoutError
from core.logger import logger

CHUNK_SIZE = 64 * 1024


@dataclass
class StagedUpload:
    accepted: Accepted
    declared_mime_type: str | None
    path: Path
    size: int


async def stage_upload(
    upload: UploadFile,
    store: FileStore,
    max_size: int,
    staging_paths: list[Path],
) -> StagedUpload | Rejected:
    """
    Copy one part into a staging file, giving up as soon as it grows past
    max_size. Every staging file created is recorded in staging_paths so the
    caller can discard them if the request fails.
    """
    verdict = validate_upload(upload.filename, upload.content_type)
    if isinstance(verdict, Rejected):
        return verdict

    path = await run_in_threadpool(store.new_staging_file)
    staging_paths.append(path)

    size = 0
    rejected = None
    # File I/O stays off the event loop
    out = await run_in_threadpool(open, path, "wb")
    try:
        while chunk := await upload.read(CHUNK_SIZE):
            size += len(chunk)
            rejected = check_size(size, max_size, upload.filename)
            if rejected:
                break
            await run_in_threadpool(out.write, chunk)
    finally:
        out.close()

    if rejected:
        logger.info("Rejected %s: larger than %d bytes", upload.filename, max_size)
        return rejected

    return StagedUpload(
        accepted=verdict,
        declared_mime_type=upload.content_type,
        path=path,
        size=size,
    )


async def _stage_all(
    uploads: list[UploadFile],
    store: FileStore,
    settings: Settings,
    staging_paths: list[Path],
) -> list[StagedUpload | Rejected]:
    """
    Stage all parts concurrently and wait for all of them. If one part
    fails or the timeout expires, the remaining parts are cancelled.
    """
    tasks = [
        asyncio.ensure_future(
            stage_upload(u, store, settings.UPLOAD_MAX_FILE_SIZE, staging_paths)
        )
        for u in uploads
    ]
    try:
        return await asyncio.wait_for(
            asyncio.gather(*tasks), timeout=settings.UPLOAD_TIMEOUT_SECONDS
        )
    except asyncio.TimeoutError as e:
        raise UploadTimeoutError("Upload timed out") from e
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


def _rollback(store: FileStore, keys: list[str]) -> None:
    for key in keys:
        try:
            store.delete(key)
        except StorageError as e:
            logger.error("Rollback could not remove %s: %s", key, e)


def commit_uploads(
    staged: list[StagedUpload],
    *,
    session: Session,
    store: FileStore,
    deadline: float,
    uploaded_by: uuid.UUID | None = None,
) -> list[StoredFile]:
    """
    Commit every staged file under a fresh storage key and record them in a
    single transaction. Either all files end up stored and recorded, or none.
    """
    committed: list[str] = []
    records: list[StoredFile] = []
    try:
        for item in staged:
            if time.monotonic() > deadline:
                raise UploadTimeoutError("Upload timed out")

            accepted_at = datetime.now(timezone.utc)
            key = generate_storage_key(item.accepted.filename, accepted_at)
            location = store.commit(item.path, key, item.accepted.mime_type)
            committed.append(key)
            records.append(
                StoredFile(
                    original_name=item.accepted.filename,
                    stored_key=key,
                    location=location,
                    storage_backend=store.backend.value,
                    byte_size=item.size,
                    declared_mime_type=item.declared_mime_type,
                    mime_type=item.accepted.mime_type,
                    accepted_at=accepted_at,
                    uploaded_by=uploaded_by,
                )
            )

        session.add_all(records)
        session.commit()
    except (StorageError, SQLAlchemyError, UploadTimeoutError) as e:
        session.rollback()
        logger.error("Upload commit failed, removing %d stored file(s): %s", len(committed), e)
        _rollback(store, committed)
        if isinstance(e, UploadTimeoutError):
            raise
        raise InternalError("Failed to store uploaded files") from e

    for record in records:
        session.refresh(record)
    return records


async def ingest_uploads(
    uploads: list[UploadFile] | None,
    *,
    session: Session,
    store: FileStore,
    analysis: AnalysisService,
    settings: Settings,
    uploaded_by: uuid.UUID | None = None,
) -> UploadManifest | Rejected:
    """
    Validate, stage, commit and hand off the files of one upload request.

    Returns the manifest on success or the first Rejected verdict.

    Raises:
        UploadTimeoutError: if the request runs past UPLOAD_TIMEOUT_SECONDS
        InternalError: if storage or the database fails
    """
    if not uploads:
        return Rejected(RejectReason.MISSING_FIELD, "No content files uploaded")

    if len(uploads) > settings.UPLOAD_MAX_FILES:
        return Rejected(
            RejectReason.TOO_MANY_FILES,
            f"Too many files. At most {settings.UPLOAD_MAX_FILES} files may be uploaded at once.",
        )

    # Reject on declared names before reading a single byte
    for upload in uploads:
        verdict = validate_upload(upload.filename, upload.content_type)
        if isinstance(verdict, Rejected):
            logger.info("Rejected %s: %s", upload.filename, verdict.message)
            return verdict

    deadline = time.monotonic() + settings.UPLOAD_TIMEOUT_SECONDS
    staging_paths: list[Path] = []
    try:
        results = await _stage_all(uploads, store, settings, staging_paths)

        for result in results:
            if isinstance(result, Rejected):
                return result

        stored = await run_in_threadpool(
            commit_uploads,
            results,
            session=session,
            store=store,
            deadline=deadline,
            uploaded_by=uploaded_by,
        )
    finally:
        # Committed files were moved out of staging; this only clears leftovers
        for path in staging_paths:
            discard_staged(path)

    for record in stored:
        logger.info(
            "Stored %s as %s (%d bytes)",
            record.original_name, record.stored_key, record.byte_size
        )
        try:
            analysis.submit(record)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("Analysis hand-off failed for %s", record.stored_key)

    return UploadManifest(
        filesCount=len(stored),
        files=[ManifestEntry.from_stored(record) for record in stored],
    )
