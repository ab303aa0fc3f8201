"""
Classify an incoming upload against the extension allow-list and the
size ceiling.

Results are plain values (Accepted / Rejected) so callers see every
failure path in their return types instead of catching exceptions.
"""
import logging
import mimetypes
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath

ALLOWED_EXTENSIONS = ("csv", "txt", "xlsx", "xml")
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MiB

UPLOAD_FIELD = "content"

logger = logging.getLogger(__name__)

# Declared types we consider consistent with each extension.
# Browsers report csv as text/csv or application/vnd.ms-excel.
EXPECTED_MIME_TYPES = {
    "csv": {"text/csv", "application/csv", "application/vnd.ms-excel", "text/plain"},
    "txt": {"text/plain"},
    "xlsx": {"application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"},
    "xml": {"application/xml", "text/xml"},
}

# Types that say nothing about the payload
GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


class RejectReason(str, Enum):
    MISSING_FIELD = "missing_field"
    TOO_MANY_FILES = "too_many_files"
    UNSUPPORTED_TYPE = "unsupported_type"
    SIZE_EXCEEDED = "size_exceeded"


@dataclass(frozen=True)
class Accepted:
    filename: str
    extension: str
    mime_type: str


@dataclass(frozen=True)
class Rejected:
    reason: RejectReason
    message: str
    field: str = UPLOAD_FIELD
    filename: str | None = None


ValidationResult = Accepted | Rejected


def file_extension(filename: str) -> str:
    """Lower-cased extension without the dot, '' if there is none"""
    return PurePath(filename).suffix.lower().lstrip(".")


def unsupported_type_message() -> str:
    return f"Invalid file type. Only {', '.join(ALLOWED_EXTENSIONS)} files are allowed."


def size_exceeded_message(limit: int = MAX_FILE_SIZE) -> str:
    return f"File exceeds maximum size of {limit // (1024 * 1024)}MB."


def detect_mime_type(filename: str, declared: str | None) -> str:
    """
    Prefer the declared type unless it is missing or generic,
    otherwise guess from the extension.
    """
    declared = (declared or "").split(";")[0].strip().lower()
    if declared not in GENERIC_MIME_TYPES:
        return declared
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def validate_upload(filename: str | None, content_type: str | None) -> ValidationResult:
    """
    Accept or reject a file by its declared name.

    The extension decides; the declared content type is advisory and only
    produces a warning when it disagrees with the extension.
    """
    if not filename:
        return Rejected(RejectReason.MISSING_FIELD, "File name is required")

    extension = file_extension(filename)
    if extension not in ALLOWED_EXTENSIONS:
        return Rejected(
            RejectReason.UNSUPPORTED_TYPE, unsupported_type_message(), filename=filename
        )

    mime_type = detect_mime_type(filename, content_type)
    if (
        (content_type or "").strip().lower() not in GENERIC_MIME_TYPES
        and mime_type not in EXPECTED_MIME_TYPES[extension]
    ):
        logger.warning(
            "Declared type %s does not match extension of %s", mime_type, filename
        )

    return Accepted(filename=filename, extension=extension, mime_type=mime_type)


def check_size(byte_count: int, limit: int = MAX_FILE_SIZE, filename: str | None = None) -> Rejected | None:
    """
    Size gate, safe to call after every chunk: returns Rejected as soon as
    byte_count goes over the limit, None otherwise.
    """
    if byte_count > limit:
        return Rejected(
            RejectReason.SIZE_EXCEEDED, size_exceeded_message(limit), filename=filename
        )
    return None
