"""
Tests for upload validation verdicts
"""
import pytest

from api.uploads.validation import (
    MAX_FILE_SIZE, Accepted, Rejected, RejectReason, check_size,
    detect_mime_type, file_extension, size_exceeded_message,
    unsupported_type_message, validate_upload
)


@pytest.mark.parametrize("filename, content_type", [
    ("readings.csv", "text/csv"),
    ("readings.csv", "application/vnd.ms-excel"),
    ("notes.txt", "text/plain"),
    ("sweep.xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
    ("export.xml", "application/xml"),
    ("EXPORT.XML", "text/xml"),
])
def test_allowed_types_are_accepted(filename, content_type):
    verdict = validate_upload(filename, content_type)
    assert isinstance(verdict, Accepted)
    assert verdict.filename == filename
    assert verdict.mime_type == content_type


@pytest.mark.parametrize("filename", ["photo.jpg", "report.pdf", "archive.csv.zip", "readings", "script.py"])
def test_other_types_are_rejected(filename):
    verdict = validate_upload(filename, "application/octet-stream")
    assert isinstance(verdict, Rejected)
    assert verdict.reason == RejectReason.UNSUPPORTED_TYPE
    assert verdict.message == unsupported_type_message()
    assert verdict.field == "content"
    assert verdict.filename == filename


def test_unsupported_message_lists_allowed_types():
    assert unsupported_type_message() == (
        "Invalid file type. Only csv, txt, xlsx, xml files are allowed."
    )


def test_missing_filename_is_rejected():
    verdict = validate_upload("", "text/csv")
    assert isinstance(verdict, Rejected)
    assert verdict.reason == RejectReason.MISSING_FIELD


def test_extension_decides_over_declared_type(caplog):
    verdict = validate_upload("readings.csv", "image/png")
    assert isinstance(verdict, Accepted)
    assert "does not match" in caplog.text


def test_generic_declared_type_is_replaced_by_guess():
    assert detect_mime_type("readings.csv", "application/octet-stream") == "text/csv"
    assert detect_mime_type("readings.csv", None) == "text/csv"


def test_declared_type_parameters_are_dropped():
    assert detect_mime_type("notes.txt", "text/plain; charset=utf-8") == "text/plain"


def test_file_extension():
    assert file_extension("a.b.CSV") == "csv"
    assert file_extension("noext") == ""


def test_size_at_limit_is_allowed():
    assert check_size(MAX_FILE_SIZE) is None


def test_size_over_limit_is_rejected():
    verdict = check_size(MAX_FILE_SIZE + 1, filename="big.csv")
    assert isinstance(verdict, Rejected)
    assert verdict.reason == RejectReason.SIZE_EXCEEDED
    assert verdict.message == "File exceeds maximum size of 10MB."
    assert verdict.filename == "big.csv"


def test_size_message_uses_limit():
    assert size_exceeded_message(2 * 1024 * 1024) == "File exceeds maximum size of 2MB."
