"""
Models for the Upload API
"""
from datetime import datetime, timezone
import uuid

from pydantic import ConfigDict
from sqlmodel import Field, SQLModel


class StoredFile(SQLModel, table=True):
    """
    Durable record of an accepted upload. Written once, never updated.
    """

    __tablename__ = "stored_files"

    id: uuid.UUID | None = Field(default_factory=uuid.uuid4, primary_key=True)
    original_name: str = Field(max_length=255)
    stored_key: str = Field(unique=True, index=True, max_length=255)
    location: str = Field(max_length=1024)  # path on disk or s3:// URI
    storage_backend: str = Field(max_length=20)
    byte_size: int
    declared_mime_type: str | None = Field(default=None, max_length=255)
    mime_type: str = Field(max_length=255)
    accepted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    uploaded_by: uuid.UUID | None = Field(default=None, foreign_key="users.id")

    model_config = ConfigDict(from_attributes=True)


class ManifestEntry(SQLModel):
    """One accepted file as reported to the client"""

    originalName: str
    filename: str
    path: str
    size: int
    mimetype: str

    @classmethod
    def from_stored(cls, stored: StoredFile) -> "ManifestEntry":
        return cls(
            originalName=stored.original_name,
            filename=stored.stored_key,
            path=stored.location,
            size=stored.byte_size,
            mimetype=stored.mime_type,
        )


class UploadManifest(SQLModel):
    """Snapshot of the files accepted by a single upload request"""

    filesCount: int
    files: list[ManifestEntry]
