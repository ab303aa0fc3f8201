"""
Durable file stores for accepted uploads.

Uploads are first written to a local staging file while their size is
enforced, then committed under their storage key with create-exclusive
semantics: a commit never overwrites an existing object.
"""
import os
import shutil
import tempfile
from enum import Enum
from pathlib import Path
from typing import Protocol

import boto3
from botocore.exceptions import ClientError

from core.config import Settings
from core.logger import logger


class StorageBackend(str, Enum):
    """Storage backend types"""

    LOCAL = "local"
    S3 = "s3"


class StorageError(Exception):
    """Raised when a file cannot be committed to or removed from the store"""


class StorageCollisionError(StorageError):
    """Raised when the target key already exists"""


class FileStore(Protocol):
    backend: StorageBackend

    def new_staging_file(self) -> Path:
        """Create an empty staging file and return its path"""

    def commit(self, staged_path: Path, key: str, content_type: str) -> str:
        """Move a staged file under key and return its location"""

    def delete(self, key: str) -> None:
        """Remove a committed object; missing objects are ignored"""

    def exists(self, key: str) -> bool:
        ...


def discard_staged(staged_path: Path | None) -> None:
    if staged_path is not None:
        staged_path.unlink(missing_ok=True)


class LocalFileStore:
    """Stores files in a directory on local disk"""

    backend = StorageBackend.LOCAL

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.staging_dir = self.root / ".staging"
        self.staging_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        path = self.root / key
        if path.parent != self.root:
            raise StorageError(f"Invalid storage key: {key}")
        return path

    def new_staging_file(self) -> Path:
        fd, name = tempfile.mkstemp(dir=self.staging_dir, suffix=".part")
        os.close(fd)
        return Path(name)

    def commit(self, staged_path: Path, key: str, content_type: str) -> str:
        target = self._path_for(key)
        try:
            # Hard link is atomic and fails if the target exists
            os.link(staged_path, target)
        except FileExistsError as exc:
            raise StorageCollisionError(f"Storage key already exists: {key}") from exc
        except OSError:
            # Filesystems without hard links: exclusive create then copy
            try:
                with open(staged_path, "rb") as src, open(target, "xb") as dst:
                    shutil.copyfileobj(src, dst)
            except FileExistsError as exc:
                raise StorageCollisionError(f"Storage key already exists: {key}") from exc
            except OSError as exc:
                target.unlink(missing_ok=True)
                raise StorageError(f"Could not store {key}: {exc}") from exc
        discard_staged(staged_path)
        return str(target)

    def delete(self, key: str) -> None:
        try:
            self._path_for(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Could not delete {key}: {exc}") from exc

    def exists(self, key: str) -> bool:
        return self._path_for(key).exists()


def _parse_s3_path(s3_path: str) -> tuple[str, str]:
    """Parse S3 path into bucket and prefix"""
    if not s3_path.startswith("s3://"):
        raise ValueError("Invalid S3 path format. Must start with s3://")

    path_without_scheme = s3_path[5:]
    if not path_without_scheme or path_without_scheme.startswith("/"):
        raise ValueError("Invalid S3 path format. Bucket name is required")

    if "/" in path_without_scheme:
        bucket, key = path_without_scheme.split("/", 1)
    else:
        bucket = path_without_scheme
        key = ""

    if key and not key.endswith("/"):
        key = f"{key}/"
    return bucket, key


class S3FileStore:
    """
    Stores files in an S3 bucket/prefix. Staging happens on local disk;
    commits use a conditional put so an existing key is never overwritten.
    """

    backend = StorageBackend.S3

    def __init__(self, bucket_uri: str, s3_client=None, staging_dir: str | Path | None = None):
        if s3_client is None:
            s3_client = boto3.client("s3")
        self.s3_client = s3_client
        self.bucket, self.prefix = _parse_s3_path(bucket_uri)
        self.staging_dir = Path(staging_dir or tempfile.gettempdir()) / "fra-staging"
        self.staging_dir.mkdir(parents=True, exist_ok=True)

    def new_staging_file(self) -> Path:
        fd, name = tempfile.mkstemp(dir=self.staging_dir, suffix=".part")
        os.close(fd)
        return Path(name)

    def commit(self, staged_path: Path, key: str, content_type: str) -> str:
        object_key = f"{self.prefix}{key}"
        try:
            with open(staged_path, "rb") as body:
                self.s3_client.put_object(
                    Bucket=self.bucket,
                    Key=object_key,
                    Body=body,
                    ContentType=content_type,
                    IfNoneMatch="*",
                )
        except ClientError as exc:
            error_code = exc.response["Error"]["Code"]
            if error_code in ("PreconditionFailed", "ConditionalRequestConflict"):
                raise StorageCollisionError(f"Storage key already exists: {key}") from exc
            raise StorageError(
                f"S3 error: {exc.response['Error'].get('Message', error_code)}"
            ) from exc
        discard_staged(staged_path)
        return f"s3://{self.bucket}/{object_key}"

    def delete(self, key: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=f"{self.prefix}{key}")
        except ClientError as exc:
            raise StorageError(f"Could not delete {key}: {exc}") from exc

    def exists(self, key: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket, Key=f"{self.prefix}{key}")
            return True
        except ClientError as exc:
            if exc.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"S3 error: {exc}") from exc


def build_file_store(settings: Settings, s3_client=None) -> FileStore:
    backend = StorageBackend(settings.STORAGE_BACKEND.lower())
    if backend == StorageBackend.S3:
        logger.info("Using S3 file store at %s", settings.UPLOAD_BUCKET_URI)
        return S3FileStore(settings.UPLOAD_BUCKET_URI, s3_client=s3_client)
    logger.info("Using local file store at %s", settings.UPLOAD_DIR)
    return LocalFileStore(settings.UPLOAD_DIR)
