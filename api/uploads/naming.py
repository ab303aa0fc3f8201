"""
Storage key derivation.

key = <stem>-<epoch ms>-<process counter>-<random hex><ext>

The counter makes keys unique within one process; the random part keeps
separate processes (several uvicorn workers) from colliding. Nothing here
touches the filesystem.
"""
import itertools
import re
import secrets
import threading
from datetime import datetime, timezone
from pathlib import PurePosixPath, PureWindowsPath

MAX_STEM_LENGTH = 100

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")

_counter = itertools.count(1)
_counter_lock = threading.Lock()


def _next_sequence() -> int:
    with _counter_lock:
        return next(_counter)


def split_name(original_name: str) -> tuple[str, str]:
    """
    Return a filesystem-safe (stem, extension) pair. Directory components
    from either path flavour are dropped.
    """
    name = PureWindowsPath(PurePosixPath(original_name).name).name
    path = PurePosixPath(name)
    stem = _UNSAFE_CHARS.sub("_", path.stem).strip("._")[:MAX_STEM_LENGTH]
    suffix = _UNSAFE_CHARS.sub("", path.suffix.lower())
    return stem or "file", suffix


def generate_storage_key(original_name: str, accepted_at: datetime | None = None) -> str:
    if accepted_at is None:
        accepted_at = datetime.now(timezone.utc)
    stem, suffix = split_name(original_name)
    millis = int(accepted_at.timestamp() * 1000)
    unique_suffix = f"{millis}-{_next_sequence()}-{secrets.token_hex(8)}"
    return f"{stem}-{unique_suffix}{suffix}"
