"""Crash-safe file writes.

This module provides:
- write_file_atomic: Write bytes or text to a file atomically
- write_stream_atomic: Stream an iterable of byte chunks to a file atomically
- StorageError: Raised when a local write fails

Both writers write to a uniquely named temporary file in the destination
directory and then rename it into place with os.replace(). A reader (or a
process restarted after a crash) sees either the previous file or the
complete new one, never a truncated file. On failure the temporary file is
removed and a StorageError carrying the destination path is raised.
"""

from __future__ import annotations

import contextlib
import logging
import os
import secrets
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

TMP_MARKER = ".tmp-"


class StorageError(Exception):
    """A local write failed.

    Attributes:
        path: Destination path of the failed write.
    """

    def __init__(self, message: str, path: Path | str) -> None:
        super().__init__(message)
        self.path = Path(path)


def temp_path_for(path: Path) -> Path:
    """Get a unique sibling temporary path for path."""
    return path.with_name(f"{path.name}{TMP_MARKER}{secrets.token_hex(4)}")


def is_temp_file(path: Path) -> bool:
    """Check if path is a leftover temporary file from an atomic write."""
    return TMP_MARKER in path.name


def write_file_atomic(path: Path | str, data: bytes | str) -> None:
    """Write data to path atomically.

    Args:
        path: Destination file. Parent directories are created as needed.
        data: Content; str is encoded as UTF-8.

    Raises:
        StorageError: If the write or the rename fails.
    """
    path = Path(path)
    payload = data.encode("utf-8") if isinstance(data, str) else data
    _write_atomic(path, [payload])


def write_stream_atomic(path: Path | str, stream: Iterable[bytes]) -> int:
    """Stream byte chunks to path atomically.

    Args:
        path: Destination file. Parent directories are created as needed.
        stream: Iterable of byte chunks (e.g. httpx Response.iter_bytes()).

    Returns:
        Number of bytes written.

    Raises:
        StorageError: If reading the stream, writing or renaming fails.
    """
    return _write_atomic(Path(path), stream)


def _write_atomic(path: Path, chunks: Iterable[bytes]) -> int:
    tmp_path = temp_path_for(path)
    written = 0
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "wb") as f:
            for chunk in chunks:
                f.write(chunk)
                written += len(chunk)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except Exception as e:
        with contextlib.suppress(OSError):
            tmp_path.unlink()
        raise StorageError(f"Failed to write {path}: {e}", path) from e

    logger.debug(f"Wrote {path} ({written} bytes)")
    return written
