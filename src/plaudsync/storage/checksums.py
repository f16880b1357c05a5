"""Per-directory checksum manifests.

This module provides:
- ChecksumManifest: The checksums.json model
- write_manifest: Hash every file in a directory and write a fresh manifest
- verify_checksums: Compare live files against an existing manifest
- ChecksumMismatchError: One mismatching or missing file

A manifest is always recomputed from the directory listing, never patched,
so it cannot drift from the files actually present. Verification only
reads; repairing a directory is the caller's decision.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from plaudsync.core.hashing import compute_file_hash
from plaudsync.core.timestamps import utc_now
from plaudsync.storage.atomic import is_temp_file, write_file_atomic

logger = logging.getLogger(__name__)

MANIFEST_NAME = "checksums.json"
MISSING = "MISSING"


class ChecksumMismatchError(Exception):
    """A file does not match its recorded checksum.

    Attributes:
        file_path: Path of the file.
        expected: SHA-256 recorded in the manifest.
        actual: Live SHA-256, or MISSING if the file is gone.
    """

    def __init__(self, file_path: Path, expected: str, actual: str) -> None:
        self.file_path = Path(file_path)
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {file_path}: expected {expected}, got {actual}"
        )

    @property
    def is_missing(self) -> bool:
        return self.actual == MISSING


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileChecksum(_Model):
    sha256: str
    size_bytes: int


class ChecksumManifest(_Model):
    """Checksums of every regular file in a recording directory."""

    schema_version: Literal[1] = 1
    recording_id: str
    computed_at: datetime
    files: dict[str, FileChecksum] = Field(default_factory=dict)


def write_manifest(directory: Path, recording_id: str) -> ChecksumManifest:
    """Hash every regular file in directory and write checksums.json.

    The manifest itself and leftover temporary files are excluded.

    Args:
        directory: Recording directory.
        recording_id: Recording the directory belongs to.

    Returns:
        The manifest that was written.

    Raises:
        StorageError: If the manifest cannot be written.
    """
    directory = Path(directory)
    files: dict[str, FileChecksum] = {}
    for path in sorted(directory.iterdir()):
        if path.name == MANIFEST_NAME or is_temp_file(path) or not path.is_file():
            continue
        files[path.name] = FileChecksum(
            sha256=compute_file_hash(path),
            size_bytes=path.stat().st_size,
        )

    manifest = ChecksumManifest(
        recording_id=recording_id,
        computed_at=utc_now(),
        files=files,
    )
    write_file_atomic(directory / MANIFEST_NAME, manifest.model_dump_json(by_alias=True, indent=2))
    logger.debug(f"Wrote {MANIFEST_NAME} for {recording_id} ({len(files)} files)")
    return manifest


def read_manifest(directory: Path) -> ChecksumManifest | None:
    """Read the manifest of a directory, or None if absent or unreadable."""
    path = Path(directory) / MANIFEST_NAME
    try:
        return ChecksumManifest.model_validate_json(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValidationError) as e:
        logger.warning(f"Unreadable manifest {path}: {e}")
        return None


def verify_checksums(directory: Path) -> list[ChecksumMismatchError]:
    """Verify the files of a directory against its manifest.

    A missing manifest means there is nothing to verify.

    Returns:
        One ChecksumMismatchError per mismatching or missing file.
    """
    directory = Path(directory)
    manifest = read_manifest(directory)
    if manifest is None:
        return []

    mismatches: list[ChecksumMismatchError] = []
    for name, expected in manifest.files.items():
        path = directory / name
        try:
            actual = compute_file_hash(path)
        except OSError:
            actual = MISSING
        if actual != expected.sha256:
            mismatches.append(ChecksumMismatchError(path, expected.sha256, actual))
    return mismatches
