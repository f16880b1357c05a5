"""Hashing helpers for plaudsync.

This module provides:
- SHA-256 of files (streamed, constant memory)
- SHA-256 of in-memory bytes
- Content fingerprints over a fixed set of fields
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

# Read buffer for file hashing
HASH_BUFFER_SIZE = 1024 * 1024  # 1 MiB

# Length of the hex fingerprint kept for content hashes
FINGERPRINT_LENGTH = 16


def compute_file_hash(path: Path) -> str:
    """Compute the SHA-256 hash of a file.

    Args:
        path: Path to the file.

    Returns:
        Hex-encoded SHA-256 digest.
    """
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            data = f.read(HASH_BUFFER_SIZE)
            if not data:
                break
            sha256.update(data)
    return sha256.hexdigest()


def compute_bytes_hash(data: bytes) -> str:
    """Compute the SHA-256 hash of in-memory data."""
    return hashlib.sha256(data).hexdigest()


def fingerprint(fields: dict[str, Any]) -> str:
    """Compute a short deterministic fingerprint over a dict of fields.

    Keys are serialized in the order given, so callers must always pass
    the same field order. Values must be JSON-serializable.

    Args:
        fields: Mapping of field name to value.

    Returns:
        First FINGERPRINT_LENGTH hex characters of the SHA-256 digest.
    """
    key = json.dumps(fields, separators=(",", ":"), default=str)
    return compute_bytes_hash(key.encode("utf-8"))[:FINGERPRINT_LENGTH]
