"""Core module - Shared configuration, hashing and enums."""

from plaudsync.core.config import DEFAULT_CONCURRENCY, SyncSettings, get_config_dir
from plaudsync.core.hashing import compute_bytes_hash, compute_file_hash, fingerprint
from plaudsync.core.types import ALL_FORMATS, RunMode, TranscriptFormat

__all__ = [
    # Config
    "DEFAULT_CONCURRENCY",
    "SyncSettings",
    "get_config_dir",
    # Hashing
    "compute_bytes_hash",
    "compute_file_hash",
    "fingerprint",
    # Types
    "ALL_FORMATS",
    "RunMode",
    "TranscriptFormat",
]
