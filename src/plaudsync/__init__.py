"""plaudsync - Incremental, crash-safe export of Plaud recordings.

Usage:
    from plaudsync import PlaudSync, SyncSettings

    plaud = PlaudSync(SyncSettings(out_dir="~/plaudsync/data"))
    result = plaud.sync()
"""

from plaudsync.client.api import APIError, AuthenticationError, NotFoundError
from plaudsync.client.models import Recording, Transcript, TranscriptSegment
from plaudsync.core.config import SyncSettings
from plaudsync.core.types import RunMode, TranscriptFormat
from plaudsync.storage.atomic import StorageError
from plaudsync.storage.checksums import ChecksumMismatchError
from plaudsync.sync.engine import SyncEngine
from plaudsync.sync.runner import PlaudSync
from plaudsync.sync.types import SyncOptions, SyncResult, VerifyResult

__all__ = [
    # Entry points
    "PlaudSync",
    "SyncEngine",
    "SyncSettings",
    # Options and results
    "RunMode",
    "SyncOptions",
    "SyncResult",
    "TranscriptFormat",
    "VerifyResult",
    # Models
    "Recording",
    "Transcript",
    "TranscriptSegment",
    # Errors
    "APIError",
    "AuthenticationError",
    "ChecksumMismatchError",
    "NotFoundError",
    "StorageError",
]
