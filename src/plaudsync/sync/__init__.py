"""Sync operations for mirroring remote recordings.

Architecture:
    RemoteClient -> IncrementalTracker -> BoundedWorkQueue -> RecordingStore

Components:
- **IncrementalTracker**: Persisted per-recording state; decides what needs work
- **BoundedWorkQueue**: Runs at most N recordings at once, collects failures
- **retry_with_backoff**: Fixed 0/1/4/16s schedule around each recording
- **SyncEngine**: sync, backfill, verify and dataset export
- **PlaudSync**: Stored credentials and one re-authentication per run
"""

from plaudsync.sync.engine import SyncEngine
from plaudsync.sync.incremental import IncrementalTracker, RecordingState, SyncState
from plaudsync.sync.queue import BoundedWorkQueue, FailedItem, QueueResult, process_queue
from plaudsync.sync.retry import is_retryable_error, retry_with_backoff
from plaudsync.sync.runner import PlaudSync
from plaudsync.sync.types import ItemError, SyncOptions, SyncResult, VerifyIssue, VerifyResult

__all__ = [
    # Engine
    "PlaudSync",
    "SyncEngine",
    # State
    "IncrementalTracker",
    "RecordingState",
    "SyncState",
    # Work queue
    "BoundedWorkQueue",
    "FailedItem",
    "QueueResult",
    "process_queue",
    # Retry
    "is_retryable_error",
    "retry_with_backoff",
    # Types
    "ItemError",
    "SyncOptions",
    "SyncResult",
    "VerifyIssue",
    "VerifyResult",
]
