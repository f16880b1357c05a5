"""Incremental sync state tracking.

This module provides:
- IncrementalTracker: Decides which recordings need (re)processing
- SyncState, RecordingState: The persisted _state/sync_state.json models

Architecture:
    The whole state is loaded once at the start of a run, mutated in memory
    by worker threads (one key per recording, guarded by a lock), and
    written once at the end of the run with the atomic writer. A crash
    mid-run only loses the bookkeeping of that run; recording files and
    manifests written before the crash are already durable, and the
    recordings they belong to are simply processed again next time.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from plaudsync.client.models import Recording
from plaudsync.core.hashing import fingerprint
from plaudsync.core.timestamps import ensure_utc, to_iso, utc_now
from plaudsync.storage.atomic import write_file_atomic
from plaudsync.storage.paths import sync_state_path


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RecordingState(_Model):
    """Sync state of one recording.

    Attributes:
        recorded_at: Fixes the recording directory.
        content_hash: Fingerprint of the remote fields at last processing.
        downloaded_at: When processing last completed.
        has_audio: Whether audio was written.
        has_transcript: Whether a transcript was written.
        verified: Whether the last checksum verification passed.
        verified_at: When that verification ran.
    """

    recorded_at: datetime
    content_hash: str | None = None
    downloaded_at: datetime | None = None
    has_audio: bool = False
    has_transcript: bool = False
    verified: bool = False
    verified_at: datetime | None = None


class SyncState(_Model):
    """Persisted state of an output directory."""

    schema_version: Literal[1] = 1
    last_successful_sync_at: datetime | None = None
    last_attempt_at: datetime | None = None
    recordings: dict[str, RecordingState] = Field(default_factory=dict)


class IncrementalTracker:
    """Tracks which recordings are up to date in an output directory.

    Thread-safe: worker threads may call mark_complete() concurrently.

    Usage:
        tracker = IncrementalTracker()
        tracker.load(out_dir)
        todo = [r for r in recordings if tracker.needs_download(r)]
        ...
        tracker.mark_complete(r.id, r.recorded_at, has_audio=True, ...)
        tracker.persist(out_dir)
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._state = SyncState()

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def last_successful_sync_at(self) -> datetime | None:
        return self._state.last_successful_sync_at

    # === Persistence ===

    def load(self, out_dir: Path) -> None:
        """Load state from _state/sync_state.json.

        A missing file means a fresh directory. An unreadable or invalid
        file is logged and replaced by an empty state.
        """
        path = sync_state_path(out_dir)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._state = SyncState()
            return
        except OSError as e:
            self._log.warning(f"Failed to read sync state {path}, starting fresh: {e}")
            self._state = SyncState()
            return

        try:
            state = SyncState.model_validate_json(raw)
        except ValidationError as e:
            self._log.warning(
                f"Sync state {path} is invalid, starting fresh "
                f"({e.error_count()} validation errors)"
            )
            self._state = SyncState()
            return

        with self._lock:
            self._state = state
        self._log.debug(f"Loaded sync state with {len(state.recordings)} recordings")

    def persist(self, out_dir: Path) -> None:
        """Write the whole state atomically, stamping last_attempt_at.

        Raises:
            StorageError: If the file cannot be written.
        """
        with self._lock:
            self._state.last_attempt_at = utc_now()
            payload = self._state.model_dump_json(by_alias=True, indent=2, exclude_none=True)
        write_file_atomic(sync_state_path(out_dir), payload)
        self._log.debug(f"Persisted sync state ({len(self._state.recordings)} recordings)")

    # === Change detection ===

    @staticmethod
    def compute_content_hash(recording: Recording) -> str:
        """Fingerprint the remote fields whose change affects stored files."""
        return fingerprint({
            "id": recording.id,
            "updatedAt": to_iso(recording.updated_at),
            "hasTranscript": recording.has_transcript,
            "transcriptStatus": recording.transcript_status,
            "duration": recording.duration,
            "title": recording.title,
        })

    def needs_download(self, recording: Recording) -> bool:
        """Check whether a recording must be (re)processed.

        True if it was never processed, its fingerprint changed, it now
        has a transcript we do not, or its last processing never finished.
        """
        existing = self.get_recording_state(recording.id)
        if existing is None:
            return True
        if existing.content_hash != self.compute_content_hash(recording):
            return True
        if recording.has_transcript and not existing.has_transcript:
            return True
        return existing.downloaded_at is None

    # === Updates ===

    def mark_complete(
        self,
        recording_id: str,
        recorded_at: datetime,
        has_audio: bool,
        has_transcript: bool,
        content_hash: str,
    ) -> None:
        """Replace the state of a recording after it was processed."""
        entry = RecordingState(
            recorded_at=ensure_utc(recorded_at),
            content_hash=content_hash,
            downloaded_at=utc_now(),
            has_audio=has_audio,
            has_transcript=has_transcript,
        )
        with self._lock:
            self._state.recordings[recording_id] = entry

    def mark_verified(self, recording_id: str) -> None:
        """Record a clean checksum verification for a recording."""
        with self._lock:
            existing = self._state.recordings.get(recording_id)
            if existing is not None:
                existing.verified = True
                existing.verified_at = utc_now()

    def mark_successful_sync(self) -> None:
        """Advance last_successful_sync_at (callers only do so on zero failures)."""
        with self._lock:
            self._state.last_successful_sync_at = utc_now()

    # === Queries ===

    def get_since(self) -> datetime | None:
        """Lower bound for the next incremental pass."""
        return self._state.last_successful_sync_at

    def get_recording_state(self, recording_id: str) -> RecordingState | None:
        with self._lock:
            return self._state.recordings.get(recording_id)

    def recording_ids(self) -> list[str]:
        with self._lock:
            return list(self._state.recordings)
