"""Sync engine: incremental sync, backfill, verification and dataset export.

A run goes through four phases:

    1. Init      - the remote client must report an authenticated session
    2. List      - stream candidates (since/limit) and, in sync mode, drop
                   the ones the tracker says are up to date
    3. Process   - run the bounded work queue; each recording is written
                   metadata -> transcript -> audio -> checksums, the whole
                   sequence retried as one unit, then appended to the
                   dataset and recorded in the tracker
    4. Finalize  - advance the last-sync stamp only if nothing failed,
                   persist the tracker once, close the dataset

A dry run stops after phase 2 and reports what would be processed.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from plaudsync.client.api import AuthenticationError, NotFoundError
from plaudsync.core.types import RunMode
from plaudsync.storage.checksums import MISSING, verify_checksums
from plaudsync.storage.dataset import DatasetWriter
from plaudsync.storage.paths import DATASET_NAME, iter_recording_dirs, recording_dir
from plaudsync.storage.recording_store import RecordingStore, read_recording_dir
from plaudsync.sync.incremental import IncrementalTracker
from plaudsync.sync.queue import BoundedWorkQueue
from plaudsync.sync.retry import retry_with_backoff
from plaudsync.sync.types import ItemError, SyncOptions, SyncResult, VerifyIssue, VerifyResult

if TYPE_CHECKING:
    from plaudsync.client.models import Recording, Transcript
    from plaudsync.client.remote import RemoteClient

# Length of hashes shown in verification issues
SHORT_HASH_LENGTH = 8


@dataclass
class ProcessedRecording:
    """Files written for one recording by a successful attempt."""

    transcript: Transcript | None = None
    has_audio: bool = False


class SyncEngine:
    """Mirrors remote recordings into an output directory.

    Usage:
        engine = SyncEngine(out_dir)
        result = engine.run(client, SyncOptions(), RunMode.SYNC)
        print(f"{result.succeeded}/{result.attempted} recordings synced")
    """

    def __init__(
        self,
        out_dir: Path,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the engine.

        Args:
            out_dir: Root output directory.
            logger: Logger passed down to every component.
            sleep: Sleep function used between retries (injectable for tests).
        """
        self._out_dir = Path(out_dir)
        self._log = logger or logging.getLogger(__name__)
        self._sleep = sleep

    @property
    def out_dir(self) -> Path:
        return self._out_dir

    # === Sync / backfill ===

    def run(
        self,
        client: RemoteClient,
        options: SyncOptions | None = None,
        mode: RunMode = RunMode.SYNC,
    ) -> SyncResult:
        """Run one sync or backfill pass.

        Args:
            client: Remote client.
            options: Run options (defaults to SyncOptions()).
            mode: SYNC skips up-to-date recordings; BACKFILL processes all.

        Returns:
            Aggregate SyncResult.

        Raises:
            AuthenticationError: If the session is not authenticated, or is
                rejected while recordings are processed. Tracker state is
                persisted before the error propagates.
            StorageError: If the tracker state or dataset cannot be written.
        """
        options = options or SyncOptions()
        mode = RunMode(mode)
        started = time.monotonic()

        if not client.is_authenticated():
            raise AuthenticationError("Not authenticated; credentials need refreshing")

        tracker = IncrementalTracker(logger=self._log)
        tracker.load(self._out_dir)

        since = options.since
        if since is None and mode == RunMode.SYNC:
            since = tracker.get_since()

        self._log.info(
            f"Starting {mode.value} into {self._out_dir}"
            + (f" (since {since.isoformat()})" if since else "")
        )

        to_process: list[Recording] = []
        skipped: list[Recording] = []
        listed = 0
        for recording in client.list_recordings(since=since, limit=options.limit):
            listed += 1
            if mode == RunMode.SYNC and not tracker.needs_download(recording):
                skipped.append(recording)
            else:
                to_process.append(recording)

        self._log.info(
            f"Listed {listed} recordings: {len(to_process)} to process, {len(skipped)} up to date"
        )

        if options.dry_run:
            for recording in to_process:
                self._log.info(
                    f"[dry-run] Would process {recording.id} "
                    f"({recording.title or 'untitled'}, {recording.recorded_at.isoformat()})"
                )
            return SyncResult(
                mode=mode,
                skipped=len(skipped),
                duration=time.monotonic() - started,
                planned=[r.id for r in to_process],
            )

        store = RecordingStore(self._out_dir, logger=self._log)
        dataset = (
            DatasetWriter(self._out_dir, logger=self._log) if options.include_dataset else None
        )
        if dataset:
            dataset.open()

        abort = threading.Event()
        auth_failure: list[AuthenticationError] = []

        def process(recording: Recording) -> None:
            if abort.is_set():
                raise auth_failure[0]
            try:
                processed = retry_with_backoff(
                    lambda: self._process_recording(recording, client, store, options),
                    label=f"recording:{recording.id}",
                    sleep=self._sleep,
                    logger=self._log,
                )
            except AuthenticationError as e:
                if not abort.is_set():
                    auth_failure.append(e)
                    abort.set()
                raise
            self._finish_recording(recording, processed, dataset, tracker)

        try:
            outcome = BoundedWorkQueue(options.concurrency, logger=self._log).run(
                to_process, process
            )

            if auth_failure:
                self._log.error(f"Session rejected during {mode.value}: {auth_failure[0]}")
                tracker.persist(self._out_dir)
                raise auth_failure[0]

            errors: list[ItemError] = []
            for failure in outcome.failed:
                self._log.error(f"Failed to process recording {failure.item.id}: {failure.error}")
                errors.append(ItemError(failure.item.id, str(failure.error)))

            if not errors:
                tracker.mark_successful_sync()
            tracker.persist(self._out_dir)
        finally:
            if dataset:
                dataset.close()

        result = SyncResult(
            mode=mode,
            attempted=len(to_process),
            succeeded=len(outcome.succeeded),
            failed=len(outcome.failed),
            skipped=len(skipped),
            duration=time.monotonic() - started,
            errors=errors,
            dataset_path=dataset.path if dataset else None,
        )
        self._log.info(
            f"{mode.value.capitalize()} complete: {result.succeeded} succeeded, "
            f"{result.failed} failed, {result.skipped} skipped in {result.duration:.1f}s"
        )
        return result

    def _process_recording(
        self,
        recording: Recording,
        client: RemoteClient,
        store: RecordingStore,
        options: SyncOptions,
    ) -> ProcessedRecording:
        """Write every file of one recording.

        Safe to call again after a failed attempt: every write replaces the
        file atomically and nothing outside the recording directory changes.
        """
        self._log.info(f"Processing {recording.id} ({recording.title or 'untitled'})")

        store.write_metadata(recording)

        processed = ProcessedRecording()
        if recording.has_transcript:
            try:
                transcript = client.get_transcript(recording.id)
            except NotFoundError as e:
                self._log.warning(f"No transcript for {recording.id}: {e}")
            else:
                store.write_transcript(recording, transcript, options.formats)
                processed.transcript = transcript

        if client.http is not None:
            url = client.get_audio_download_url(recording.id)
            if url:
                processed.has_audio = store.write_audio_from_url(recording, url, client.http)

        store.write_checksums(recording)
        return processed

    def _finish_recording(
        self,
        recording: Recording,
        processed: ProcessedRecording,
        dataset: DatasetWriter | None,
        tracker: IncrementalTracker,
    ) -> None:
        """Append the dataset line and record the recording in the tracker.

        Runs once per recording, after its files were written.
        """
        has_transcript = processed.transcript is not None
        if dataset and processed.transcript is not None:
            dataset.append(recording, processed.transcript)

        tracker.mark_complete(
            recording.id,
            recording.recorded_at,
            has_audio=processed.has_audio,
            has_transcript=has_transcript,
            content_hash=tracker.compute_content_hash(recording),
        )
        self._log.info(
            f"Processed {recording.id} "
            f"(transcript={has_transcript}, audio={processed.has_audio})"
        )

    # === Verify ===

    def verify(self, repair: bool = False, client: RemoteClient | None = None) -> VerifyResult:
        """Verify every tracked recording directory against its manifest.

        Clean recordings are marked verified. With repair, failing
        recordings are fetched again and rewritten, then re-verified.

        Args:
            repair: Re-fetch recordings whose files do not match.
            client: Remote client (required when repair is True).

        Raises:
            ValueError: If repair is requested without a client.
            AuthenticationError: If the session is rejected during repair.
        """
        if repair and client is None:
            raise ValueError("repair requires a remote client")

        tracker = IncrementalTracker(logger=self._log)
        tracker.load(self._out_dir)
        result = VerifyResult()
        failing: list[str] = []

        for recording_id in tracker.recording_ids():
            state = tracker.get_recording_state(recording_id)
            if state is None:
                continue
            result.scanned += 1
            directory = recording_dir(self._out_dir, state.recorded_at, recording_id)

            if not directory.is_dir():
                result.failed += 1
                failing.append(recording_id)
                result.issues.append(
                    VerifyIssue(recording_id, "", f"directory missing: {directory}")
                )
                continue

            mismatches = verify_checksums(directory)
            if not mismatches:
                result.ok += 1
                tracker.mark_verified(recording_id)
                continue

            result.failed += 1
            failing.append(recording_id)
            for m in mismatches:
                result.issues.append(
                    VerifyIssue(
                        recording_id,
                        m.file_path.name,
                        f"checksum mismatch (expected: {_short(m.expected)}, "
                        f"got: {_short(m.actual)})",
                    )
                )

        self._log.info(
            f"Verified {result.scanned} recordings: {result.ok} ok, {result.failed} failed"
        )

        if repair and failing and client is not None:
            result.repaired = self._repair(failing, client, tracker)

        tracker.persist(self._out_dir)
        return result

    def _repair(
        self,
        recording_ids: list[str],
        client: RemoteClient,
        tracker: IncrementalTracker,
    ) -> int:
        """Fetch and rewrite failing recordings. Returns how many are clean again."""
        wanted = set(recording_ids)
        found: dict[str, Recording] = {}
        for recording in client.list_recordings():
            if recording.id in wanted:
                found[recording.id] = recording
                if len(found) == len(wanted):
                    break

        for recording_id in sorted(wanted - found.keys()):
            self._log.warning(f"Cannot repair {recording_id}: no longer listed remotely")

        store = RecordingStore(self._out_dir, logger=self._log)
        options = SyncOptions()
        repaired = 0
        for recording in found.values():
            try:
                processed = retry_with_backoff(
                    lambda: self._process_recording(recording, client, store, options),
                    label=f"repair:{recording.id}",
                    sleep=self._sleep,
                    logger=self._log,
                )
            except AuthenticationError:
                raise
            except Exception as e:
                self._log.error(f"Failed to repair {recording.id}: {e}")
                continue
            self._finish_recording(recording, processed, None, tracker)

            if not store.verify(recording):
                tracker.mark_verified(recording.id)
                repaired += 1
                self._log.info(f"Repaired {recording.id}")

        return repaired

    # === Dataset export ===

    def export_dataset(self, name: str = DATASET_NAME) -> Path:
        """Append one dataset line per recording directory on disk.

        Directories whose meta.json or transcript.json is missing or
        invalid are skipped. Lines from earlier exports are kept, so
        exporting twice lists every recording twice.

        Returns:
            Path of the dataset file.
        """
        with DatasetWriter(self._out_dir, name, logger=self._log) as dataset:
            for directory in iter_recording_dirs(self._out_dir):
                try:
                    recording, transcript = read_recording_dir(directory)
                except (OSError, KeyError, ValueError, ValidationError) as e:
                    self._log.debug(f"Skipping {directory.name}: {e}")
                    continue
                dataset.append(recording, transcript)

        self._log.info(f"Exported {dataset.count} recordings to {dataset.path}")
        return dataset.path


def _short(sha: str) -> str:
    if sha == MISSING:
        return MISSING
    return f"{sha[:SHORT_HASH_LENGTH]}..."
