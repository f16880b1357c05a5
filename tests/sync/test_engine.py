"""Tests for the sync engine: sync, backfill, verify and dataset export."""

from __future__ import annotations

import json
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from plaudsync.client.api import APIError, AuthenticationError
from plaudsync.client.models import Recording, Transcript
from plaudsync.core.types import RunMode, TranscriptFormat
from plaudsync.storage.paths import dataset_path, recording_dir, sync_state_path
from plaudsync.sync.engine import SyncEngine
from plaudsync.sync.incremental import IncrementalTracker
from plaudsync.sync.types import SyncOptions
from tests.conftest import BASE_TIME, FakeRemoteClient, make_recording, make_transcript


def dir_of(out_dir: Path, recording: Recording) -> Path:
    return recording_dir(out_dir, recording.recorded_at, recording.id)


def dataset_lines(out_dir: Path) -> list[dict]:
    path = dataset_path(out_dir)
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line]


def load_tracker(out_dir: Path) -> IncrementalTracker:
    tracker = IncrementalTracker()
    tracker.load(out_dir)
    return tracker


class FlakyClient(FakeRemoteClient):
    """Fails get_transcript with a 503 a fixed number of times per recording."""

    def __init__(self, *args, failures: dict[str, int], **kwargs) -> None:  # type: ignore[no-untyped-def]
        super().__init__(*args, **kwargs)
        self.failures = dict(failures)

    def get_transcript(self, recording_id: str) -> Transcript:
        with self._lock:
            remaining = self.failures.get(recording_id, 0)
            if remaining:
                self.failures[recording_id] = remaining - 1
                self.transcript_calls.append(recording_id)
        if remaining:
            raise APIError("HTTP 503 for https://api.plaud.ai/file/list", 503)
        return super().get_transcript(recording_id)


class AudioUrlFailingClient(FakeRemoteClient):
    """Fails get_audio_download_url with a fixed error a number of times per recording."""

    def __init__(self, *args, error: APIError, failures: dict[str, int], **kwargs) -> None:  # type: ignore[no-untyped-def]
        super().__init__(*args, **kwargs)
        self.error = error
        self.failures = dict(failures)

    def get_audio_download_url(self, recording_id: str) -> str | None:
        with self._lock:
            remaining = self.failures.get(recording_id, 0)
            if remaining:
                self.failures[recording_id] = remaining - 1
        if remaining:
            raise self.error
        return super().get_audio_download_url(recording_id)


class TestSyncRun:
    """Tests for SyncEngine.run in sync mode."""

    def test_fresh_sync_writes_every_recording(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """A fresh sync writes all files, the dataset and the sync stamp."""
        engine = SyncEngine(tmp_path, sleep=no_sleep)

        result = engine.run(fake_client, SyncOptions(concurrency=2))

        assert result.mode == RunMode.SYNC
        assert result.attempted == 3
        assert result.succeeded == 3
        assert result.failed == 0
        assert result.skipped == 0
        assert result.ok
        assert result.dataset_path == dataset_path(tmp_path)

        for recording in fake_client.recordings:
            directory = dir_of(tmp_path, recording)
            names = sorted(p.name for p in directory.iterdir())
            assert names == [
                "audio.m4a",
                "checksums.json",
                "meta.json",
                "transcript.json",
                "transcript.md",
                "transcript.txt",
            ]

        lines = dataset_lines(tmp_path)
        assert len(lines) == 3
        assert sorted(line["id"] for line in lines) == ["plaud:rec1", "plaud:rec2", "plaud:rec3"]

        tracker = load_tracker(tmp_path)
        assert tracker.last_successful_sync_at is not None
        assert sorted(tracker.recording_ids()) == ["rec1", "rec2", "rec3"]
        state = tracker.get_recording_state("rec1")
        assert state is not None
        assert state.has_audio is True
        assert state.has_transcript is True
        assert state.content_hash == IncrementalTracker.compute_content_hash(
            fake_client.recordings[0]
        )

    def test_second_sync_processes_nothing(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """A sync right after a successful one leaves everything in place."""
        engine = SyncEngine(tmp_path, sleep=no_sleep)
        engine.run(fake_client)
        fake_client.transcript_calls.clear()

        result = engine.run(fake_client)

        assert result.attempted == 0
        assert result.failed == 0
        assert fake_client.transcript_calls == []
        assert len(dataset_lines(tmp_path)) == 3

    def test_unchanged_recordings_are_skipped(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """Listed recordings whose fingerprint matches the state are skipped."""
        engine = SyncEngine(tmp_path, sleep=no_sleep)
        engine.run(fake_client)

        result = engine.run(fake_client, SyncOptions(since=BASE_TIME))

        assert result.attempted == 0
        assert result.skipped == 3
        assert len(dataset_lines(tmp_path)) == 3

    def test_changed_recording_is_reprocessed(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """A recording updated remotely is processed again."""
        engine = SyncEngine(tmp_path, sleep=no_sleep)
        engine.run(fake_client)

        changed = fake_client.recordings[1].model_copy(
            update={"title": "Renamed", "updated_at": BASE_TIME + timedelta(days=1)}
        )
        fake_client.recordings[1] = changed

        result = engine.run(fake_client, SyncOptions(since=BASE_TIME))

        assert result.attempted == 1
        assert result.skipped == 2
        meta = json.loads((dir_of(tmp_path, changed) / "meta.json").read_text())
        assert meta["title"] == "Renamed"

    def test_failed_item_does_not_advance_sync_stamp(
        self, tmp_path: Path, recordings: list[Recording], no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """One failing recording is reported while the others complete."""
        client = FakeRemoteClient(
            recordings,
            transcripts={r.id: make_transcript(r.id) for r in recordings},
            transcript_errors={"rec2": APIError("HTTP 400 for https://api.plaud.ai/file/list", 400)},
        )
        engine = SyncEngine(tmp_path, sleep=no_sleep)

        result = engine.run(client)

        assert result.succeeded == 2
        assert result.failed == 1
        assert not result.ok
        assert [e.recording_id for e in result.errors] == ["rec2"]
        assert "HTTP 400" in result.errors[0].error
        assert no_sleep.delays == []

        tracker = load_tracker(tmp_path)
        assert tracker.last_successful_sync_at is None
        assert sorted(tracker.recording_ids()) == ["rec1", "rec3"]
        assert len(dataset_lines(tmp_path)) == 2

    def test_failed_item_is_retried_next_sync(
        self, tmp_path: Path, recordings: list[Recording], no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """The next sync picks up only the recording that failed."""
        client = FakeRemoteClient(
            recordings,
            transcripts={r.id: make_transcript(r.id) for r in recordings},
            transcript_errors={"rec2": APIError("HTTP 400", 400)},
        )
        engine = SyncEngine(tmp_path, sleep=no_sleep)
        engine.run(client)

        client.transcript_errors.clear()
        result = engine.run(client)

        assert result.attempted == 1
        assert result.skipped == 2
        assert result.ok
        assert load_tracker(tmp_path).last_successful_sync_at is not None

    def test_transient_error_is_retried(
        self, tmp_path: Path, recordings: list[Recording], no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """A 503 is retried after the first backoff delay."""
        client = FlakyClient(
            recordings,
            transcripts={r.id: make_transcript(r.id) for r in recordings},
            failures={"rec1": 1},
        )
        engine = SyncEngine(tmp_path, sleep=no_sleep)

        result = engine.run(client)

        assert result.succeeded == 3
        assert no_sleep.delays == [1.0]
        assert client.transcript_calls.count("rec1") == 2

    def test_retries_exhausted(
        self, tmp_path: Path, recordings: list[Recording], no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """A recording that keeps failing is attempted four times."""
        client = FlakyClient(
            recordings,
            transcripts={r.id: make_transcript(r.id) for r in recordings},
            failures={"rec3": 10},
        )
        engine = SyncEngine(tmp_path, sleep=no_sleep)

        result = engine.run(client)

        assert result.failed == 1
        assert result.errors[0].recording_id == "rec3"
        assert client.transcript_calls.count("rec3") == 4
        assert no_sleep.delays == [1.0, 4.0, 16.0]

    def test_retried_recording_has_one_dataset_line(
        self, tmp_path: Path, recordings: list[Recording], no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """A retry after the transcript was fetched does not append it twice."""
        client = AudioUrlFailingClient(
            recordings,
            transcripts={r.id: make_transcript(r.id) for r in recordings},
            audio={r.id: b"audio" for r in recordings},
            error=APIError("HTTP 503 for https://api.plaud.ai/file/temp-url/rec1", 503),
            failures={"rec1": 1},
        )
        engine = SyncEngine(tmp_path, sleep=no_sleep)

        result = engine.run(client)

        assert result.succeeded == 3
        assert no_sleep.delays == [1.0]
        ids = [line["id"] for line in dataset_lines(tmp_path)]
        assert len(ids) == 3
        assert sorted(ids) == ["plaud:rec1", "plaud:rec2", "plaud:rec3"]

    def test_failed_recording_has_no_dataset_line(
        self, tmp_path: Path, recordings: list[Recording], no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """A recording failing after its transcript was written stays out of the dataset."""
        client = AudioUrlFailingClient(
            recordings,
            transcripts={r.id: make_transcript(r.id) for r in recordings},
            audio={r.id: b"audio" for r in recordings},
            error=APIError("HTTP 400 for https://api.plaud.ai/file/temp-url/rec1", 400),
            failures={"rec1": 10},
        )
        engine = SyncEngine(tmp_path, sleep=no_sleep)

        result = engine.run(client)

        assert result.failed == 1
        assert [e.recording_id for e in result.errors] == ["rec1"]
        assert sorted(line["id"] for line in dataset_lines(tmp_path)) == [
            "plaud:rec2",
            "plaud:rec3",
        ]
        assert load_tracker(tmp_path).get_recording_state("rec1") is None

    def test_missing_transcript_is_not_a_failure(
        self, tmp_path: Path, recordings: list[Recording], no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """A transcript the service cannot find leaves a metadata-only recording."""
        client = FakeRemoteClient(recordings, transcripts={"rec1": make_transcript("rec1")})
        engine = SyncEngine(tmp_path, sleep=no_sleep)

        result = engine.run(client)

        assert result.succeeded == 3
        directory = dir_of(tmp_path, recordings[1])
        assert (directory / "meta.json").exists()
        assert not (directory / "transcript.json").exists()
        assert len(dataset_lines(tmp_path)) == 1
        state = load_tracker(tmp_path).get_recording_state("rec2")
        assert state is not None
        assert state.has_transcript is False

    def test_recording_without_transcript_skips_fetch(
        self, tmp_path: Path, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """Recordings that advertise no transcript never request one."""
        recording = make_recording("rec1", has_transcript=False, transcript_status=None)
        client = FakeRemoteClient([recording])
        engine = SyncEngine(tmp_path, sleep=no_sleep)

        result = engine.run(client)

        assert result.succeeded == 1
        assert client.transcript_calls == []

    def test_no_audio_without_http(
        self, tmp_path: Path, recordings: list[Recording], no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """A client without download capability produces no audio files."""
        client = FakeRemoteClient(
            recordings, transcripts={r.id: make_transcript(r.id) for r in recordings}
        )
        engine = SyncEngine(tmp_path, sleep=no_sleep)

        engine.run(client)

        assert not (dir_of(tmp_path, recordings[0]) / "audio.m4a").exists()
        state = load_tracker(tmp_path).get_recording_state("rec1")
        assert state is not None
        assert state.has_audio is False

    def test_audio_content(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """Streamed audio chunks are written in order."""
        SyncEngine(tmp_path, sleep=no_sleep).run(fake_client)

        audio = dir_of(tmp_path, fake_client.recordings[0]) / "audio.m4a"
        assert audio.read_bytes() == b"audio-rec1" * 100

    def test_selected_formats_only(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """Only the requested transcript formats are written."""
        engine = SyncEngine(tmp_path, sleep=no_sleep)

        engine.run(fake_client, SyncOptions(formats=(TranscriptFormat.TXT,)))

        directory = dir_of(tmp_path, fake_client.recordings[0])
        assert (directory / "transcript.txt").exists()
        assert not (directory / "transcript.json").exists()
        assert not (directory / "transcript.md").exists()

    def test_without_dataset(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """Disabling the dataset leaves no dataset file behind."""
        result = SyncEngine(tmp_path, sleep=no_sleep).run(
            fake_client, SyncOptions(include_dataset=False)
        )

        assert result.dataset_path is None
        assert not dataset_path(tmp_path).exists()

    def test_limit(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """The limit caps the number of listed recordings."""
        result = SyncEngine(tmp_path, sleep=no_sleep).run(fake_client, SyncOptions(limit=2))

        assert result.attempted == 2

    def test_dry_run_writes_nothing(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """A dry run reports the plan and leaves the directory untouched."""
        result = SyncEngine(tmp_path, sleep=no_sleep).run(
            fake_client, SyncOptions(dry_run=True)
        )

        assert result.planned == ["rec1", "rec2", "rec3"]
        assert result.attempted == 0
        assert fake_client.transcript_calls == []
        assert not (tmp_path / "recordings").exists()
        assert not sync_state_path(tmp_path).exists()
        assert not dataset_path(tmp_path).exists()


class TestBackfill:
    """Tests for SyncEngine.run in backfill mode."""

    def test_backfill_ignores_state(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """Backfill reprocesses recordings the tracker considers current."""
        engine = SyncEngine(tmp_path, sleep=no_sleep)
        engine.run(fake_client)

        result = engine.run(fake_client, mode=RunMode.BACKFILL)

        assert result.mode == RunMode.BACKFILL
        assert result.attempted == 3
        assert result.skipped == 0
        # Dataset lines are appended again; consumers dedupe by id
        assert len(dataset_lines(tmp_path)) == 6

    def test_backfill_since(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """Backfill honors an explicit since date."""
        since = BASE_TIME + timedelta(hours=2)

        result = SyncEngine(tmp_path, sleep=no_sleep).run(
            fake_client, SyncOptions(since=since), RunMode.BACKFILL
        )

        assert result.attempted == 2


class TestAuthentication:
    """Tests for authentication failures during a run."""

    def test_unauthenticated_client(
        self, tmp_path: Path, recordings: list[Recording], no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """A run with a rejected session fails before listing."""
        client = FakeRemoteClient(recordings, authenticated=False)

        with pytest.raises(AuthenticationError):
            SyncEngine(tmp_path, sleep=no_sleep).run(client)

        assert not (tmp_path / "recordings").exists()

    def test_auth_failure_aborts_run(
        self, tmp_path: Path, recordings: list[Recording], no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """A rejected session stops remaining items and persists the state."""
        client = FakeRemoteClient(
            recordings,
            transcripts={r.id: make_transcript(r.id) for r in recordings},
            transcript_errors={"rec1": AuthenticationError("Auth failed (401)", 401)},
        )

        with pytest.raises(AuthenticationError):
            SyncEngine(tmp_path, sleep=no_sleep).run(client, SyncOptions(concurrency=1))

        assert client.transcript_calls == ["rec1"]
        assert no_sleep.delays == []
        assert sync_state_path(tmp_path).exists()
        assert load_tracker(tmp_path).last_successful_sync_at is None


class TestVerify:
    """Tests for SyncEngine.verify."""

    @pytest.fixture
    def synced(self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep) -> SyncEngine:  # type: ignore[no-untyped-def]
        engine = SyncEngine(tmp_path, sleep=no_sleep)
        engine.run(fake_client)
        return engine

    def test_clean_directory(self, synced: SyncEngine, tmp_path: Path) -> None:
        """An untouched directory verifies clean and is marked verified."""
        result = synced.verify()

        assert result.scanned == 3
        assert result.ok == 3
        assert result.failed == 0
        assert result.clean
        state = load_tracker(tmp_path).get_recording_state("rec1")
        assert state is not None
        assert state.verified is True
        assert state.verified_at is not None

    def test_corrupted_file(
        self, synced: SyncEngine, tmp_path: Path, fake_client: FakeRemoteClient
    ) -> None:
        """A modified file is reported with both hashes shortened."""
        directory = dir_of(tmp_path, fake_client.recordings[0])
        (directory / "transcript.txt").write_text("tampered")

        result = synced.verify()

        assert result.ok == 2
        assert result.failed == 1
        assert not result.clean
        [issue] = result.issues
        assert issue.recording_id == "rec1"
        assert issue.file == "transcript.txt"
        assert issue.issue.startswith("checksum mismatch (expected: ")
        assert "..., got: " in issue.issue

    def test_missing_file(
        self, synced: SyncEngine, tmp_path: Path, fake_client: FakeRemoteClient
    ) -> None:
        """A deleted file is reported as MISSING."""
        directory = dir_of(tmp_path, fake_client.recordings[1])
        (directory / "audio.m4a").unlink()

        result = synced.verify()

        [issue] = result.issues
        assert issue.file == "audio.m4a"
        assert issue.issue.endswith("got: MISSING)")

    def test_missing_directory(
        self, synced: SyncEngine, tmp_path: Path, fake_client: FakeRemoteClient
    ) -> None:
        """A tracked recording without a directory is a failure."""
        shutil.rmtree(dir_of(tmp_path, fake_client.recordings[2]))

        result = synced.verify()

        assert result.failed == 1
        [issue] = result.issues
        assert issue.recording_id == "rec3"
        assert issue.file == ""
        assert issue.issue.startswith("directory missing")

    def test_repair(
        self, synced: SyncEngine, tmp_path: Path, fake_client: FakeRemoteClient
    ) -> None:
        """Repair rewrites a corrupted recording and verifies it again."""
        path = dir_of(tmp_path, fake_client.recordings[0]) / "transcript.txt"
        original = path.read_text()
        path.write_text("tampered")

        result = synced.verify(repair=True, client=fake_client)

        assert result.failed == 1
        assert result.repaired == 1
        assert result.clean
        assert path.read_text() == original
        assert synced.verify().failed == 0

    def test_repair_recording_no_longer_listed(
        self, synced: SyncEngine, tmp_path: Path, fake_client: FakeRemoteClient
    ) -> None:
        """A recording gone from the service cannot be repaired."""
        (dir_of(tmp_path, fake_client.recordings[0]) / "meta.json").write_text("{}")
        fake_client.recordings = fake_client.recordings[1:]

        result = synced.verify(repair=True, client=fake_client)

        assert result.failed == 1
        assert result.repaired == 0
        assert not result.clean

    def test_repair_requires_client(self, tmp_path: Path) -> None:
        """Repair without a client is a programming error."""
        with pytest.raises(ValueError, match="requires a remote client"):
            SyncEngine(tmp_path).verify(repair=True)

    def test_empty_directory(self, tmp_path: Path) -> None:
        """Verifying a fresh directory scans nothing."""
        result = SyncEngine(tmp_path).verify()

        assert result.scanned == 0
        assert result.clean


class TestExportDataset:
    """Tests for SyncEngine.export_dataset."""

    def test_export_from_disk(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """Every transcribed recording on disk becomes one line."""
        engine = SyncEngine(tmp_path, sleep=no_sleep)
        engine.run(fake_client, SyncOptions(include_dataset=False))

        path = engine.export_dataset()

        assert path == dataset_path(tmp_path)
        lines = dataset_lines(tmp_path)
        assert [line["id"] for line in lines] == ["plaud:rec1", "plaud:rec2", "plaud:rec3"]
        first = lines[0]
        assert first["text"] == "Hello there.\n\nHi, how are you?"
        assert first["segment_count"] == 2
        assert first["recorded_at"] == "2025-02-24T09:30:12.000Z"
        assert first["path"] == (
            "recordings/2025/02/20250224T093012Z__plaud_rec1/transcript.txt"
        )

    def test_export_skips_incomplete_directories(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """Directories without a readable transcript are skipped."""
        engine = SyncEngine(tmp_path, sleep=no_sleep)
        engine.run(fake_client, SyncOptions(include_dataset=False))
        (dir_of(tmp_path, fake_client.recordings[0]) / "transcript.json").unlink()
        (dir_of(tmp_path, fake_client.recordings[1]) / "meta.json").write_text("not json")

        engine.export_dataset()

        assert [line["id"] for line in dataset_lines(tmp_path)] == ["plaud:rec3"]

    def test_export_appends(
        self, tmp_path: Path, fake_client: FakeRemoteClient, no_sleep
    ) -> None:  # type: ignore[no-untyped-def]
        """Exporting twice lists every recording twice."""
        engine = SyncEngine(tmp_path, sleep=no_sleep)
        engine.run(fake_client, SyncOptions(include_dataset=False))

        engine.export_dataset()
        engine.export_dataset()

        assert len(dataset_lines(tmp_path)) == 6

    def test_export_named_dataset(self, tmp_path: Path) -> None:
        """A custom name selects datasets/<name>.jsonl, even when empty."""
        path = SyncEngine(tmp_path).export_dataset("custom")

        assert path == tmp_path / "datasets" / "custom.jsonl"
        assert path.read_text() == ""


def test_recorded_at_fixes_directory(tmp_path: Path, no_sleep) -> None:  # type: ignore[no-untyped-def]
    """Recordings are partitioned by the UTC year and month they were recorded."""
    recording = make_recording(
        "late", recorded_at=datetime(2024, 12, 31, 23, 30, tzinfo=timezone(timedelta(hours=-2)))
    )
    client = FakeRemoteClient([recording], transcripts={"late": make_transcript("late")})

    SyncEngine(tmp_path, sleep=no_sleep).run(client)

    assert (tmp_path / "recordings/2025/01/20250101T013000Z__plaud_late/meta.json").exists()
