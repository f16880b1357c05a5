"""Shared fixtures for plaudsync tests.

Provides recording/transcript factories and an in-memory remote client
that behaves like RecordingClient without any HTTP.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from plaudsync.client.api import NotFoundError
from plaudsync.client.models import Recording, Transcript, TranscriptSegment

BASE_TIME = datetime(2025, 2, 24, 8, 30, 12, tzinfo=timezone.utc)


def make_recording(recording_id: str = "rec1", **overrides: Any) -> Recording:
    """Create a Recording with sensible defaults."""
    values: dict[str, Any] = {
        "id": recording_id,
        "title": f"Meeting {recording_id}",
        "duration": 125.0,
        "recorded_at": BASE_TIME,
        "created_at": BASE_TIME,
        "updated_at": BASE_TIME + timedelta(minutes=5),
        "file_size": 2048,
        "mime_type": "audio/mp4",
        "has_transcript": True,
        "transcript_status": "completed",
        "language": "en",
    }
    values.update(overrides)
    return Recording(**values)


def make_transcript(recording_id: str = "rec1", texts: list[str] | None = None) -> Transcript:
    """Create a two-speaker Transcript."""
    texts = texts if texts is not None else ["Hello there.", "Hi, how are you?"]
    segments = [
        TranscriptSegment(
            index=i,
            start_ms=i * 5000,
            end_ms=(i + 1) * 5000,
            speaker=f"Speaker {i % 2 + 1}",
            text=text,
        )
        for i, text in enumerate(texts)
    ]
    return Transcript.from_segments(recording_id, segments, language="en", duration=10.0)


class FakeHTTP:
    """Stands in for HTTPClient's streaming download."""

    def __init__(self, payloads: dict[str, bytes] | None = None) -> None:
        self.payloads = payloads or {}
        self.requested: list[str] = []

    @contextmanager
    def download_external_url(self, url: str) -> Iterator[Iterator[bytes]]:
        self.requested.append(url)
        if url not in self.payloads:
            raise NotFoundError(f"Not found: {url}", 404)
        data = self.payloads[url]
        yield iter([data[: len(data) // 2], data[len(data) // 2 :]])


class FakeRemoteClient:
    """In-memory RemoteClient.

    Attributes:
        recordings: Listed recordings, in listing order.
        transcripts: Transcript per recording id.
        transcript_errors: Error raised by get_transcript per recording id.
        audio: Audio bytes per recording id (enables the http capability).
    """

    def __init__(
        self,
        recordings: list[Recording],
        transcripts: dict[str, Transcript] | None = None,
        transcript_errors: dict[str, Exception] | None = None,
        audio: dict[str, bytes] | None = None,
        authenticated: bool = True,
    ) -> None:
        self.recordings = list(recordings)
        self.transcripts = transcripts or {}
        self.transcript_errors = transcript_errors or {}
        self.authenticated = authenticated
        self.http = (
            FakeHTTP({f"https://s3.test/{rid}.m4a": data for rid, data in audio.items()})
            if audio
            else None
        )
        self.transcript_calls: list[str] = []
        self.closed = False
        self._lock = threading.Lock()

    def is_authenticated(self) -> bool:
        return self.authenticated

    def list_recordings(
        self, since: datetime | None = None, limit: int | None = None
    ) -> Iterator[Recording]:
        count = 0
        for recording in self.recordings:
            if since and recording.recorded_at < since:
                continue
            yield recording
            count += 1
            if limit and count >= limit:
                return

    def get_transcript(self, recording_id: str) -> Transcript:
        with self._lock:
            self.transcript_calls.append(recording_id)
        if recording_id in self.transcript_errors:
            raise self.transcript_errors[recording_id]
        if recording_id not in self.transcripts:
            raise NotFoundError(f"Recording {recording_id} not found", 404, recording_id)
        return self.transcripts[recording_id]

    def get_audio_download_url(self, recording_id: str) -> str | None:
        if self.http is None:
            return None
        url = f"https://s3.test/{recording_id}.m4a"
        return url if url in self.http.payloads else None

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def recordings() -> list[Recording]:
    """Three recordings an hour apart, all with transcripts."""
    return [
        make_recording(f"rec{i}", recorded_at=BASE_TIME + timedelta(hours=i))
        for i in range(1, 4)
    ]


@pytest.fixture
def fake_client(recordings: list[Recording]) -> FakeRemoteClient:
    """Remote client serving the three recordings with transcripts and audio."""
    return FakeRemoteClient(
        recordings,
        transcripts={r.id: make_transcript(r.id) for r in recordings},
        audio={r.id: f"audio-{r.id}".encode() * 100 for r in recordings},
    )


@pytest.fixture
def no_sleep() -> Callable[[float], None]:
    """Sleep replacement that records requested delays."""
    delays: list[float] = []

    def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays  # type: ignore[attr-defined]
    return sleep
