"""Recording store: the files of one recording directory.

This module provides:
- RecordingStore: Writes meta/transcript/audio/checksum files
- guess_audio_extension: MIME type -> file extension
- read_recording_dir: Rebuild a recording and transcript from its files

Every file goes through the atomic writer, and the directory of a
recording depends only on its recorded_at and id, so re-processing a
recording always rewrites the same directory in place.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from plaudsync.client.api import APIError
from plaudsync.client.models import Recording, Transcript, TranscriptSegment
from plaudsync.core.timestamps import to_iso, utc_now
from plaudsync.core.types import ALL_FORMATS, TranscriptFormat
from plaudsync.storage.atomic import StorageError, write_file_atomic, write_stream_atomic
from plaudsync.storage.checksums import (
    ChecksumManifest,
    ChecksumMismatchError,
    verify_checksums,
    write_manifest,
)
from plaudsync.storage.paths import SOURCE, recording_dir
from plaudsync.transcript.formatter import to_markdown, to_plain_text

if TYPE_CHECKING:
    from plaudsync.client.api import HTTPClient

META_NAME = "meta.json"
TRANSCRIPT_FILES = {
    TranscriptFormat.JSON: "transcript.json",
    TranscriptFormat.TXT: "transcript.txt",
    TranscriptFormat.MD: "transcript.md",
}

# MIME substring -> extension, checked in order
AUDIO_EXTENSIONS = (
    ("m4a", "m4a"),
    ("mp4", "m4a"),
    ("wav", "wav"),
    ("mpeg", "mp3"),
    ("mp3", "mp3"),
    ("ogg", "ogg"),
    ("webm", "webm"),
)
DEFAULT_AUDIO_EXTENSION = "m4a"


def guess_audio_extension(mime_type: str | None) -> str:
    """Guess an audio file extension from a MIME type (m4a when unknown)."""
    mime = (mime_type or "").lower()
    for needle, extension in AUDIO_EXTENSIONS:
        if needle in mime:
            return extension
    return DEFAULT_AUDIO_EXTENSION


def dedupe_key(recording_id: str) -> str:
    """Stable namespaced key identifying a recording across exports."""
    return f"{SOURCE}:{recording_id}"


def read_recording_dir(directory: Path) -> tuple[Recording, Transcript]:
    """Rebuild a Recording and its Transcript from meta.json and transcript.json.

    Raises:
        OSError: If either file cannot be read.
        ValueError: If either file is not valid JSON or lacks required fields
            (pydantic ValidationError is a ValueError).
        KeyError: If meta.json has no recording id or recorded_at.
    """
    meta = json.loads((directory / META_NAME).read_text(encoding="utf-8"))
    data = json.loads(
        (directory / TRANSCRIPT_FILES[TranscriptFormat.JSON]).read_text(encoding="utf-8")
    )
    if not isinstance(meta, dict) or not isinstance(data, dict):
        raise ValueError(f"Unexpected JSON document in {directory}")

    recorded_at = meta["recorded_at"]
    recording = Recording(
        id=meta["source_recording_id"],
        title=meta.get("title"),
        duration=meta.get("duration_seconds") or 0,
        recorded_at=recorded_at,
        created_at=recorded_at,
        updated_at=meta.get("updated_at") or recorded_at,
        language=meta.get("language"),
        has_transcript=True,
        raw=meta,
    )

    segments_raw = data.get("segments") or []
    if not isinstance(segments_raw, list):
        raise ValueError(f"Transcript segments in {directory} are not a list")
    segments = [TranscriptSegment.model_validate(s) for s in segments_raw]
    transcript = Transcript.from_segments(
        recording.id,
        segments,
        language=data.get("language") or recording.language,
        duration=data.get("duration") or recording.duration,
        raw=data,
    )
    return recording, transcript


class RecordingStore:
    """Writes the files of recordings under an output directory."""

    def __init__(self, out_dir: Path, logger: logging.Logger | None = None) -> None:
        """Initialize the store.

        Args:
            out_dir: Root output directory.
            logger: Logger to use (defaults to this module's logger).
        """
        self._out_dir = Path(out_dir)
        self._log = logger or logging.getLogger(__name__)

    @property
    def out_dir(self) -> Path:
        return self._out_dir

    def recording_dir(self, recording: Recording) -> Path:
        """Get the directory of a recording."""
        return recording_dir(self._out_dir, recording.recorded_at, recording.id)

    def exists(self, recording: Recording) -> bool:
        return self.recording_dir(recording).is_dir()

    # === Writes ===

    def write_metadata(self, recording: Recording) -> Path:
        """Write meta.json for a recording.

        Returns:
            The recording directory.
        """
        directory = self.recording_dir(recording)
        meta = build_metadata(recording)
        write_file_atomic(directory / META_NAME, json.dumps(meta, indent=2, ensure_ascii=False))
        self._log.debug(f"Wrote {META_NAME} for {recording.id} in {directory}")
        return directory

    def write_transcript(
        self,
        recording: Recording,
        transcript: Transcript,
        formats: Iterable[TranscriptFormat] = ALL_FORMATS,
    ) -> list[Path]:
        """Write the requested transcript representations.

        Returns:
            Paths of the files written.
        """
        directory = self.recording_dir(recording)
        formats = set(formats)
        written: list[Path] = []

        if TranscriptFormat.JSON in formats:
            path = directory / TRANSCRIPT_FILES[TranscriptFormat.JSON]
            data = transcript.model_dump(
                mode="json",
                by_alias=True,
                include={"recording_id", "language", "duration", "segments"},
            )
            write_file_atomic(path, json.dumps(data, indent=2, ensure_ascii=False))
            written.append(path)

        if TranscriptFormat.TXT in formats:
            path = directory / TRANSCRIPT_FILES[TranscriptFormat.TXT]
            write_file_atomic(path, to_plain_text(transcript))
            written.append(path)

        if TranscriptFormat.MD in formats:
            path = directory / TRANSCRIPT_FILES[TranscriptFormat.MD]
            write_file_atomic(path, to_markdown(transcript, recording))
            written.append(path)

        self._log.debug(
            f"Wrote transcript for {recording.id}: {', '.join(p.name for p in written)}"
        )
        return written

    def audio_path(self, recording: Recording) -> Path:
        extension = guess_audio_extension(recording.mime_type)
        return self.recording_dir(recording) / f"audio.{extension}"

    def write_audio_from_url(self, recording: Recording, url: str, http: HTTPClient) -> bool:
        """Stream audio from a pre-signed URL into the recording directory.

        Failures are logged and reported as False; a recording without
        audio is still a usable recording.

        Returns:
            True if the audio file was written.
        """
        path = self.audio_path(recording)
        try:
            with http.download_external_url(url) as chunks:
                size = write_stream_atomic(path, chunks)
        except (APIError, StorageError) as e:
            self._log.warning(f"Failed to download audio for {recording.id}: {e}")
            return False

        self._log.debug(f"Wrote {path.name} for {recording.id} ({size} bytes)")
        return True

    def write_checksums(self, recording: Recording) -> ChecksumManifest:
        """Recompute checksums.json over the recording directory."""
        manifest = write_manifest(self.recording_dir(recording), recording.id)
        self._log.debug(f"Wrote checksums for {recording.id}")
        return manifest

    def verify(self, recording: Recording) -> list[ChecksumMismatchError]:
        """Verify the recording directory against its manifest."""
        return verify_checksums(self.recording_dir(recording))


def build_metadata(recording: Recording) -> dict[str, Any]:
    """Build the meta.json document of a recording."""
    extension = guess_audio_extension(recording.mime_type)
    audio = None
    if recording.file_size:
        audio = {
            "filename": f"audio.{extension}",
            "mime": recording.mime_type,
            "bytes": recording.file_size,
        }

    return {
        "source": SOURCE,
        "source_recording_id": recording.id,
        "recorded_at": to_iso(recording.recorded_at),
        "updated_at": to_iso(recording.updated_at),
        "imported_at": to_iso(utc_now()),
        "title": recording.title,
        "duration_seconds": recording.duration,
        "language": recording.language,
        "audio": audio,
        "transcript": {
            "has_timestamps": True,
            "format": "segments",
            "filename_json": TRANSCRIPT_FILES[TranscriptFormat.JSON],
            "filename_txt": TRANSCRIPT_FILES[TranscriptFormat.TXT],
            "filename_md": TRANSCRIPT_FILES[TranscriptFormat.MD],
        },
        "integrity": {"dedupe_key": dedupe_key(recording.id)},
        "tags": recording.tags,
        "folder_id": recording.folder_id,
        "device_id": recording.device_id,
        "summary": recording.summary,
    }
