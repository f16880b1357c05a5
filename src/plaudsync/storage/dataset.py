"""Append-only JSON-Lines dataset of transcripts.

Each successfully transcribed recording contributes one line. Lines are
never rewritten; exporting twice appends twice, and consumers dedupe by
``id``.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import IO, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from plaudsync.core.timestamps import to_iso
from plaudsync.core.types import TranscriptFormat
from plaudsync.storage.atomic import StorageError
from plaudsync.storage.paths import DATASET_NAME, dataset_path, recording_dir
from plaudsync.storage.recording_store import TRANSCRIPT_FILES, dedupe_key

if TYPE_CHECKING:
    from plaudsync.client.models import Recording, Transcript


class DatasetEntry(BaseModel):
    """One line of the dataset."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str | None
    recorded_at: str
    duration_seconds: float
    language: str | None
    text: str
    path: str
    segment_count: int

    @classmethod
    def build(cls, out_dir: Path, recording: Recording, transcript: Transcript) -> DatasetEntry:
        txt_path = (
            recording_dir(out_dir, recording.recorded_at, recording.id)
            / TRANSCRIPT_FILES[TranscriptFormat.TXT]
        )
        return cls(
            id=dedupe_key(recording.id),
            title=recording.title,
            recorded_at=to_iso(recording.recorded_at),
            duration_seconds=recording.duration,
            language=recording.language,
            text=transcript.full_text,
            path=txt_path.relative_to(out_dir).as_posix(),
            segment_count=len(transcript.segments),
        )


class DatasetWriter:
    """Appends DatasetEntry lines to ``datasets/<name>.jsonl``.

    Appends from several worker threads are serialized, and every line is
    flushed before append returns.

    Usage:
        with DatasetWriter(out_dir) as dataset:
            dataset.append(recording, transcript)
    """

    def __init__(
        self,
        out_dir: Path,
        name: str = DATASET_NAME,
        logger: logging.Logger | None = None,
    ) -> None:
        self._out_dir = Path(out_dir)
        self._path = dataset_path(self._out_dir, name)
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._file: IO[str] | None = None
        self._count = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def count(self) -> int:
        """Number of lines appended since open."""
        return self._count

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def open(self) -> None:
        """Open the dataset file for appending.

        Raises:
            StorageError: If the file cannot be opened.
        """
        if self._file is not None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._file = self._path.open("a", encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Cannot open dataset: {e}", self._path) from e
        self._count = 0
        self._log.debug(f"Opened dataset {self._path}")

    def append(self, recording: Recording, transcript: Transcript) -> DatasetEntry:
        """Append one line for a transcribed recording.

        Raises:
            StorageError: If the writer is not open or the write fails.
        """
        entry = DatasetEntry.build(self._out_dir, recording, transcript)
        line = entry.model_dump_json() + "\n"

        with self._lock:
            if self._file is None:
                raise StorageError("Dataset writer is not open", self._path)
            try:
                self._file.write(line)
                self._file.flush()
            except OSError as e:
                raise StorageError(f"Cannot append to dataset: {e}", self._path) from e
            self._count += 1

        return entry

    def close(self) -> None:
        """Flush and close the dataset file."""
        with self._lock:
            if self._file is None:
                return
            try:
                self._file.close()
            finally:
                self._file = None
        self._log.debug(f"Closed dataset {self._path} ({self._count} lines appended)")

    def __enter__(self) -> DatasetWriter:
        self.open()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
