"""Storage module - Atomic writes, checksums, recording files and dataset."""

from plaudsync.storage.atomic import StorageError, write_file_atomic, write_stream_atomic
from plaudsync.storage.checksums import (
    ChecksumManifest,
    ChecksumMismatchError,
    verify_checksums,
    write_manifest,
)
from plaudsync.storage.dataset import DatasetEntry, DatasetWriter
from plaudsync.storage.paths import dataset_path, default_out_dir, recording_dir
from plaudsync.storage.recording_store import RecordingStore, guess_audio_extension

__all__ = [
    # Atomic writes
    "StorageError",
    "write_file_atomic",
    "write_stream_atomic",
    # Checksums
    "ChecksumManifest",
    "ChecksumMismatchError",
    "verify_checksums",
    "write_manifest",
    # Dataset
    "DatasetEntry",
    "DatasetWriter",
    # Layout
    "dataset_path",
    "default_out_dir",
    "recording_dir",
    # Recording files
    "RecordingStore",
    "guess_audio_extension",
]
