"""On-disk layout of a plaudsync data directory.

    <out>/recordings/2026/02/20260224T083012Z__plaud_<id>/
        meta.json
        transcript.json | transcript.txt | transcript.md
        audio.<ext>
        checksums.json
    <out>/datasets/plaud_transcripts.jsonl
    <out>/_state/sync_state.json
    <out>/_state/run_logs.ndjson
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path

from plaudsync.core.timestamps import ensure_utc, to_compact

SOURCE = "plaud"
DATA_DIR_ENV = "PLAUDSYNC_DATA_DIR"

RECORDINGS_DIR = "recordings"
DATASETS_DIR = "datasets"
STATE_DIR = "_state"
DATASET_NAME = "plaud_transcripts"


def default_out_dir() -> Path:
    """Get the default output directory.

    Returns:
        $PLAUDSYNC_DATA_DIR if set, otherwise ~/plaudsync/data.
    """
    env = os.environ.get(DATA_DIR_ENV)
    if env:
        return Path(env).expanduser().resolve()
    return Path.home() / "plaudsync" / "data"


def recording_dir_name(recorded_at: datetime, recording_id: str) -> str:
    """Get the directory name for a recording."""
    return f"{to_compact(recorded_at)}__{SOURCE}_{recording_id}"


def recording_dir(out_dir: Path, recorded_at: datetime, recording_id: str) -> Path:
    """Get the directory of a recording, partitioned by year and month (UTC)."""
    dt = ensure_utc(recorded_at)
    return (
        Path(out_dir)
        / RECORDINGS_DIR
        / f"{dt.year:04d}"
        / f"{dt.month:02d}"
        / recording_dir_name(dt, recording_id)
    )


def recordings_root(out_dir: Path) -> Path:
    return Path(out_dir) / RECORDINGS_DIR


def state_dir(out_dir: Path) -> Path:
    return Path(out_dir) / STATE_DIR


def sync_state_path(out_dir: Path) -> Path:
    return state_dir(out_dir) / "sync_state.json"


def run_logs_path(out_dir: Path) -> Path:
    return state_dir(out_dir) / "run_logs.ndjson"


def dataset_path(out_dir: Path, name: str = DATASET_NAME) -> Path:
    return Path(out_dir) / DATASETS_DIR / f"{name}.jsonl"


def iter_recording_dirs(out_dir: Path) -> Iterator[Path]:
    """Iterate over recording directories (recordings/<year>/<month>/<dir>) in order."""
    root = recordings_root(out_dir)
    if not root.is_dir():
        return
    for year in sorted(p for p in root.iterdir() if p.is_dir()):
        for month in sorted(p for p in year.iterdir() if p.is_dir()):
            yield from sorted(p for p in month.iterdir() if p.is_dir())
