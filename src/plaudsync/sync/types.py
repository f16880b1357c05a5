"""Shared types and dataclasses for sync operations.

This module provides:
- SyncOptions: Per-run options (time filter, limit, concurrency, formats)
- ItemError: One recording that failed in a run
- SyncResult: Aggregate result of a sync or backfill pass
- VerifyIssue, VerifyResult: Result of a verification pass
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from plaudsync.core.config import DEFAULT_CONCURRENCY
from plaudsync.core.types import ALL_FORMATS, RunMode, TranscriptFormat


@dataclass
class SyncOptions:
    """Options for one sync or backfill pass.

    Attributes:
        since: Only consider recordings recorded at or after this time.
            For incremental sync, defaults to the last successful sync.
        limit: Maximum number of recordings to consider.
        concurrency: Maximum recordings processed at the same time.
        formats: Transcript representations to write.
        include_dataset: Append transcripts to the JSONL dataset.
        dry_run: List what would be processed without writing anything.
    """

    since: datetime | None = None
    limit: int | None = None
    concurrency: int = DEFAULT_CONCURRENCY
    formats: tuple[TranscriptFormat, ...] = ALL_FORMATS
    include_dataset: bool = True
    dry_run: bool = False

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.limit is not None and self.limit < 1:
            raise ValueError(f"limit must be >= 1, got {self.limit}")


@dataclass
class ItemError:
    """A recording that failed during a run."""

    recording_id: str
    error: str


@dataclass
class SyncResult:
    """Result of a sync or backfill pass."""

    mode: RunMode
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    duration: float = 0.0  # seconds
    errors: list[ItemError] = field(default_factory=list)
    dataset_path: Path | None = None
    planned: list[str] = field(default_factory=list)  # dry-run only

    @property
    def ok(self) -> bool:
        """True if no recording failed."""
        return self.failed == 0


@dataclass
class VerifyIssue:
    """A problem found in a recording directory.

    Attributes:
        recording_id: Recording the directory belongs to.
        file: File name, or "" when the directory itself could not be checked.
        issue: Human-readable description.
    """

    recording_id: str
    file: str
    issue: str


@dataclass
class VerifyResult:
    """Result of a verification pass."""

    scanned: int = 0
    ok: int = 0
    failed: int = 0
    repaired: int = 0
    issues: list[VerifyIssue] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        """True if every failing recording was repaired (or none failed)."""
        return self.failed == self.repaired
