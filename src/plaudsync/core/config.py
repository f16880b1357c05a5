"""Configuration classes for plaudsync.

This module defines the settings shared by the sync facade and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from plaudsync.core.types import ALL_FORMATS, TranscriptFormat

DEFAULT_CONCURRENCY = 3


@dataclass
class SyncSettings:
    """Settings for a plaudsync data directory.

    Used by the PlaudSync facade to build per-run SyncOptions, so CLI
    commands and library callers share the same defaults.

    Attributes:
        out_dir: Root of the local dataset (recordings/, datasets/, _state/).
        concurrency: Maximum recordings processed at the same time.
        formats: Transcript representations to write.
        include_dataset: Whether to append transcripts to the JSONL dataset.
    """

    out_dir: Path
    concurrency: int = DEFAULT_CONCURRENCY
    formats: tuple[TranscriptFormat, ...] = field(default=ALL_FORMATS)
    include_dataset: bool = True

    def __post_init__(self) -> None:
        """Normalize the output directory and validate concurrency."""
        self.out_dir = Path(self.out_dir).expanduser().resolve()
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        self.formats = tuple(TranscriptFormat(f) for f in self.formats)


def get_config_dir() -> Path:
    """Get the configuration directory for plaudsync.

    Returns:
        Path to ~/.plaudsync.
    """
    return Path.home() / ".plaudsync"
