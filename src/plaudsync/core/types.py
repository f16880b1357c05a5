"""Shared types for plaudsync.

This module defines enums used by the storage, sync and CLI layers.
"""

from __future__ import annotations

from enum import Enum


class RunMode(str, Enum):
    """Mode of a synchronization pass.

    SYNC only processes recordings that changed since the last successful
    pass; BACKFILL re-evaluates every recording regardless of tracker state.
    """

    SYNC = "sync"
    BACKFILL = "backfill"


class TranscriptFormat(str, Enum):
    """Transcript representations the recording store can write."""

    JSON = "json"
    TXT = "txt"
    MD = "md"

    @classmethod
    def parse_list(cls, value: str) -> tuple[TranscriptFormat, ...]:
        """Parse a comma-separated list such as ``"json,txt"``.

        Unknown entries are ignored and duplicates collapse, keeping the
        first occurrence.
        """
        formats: list[TranscriptFormat] = []
        for part in value.split(","):
            part = part.strip().lower()
            try:
                fmt = cls(part)
            except ValueError:
                continue
            if fmt not in formats:
                formats.append(fmt)
        return tuple(formats)


ALL_FORMATS: tuple[TranscriptFormat, ...] = (
    TranscriptFormat.JSON,
    TranscriptFormat.TXT,
    TranscriptFormat.MD,
)
