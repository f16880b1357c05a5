"""Validated models for remote recordings and transcripts.

This module provides:
- Recording: One remote recording (immutable id, volatile metadata)
- TranscriptSegment: One timed, optionally speaker-labelled span of text
- Transcript: The segments of one recording plus the concatenated text

Raw API payloads are adapted into these shapes in client/remote.py and
nowhere else; nothing downstream sees an unvalidated dict.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from plaudsync.core.timestamps import ensure_utc

TranscriptStatus = Literal["pending", "processing", "completed", "failed"]


class _Model(BaseModel):
    """Base model: camelCase aliases on disk, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Recording(_Model):
    """Recording metadata from the remote service.

    Attributes:
        id: Stable recording identifier.
        title: Optional user-visible title.
        duration: Duration in seconds.
        recorded_at: When the recording started; fixes the storage location.
        created_at: When the record was created remotely.
        updated_at: When the record last changed remotely.
        file_size: Audio size in bytes, when known.
        mime_type: Audio MIME type (defaults to audio/mp4).
        has_transcript: Whether the service advertises a transcript.
        transcript_status: Transcription progress, when reported.
        raw: Raw API payload kept for forward compatibility (never serialized).
    """

    id: str = Field(min_length=1)
    title: str | None = None
    duration: float = Field(ge=0)
    recorded_at: datetime
    created_at: datetime
    updated_at: datetime
    file_size: int | None = None
    mime_type: str = "audio/mp4"
    has_transcript: bool = False
    transcript_status: TranscriptStatus | None = None
    language: str | None = None
    device_id: str | None = None
    tags: list[str] | None = None
    folder_id: str | None = None
    summary: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)

    @field_validator("recorded_at", "created_at", "updated_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class TranscriptSegment(_Model):
    """A single transcript segment."""

    index: int
    start_ms: int = 0
    end_ms: int = 0
    speaker: str | None = None
    text: str
    confidence: float | None = Field(default=None, ge=0, le=1)


class Transcript(_Model):
    """Transcript of a recording.

    Attributes:
        recording_id: Recording this transcript belongs to.
        language: Detected language, when reported.
        duration: Duration in seconds.
        segments: Ordered transcript segments.
        full_text: Segment texts joined by blank lines.
    """

    recording_id: str
    language: str | None = None
    duration: float = 0.0
    segments: list[TranscriptSegment] = Field(default_factory=list)
    full_text: str = ""
    created_at: datetime | None = None
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)

    @classmethod
    def from_segments(
        cls,
        recording_id: str,
        segments: list[TranscriptSegment],
        **kwargs: Any,
    ) -> Transcript:
        """Build a transcript, deriving full_text from the segments."""
        full_text = "\n\n".join(s.text for s in segments if s.text)
        return cls(
            recording_id=recording_id,
            segments=segments,
            full_text=full_text,
            **kwargs,
        )
