"""Plain-text and Markdown rendering of transcripts."""

from __future__ import annotations

import json
from datetime import datetime

from plaudsync.client.models import Recording, Transcript
from plaudsync.core.timestamps import ensure_utc, to_iso
from plaudsync.storage.paths import SOURCE


def to_plain_text(transcript: Transcript) -> str:
    """Render segments as ``Speaker: text`` paragraphs."""
    return "\n\n".join(
        f"{seg.speaker}: {seg.text}" if seg.speaker else seg.text
        for seg in transcript.segments
    )


def to_markdown(transcript: Transcript, recording: Recording) -> str:
    """Render a transcript as Markdown with YAML front matter."""
    lines = ["---", f"source: {SOURCE}", f"id: {_quote(recording.id)}"]
    lines.append(f"recorded_at: {_quote(to_iso(recording.recorded_at))}")
    if recording.title:
        lines.append(f"title: {_quote(recording.title)}")
    if recording.language:
        lines.append(f"language: {_quote(recording.language)}")
    lines.append(f"duration_seconds: {_number(recording.duration)}")
    if recording.tags:
        lines.append(f"tags: [{', '.join(_quote(t) for t in recording.tags)}]")
    lines += ["---", ""]

    lines += [f"# {recording.title or 'Untitled Recording'}", ""]
    lines.append(f"**Recorded:** {format_date(recording.recorded_at)}")
    lines.append(f"**Duration:** {format_duration(recording.duration)}")
    if recording.language:
        lines.append(f"**Language:** {recording.language}")
    lines += ["", "## Transcript", ""]

    has_timestamps = any(s.start_ms > 0 or s.end_ms > 0 for s in transcript.segments)
    for seg in transcript.segments:
        if has_timestamps:
            speaker = f" **{seg.speaker}**" if seg.speaker else ""
            lines.append(f"`[{ms_to_timestamp(seg.start_ms)}]`{speaker}")
        elif seg.speaker:
            lines.append(f"**{seg.speaker}**")
        lines += [seg.text, ""]

    return "\n".join(lines)


def ms_to_timestamp(ms: int) -> str:
    """Format milliseconds as ``m:ss`` or ``h:mm:ss``."""
    total = max(ms, 0) // 1000
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def format_duration(seconds: float) -> str:
    """Format a duration as ``1h 2m 3s``, ``2m 3s`` or ``3s``."""
    total = int(seconds)
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h}h {m}m {s}s"
    if m:
        return f"{m}m {s}s"
    return f"{s}s"


def format_date(dt: datetime) -> str:
    """Format a datetime for humans, e.g. ``Tuesday, February 24, 2026 08:30 UTC``."""
    return ensure_utc(dt).strftime("%A, %B %d, %Y %H:%M UTC")


def _quote(value: str) -> str:
    # JSON string escaping is valid YAML double-quoted scalar syntax
    return json.dumps(value, ensure_ascii=False)


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
