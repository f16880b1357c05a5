"""Transcript rendering."""

from plaudsync.transcript.formatter import to_markdown, to_plain_text

__all__ = ["to_markdown", "to_plain_text"]
