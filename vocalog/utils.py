"""
vocalog.utils - Shared formatting helpers for CLI output.
"""

from __future__ import annotations

from vocalog.models import SpeechSession


def format_duration(seconds: float) -> str:
    """Format seconds as HH:MM:SS or MM:SS.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (HH:MM:SS if >= 1 hour, otherwise MM:SS)
    """
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_bytes(size: float) -> str:
    """Format a byte count in human-readable units."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def session_duration(session: SpeechSession) -> float:
    """Length of speech covered by a session's segments."""
    if not session.segments:
        return 0.0
    return max(segment.end for segment in session.segments)


def preview(text: str, width: int = 60) -> str:
    """First line of text, shortened to ``width`` characters."""
    line = text.strip().splitlines()[0] if text.strip() else ""
    if len(line) <= width:
        return line
    return line[: width - 1].rstrip() + "…"
