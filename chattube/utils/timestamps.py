"""Helpers for rendering media offsets attached to time-aligned chunks."""

from __future__ import annotations

import math


def format_timestamp(seconds: float) -> str:
    """Render *seconds* as ``H:MM:SS`` when at least an hour, else ``M:SS``."""
    total = max(0, math.floor(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_timestamp_range(start: float, end: float) -> str:
    return f"{format_timestamp(start)} - {format_timestamp(end)}"


def video_timestamp_url(video_id: str, seconds: float) -> str:
    """Build a watch URL that starts playback at *seconds*."""
    return f"https://www.youtube.com/watch?v={video_id}&t={max(0, math.floor(seconds))}s"
