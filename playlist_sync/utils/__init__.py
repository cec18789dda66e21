"""
Utility functions for playlist-sync.

This module provides common helpers used across the application:
    - Playlist id extraction from YouTube URLs
    - Human-friendly interval parsing and formatting ("30m", "6h", "1d")
    - Path helpers

Usage:
    from playlist_sync.utils import (
        extract_playlist_id,
        parse_interval,
        format_interval,
        ensure_directory
    )
"""

import re
from datetime import timedelta
from pathlib import Path


# Playlist ids: PL..., UU..., OL..., FL..., LL, WL and generated mix ids
_PLAYLIST_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{2,64}$")
_LIST_PARAM_PATTERN = re.compile(r"[?&]list=([A-Za-z0-9_-]+)")

_INTERVAL_PATTERN = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$", re.IGNORECASE)
_INTERVAL_UNITS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}


def ensure_directory(path: Path) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Path to the directory.

    Returns:
        The same path (for chaining).

    Raises:
        OSError: If directory cannot be created (permissions, etc.)
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def extract_playlist_id(url_or_id: str) -> str:
    """
    Extract a YouTube playlist id from a URL or return the id as-is.

    Handles:
        - https://www.youtube.com/playlist?list=ID
        - https://www.youtube.com/watch?v=xxx&list=ID
        - https://music.youtube.com/playlist?list=ID
        - Just the ID

    Args:
        url_or_id: Playlist URL or bare id.

    Returns:
        The playlist id.

    Raises:
        ValueError: If no playlist id can be found.

    Examples:
        extract_playlist_id("https://www.youtube.com/playlist?list=PLabc_123")
        # Returns: "PLabc_123"
    """
    value = url_or_id.strip()

    match = _LIST_PARAM_PATTERN.search(value)
    if match:
        return match.group(1)

    if _PLAYLIST_ID_PATTERN.match(value):
        return value

    raise ValueError(f"Not a playlist URL or id: {url_or_id}")


def parse_interval(value: str | int | float) -> timedelta:
    """
    Parse a duration such as "90s", "30m", "6h", "1d" or "2w".

    Bare numbers are interpreted as seconds, both as int and as
    digit-only strings.

    Args:
        value: Duration string or number of seconds.

    Returns:
        The duration as a timedelta.

    Raises:
        ValueError: If the value is not a positive duration.

    Examples:
        parse_interval("30m")  # timedelta(minutes=30)
        parse_interval(3600)   # timedelta(hours=1)
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid interval: {value!r}")

    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        match = _INTERVAL_PATTERN.match(str(value))
        if not match:
            raise ValueError(f"Invalid interval: {value!r} (expected e.g. 30m, 6h, 1d)")
        amount, unit = match.groups()
        seconds = float(int(amount) * _INTERVAL_UNITS[(unit or "s").lower()])

    if seconds <= 0:
        raise ValueError(f"Interval must be positive: {value!r}")

    return timedelta(seconds=seconds)


def format_interval(interval: timedelta) -> str:
    """
    Format an interval using the largest unit that divides it evenly.

    Examples:
        format_interval(timedelta(hours=6))      # "6h"
        format_interval(timedelta(minutes=90))   # "90m"
        format_interval(timedelta(seconds=45))   # "45s"
    """
    seconds = int(interval.total_seconds())
    for unit, size in (("w", 604800), ("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size and seconds % size == 0:
            return f"{seconds // size}{unit}"
    return f"{seconds}s"


def format_duration(seconds: float) -> str:
    """
    Format an elapsed time in seconds for display.

    Examples:
        format_duration(0.42)   # "0.42s"
        format_duration(75)     # "1:15"
        format_duration(3750)   # "1:02:30"
    """
    if seconds < 60:
        return f"{seconds:.2f}s"

    total = int(seconds)
    if total < 3600:
        return f"{total // 60}:{total % 60:02d}"

    hours = total // 3600
    minutes = (total % 3600) // 60
    return f"{hours}:{minutes:02d}:{total % 60:02d}"
