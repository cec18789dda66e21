# tests/test_utils.py
"""Test utilities and helpers"""

from datetime import timedelta

import pytest

from playlist_sync.utils import (
    ensure_directory,
    extract_playlist_id,
    format_duration,
    format_interval,
    parse_interval,
)


class TestHelpers:
    """Test helper functions"""

    def test_extract_playlist_id(self):
        """Test ids are found in URLs and bare ids pass through"""
        assert extract_playlist_id("https://www.youtube.com/playlist?list=PLabc_123") == "PLabc_123"
        assert extract_playlist_id("https://www.youtube.com/watch?v=xyz&list=PLabc-9") == "PLabc-9"
        assert extract_playlist_id("https://music.youtube.com/playlist?list=OLAK5uy") == "OLAK5uy"
        assert extract_playlist_id("  PLbare  ") == "PLbare"

    def test_extract_playlist_id_invalid(self):
        """Test values without a playlist id"""
        with pytest.raises(ValueError):
            extract_playlist_id("https://www.youtube.com/watch?v=xyz")
        with pytest.raises(ValueError):
            extract_playlist_id("")

    def test_parse_interval(self):
        """Test duration strings and bare seconds"""
        assert parse_interval("90s") == timedelta(seconds=90)
        assert parse_interval("30m") == timedelta(minutes=30)
        assert parse_interval("6H") == timedelta(hours=6)
        assert parse_interval("1d") == timedelta(days=1)
        assert parse_interval("2w") == timedelta(weeks=2)
        assert parse_interval("120") == timedelta(minutes=2)
        assert parse_interval(3600) == timedelta(hours=1)

    @pytest.mark.parametrize("value", ["", "0m", "-5m", "soon", "1y", True, 0])
    def test_parse_interval_invalid(self, value):
        """Test rejected durations"""
        with pytest.raises(ValueError):
            parse_interval(value)

    def test_format_interval(self):
        """Test the largest evenly dividing unit is used"""
        assert format_interval(timedelta(hours=6)) == "6h"
        assert format_interval(timedelta(minutes=90)) == "90m"
        assert format_interval(timedelta(seconds=45)) == "45s"
        assert format_interval(timedelta(days=7)) == "1w"
        assert format_interval(timedelta(days=2)) == "2d"

    def test_format_duration(self):
        """Test duration formatting"""
        assert format_duration(0.42) == "0.42s"
        assert format_duration(75) == "1:15"
        assert format_duration(3750) == "1:02:30"

    def test_ensure_directory(self, temp_dir):
        """Test nested directories are created"""
        path = ensure_directory(temp_dir / "a" / "b")
        assert path.is_dir()
        assert ensure_directory(path) == path
