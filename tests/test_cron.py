# tests/test_cron.py
"""Test cron expression conversion"""

from datetime import timedelta

import pytest

from playlist_sync.core.exceptions import InvalidScheduleConfig
from playlist_sync.scheduler.cron import (
    DEFAULT_FALLBACK_INTERVAL,
    cron_to_interval,
    interval_to_cron,
    validate_cron,
)


class TestCronToInterval:
    """Test mapping cron shapes onto intervals"""

    @pytest.mark.parametrize("expression,expected", [
        ("* * * * *", timedelta(minutes=1)),
        ("*/15 * * * *", timedelta(minutes=15)),
        ("0 */6 * * *", timedelta(hours=6)),
        ("30 */2 * * *", timedelta(hours=2)),
        ("0 0 */2 * *", timedelta(days=2)),
        ("30 9 * * *", timedelta(days=1)),
        ("30 9 * * 1", timedelta(weeks=1)),
    ])
    def test_known_shapes(self, expression, expected):
        """Test recognized cadences"""
        assert cron_to_interval(expression) == expected

    @pytest.mark.parametrize("expression", [
        "0 9 1 * *",
        "0 9 * 1 *",
        "0,30 * * * *",
        "0 9-17 * * *",
        "not a cron",
    ])
    def test_fallback(self, expression):
        """Test unrecognized shapes use the fallback"""
        assert cron_to_interval(expression) == DEFAULT_FALLBACK_INTERVAL
        assert cron_to_interval(expression, timedelta(hours=12)) == timedelta(hours=12)


class TestIntervalToCron:
    """Test rendering intervals as cron"""

    @pytest.mark.parametrize("interval,expected", [
        (timedelta(seconds=30), "* * * * *"),
        (timedelta(minutes=1), "*/1 * * * *"),
        (timedelta(minutes=15), "*/15 * * * *"),
        (timedelta(hours=6), "0 */6 * * *"),
        (timedelta(days=2), "0 0 */2 * *"),
    ])
    def test_render(self, interval, expected):
        """Test the closest expression is produced"""
        assert interval_to_cron(interval) == expected

    def test_converts_back(self):
        """Test a rendered cadence maps back to the same interval"""
        for interval in (timedelta(minutes=15), timedelta(hours=6), timedelta(days=2)):
            assert cron_to_interval(interval_to_cron(interval)) == interval


class TestValidateCron:
    """Test cron validation"""

    def test_valid_expression_is_stripped(self):
        """Test surrounding whitespace is removed"""
        assert validate_cron("  */5 * * * *  ") == "*/5 * * * *"

    @pytest.mark.parametrize("expression", [
        "61 * * * *",
        "* * * *",
        "* 25 * * *",
        "every hour",
    ])
    def test_invalid_expression(self, expression):
        """Test malformed expressions are rejected"""
        with pytest.raises(InvalidScheduleConfig) as exc_info:
            validate_cron(expression)
        assert exc_info.value.details["cron"] == expression.strip()
