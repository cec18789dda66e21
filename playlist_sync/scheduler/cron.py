"""
Cron expression conversion for playlist-sync schedules.

Schedules run on a fixed interval. Cron expressions are accepted as a
convenience and mapped onto an interval; the mapping is deliberately
lossy and only recognizes a few common shapes:

    * * * * *        -> every minute
    */N * * * *      -> every N minutes
    M */N * * *      -> every N hours
    M H */N * *      -> every N days
    M H * * D        -> weekly
    M H * * *        -> daily
    anything else    -> fallback interval (6 hours by default)

Expressions are validated with APScheduler's CronTrigger before being
converted, so a typo is rejected instead of silently becoming the fallback.
"""

import re
from datetime import timedelta

from apscheduler.triggers.cron import CronTrigger

from playlist_sync.core.exceptions import InvalidScheduleConfig


DEFAULT_FALLBACK_INTERVAL = timedelta(hours=6)

_STEP_PATTERN = re.compile(r"^\*/(\d+)$")
_FIXED_PATTERN = re.compile(r"^\d+$")


def validate_cron(expression: str) -> str:
    """
    Check that a 5-field cron expression is well formed.

    Returns:
        The expression with surrounding whitespace removed.

    Raises:
        InvalidScheduleConfig: If APScheduler cannot parse it.
    """
    expression = expression.strip()
    try:
        CronTrigger.from_crontab(expression)
    except ValueError as e:
        raise InvalidScheduleConfig(
            f"Invalid cron expression '{expression}': {e}",
            details={"cron": expression}
        ) from e
    return expression


def _step(field: str) -> int | None:
    match = _STEP_PATTERN.match(field)
    if not match:
        return None
    value = int(match.group(1))
    return value if value > 0 else None


def cron_to_interval(
    expression: str,
    fallback: timedelta = DEFAULT_FALLBACK_INTERVAL
) -> timedelta:
    """
    Map a cron expression onto a fixed interval.

    Args:
        expression: 5-field cron expression (not validated here).
        fallback: Interval for expressions without a recognized shape.

    Examples:
        cron_to_interval("*/15 * * * *")  # 15 minutes
        cron_to_interval("0 */6 * * *")   # 6 hours
        cron_to_interval("30 9 * * 1")    # 7 days
        cron_to_interval("0 9 1 * *")     # fallback
    """
    fields = expression.split()
    if len(fields) != 5:
        return fallback

    minute, hour, day, month, weekday = fields

    if fields == ["*"] * 5:
        return timedelta(minutes=1)

    if month != "*":
        return fallback

    minute_step = _step(minute)
    if minute_step and hour == "*" and day == "*" and weekday == "*":
        return timedelta(minutes=minute_step)

    if not _FIXED_PATTERN.match(minute):
        return fallback

    hour_step = _step(hour)
    if hour_step and day == "*" and weekday == "*":
        return timedelta(hours=hour_step)

    if not _FIXED_PATTERN.match(hour):
        return fallback

    day_step = _step(day)
    if day_step and weekday == "*":
        return timedelta(days=day_step)

    if day == "*" and weekday != "*":
        return timedelta(weeks=1)

    if day == "*" and weekday == "*":
        return timedelta(days=1)

    return fallback


def interval_to_cron(interval: timedelta) -> str:
    """
    Render an interval as the closest cron expression, for display.

    Examples:
        interval_to_cron(timedelta(seconds=30))  # "* * * * *"
        interval_to_cron(timedelta(minutes=15))  # "*/15 * * * *"
        interval_to_cron(timedelta(hours=6))     # "0 */6 * * *"
        interval_to_cron(timedelta(days=2))      # "0 0 */2 * *"
    """
    minutes = int(interval.total_seconds() // 60)

    if minutes < 1:
        return "* * * * *"
    if minutes < 60:
        return f"*/{minutes} * * * *"

    hours = minutes // 60
    if hours < 24:
        return f"0 */{hours} * * *"

    return f"0 0 */{hours // 24} * *"
