"""
Recurring sync scheduling for playlist-sync.

Usage:
    from playlist_sync.scheduler import Scheduler, cron_to_interval
"""

from playlist_sync.scheduler.cron import cron_to_interval, interval_to_cron, validate_cron
from playlist_sync.scheduler.scheduler import MIN_INTERVAL, Scheduler

__all__ = [
    "Scheduler",
    "MIN_INTERVAL",
    "cron_to_interval",
    "interval_to_cron",
    "validate_cron",
]
