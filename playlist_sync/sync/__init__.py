"""
Synchronization for playlist-sync.

This module provides:
    - diff(): pure edit-script computation between two snapshots
    - TargetLocks: per-target mutual exclusion shared with the scheduler
    - SyncEngine: lock, quota, fetch, diff and store orchestration

Usage:
    from playlist_sync.sync import SyncEngine, diff
"""

from playlist_sync.sync.diff import apply_edit_script, dedupe, diff
from playlist_sync.sync.engine import QUOTA_EXCEEDED_MESSAGE, SyncEngine
from playlist_sync.sync.locks import TargetLocks

__all__ = [
    "diff",
    "apply_edit_script",
    "dedupe",
    "SyncEngine",
    "TargetLocks",
    "QUOTA_EXCEEDED_MESSAGE",
]
