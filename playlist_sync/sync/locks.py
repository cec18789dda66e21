"""
Per-target advisory locks.

A single TargetLocks instance is shared by the sync engine and the
scheduler; holding a target's lock is what "this target is syncing"
means. Locks are process-local.
"""

import threading
from contextlib import contextmanager
from typing import Generator

from playlist_sync.core.exceptions import LockContention


class TargetLocks:
    """Registry of one non-reentrant lock per target id."""

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def _lock_for(self, target_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(target_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[target_id] = lock
            return lock

    def try_acquire(self, target_id: int) -> bool:
        """Take the target's lock without blocking. False if already held."""
        return self._lock_for(target_id).acquire(blocking=False)

    def release(self, target_id: int) -> None:
        self._lock_for(target_id).release()

    def is_locked(self, target_id: int) -> bool:
        return self._lock_for(target_id).locked()

    @contextmanager
    def hold(self, target_id: int) -> Generator[None, None, None]:
        """
        Hold the target's lock for the duration of the block.

        Raises:
            LockContention: If another caller already holds it.
        """
        if not self.try_acquire(target_id):
            raise LockContention(
                f"Target {target_id} is already being synchronized",
                details={"target_id": target_id}
            )
        try:
            yield
        finally:
            self.release(target_id)
