"""
Sync engine for playlist-sync.

Brings one target's stored ordering in line with the remote, under the
daily quota budget, and reports what happened as a SyncOutcome.

Run Workflow:
    1. Take the target's lock (held -> return None, nothing recorded)
    2. Load the target, remember its status, mark it IN_PROGRESS
    3. Reserve the estimated fetch cost. QuotaExceeded -> restore the
       previous status and fail with "quota exceeded"
    4. Fetch the remote snapshot, each page attempt charged to the budget
    5. Settle the budget: commit what was spent, release the rest
    6. Load the local snapshot and diff it against the remote
    7. Apply the edit script in one store transaction
    8. Mark the target COMPLETED (or FAILED) and stamp last_synced_at
    9. Release the lock, append the outcome to history, return it

run() never raises: every error ends the run as a FAILED outcome whose
`error` holds the message (remote errors verbatim).

Usage:
    engine = SyncEngine(database, ledger, fetcher)
    outcome = engine.run(target_id)
    if outcome is None:
        print("already running")
"""

import logging
import time
from datetime import datetime
from typing import Callable, Iterable

from playlist_sync.core.database import Database
from playlist_sync.core.exceptions import (
    LockContention,
    PlaylistSyncError,
    QuotaExceeded,
    RemoteFetchError,
    StaleReservation,
)
from playlist_sync.core.logger import get_logger, log_sync_event, log_sync_failure
from playlist_sync.core.models import SyncOutcome, SyncStatus, Target, utc_now
from playlist_sync.quota.ledger import QuotaBudget, QuotaLedger
from playlist_sync.sync.diff import diff
from playlist_sync.sync.locks import TargetLocks
from playlist_sync.youtube.fetcher import SnapshotFetcher

logger = get_logger(__name__)


QUOTA_EXCEEDED_MESSAGE = "quota exceeded"

FETCH_OPERATION = "playlist.items"


class SyncEngine:
    """
    Orchestrates lock, quota, fetch, diff and store for one target at a time.

    Several runs for different targets may execute concurrently (one per
    scheduler worker thread); runs for the same target are mutually
    exclusive through the shared TargetLocks.
    """

    def __init__(
        self,
        database: Database,
        ledger: QuotaLedger,
        fetcher: SnapshotFetcher,
        locks: TargetLocks | None = None,
        clock: Callable[[], datetime] = utc_now
    ) -> None:
        self._database = database
        self._ledger = ledger
        self._fetcher = fetcher
        self._clock = clock
        self.locks = locks or TargetLocks()

    def is_running(self, target_id: int) -> bool:
        """True while a run holds the target's lock."""
        return self.locks.is_locked(target_id)

    def run(self, target_id: int) -> SyncOutcome | None:
        """
        Synchronize one target.

        Returns:
            The outcome, or None if another run already holds the target.
        """
        try:
            with self.locks.hold(target_id):
                log_sync_event(logger, "lock.acquired", target_id=target_id)
                outcome = self._run_locked(target_id)
        except LockContention:
            log_sync_event(logger, "lock.contended", level=logging.INFO, target_id=target_id)
            logger.info(f"Target {target_id} is already syncing, skipping")
            return None

        log_sync_event(logger, "lock.released", target_id=target_id)
        self._record(outcome)
        return outcome

    def run_many(
        self,
        target_ids: Iterable[int],
        on_outcome: Callable[[int, SyncOutcome | None], None] | None = None
    ) -> list[SyncOutcome]:
        """
        Synchronize targets one after the other.

        Targets already syncing elsewhere are skipped.

        Args:
            target_ids: Targets to run, in order.
            on_outcome: Called after each target with its outcome (or None).

        Returns:
            Outcomes of the runs that took place.
        """
        outcomes = []
        for target_id in target_ids:
            outcome = self.run(target_id)
            if on_outcome is not None:
                on_outcome(target_id, outcome)
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    def run_all(
        self,
        on_outcome: Callable[[int, SyncOutcome | None], None] | None = None
    ) -> list[SyncOutcome]:
        """Synchronize every registered target."""
        target_ids = [target.target_id for target in self._database.list_targets()]
        return self.run_many(target_ids, on_outcome=on_outcome)

    # =========================================================================
    # Run Steps
    # =========================================================================

    def _run_locked(self, target_id: int) -> SyncOutcome:
        started_at = self._clock()
        started = time.monotonic()

        def failed(error: str, quota_used: int = 0) -> SyncOutcome:
            return SyncOutcome(
                target_id=target_id,
                status=SyncStatus.FAILED,
                duration=time.monotonic() - started,
                quota_used=quota_used,
                error=error,
                started_at=started_at,
            )

        try:
            target = self._database.get_target(target_id)
            if target is None:
                return failed(f"Target not found: {target_id}")

            prior_status = target.sync_status
            self._database.set_sync_status(target_id, SyncStatus.IN_PROGRESS)
        except PlaylistSyncError as e:
            return failed(str(e))

        quota_used = 0
        try:
            budget = self._reserve(target)
            if budget is None:
                self._database.set_sync_status(target_id, prior_status)
                return failed(QUOTA_EXCEEDED_MESSAGE)

            fetch_error: PlaylistSyncError | None = None
            snapshot = None
            try:
                snapshot = self._fetcher.fetch_snapshot(target.remote_id, budget)
            except (RemoteFetchError, QuotaExceeded) as e:
                fetch_error = e

            quota_used = budget.spent
            budget.settle()

            if isinstance(fetch_error, QuotaExceeded):
                self._mark_failed(target_id)
                return failed(QUOTA_EXCEEDED_MESSAGE, quota_used)
            if fetch_error is not None:
                self._mark_failed(target_id)
                return failed(str(fetch_error), quota_used)

            local = self._database.load_snapshot(target_id)
            script = diff(local, snapshot.item_ids)
            log_sync_event(
                logger, "diff.computed",
                target_id=target_id, added=len(script.added),
                removed=len(script.removed), reordered=len(script.reordered)
            )

            if not script.is_empty:
                self._database.apply_edit_script(target_id, script, snapshot.by_id())

            self._database.update_target(
                target_id,
                sync_status=SyncStatus.COMPLETED,
                last_synced_at=self._clock()
            )

            return SyncOutcome(
                target_id=target_id,
                status=SyncStatus.COMPLETED,
                items_added=len(script.added),
                items_removed=len(script.removed),
                items_reordered=len(script.reordered),
                duration=time.monotonic() - started,
                quota_used=quota_used,
                started_at=started_at,
            )

        except StaleReservation as e:
            self._mark_failed(target_id)
            return failed(f"Quota day rolled over during sync: {e}", quota_used)
        except PlaylistSyncError as e:
            self._mark_failed(target_id)
            return failed(str(e), quota_used)
        except Exception as e:
            logger.exception(f"Unexpected error while syncing target {target_id}")
            self._mark_failed(target_id)
            return failed(f"Unexpected error: {e}", quota_used)

    def _reserve(self, target: Target) -> QuotaBudget | None:
        """Reserve the estimated fetch cost. None if the budget is exhausted."""
        estimate = self._ledger.estimate_cost(FETCH_OPERATION, target.item_count)
        try:
            reservation = self._ledger.reserve(estimate, operation=FETCH_OPERATION)
        except QuotaExceeded as e:
            logger.warning(f"Not syncing target {target.target_id}: {e}")
            return None
        return QuotaBudget(self._ledger, reservation)

    def _mark_failed(self, target_id: int) -> None:
        try:
            self._database.set_sync_status(target_id, SyncStatus.FAILED)
        except PlaylistSyncError as e:
            logger.error(f"Could not mark target {target_id} as failed: {e}")

    def _record(self, outcome: SyncOutcome) -> None:
        log_sync_event(
            logger, "sync.outcome",
            level=logging.INFO,
            target_id=outcome.target_id,
            status=outcome.status.value,
            added=outcome.items_added,
            removed=outcome.items_removed,
            reordered=outcome.items_reordered,
            quota_used=outcome.quota_used,
            duration=f"{outcome.duration:.2f}s"
        )

        if not outcome.succeeded:
            remote_id = None
            try:
                target = self._database.get_target(outcome.target_id)
                remote_id = target.remote_id if target else None
            except PlaylistSyncError as e:
                logger.debug(f"Could not look up target {outcome.target_id}: {e}")
            log_sync_failure(
                logger,
                outcome.target_id,
                remote_id,
                outcome.error or "unknown error"
            )

        try:
            self._database.record_outcome(outcome)
        except PlaylistSyncError as e:
            logger.error(f"Could not record outcome for target {outcome.target_id}: {e}")
