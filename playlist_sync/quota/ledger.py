"""
Daily quota ledger for playlist-sync.

The YouTube Data API grants a fixed number of cost units per day. This
module keeps track of that budget so that concurrent sync runs can never
collectively overshoot it.

Model:
    - One ledger entry per UTC day: committed `used` units (persisted in
      SQLite) plus in-flight reservations (in memory).
    - reserve() succeeds only if used + reserved + units <= limit.
    - commit() turns (part of) a reservation into permanent usage and
      releases the rest; release() cancels it.
    - The first call on a new UTC day drops every reservation of the
      previous day. Committing one of those raises StaleReservation.

All three operations run under a single mutex. The mutex is never held
while a remote call is in flight: callers reserve, release the mutex,
call the remote, then commit.

Cost Table:
    Paged operations (playlist.items, video.details) cost one unit per
    started page of 50 items; the others cost their configured unit per
    call. Unknown operations cost 1 and log a warning.

Usage:
    ledger = QuotaLedger(database, daily_limit=10000)

    handle = ledger.reserve(ledger.estimate_cost("playlist.items", 120))
    try:
        ...  # remote calls
        ledger.commit(handle, units=actual)
    except Exception:
        ledger.release(handle)
        raise
"""

import itertools
import logging
import math
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable

from playlist_sync.core.config import (
    DEFAULT_DAILY_LIMIT,
    DEFAULT_OPERATION_COSTS,
    DEFAULT_WARNING_THRESHOLD,
)
from playlist_sync.core.database import Database
from playlist_sync.core.exceptions import QuotaError, QuotaExceeded, StaleReservation
from playlist_sync.core.logger import get_logger, log_sync_event
from playlist_sync.core.models import utc_now

logger = get_logger(__name__)


# Items returned per page by list endpoints
PAGE_SIZE = 50

PAGED_OPERATIONS = frozenset({"playlist.items", "video.details"})


@dataclass(frozen=True)
class QuotaLedgerEntry:
    """Usage of one UTC day."""
    day: date
    used: int
    limit: int
    reserved: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used - self.reserved)

    @property
    def percent_used(self) -> float:
        return round(self.used / self.limit * 100, 2) if self.limit else 0.0


@dataclass(frozen=True)
class Reservation:
    """Handle for units held against one day's budget."""
    reservation_id: str
    day: date
    units: int
    operation: str


class QuotaLedger:
    """
    Thread-safe daily quota budget.

    Committed usage lives in the database so it survives restarts;
    reservations are process-local.
    """

    def __init__(
        self,
        database: Database,
        daily_limit: int = DEFAULT_DAILY_LIMIT,
        costs: dict[str, int] | None = None,
        warning_threshold: int | None = DEFAULT_WARNING_THRESHOLD,
        clock: Callable[[], datetime] = utc_now
    ) -> None:
        if daily_limit < 1:
            raise ValueError(f"daily_limit must be positive, got {daily_limit}")

        self._database = database
        self._limit = daily_limit
        self._costs = dict(DEFAULT_OPERATION_COSTS if costs is None else costs)
        self._warning_threshold = warning_threshold
        self._clock = clock

        self._lock = threading.Lock()
        self._day = self.today()
        self._reservations: dict[str, Reservation] = {}
        self._ids = itertools.count(1)

    @property
    def daily_limit(self) -> int:
        return self._limit

    def today(self) -> date:
        """Current UTC day according to the ledger's clock."""
        return self._clock().astimezone(timezone.utc).date()

    # =========================================================================
    # Cost Estimation
    # =========================================================================

    def estimate_cost(self, operation: str, item_count: int = 0) -> int:
        """
        Units a remote operation is expected to cost.

        Args:
            operation: Operation kind, e.g. "playlist.items".
            item_count: Items to be listed, for paged operations.

        Returns:
            Estimated units (at least 1).

        Examples:
            estimate_cost("playlist.items", 120)  # 3 pages -> 3
            estimate_cost("playlist.items", 0)    # 1 (one empty page)
            estimate_cost("search")               # 100
        """
        unit = self._costs.get(operation)
        if unit is None:
            logger.warning(f"Unknown quota operation '{operation}', assuming cost 1")
            return 1

        if operation in PAGED_OPERATIONS:
            return math.ceil(max(item_count, 1) / PAGE_SIZE) * unit
        return unit

    # =========================================================================
    # Reserve / Commit / Release
    # =========================================================================

    def _roll_over(self) -> date:
        """Start a new ledger day if the date changed. Caller holds _lock."""
        current = self.today()
        if current != self._day:
            dropped = len(self._reservations)
            log_sync_event(
                logger, "quota.day_rollover",
                level=logging.INFO if dropped else logging.DEBUG,
                previous_day=self._day, day=current, dropped_reservations=dropped
            )
            self._reservations.clear()
            self._day = current
        return current

    def _reserved_units(self) -> int:
        return sum(r.units for r in self._reservations.values())

    def reserve(self, units: int, operation: str = "playlist.items", day: date | None = None) -> Reservation:
        """
        Hold units against today's budget.

        Args:
            units: Units to hold. Must be positive.
            operation: Operation kind recorded with the eventual charge.
            day: Day the caller believes it is. Must be today if given.

        Returns:
            A Reservation handle for commit() or release().

        Raises:
            QuotaExceeded: If used + reserved + units would exceed the limit.
                           Nothing is recorded.
            StaleReservation: If day is not the current UTC day.
        """
        if units < 1:
            raise ValueError(f"units must be positive, got {units}")

        with self._lock:
            current = self._roll_over()
            if day is not None and day != current:
                raise StaleReservation(
                    f"Cannot reserve quota for {day}: current day is {current}",
                    details={"day": day.isoformat(), "current_day": current.isoformat()}
                )

            used = self._database.get_quota_used(current)
            reserved = self._reserved_units()
            available = self._limit - used - reserved

            if units > available:
                log_sync_event(
                    logger, "quota.exceeded", level=logging.WARNING,
                    requested=units, used=used, reserved=reserved, limit=self._limit
                )
                raise QuotaExceeded(
                    f"Daily quota exceeded: requested {units}, available {max(available, 0)}",
                    details={
                        "day": current.isoformat(),
                        "used": used,
                        "reserved": reserved,
                        "limit": self._limit,
                    },
                    requested=units,
                    available=max(available, 0)
                )

            handle = Reservation(
                reservation_id=f"r{next(self._ids)}",
                day=current,
                units=units,
                operation=operation,
            )
            self._reservations[handle.reservation_id] = handle

        log_sync_event(
            logger, "quota.reserved",
            reservation=handle.reservation_id, units=units, operation=operation
        )
        return handle

    def commit(self, handle: Reservation, units: int | None = None) -> int:
        """
        Turn a reservation into permanent usage.

        Args:
            handle: Reservation returned by reserve().
            units: Units actually incurred (0..handle.units). Defaults to
                   the full reservation. The remainder is released.

        Returns:
            Units committed.

        Raises:
            StaleReservation: If the reservation belongs to a previous day.
            QuotaError: If the reservation was already committed or released.
        """
        units = handle.units if units is None else units
        if units < 0 or units > handle.units:
            raise ValueError(
                f"Cannot commit {units} units against a reservation of {handle.units}"
            )

        with self._lock:
            current = self._roll_over()
            if handle.day != current:
                raise StaleReservation(
                    f"Reservation {handle.reservation_id} from {handle.day} is stale",
                    details={"reservation": handle.reservation_id, "day": handle.day.isoformat()}
                )

            if self._reservations.pop(handle.reservation_id, None) is None:
                raise QuotaError(
                    f"Reservation {handle.reservation_id} is not outstanding",
                    details={"reservation": handle.reservation_id}
                )

            used = None
            if units:
                previous = self._database.get_quota_used(current)
                used = self._database.add_quota_usage(
                    current, units, handle.operation, self._limit
                )
                self._check_warning(previous, used)

        log_sync_event(
            logger, "quota.committed",
            reservation=handle.reservation_id, units=units,
            released=handle.units - units, used=used
        )
        return units

    def release(self, handle: Reservation) -> None:
        """
        Cancel an unconsumed reservation.

        Releasing a reservation that is stale, or was already settled,
        is a no-op.
        """
        with self._lock:
            self._roll_over()
            released = self._reservations.pop(handle.reservation_id, None)

        if released is None:
            logger.debug(f"Reservation {handle.reservation_id} already settled or stale")
            return

        log_sync_event(
            logger, "quota.released",
            reservation=handle.reservation_id, units=handle.units
        )

    def _check_warning(self, previous: int, used: int) -> None:
        threshold = self._warning_threshold
        if threshold is None:
            return
        if previous < threshold <= used:
            logger.warning(
                f"Quota usage at {used}/{self._limit} units "
                f"({used / self._limit * 100:.1f}%), warning threshold {threshold}"
            )

    # =========================================================================
    # Usage Queries
    # =========================================================================

    def entry(self) -> QuotaLedgerEntry:
        """Today's ledger entry."""
        with self._lock:
            current = self._roll_over()
            return QuotaLedgerEntry(
                day=current,
                used=self._database.get_quota_used(current),
                limit=self._limit,
                reserved=self._reserved_units(),
            )

    def can_afford(self, units: int) -> bool:
        return self.entry().remaining >= units

    def usage_stats(self, days: int = 7) -> list[dict[str, Any]]:
        """
        Per-day usage for the last `days` days, oldest first.

        Days without any usage are included with zero values.

        Returns:
            List of dicts with: day, used, limit, percent_used,
            operations, by_operation.
        """
        last_day = self.today()
        first_day = last_day - timedelta(days=max(days, 1) - 1)
        history = self._database.get_quota_history(first_day, last_day)

        stats = []
        for offset in range((last_day - first_day).days + 1):
            day = first_day + timedelta(days=offset)
            record = history.get(day.isoformat(), {})
            used = record.get("used", 0)
            limit = record.get("limit", self._limit)
            stats.append({
                "day": day,
                "used": used,
                "limit": limit,
                "percent_used": round(used / limit * 100, 2) if limit else 0.0,
                "operations": record.get("operations", 0),
                "by_operation": record.get("by_operation", {}),
            })
        return stats

    def reset_day(self) -> None:
        """Forget today's committed usage and outstanding reservations."""
        with self._lock:
            current = self._roll_over()
            self._reservations.clear()
            self._database.reset_quota(current)
        logger.info(f"Quota usage for {current} reset")


class QuotaBudget:
    """
    Per-run quota meter.

    Wraps the reservation taken for a run's estimate. Each remote call is
    charged before it is made; when the held units run out, the extra is
    reserved incrementally so an underestimated run fails fast with
    QuotaExceeded instead of overshooting the day's limit.

    Example:
        budget = QuotaBudget(ledger, ledger.reserve(3))
        budget.charge(1)   # page 1
        budget.charge(1)   # page 2
        budget.settle()    # commits 2, releases 1
    """

    def __init__(self, ledger: QuotaLedger, reservation: Reservation) -> None:
        self._ledger = ledger
        self._reservations = [reservation]
        self._operation = reservation.operation
        self._held = reservation.units
        self._spent = 0
        self._settled = False

    @property
    def spent(self) -> int:
        return self._spent

    @property
    def held(self) -> int:
        return self._held

    def charge(self, units: int) -> None:
        """
        Consume units for a call about to be made.

        Raises:
            QuotaExceeded: If more units are needed and the day's budget
                           cannot cover them. Nothing is charged.
        """
        if self._settled:
            raise QuotaError("Cannot charge a settled budget")

        shortfall = self._spent + units - self._held
        if shortfall > 0:
            extra = self._ledger.reserve(shortfall, operation=self._operation)
            self._reservations.append(extra)
            self._held += shortfall

        self._spent += units

    def settle(self) -> int:
        """
        Commit what was charged and release the rest.

        Returns:
            Units committed.

        Raises:
            QuotaError: If a reservation can no longer be committed, either
                        StaleReservation because the day rolled over while
                        the run was in flight, or because reset_day() dropped
                        it. The other reservations are still settled before
                        the first error is raised.
        """
        if self._settled:
            return 0
        self._settled = True

        remaining = self._spent
        committed = 0
        failure: QuotaError | None = None

        for handle in self._reservations:
            take = min(remaining, handle.units)
            remaining -= take
            if take == 0:
                self._ledger.release(handle)
                continue
            try:
                committed += self._ledger.commit(handle, units=take)
            except QuotaError as e:
                failure = failure or e

        if failure is not None:
            raise failure
        return committed
