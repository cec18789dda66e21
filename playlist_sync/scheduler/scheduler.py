"""
Recurring sync scheduler for playlist-sync.

Keeps one APScheduler interval job per enabled schedule and turns each
sync outcome into schedule bookkeeping: last/next run times, the
consecutive-failure counter and auto-disable.

Retry Policy:
    A failed run does not trigger an early retry. The job stays armed and
    the next attempt happens on the next natural tick. After max_retries
    consecutive failures the schedule is disabled and its job removed;
    it stays disabled until someone enables it again.

Arming:
    Every mutation that changes a schedule's interval or enabled flag
    removes the target's job and, if the schedule is still enabled, adds
    a new one under the same job id, all while holding the scheduler lock.
    Two jobs for one target therefore never coexist.

Overlap:
    A tick for a target that is already syncing (scheduled or manual run)
    is dropped with a warning. APScheduler's max_instances=1 and
    coalesce=True additionally collapse piled-up ticks into one.

Usage:
    scheduler = Scheduler(engine, database, config.scheduler)
    scheduler.create_schedule(target_id, timedelta(hours=6))
    scheduler.start()
    ...
    scheduler.stop()
"""

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from playlist_sync.core.config import SchedulerConfig
from playlist_sync.core.database import Database
from playlist_sync.core.exceptions import InvalidScheduleConfig
from playlist_sync.core.logger import get_logger, log_sync_event
from playlist_sync.core.models import Schedule, SchedulerStatus, SyncOutcome, utc_now
from playlist_sync.scheduler.cron import cron_to_interval, validate_cron
from playlist_sync.sync.engine import SyncEngine

logger = get_logger(__name__)


JOB_ID_PREFIX = "sync-"

# Shortest interval a schedule may use
MIN_INTERVAL = timedelta(seconds=60)

# Seconds a tick may be late and still run
MISFIRE_GRACE_TIME = 30

# First-run delay for schedules whose next run is already due
OVERDUE_DELAY = timedelta(seconds=1)

DEFAULT_MAX_WORKERS = 4


def _job_id(target_id: int) -> str:
    return f"{JOB_ID_PREFIX}{target_id}"


def _default_scheduler_factory() -> BackgroundScheduler:
    return BackgroundScheduler(
        executors={"default": ThreadPoolExecutor(DEFAULT_MAX_WORKERS)},
        timezone=timezone.utc,
    )


class Scheduler:
    """
    Drives SyncEngine runs on each schedule's interval.

    Attributes:
        config: Scheduler defaults (retries, grace period, cron fallback).
    """

    def __init__(
        self,
        engine: SyncEngine,
        database: Database,
        config: SchedulerConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
        scheduler_factory: Callable[[], BackgroundScheduler] = _default_scheduler_factory
    ) -> None:
        self._engine = engine
        self._database = database
        self.config = config or SchedulerConfig()
        self._clock = clock
        self._scheduler_factory = scheduler_factory

        self._lock = threading.RLock()
        self._scheduler: BackgroundScheduler | None = None
        self._running = False
        self._started_at: float | None = None
        self._last_error: str | None = None

        self._running_jobs: set[int] = set()
        self._running_cond = threading.Condition()

    @property
    def running(self) -> bool:
        return self._running

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """
        Start the timer loop and arm every enabled schedule.

        Calling start() on a running scheduler logs a warning and does nothing.
        """
        with self._lock:
            if self._running:
                logger.warning("Scheduler is already running")
                return

            self._scheduler = self._scheduler_factory()
            self._scheduler.start()
            self._running = True
            self._started_at = time.monotonic()

            schedules = self._database.find_enabled_schedules()
            for schedule in schedules:
                self._arm(schedule)

        log_sync_event(logger, "scheduler.started", level=logging.INFO, schedules=len(schedules))

    def stop(self) -> list[int]:
        """
        Stop the timer loop and wait for in-flight runs.

        No new runs start after stop() begins. Runs already in progress
        finish naturally; stop() waits up to config.stop_grace_period
        seconds for them.

        Returns:
            Target ids of runs still in flight when the grace period ended.
        """
        with self._lock:
            if not self._running:
                logger.debug("Scheduler is not running")
                return []

            self._running = False
            self._scheduler.remove_all_jobs()
            self._scheduler.shutdown(wait=False)

        deadline = time.monotonic() + self.config.stop_grace_period
        with self._running_cond:
            while self._running_jobs:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._running_cond.wait(timeout=min(remaining, 1.0))
            abandoned = sorted(self._running_jobs)

        if abandoned:
            logger.warning(
                f"Scheduler stopped with {len(abandoned)} sync(s) still running: "
                f"{', '.join(str(t) for t in abandoned)}"
            )

        log_sync_event(logger, "scheduler.stopped", level=logging.INFO, abandoned=len(abandoned))
        return abandoned

    def status(self) -> SchedulerStatus:
        with self._running_cond:
            running_jobs = tuple(sorted(self._running_jobs))

        uptime = 0.0
        if self._running and self._started_at is not None:
            uptime = time.monotonic() - self._started_at

        return SchedulerStatus(
            running=self._running,
            active_schedules=len(self._database.find_enabled_schedules()),
            running_jobs=running_jobs,
            uptime=uptime,
            last_error=self._last_error,
        )

    # =========================================================================
    # Timer Management
    # =========================================================================

    def _arm(self, schedule: Schedule) -> None:
        """Add (or replace) the target's job. Caller holds _lock."""
        if not self._running or not schedule.enabled:
            return

        # Overdue schedules run once right away; an IntervalTrigger whose
        # start_date is already past would silently skip to the next tick.
        now = self._clock()
        start_date = schedule.next_run
        if start_date is None or start_date <= now:
            start_date = now + OVERDUE_DELAY

        self._scheduler.add_job(
            self.fire,
            trigger=IntervalTrigger(
                seconds=int(schedule.interval.total_seconds()),
                start_date=start_date,
                timezone=timezone.utc,
            ),
            args=[schedule.target_id],
            id=_job_id(schedule.target_id),
            name=f"sync target {schedule.target_id}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=MISFIRE_GRACE_TIME,
        )
        log_sync_event(
            logger, "schedule.armed",
            target_id=schedule.target_id,
            interval=int(schedule.interval.total_seconds()),
            first_run=start_date.isoformat()
        )

    def _disarm(self, target_id: int) -> None:
        """Remove the target's job if one is armed. Caller holds _lock."""
        if not self._running:
            return
        try:
            self._scheduler.remove_job(_job_id(target_id))
        except JobLookupError:
            return
        log_sync_event(logger, "schedule.disarmed", target_id=target_id)

    def is_armed(self, target_id: int) -> bool:
        with self._lock:
            if not self._running:
                return False
            return self._scheduler.get_job(_job_id(target_id)) is not None

    def _next_run(self, schedule: Schedule, now: datetime) -> datetime | None:
        """Next tick of an enabled schedule: the armed job's, else now + interval."""
        if not schedule.enabled:
            return None
        if self._running:
            job = self._scheduler.get_job(_job_id(schedule.target_id))
            if job is not None and job.next_run_time is not None:
                return job.next_run_time
        return now + schedule.interval

    # =========================================================================
    # Timer Callback
    # =========================================================================

    def fire(self, target_id: int) -> SyncOutcome | None:
        """
        Run one scheduled sync for a target.

        Invoked by APScheduler worker threads. Never raises: unexpected
        errors are logged and kept as the scheduler's last_error.

        Returns:
            The outcome, or None if the tick was dropped.
        """
        with self._running_cond:
            if not self._running:
                logger.debug(f"Scheduler stopped, dropping tick for target {target_id}")
                return None
            if target_id in self._running_jobs or self._engine.is_running(target_id):
                logger.warning(f"Sync already running for target {target_id}, skipping scheduled run")
                return None
            self._running_jobs.add(target_id)

        try:
            schedule = self._database.get_schedule(target_id)
            if schedule is None or not schedule.enabled:
                logger.debug(f"Schedule for target {target_id} is gone or disabled, skipping")
                return None

            outcome = self._engine.run(target_id)
            if outcome is None:
                return None

            self._apply_outcome(target_id, outcome)
            return outcome

        except Exception as e:
            self._last_error = str(e)
            logger.exception(f"Scheduled sync for target {target_id} failed unexpectedly")
            return None

        finally:
            with self._running_cond:
                self._running_jobs.discard(target_id)
                self._running_cond.notify_all()

    def _apply_outcome(self, target_id: int, outcome: SyncOutcome) -> None:
        """Update retry bookkeeping after a run."""
        with self._lock:
            schedule = self._database.get_schedule(target_id)
            if schedule is None:
                return

            now = self._clock()
            schedule.last_run = now

            if outcome.succeeded:
                schedule.retry_count = 0
                schedule.next_run = self._next_run(schedule, now)
                self._database.save_schedule(schedule)
                return

            schedule.retry_count += 1
            self._last_error = outcome.error

            if schedule.retry_count >= schedule.max_retries and schedule.enabled:
                schedule.enabled = False
                schedule.next_run = None
                schedule.disabled_reason = (
                    f"Disabled after {schedule.retry_count} consecutive failures: {outcome.error}"
                )
                self._database.save_schedule(schedule)
                self._disarm(target_id)
                log_sync_event(
                    logger, "schedule.auto_disabled",
                    level=logging.WARNING,
                    target_id=target_id,
                    failures=schedule.retry_count,
                    error=outcome.error
                )
                return

            schedule.next_run = self._next_run(schedule, now)
            self._database.save_schedule(schedule)
            logger.info(
                f"Sync for target {target_id} failed "
                f"({schedule.retry_count}/{schedule.max_retries}), next attempt at next interval"
            )

    # =========================================================================
    # Schedule CRUD
    # =========================================================================

    def _validate(self, interval: timedelta | None, max_retries: int | None) -> None:
        if interval is not None and interval < MIN_INTERVAL:
            raise InvalidScheduleConfig(
                f"Interval must be at least {int(MIN_INTERVAL.total_seconds())} seconds",
                details={"interval_seconds": interval.total_seconds()}
            )
        if max_retries is not None and max_retries < 1:
            raise InvalidScheduleConfig(
                "max_retries must be at least 1",
                details={"max_retries": max_retries}
            )

    def create_schedule(
        self,
        target_id: int,
        interval: timedelta,
        enabled: bool = True,
        max_retries: int | None = None
    ) -> Schedule:
        """
        Create a schedule for a target and arm it if the scheduler runs.

        Raises:
            InvalidScheduleConfig: If the interval or retry budget is invalid,
                                   the target does not exist, or it already
                                   has a schedule.
        """
        max_retries = self.config.max_retries if max_retries is None else max_retries
        self._validate(interval, max_retries)

        if self._database.get_target(target_id) is None:
            raise InvalidScheduleConfig(
                f"Target not found: {target_id}",
                details={"target_id": target_id}
            )

        with self._lock:
            if self._database.get_schedule(target_id) is not None:
                raise InvalidScheduleConfig(
                    f"Schedule already exists for target {target_id}",
                    details={"target_id": target_id}
                )

            now = self._clock()
            schedule = self._database.create_schedule(Schedule(
                target_id=target_id,
                interval=interval,
                enabled=enabled,
                next_run=now + interval if enabled else None,
                max_retries=max_retries,
            ))
            self._arm(schedule)

        log_sync_event(
            logger, "schedule.created", level=logging.INFO,
            target_id=target_id, interval=int(interval.total_seconds()), enabled=enabled
        )
        return schedule

    def create_schedule_from_cron(
        self,
        target_id: int,
        expression: str,
        enabled: bool = True,
        max_retries: int | None = None
    ) -> Schedule:
        """
        Create a schedule from a cron expression.

        The expression is validated, then mapped onto an interval (see
        cron_to_interval); shapes without a fixed cadence fall back to
        config.cron_fallback_interval.

        Raises:
            InvalidScheduleConfig: If the expression does not parse.
        """
        expression = validate_cron(expression)
        interval = cron_to_interval(expression, self.config.cron_fallback_interval)
        return self.create_schedule(target_id, interval, enabled=enabled, max_retries=max_retries)

    def update_schedule(
        self,
        target_id: int,
        interval: timedelta | None = None,
        enabled: bool | None = None,
        max_retries: int | None = None
    ) -> Schedule:
        """
        Change a schedule and re-arm its job as needed.

        Enabling a schedule clears its failure counter and disabled reason.

        Raises:
            InvalidScheduleConfig: If no schedule exists or a value is invalid.
        """
        self._validate(interval, max_retries)

        with self._lock:
            schedule = self._database.get_schedule(target_id)
            if schedule is None:
                raise InvalidScheduleConfig(
                    f"No schedule for target {target_id}",
                    details={"target_id": target_id}
                )

            now = self._clock()
            rearm = False

            if interval is not None and interval != schedule.interval:
                schedule.interval = interval
                if schedule.enabled:
                    schedule.next_run = now + interval
                rearm = True

            if enabled is not None and enabled != schedule.enabled:
                schedule.enabled = enabled
                if enabled:
                    schedule.retry_count = 0
                    schedule.disabled_reason = None
                    schedule.next_run = now + schedule.interval
                else:
                    schedule.next_run = None
                rearm = True

            if max_retries is not None:
                schedule.max_retries = max_retries

            schedule = self._database.save_schedule(schedule)

            if rearm:
                self._disarm(target_id)
                self._arm(schedule)

        log_sync_event(
            logger, "schedule.updated", level=logging.INFO,
            target_id=target_id,
            interval=int(schedule.interval.total_seconds()),
            enabled=schedule.enabled,
            max_retries=schedule.max_retries
        )
        return schedule

    def enable_schedule(self, target_id: int) -> Schedule:
        return self.update_schedule(target_id, enabled=True)

    def disable_schedule(self, target_id: int) -> Schedule:
        return self.update_schedule(target_id, enabled=False)

    def delete_schedule(self, target_id: int) -> bool:
        """Remove a schedule and its job. False if there was none."""
        with self._lock:
            self._disarm(target_id)
            deleted = self._database.delete_schedule(target_id)

        if deleted:
            log_sync_event(logger, "schedule.deleted", level=logging.INFO, target_id=target_id)
        return deleted

    def get_schedule(self, target_id: int) -> Schedule | None:
        return self._database.get_schedule(target_id)

    def list_schedules(self, enabled_only: bool = False) -> list[Schedule]:
        return self._database.list_schedules(enabled_only=enabled_only)
