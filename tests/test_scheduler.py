# tests/test_scheduler.py
"""Test the recurring sync scheduler"""

import threading
import time
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from apscheduler.jobstores.base import JobLookupError

from playlist_sync.core.config import SchedulerConfig
from playlist_sync.core.exceptions import InvalidScheduleConfig, RemoteFetchError
from playlist_sync.core.models import SyncOutcome, SyncStatus
from playlist_sync.scheduler.scheduler import OVERDUE_DELAY, Scheduler


class FakeJobScheduler:
    """Stands in for BackgroundScheduler; jobs never fire on their own"""

    def __init__(self) -> None:
        self.jobs: dict[str, SimpleNamespace] = {}
        self.started = False
        self.shutdown_calls = 0

    def start(self) -> None:
        self.started = True

    def shutdown(self, wait: bool = True) -> None:
        self.started = False
        self.shutdown_calls += 1

    def add_job(self, func, trigger, args, id, replace_existing=False, **kwargs):
        if id in self.jobs and not replace_existing:
            raise ValueError(f"duplicate job {id}")
        job = SimpleNamespace(
            func=func, trigger=trigger, args=args, id=id,
            next_run_time=trigger.start_date, kwargs=kwargs
        )
        self.jobs[id] = job
        return job

    def remove_job(self, job_id: str) -> None:
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]

    def get_job(self, job_id: str):
        return self.jobs.get(job_id)

    def remove_all_jobs(self) -> None:
        self.jobs.clear()


@pytest.fixture
def job_schedulers():
    return []


@pytest.fixture
def make_scheduler(engine, database, clock, job_schedulers):
    """Factory for schedulers backed by FakeJobScheduler"""
    def factory(config=None, sync_engine=None) -> Scheduler:
        def scheduler_factory():
            fake = FakeJobScheduler()
            job_schedulers.append(fake)
            return fake

        return Scheduler(
            sync_engine or engine,
            database,
            config or SchedulerConfig(),
            clock=clock,
            scheduler_factory=scheduler_factory,
        )
    return factory


@pytest.fixture
def scheduler(make_scheduler):
    return make_scheduler()


def jobs(job_schedulers):
    return job_schedulers[-1].jobs


class TestLifecycle:
    """Test start, stop and status"""

    def test_start_arms_enabled_schedules(self, scheduler, database, source, target, job_schedulers):
        """Test only enabled schedules get a job"""
        source.playlists["PL2"] = []
        other = database.add_target("PL2")
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.create_schedule(other.target_id, timedelta(hours=1), enabled=False)

        scheduler.start()

        assert scheduler.running
        assert set(jobs(job_schedulers)) == {f"sync-{target.target_id}"}
        assert scheduler.is_armed(target.target_id)
        assert not scheduler.is_armed(other.target_id)
        assert scheduler.status().active_schedules == 1

    def test_start_is_idempotent(self, scheduler, job_schedulers):
        """Test a second start does nothing"""
        scheduler.start()
        scheduler.start()
        assert len(job_schedulers) == 1

    def test_stop_removes_jobs(self, scheduler, target, job_schedulers):
        """Test stop shuts the timer layer down"""
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.start()
        fake = job_schedulers[-1]

        assert scheduler.stop() == []

        assert not scheduler.running
        assert fake.jobs == {}
        assert fake.shutdown_calls == 1
        assert scheduler.stop() == []

    def test_late_tick_after_stop_is_dropped(self, scheduler, database, source, target,
                                             job_schedulers):
        """Test a tick handed to a worker just before stop() does not sync"""
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.start()
        job = jobs(job_schedulers)[f"sync-{target.target_id}"]

        assert scheduler.stop() == []

        assert job.func(*job.args) is None
        assert source.calls == []
        assert database.get_target(target.target_id).item_count == 0
        assert scheduler.get_schedule(target.target_id).last_run is None

    def test_restart(self, scheduler, target, job_schedulers):
        """Test the scheduler can be started again after stop"""
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.start()
        scheduler.stop()
        scheduler.start()

        assert len(job_schedulers) == 2
        assert scheduler.is_armed(target.target_id)

    def test_overdue_schedule_runs_soon(self, scheduler, database, clock, target, job_schedulers):
        """Test a schedule due while stopped fires right after start"""
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        clock.advance(hours=3)

        scheduler.start()

        job = jobs(job_schedulers)[f"sync-{target.target_id}"]
        assert job.next_run_time == clock.now + OVERDUE_DELAY

    def test_future_schedule_keeps_next_run(self, scheduler, clock, target, job_schedulers):
        """Test a pending next_run is honored"""
        created = scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.start()

        job = jobs(job_schedulers)[f"sync-{target.target_id}"]
        assert job.next_run_time == created.next_run
        assert job.kwargs["max_instances"] == 1
        assert job.kwargs["coalesce"] is True

    def test_stop_waits_for_running_syncs(self, make_scheduler, target):
        """Test the grace period for in-flight runs"""
        entered = threading.Event()
        release = threading.Event()

        def slow_run(target_id):
            entered.set()
            release.wait(timeout=5)
            return SyncOutcome(target_id, SyncStatus.COMPLETED)

        engine = Mock()
        engine.is_running.return_value = False
        engine.run.side_effect = slow_run
        scheduler = make_scheduler(SchedulerConfig(stop_grace_period=0.2), sync_engine=engine)
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.start()

        worker = threading.Thread(target=scheduler.fire, args=[target.target_id])
        worker.start()
        assert entered.wait(timeout=5)
        assert scheduler.status().running_jobs == (target.target_id,)

        abandoned = scheduler.stop()
        release.set()
        worker.join(timeout=5)

        assert abandoned == [target.target_id]


class TestFire:
    """Test the timer callback"""

    def test_success_updates_schedule(self, scheduler, database, clock, target):
        """Test last_run, next_run and the item sync"""
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.start()

        outcome = scheduler.fire(target.target_id)

        assert outcome.succeeded
        stored = scheduler.get_schedule(target.target_id)
        assert stored.retry_count == 0
        assert stored.last_run == clock.now
        assert stored.next_run is not None
        assert database.get_target(target.target_id).item_count == 3

    def test_failures_disable_after_max_retries(self, scheduler, source, target):
        """Test three consecutive failures disable the schedule"""
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.start()
        for _ in range(3):
            source.fail("PLtest", RemoteFetchError("Playlist is private", http_status=403))

        scheduler.fire(target.target_id)
        scheduler.fire(target.target_id)
        after_two = scheduler.get_schedule(target.target_id)
        assert after_two.enabled
        assert after_two.retry_count == 2
        assert scheduler.is_armed(target.target_id)

        scheduler.fire(target.target_id)
        disabled = scheduler.get_schedule(target.target_id)
        assert not disabled.enabled
        assert disabled.retry_count == 3
        assert disabled.next_run is None
        assert disabled.disabled_reason == (
            "Disabled after 3 consecutive failures: Playlist is private"
        )
        assert not scheduler.is_armed(target.target_id)
        assert scheduler.status().last_error == "Playlist is private"

    def test_success_resets_retry_count(self, scheduler, source, target):
        """Test a COMPLETED run clears earlier failures"""
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.start()
        source.fail("PLtest", RemoteFetchError("HTTP 500", http_status=500))

        scheduler.fire(target.target_id)
        assert scheduler.get_schedule(target.target_id).retry_count == 1

        scheduler.fire(target.target_id)
        assert scheduler.get_schedule(target.target_id).retry_count == 0

    def test_disabled_schedule_does_not_run(self, scheduler, source, target):
        """Test a stale tick for a disabled schedule is ignored"""
        scheduler.create_schedule(target.target_id, timedelta(hours=1), enabled=False)
        scheduler.start()

        assert scheduler.fire(target.target_id) is None
        assert source.calls == []

    def test_tick_dropped_while_target_syncs(self, scheduler, engine, source, target):
        """Test overlap with a manual run"""
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.start()
        engine.locks.try_acquire(target.target_id)
        try:
            assert scheduler.fire(target.target_id) is None
        finally:
            engine.locks.release(target.target_id)

        assert source.calls == []
        assert scheduler.get_schedule(target.target_id).retry_count == 0

    def test_engine_defect_is_contained(self, make_scheduler, target):
        """Test an exception escaping the engine is logged, not raised"""
        engine = Mock()
        engine.is_running.return_value = False
        engine.run.side_effect = RuntimeError("engine bug")
        scheduler = make_scheduler(sync_engine=engine)
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.start()

        assert scheduler.fire(target.target_id) is None
        assert scheduler.status().last_error == "engine bug"
        assert scheduler.status().running_jobs == ()


class TestScheduleCrud:
    """Test schedule management and re-arming"""

    def test_create_validation(self, scheduler, target):
        """Test invalid schedules are rejected"""
        with pytest.raises(InvalidScheduleConfig):
            scheduler.create_schedule(target.target_id, timedelta(seconds=30))
        with pytest.raises(InvalidScheduleConfig):
            scheduler.create_schedule(target.target_id, timedelta(hours=1), max_retries=0)
        with pytest.raises(InvalidScheduleConfig):
            scheduler.create_schedule(999, timedelta(hours=1))

        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        with pytest.raises(InvalidScheduleConfig):
            scheduler.create_schedule(target.target_id, timedelta(hours=2))

    def test_create_defaults(self, scheduler, clock, target):
        """Test next_run and max_retries defaults"""
        created = scheduler.create_schedule(target.target_id, timedelta(hours=2))

        assert created.enabled
        assert created.next_run == clock.now + timedelta(hours=2)
        assert created.max_retries == 3
        assert not scheduler.is_armed(target.target_id)

    def test_create_from_cron(self, scheduler, target):
        """Test a cron expression becomes an interval"""
        created = scheduler.create_schedule_from_cron(target.target_id, "*/15 * * * *")
        assert created.interval == timedelta(minutes=15)

    def test_create_from_unmapped_cron_uses_fallback(self, make_scheduler, target):
        """Test the configured fallback interval"""
        scheduler = make_scheduler(SchedulerConfig(cron_fallback_interval=timedelta(hours=12)))
        created = scheduler.create_schedule_from_cron(target.target_id, "0 9 1 * *")
        assert created.interval == timedelta(hours=12)

    def test_create_from_invalid_cron(self, scheduler, target):
        """Test unparseable cron is rejected before anything is stored"""
        with pytest.raises(InvalidScheduleConfig):
            scheduler.create_schedule_from_cron(target.target_id, "61 * * * *")
        assert scheduler.get_schedule(target.target_id) is None

    def test_update_interval_rearms(self, scheduler, clock, target, job_schedulers):
        """Test one job per target after an interval change"""
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.start()

        updated = scheduler.update_schedule(target.target_id, interval=timedelta(minutes=30))

        assert updated.interval == timedelta(minutes=30)
        assert updated.next_run == clock.now + timedelta(minutes=30)
        job_ids = list(jobs(job_schedulers))
        assert job_ids == [f"sync-{target.target_id}"]
        assert jobs(job_schedulers)[job_ids[0]].trigger.interval == timedelta(minutes=30)

    def test_update_max_retries_only(self, scheduler, target):
        """Test updating the failure budget alone"""
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        updated = scheduler.update_schedule(target.target_id, max_retries=5)
        assert updated.max_retries == 5
        assert updated.interval == timedelta(hours=1)

    def test_update_missing_schedule(self, scheduler, target):
        """Test updating a target without a schedule"""
        with pytest.raises(InvalidScheduleConfig):
            scheduler.update_schedule(target.target_id, interval=timedelta(hours=1))

    def test_disable_and_enable(self, scheduler, source, target):
        """Test disable disarms; enable re-arms and clears failures"""
        scheduler.create_schedule(target.target_id, timedelta(hours=1), max_retries=1)
        scheduler.start()
        source.fail("PLtest", RemoteFetchError("gone", http_status=404))
        scheduler.fire(target.target_id)

        auto_disabled = scheduler.get_schedule(target.target_id)
        assert not auto_disabled.enabled
        assert auto_disabled.disabled_reason is not None

        enabled = scheduler.enable_schedule(target.target_id)
        assert enabled.enabled
        assert enabled.retry_count == 0
        assert enabled.disabled_reason is None
        assert scheduler.is_armed(target.target_id)

        disabled = scheduler.disable_schedule(target.target_id)
        assert not disabled.enabled
        assert disabled.next_run is None
        assert not scheduler.is_armed(target.target_id)

    def test_delete(self, scheduler, target):
        """Test delete removes row and job"""
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.start()

        assert scheduler.delete_schedule(target.target_id)
        assert scheduler.get_schedule(target.target_id) is None
        assert not scheduler.is_armed(target.target_id)
        assert not scheduler.delete_schedule(target.target_id)

    def test_list_schedules(self, scheduler, database, source, target):
        """Test enabled_only filtering"""
        other = database.add_target("PL2")
        scheduler.create_schedule(target.target_id, timedelta(hours=1))
        scheduler.create_schedule(other.target_id, timedelta(hours=1), enabled=False)

        assert len(scheduler.list_schedules()) == 2
        assert [s.target_id for s in scheduler.list_schedules(enabled_only=True)] == [
            target.target_id
        ]


class TestWithApscheduler:
    """Test against a real BackgroundScheduler"""

    def test_overdue_schedule_fires(self, engine, database, target):
        """Test the armed job actually runs the sync"""
        scheduler = Scheduler(engine, database, SchedulerConfig(stop_grace_period=5))
        schedule = scheduler.create_schedule(target.target_id, timedelta(hours=1))
        schedule.next_run = None
        database.save_schedule(schedule)

        scheduler.start()
        try:
            assert scheduler.is_armed(target.target_id)
            for _ in range(50):
                if database.get_target(target.target_id).sync_status == SyncStatus.COMPLETED:
                    break
                time.sleep(0.1)
        finally:
            scheduler.stop()

        assert database.get_target(target.target_id).sync_status == SyncStatus.COMPLETED
        assert scheduler.get_schedule(target.target_id).last_run is not None
