"""
Tests for produce_batch.services.scheduler -- tick evaluation, catch-up,
failure isolation and the start/stop lifecycle.

The clock is deterministic; ``tick()`` and ``catch_up()`` are driven
directly instead of waiting on the polling thread.
"""

from dataclasses import replace
from datetime import date

import pytest

from produce_batch.config import SchedulerSettings
from produce_batch.domain.schedule import AUTO_CONFIRM_FIRST_BATCH, CREATE_NEXT_DAY_BATCHES
from produce_batch.domain.types import BatchStatus
from produce_batch.orchestrator import BatchingOrchestrator
from tests.conftest import line, local_instant


@pytest.fixture
def scheduler(orchestrator):
    sched = orchestrator.create_scheduler()
    yield sched
    sched.stop(timeout=5)


def _disabled(orchestrator, session_factory, config, clock, notifier, archive):
    return BatchingOrchestrator(
        session_factory=session_factory,
        config=replace(config, scheduler=SchedulerSettings(enabled=False)),
        clock=clock,
        notifier=notifier,
        archive=archive,
    ).create_scheduler()


class TestTriggers:
    def test_default_triggers(self, orchestrator):
        triggers = {t.job_name: t.label for t in orchestrator.triggers()}
        assert triggers == {
            AUTO_CONFIRM_FIRST_BATCH: "08:00",
            CREATE_NEXT_DAY_BATCHES: "12:01",
        }


# =============================================================================
# tick
# =============================================================================


class TestTick:
    def test_nothing_due(self, scheduler, clock):
        clock.set_time(local_instant(7, 0))
        assert scheduler.tick() == []

    def test_auto_confirm_fires_at_first_cutoff(self, orchestrator, scheduler, clock):
        order = orchestrator.place_order("Hotel Sunrise", [line()])
        clock.set_time(local_instant(7, 59))
        clock.advance(45)
        assert scheduler.tick() == []

        clock.advance(30)
        outcomes = scheduler.tick()

        assert [o.job_name for o in outcomes] == [AUTO_CONFIRM_FIRST_BATCH]
        assert outcomes[0].message == "Batch confirmed"
        assert orchestrator.get_batch(order.batch_id).status is BatchStatus.CONFIRMED

    def test_fires_once_per_day(self, scheduler, clock):
        clock.set_time(local_instant(8, 0))
        assert len(scheduler.tick()) == 1
        clock.advance(30)
        assert scheduler.tick() == []

    def test_next_day_batches_fire_after_second_cutoff(self, orchestrator, scheduler, clock):
        clock.set_time(local_instant(12, 1))
        outcomes = scheduler.tick()

        assert [o.job_name for o in outcomes] == [CREATE_NEXT_DAY_BATCHES]
        assert len(orchestrator.batches_for_date(date(2026, 1, 16))) == 2

    def test_failing_trigger_does_not_block_the_other(
        self, orchestrator, scheduler, clock, notifier, monkeypatch, captured_logs,
    ):
        def broken():
            raise RuntimeError("confirm exploded")

        monkeypatch.setattr(orchestrator.jobs, "auto_confirm_first_batch", broken)
        clock.set_time(local_instant(7, 59))
        scheduler.tick()

        clock.set_time(local_instant(12, 2))
        outcomes = scheduler.tick()

        assert [o.job_name for o in outcomes] == [CREATE_NEXT_DAY_BATCHES]
        assert [(n[0], str(n[1])) for n in notifier.notifications] == [
            ("scheduled_job_failed", "confirm exploded"),
        ]
        failed = [r for r in captured_logs() if r["message"] == "scheduled_job_failed"]
        assert failed[0]["scheduled_job"] == AUTO_CONFIRM_FIRST_BATCH


# =============================================================================
# catch_up
# =============================================================================


class TestCatchUp:
    def test_missed_jobs_run_once(self, orchestrator, scheduler, clock):
        order = orchestrator.place_order("A", [line()])
        clock.set_time(local_instant(13, 0))

        outcomes = scheduler.catch_up()

        assert {o.job_name for o in outcomes} == {
            AUTO_CONFIRM_FIRST_BATCH,
            CREATE_NEXT_DAY_BATCHES,
        }
        assert orchestrator.get_batch(order.batch_id).status is BatchStatus.CONFIRMED
        assert scheduler.catch_up() == []

    def test_nothing_missed_before_fire_times(self, scheduler, clock):
        clock.set_time(local_instant(7, 0))
        assert scheduler.catch_up() == []

    def test_job_run_today_is_not_repeated(self, orchestrator, scheduler, clock):
        clock.set_time(local_instant(8, 0))
        orchestrator.jobs.auto_confirm_first_batch()
        clock.set_time(local_instant(9, 0))

        assert scheduler.catch_up() == []

    def test_yesterdays_run_does_not_count(self, orchestrator, scheduler, clock):
        clock.set_time(local_instant(8, 0, day=date(2026, 1, 14)))
        orchestrator.jobs.auto_confirm_first_batch()
        clock.set_time(local_instant(9, 0))

        outcomes = scheduler.catch_up()

        assert [o.job_name for o in outcomes] == [AUTO_CONFIRM_FIRST_BATCH]

    def test_catch_up_then_tick_does_not_double_fire(self, scheduler, clock):
        clock.set_time(local_instant(8, 0))
        assert len(scheduler.catch_up()) == 1
        clock.advance(30)
        assert scheduler.tick() == []


# =============================================================================
# start / stop
# =============================================================================


class TestLifecycle:
    def test_disabled_never_starts(
        self, orchestrator, session_factory, config, clock, notifier, archive, captured_logs,
    ):
        clock.set_time(local_instant(13, 0))
        sched = _disabled(orchestrator, session_factory, config, clock, notifier, archive)

        sched.start()

        assert sched.enabled is False
        assert not sched.is_running
        assert orchestrator.jobs.recent_runs() == []
        assert any(r["message"] == "scheduler_disabled" for r in captured_logs())

    def test_start_and_stop(self, scheduler, clock):
        clock.set_time(local_instant(7, 0))
        scheduler.start()
        assert scheduler.is_running

        scheduler.stop(timeout=5)
        assert not scheduler.is_running

    def test_start_runs_catch_up(self, orchestrator, scheduler, clock):
        clock.set_time(local_instant(13, 0))
        scheduler.start()
        scheduler.stop(timeout=5)

        names = {r.job_name for r in orchestrator.jobs.recent_runs()}
        assert names == {AUTO_CONFIRM_FIRST_BATCH, CREATE_NEXT_DAY_BATCHES}

    def test_start_twice_keeps_one_thread(self, scheduler, clock):
        clock.set_time(local_instant(7, 0))
        scheduler.start()
        first = scheduler._thread
        scheduler.start()
        assert scheduler._thread is first
