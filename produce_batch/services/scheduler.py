"""
BatchScheduler -- in-process polling scheduler for the daily batch jobs.

Contract:
    Polls on a configurable interval.  Each tick fires every trigger whose
    business-local fire time passed since the previous tick (pure
    evaluation in ``produce_batch.domain.schedule``) and runs its job via
    ``BatchJobs``.

    - ``tick()`` evaluates and fires due triggers (public for testing).
    - ``catch_up()`` runs once each trigger whose fire time passed today
      without a job-log entry since local midnight.
    - ``start()`` runs catch-up, then polls in a background thread.
      A disabled scheduler logs and returns without starting anything.
    - ``stop()`` signals the thread and waits for it.

    Each trigger run is isolated: an exception is logged, sent to the
    notifier and recorded in the job log; the other trigger still fires and
    the polling thread keeps running.

Architecture: produce_batch/services.  The handle is owned by the
    composition root; nothing here lives in module-level globals.

Non-goals:
    - NOT a distributed scheduler (no leader election).  Re-running a job is
      harmless: confirmation is guarded and batch creation is idempotent.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Sequence

from produce_kernel.domain.clock import Clock, SystemClock
from produce_kernel.logging_config import LogContext, get_logger

from produce_batch.domain.schedule import DailyTrigger, is_missed, should_fire
from produce_batch.domain.time_window import TimeWindowResolver
from produce_batch.domain.types import JobOutcome
from produce_batch.services.batch_jobs import BatchJobs
from produce_batch.services.notifier import Notifier, NullNotifier

logger = get_logger("batch.scheduler")


class BatchScheduler:
    def __init__(
        self,
        jobs: BatchJobs,
        triggers: Sequence[DailyTrigger],
        resolver: TimeWindowResolver,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        tick_interval_seconds: int = 30,
        enabled: bool = True,
    ):
        self._jobs = jobs
        self._triggers = tuple(triggers)
        self._resolver = resolver
        self._clock = clock or SystemClock()
        self._notifier = notifier or NullNotifier()
        self._tick_interval = tick_interval_seconds
        self._enabled = enabled
        self._last_tick: datetime | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def triggers(self) -> tuple[DailyTrigger, ...]:
        return self._triggers

    def tick(self) -> list[JobOutcome]:
        """Fire every trigger that came due since the previous tick.

        The first tick looks back one tick interval.
        """
        now = self._clock.now_utc()
        previous = self._last_tick or now - timedelta(seconds=self._tick_interval)
        self._last_tick = now

        outcomes = []
        for trigger in self._triggers:
            if self._stop_event.is_set():
                break
            if not should_fire(trigger, previous, now, self._resolver):
                continue
            outcome = self._fire(trigger, reason="schedule")
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    def catch_up(self) -> list[JobOutcome]:
        """Run each trigger missed today, once."""
        now = self._clock.now_utc()
        outcomes = []
        for trigger in self._triggers:
            try:
                last_run = self._jobs.last_run_at(trigger.job_name)
            except Exception as exc:
                logger.exception(
                    "catch_up_check_failed",
                    extra={"scheduled_job": trigger.job_name},
                )
                self._alert(trigger, exc)
                continue

            if not is_missed(trigger, now, last_run, self._resolver):
                logger.debug(
                    "catch_up_not_needed",
                    extra={"scheduled_job": trigger.job_name},
                )
                continue

            logger.info(
                "catch_up_running",
                extra={"scheduled_job": trigger.job_name, "fire_time": trigger.label},
            )
            outcome = self._fire(trigger, reason="catch_up")
            if outcome is not None:
                outcomes.append(outcome)

        self._last_tick = now
        return outcomes

    def start(self) -> None:
        """Catch up on missed jobs, then poll in a background thread."""
        if not self._enabled:
            logger.info("scheduler_disabled")
            return
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self.catch_up()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="batch-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={
                "tick_interval": self._tick_interval,
                "triggers": [f"{t.job_name}@{t.label}" for t in self._triggers],
            },
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the polling thread to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Background polling loop.  Exits when stop_event is set."""
        while not self._stop_event.wait(timeout=self._tick_interval):
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_failed")

    def _fire(self, trigger: DailyTrigger, reason: str) -> JobOutcome | None:
        with LogContext.bind(job_name=trigger.job_name):
            try:
                outcome = self._jobs.run(trigger.job_name)
            except Exception as exc:
                logger.exception(
                    "scheduled_job_failed",
                    extra={"scheduled_job": trigger.job_name, "reason": reason},
                )
                self._alert(trigger, exc)
                return None

            logger.info(
                "scheduled_job_completed",
                extra={
                    "scheduled_job": trigger.job_name,
                    "reason": reason,
                    "outcome": outcome.message,
                },
            )
            return outcome

    def _alert(self, trigger: DailyTrigger, error: BaseException) -> None:
        try:
            self._notifier.notify_failure(
                "scheduled_job_failed", error, {"scheduled_job": trigger.job_name},
            )
        except Exception:
            logger.exception("notifier_failed", extra={"scheduled_job": trigger.job_name})
