"""
Pure daily-trigger evaluation.

Contract:
    ``fire_times_between()``, ``should_fire()`` and ``is_missed()`` are PURE --
    no I/O, no side effects.  The scheduler passes the current clock value,
    the previous tick instant and what the job log says.

Architecture: produce_batch/domain.  ZERO I/O.

A trigger fires once per business-local day at ``hour:minute`` local time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from produce_batch.domain.time_window import TimeWindowResolver, to_utc

AUTO_CONFIRM_FIRST_BATCH = "AutoConfirmFirstBatch"
CREATE_NEXT_DAY_BATCHES = "CreateNextDayBatches"


@dataclass(frozen=True)
class DailyTrigger:
    """A job fired once a day at a fixed business-local time."""

    job_name: str
    hour: int
    minute: int = 0

    def __post_init__(self) -> None:
        if not (0 <= self.hour <= 23 and 0 <= self.minute <= 59):
            raise ValueError(
                f"Invalid trigger time {self.hour:02d}:{self.minute:02d} "
                f"for {self.job_name}"
            )

    @property
    def label(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def fire_time_on(
    trigger: DailyTrigger,
    local_date: date,
    resolver: TimeWindowResolver,
) -> datetime:
    """UTC instant at which ``trigger`` fires on ``local_date``."""
    return resolver.at_local_time(local_date, trigger.hour, trigger.minute)


def fire_times_between(
    trigger: DailyTrigger,
    after: datetime,
    until: datetime,
    resolver: TimeWindowResolver,
) -> list[datetime]:
    """All fire instants of ``trigger`` in the half-open window (after, until]."""
    after, until = to_utc(after), to_utc(until)
    if until <= after:
        return []

    fires = []
    day = resolver.local_date_of(after)
    last_day = resolver.local_date_of(until)
    while day <= last_day:
        fire_at = fire_time_on(trigger, day, resolver)
        if after < fire_at <= until:
            fires.append(fire_at)
        day += timedelta(days=1)
    return fires


def should_fire(
    trigger: DailyTrigger,
    previous_tick: datetime,
    now: datetime,
    resolver: TimeWindowResolver,
) -> bool:
    """True if the trigger's fire time passed since the previous tick.

    A window spanning several fire times (a long pause) still fires once.
    """
    return bool(fire_times_between(trigger, previous_tick, now, resolver))


def is_missed(
    trigger: DailyTrigger,
    now: datetime,
    last_run_at: datetime | None,
    resolver: TimeWindowResolver,
) -> bool:
    """True if today's fire time has passed and the job has not run today.

    ``last_run_at`` is the newest job-log timestamp for the trigger (any
    status); a run counts for today when it is at or after local midnight.
    """
    local = resolver.resolve(now)
    if to_utc(now) < fire_time_on(trigger, local.local_date, resolver):
        return False
    if last_run_at is None:
        return True
    return to_utc(last_run_at) < local.day_start
