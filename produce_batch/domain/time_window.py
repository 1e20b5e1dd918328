"""
TimeWindowResolver -- business-local time from absolute instants.

Contract:
    Converts an instant to the business's fixed-offset local hour, minute
    and calendar date.  Every conversion goes through UTC first, so the
    result is identical on any host regardless of its timezone setting.

Architecture: produce_batch/domain.  ZERO I/O apart from reading the
    injected clock when no instant is given.

The business timezone is a fixed offset; there are no daylight-saving
rules to apply.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from produce_kernel.domain.clock import Clock, SystemClock

from produce_batch.domain.types import LocalTime


def to_utc(instant: datetime) -> datetime:
    """Naive instants are taken as UTC; aware instants are converted."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


class TimeWindowResolver:
    """Resolve instants against the business's fixed UTC offset."""

    def __init__(self, tz: timezone, clock: Clock | None = None):
        self._tz = tz
        self._clock = clock or SystemClock()

    @property
    def tz(self) -> timezone:
        return self._tz

    def resolve(self, instant: datetime | None = None) -> LocalTime:
        """Local hour/minute/date of ``instant`` (default: now)."""
        utc = to_utc(instant if instant is not None else self._clock.now_utc())
        local = utc.astimezone(self._tz)
        return LocalTime(
            hour=local.hour,
            minute=local.minute,
            local_date=local.date(),
            day_start=self.day_start(local.date()),
        )

    def local_date_of(self, instant: datetime) -> date:
        return to_utc(instant).astimezone(self._tz).date()

    def day_start(self, local_date: date) -> datetime:
        """UTC instant of local midnight on ``local_date``."""
        return self.at_local_time(local_date, 0)

    def at_local_time(self, local_date: date, hour: int, minute: int = 0) -> datetime:
        """UTC instant of ``hour:minute`` local time on ``local_date``."""
        local = datetime.combine(local_date, time(hour, minute), tzinfo=self._tz)
        return local.astimezone(timezone.utc)

    def today(self) -> date:
        return self.resolve().local_date

    def tomorrow(self) -> date:
        return self.today() + timedelta(days=1)
