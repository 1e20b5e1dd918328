"""
BatchAssignmentPolicy -- which batch an order instant belongs to.

Contract:
    ``assign(instant)`` is PURE and deterministic given the two cutoff
    hours H1 < H2:

    ============  =========  ====  ============  ============
    Local hour    date       type  cutoff        auto-confirm
    ============  =========  ====  ============  ============
    < H1          today      1st   today@H1      today@H1
    [H1, H2)      today      2nd   today@H2      None
    >= H2         tomorrow   1st   tomorrow@H1   tomorrow@H1
    ============  =========  ====  ============  ============

    Boundaries are inclusive-lower / exclusive-upper: an order at exactly
    H1:00 belongs to the 2nd-batch window.

Architecture: produce_batch/domain.  ZERO I/O.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from produce_batch.domain.time_window import TimeWindowResolver
from produce_batch.domain.types import BatchAssignment, BatchType, format_batch_number


class BatchAssignmentPolicy:
    def __init__(
        self,
        resolver: TimeWindowResolver,
        first_cutoff_hour: int = 8,
        second_cutoff_hour: int = 12,
    ):
        if not (0 <= first_cutoff_hour < second_cutoff_hour <= 23):
            raise ValueError(
                "cutoff hours must satisfy 0 <= first < second <= 23, "
                f"got {first_cutoff_hour} and {second_cutoff_hour}"
            )
        self._resolver = resolver
        self._h1 = first_cutoff_hour
        self._h2 = second_cutoff_hour

    @property
    def first_cutoff_hour(self) -> int:
        return self._h1

    @property
    def second_cutoff_hour(self) -> int:
        return self._h2

    def assign(self, instant: datetime | None = None) -> BatchAssignment:
        """Target batch for an order created at ``instant`` (default: now)."""
        local = self._resolver.resolve(instant)

        if local.hour < self._h1:
            return self.window_for(local.local_date, BatchType.FIRST)
        if local.hour < self._h2:
            return self.window_for(local.local_date, BatchType.SECOND)
        return self.window_for(local.local_date + timedelta(days=1), BatchType.FIRST)

    def window_for(self, local_date: date, batch_type: BatchType) -> BatchAssignment:
        """Descriptor of the ``batch_type`` batch serving ``local_date``."""
        if batch_type is BatchType.FIRST:
            cutoff = self._resolver.at_local_time(local_date, self._h1)
            auto_confirm: datetime | None = cutoff
        else:
            cutoff = self._resolver.at_local_time(local_date, self._h2)
            auto_confirm = None

        return BatchAssignment(
            local_date=local_date,
            date=self._resolver.day_start(local_date),
            batch_type=batch_type,
            cutoff_time=cutoff,
            auto_confirm_time=auto_confirm,
        )

    def batch_number(self, local_date: date, batch_type: BatchType) -> str:
        return format_batch_number(local_date, batch_type)

    def describe_current_window(self, instant: datetime | None = None) -> str:
        """Human label of the window currently accepting orders."""
        local = self._resolver.resolve(instant)
        if local.hour < self._h1:
            return f"1st batch (closes at {self._h1:02d}:00)"
        if local.hour < self._h2:
            return f"2nd batch (closes at {self._h2:02d}:00)"
        return "Tomorrow's 1st batch"
