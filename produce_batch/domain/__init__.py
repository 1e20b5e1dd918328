"""
produce_batch.domain -- Pure types, time windows and policies.

ZERO I/O.  All types are frozen dataclasses.
"""

from produce_batch.domain.assignment import BatchAssignmentPolicy
from produce_batch.domain.time_window import TimeWindowResolver
from produce_batch.domain.types import (
    Batch,
    BatchAssignment,
    BatchStatus,
    BatchType,
    BillError,
    BillRunResult,
    ConfirmResult,
    GeneratedBill,
    JobOutcome,
    JobRunStatus,
    LocalTime,
    Order,
    OrderLine,
    OrderLineInput,
    OrderStatus,
)

__all__ = [
    "Batch",
    "BatchAssignment",
    "BatchAssignmentPolicy",
    "BatchStatus",
    "BatchType",
    "BillError",
    "BillRunResult",
    "ConfirmResult",
    "GeneratedBill",
    "JobOutcome",
    "JobRunStatus",
    "LocalTime",
    "Order",
    "OrderLine",
    "OrderLineInput",
    "OrderStatus",
    "TimeWindowResolver",
]
