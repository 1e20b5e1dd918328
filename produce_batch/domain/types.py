"""
produce_batch.domain.types -- Pure frozen dataclasses for the batching system.

ZERO I/O.  Enum status fields, tuples for immutable collections.

Follows one pattern throughout: ORM models convert to these DTOs with
``to_dto()``; services return DTOs, never live ORM rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from produce_kernel.exceptions import InvalidDateError, InvalidIdentifierError


# =============================================================================
# Enums
# =============================================================================


class BatchType(str, Enum):
    """Which window of the day a batch serves."""

    FIRST = "1st"  # Orders before the 1st cutoff; auto-confirmed
    SECOND = "2nd"  # Orders between the cutoffs; confirmed manually

    @property
    def number(self) -> int:
        return 1 if self is BatchType.FIRST else 2


class BatchStatus(str, Enum):
    """Batch lifecycle status.  ``open`` is initial, the others terminal."""

    OPEN = "open"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    PACKED = "packed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class JobRunStatus(str, Enum):
    """Outcome recorded in the job log for one scheduled job execution."""

    SUCCESS = "success"
    FAILED = "failed"


# =============================================================================
# Time / window DTOs
# =============================================================================


@dataclass(frozen=True)
class LocalTime:
    """An instant seen from the business's fixed-offset timezone.

    ``day_start`` is the UTC instant of local midnight of ``local_date``.
    """

    hour: int
    minute: int
    local_date: date
    day_start: datetime


@dataclass(frozen=True)
class BatchAssignment:
    """Target batch descriptor for an order instant (or a pre-created shell)."""

    local_date: date
    date: datetime  # UTC instant of local midnight
    batch_type: BatchType
    cutoff_time: datetime
    auto_confirm_time: datetime | None

    @property
    def batch_number(self) -> str:
        return format_batch_number(self.local_date, self.batch_type)


def format_batch_number(local_date: date, batch_type: BatchType) -> str:
    """``B{YYMMDD}-{1|2}`` -- always derived, never stored independently."""
    return f"B{local_date:%y%m%d}-{batch_type.number}"


# =============================================================================
# Batch / order DTOs
# =============================================================================


@dataclass(frozen=True)
class Batch:
    """Immutable snapshot of a batch row."""

    batch_id: UUID
    batch_number: str
    date: datetime
    batch_type: BatchType
    status: BatchStatus
    cutoff_time: datetime
    auto_confirm_time: datetime | None = None
    confirmed_at: datetime | None = None
    confirmed_by: str | None = None  # None = system confirmation
    order_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == BatchStatus.OPEN


@dataclass(frozen=True)
class OrderLineInput:
    """One requested line of a new order; ``amount`` is computed on intake."""

    product_name: str
    quantity: Decimal
    rate: Decimal
    unit: str = "kg"
    category: str | None = None


@dataclass(frozen=True)
class OrderLine:
    product_name: str
    quantity: Decimal
    unit: str
    rate: Decimal
    amount: Decimal | None
    category: str | None = None


@dataclass(frozen=True)
class Order:
    """Immutable snapshot of an order and its line items."""

    order_id: UUID
    order_number: str
    customer_name: str
    status: OrderStatus
    batch_id: UUID | None
    total_amount: Decimal | None
    lines: tuple[OrderLine, ...] = ()
    customer_phone: str = ""
    delivery_address: str = ""
    batch_locked: bool = False
    delivery_bill_generated: bool = False
    delivery_bill_generated_at: datetime | None = None
    delivery_bill_number: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class ProductSummary:
    """Per-product totals across the active orders of one batch."""

    product_name: str
    unit: str
    total_quantity: Decimal
    total_amount: Decimal
    order_count: int


@dataclass(frozen=True)
class OrderCountReport:
    """Cached ``order_count`` against the true number of active orders."""

    batch_id: UUID
    batch_number: str
    cached_count: int
    actual_count: int

    @property
    def drift(self) -> int:
        return self.cached_count - self.actual_count


# =============================================================================
# Bill DTOs
# =============================================================================


@dataclass(frozen=True)
class BillError:
    order_number: str
    error: str


@dataclass(frozen=True)
class GeneratedBill:
    """One stored bill document: the firm portion of one order."""

    bill_number: str
    order_number: str
    firm_id: str
    firm_name: str
    total: Decimal
    filename: str


@dataclass(frozen=True)
class BillRunResult:
    total_orders: int
    bills_generated: int
    errors: tuple[BillError, ...] = ()
    bills: tuple[GeneratedBill, ...] = ()


# =============================================================================
# Lifecycle / job DTOs
# =============================================================================


@dataclass(frozen=True)
class ConfirmResult:
    """Outcome of one confirm.

    Order confirmation and the batch flip have committed whenever a
    ConfirmResult exists; the bill fields only describe the trailing bill
    stage, whose failure never undoes them.
    """

    batch: Batch
    orders_confirmed: int
    bills_requested: bool = False
    bills_generated: int = 0
    bill_errors: tuple[BillError, ...] = ()
    bill_stage_error: str | None = None

    @property
    def bills_succeeded(self) -> bool:
        return (
            self.bills_requested
            and self.bill_stage_error is None
            and not self.bill_errors
        )


@dataclass(frozen=True)
class JobOutcome:
    """What one scheduled job did; ``result`` is stored in the job log."""

    job_name: str
    status: JobRunStatus
    message: str
    result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass(frozen=True)
class JobLogEntry:
    job_name: str
    executed_at: datetime
    status: JobRunStatus
    result: dict[str, Any] | None = None
    error: str | None = None


# =============================================================================
# Input parsing
# =============================================================================


def parse_identifier(kind: str, value: UUID | str) -> UUID:
    """Accept a UUID or its string form; anything else is a ValidationError."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value).strip())
    except (TypeError, ValueError):
        raise InvalidIdentifierError(kind, value) from None


def parse_local_date(value: date | str) -> date:
    """Accept a date or ``YYYY-MM-DD``; anything else is a ValidationError."""
    if isinstance(value, datetime):
        raise InvalidDateError(value)
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise InvalidDateError(value) from None
