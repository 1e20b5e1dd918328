"""
OrderIntake -- places orders into batches and cancels them.

Contract:
    ``place_order()`` assigns the batch for the order instant
    (policy -> find_or_create -> increment), allocates the order number
    ``ORD{YY}{MM}{seq:04d}`` from counter ``order_ORD{YY}{MM}`` and persists
    the order with computed line amounts.  ``cancel_order()`` is a guarded
    status change paired with the matching count decrement.

Architecture: produce_batch/services.  Session-bound.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
    - Pricing (contract/market rates) belongs to the pricing subsystem;
      rates arrive already resolved.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from produce_kernel.db.engine import translate_store_errors
from produce_kernel.domain.clock import Clock, SystemClock
from produce_kernel.exceptions import OrderLockedError, OrderNotFoundError, ValidationError
from produce_kernel.logging_config import LogContext, get_logger
from produce_kernel.services.counter_service import Counter

from produce_batch.domain.assignment import BatchAssignmentPolicy
from produce_batch.domain.time_window import TimeWindowResolver, to_utc
from produce_batch.domain.types import (
    BatchStatus,
    Order,
    OrderLineInput,
    OrderStatus,
    parse_identifier,
)
from produce_batch.models.order import OrderLineModel, OrderModel
from produce_batch.services.batch_store import BatchStore
from produce_batch.services.order_store import OrderStore

logger = get_logger("batch.intake")

_CENTS = Decimal("0.01")


def line_amount(quantity: Decimal, rate: Decimal) -> Decimal:
    return (Decimal(quantity) * Decimal(rate)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def _finite_decimal(value, field: str, product_name: str) -> Decimal:
    try:
        number = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(
            f"{field} for {product_name} is not a number, got {value!r}"
        ) from None
    if not number.is_finite():
        raise ValidationError(f"{field} for {product_name} must be finite, got {value}")
    return number


class OrderIntake:
    def __init__(
        self,
        session: Session,
        policy: BatchAssignmentPolicy,
        resolver: TimeWindowResolver,
        batch_store: BatchStore,
        counter: Counter,
        clock: Clock | None = None,
    ):
        self._session = session
        self._policy = policy
        self._resolver = resolver
        self._batches = batch_store
        self._counter = counter
        self._clock = clock or SystemClock()
        self._orders = OrderStore(session)

    def place_order(
        self,
        customer_name: str,
        lines: Sequence[OrderLineInput],
        created_at: datetime | None = None,
        customer_phone: str = "",
        delivery_address: str = "",
    ) -> Order:
        """
        Persist a pending order in the batch for its creation instant.

        Raises:
            ValidationError: No lines, empty customer name, non-numeric or
                non-finite amounts, non-positive quantity or negative rate.
        """
        if not customer_name or not customer_name.strip():
            raise ValidationError("Order requires a customer name")
        if not lines:
            raise ValidationError("Order requires at least one line")
        for line in lines:
            if _finite_decimal(line.quantity, "Quantity", line.product_name) <= 0:
                raise ValidationError(
                    f"Quantity for {line.product_name} must be positive, got {line.quantity}"
                )
            if _finite_decimal(line.rate, "Rate", line.product_name) < 0:
                raise ValidationError(
                    f"Rate for {line.product_name} must not be negative, got {line.rate}"
                )

        instant = to_utc(created_at) if created_at is not None else self._clock.now_utc()
        assignment = self._policy.assign(instant)
        batch = self._batches.ensure(assignment)
        self._batches.increment_order_count(batch.batch_id)

        if batch.status != BatchStatus.OPEN:
            logger.warning(
                "order_assigned_to_closed_batch",
                extra={
                    "batch_id": str(batch.batch_id),
                    "batch_number": batch.batch_number,
                    "batch_status": batch.status.value,
                },
            )

        order_number = self._next_order_number(instant)

        model = OrderModel(
            order_number=order_number,
            customer_name=customer_name.strip(),
            customer_phone=customer_phone,
            delivery_address=delivery_address,
            status=OrderStatus.PENDING.value,
            batch_id=batch.batch_id,
            batch_locked=False,
            delivery_bill_generated=False,
            created_at=instant,
            updated_at=instant,
        )
        total = Decimal("0")
        for position, line in enumerate(lines):
            amount = line_amount(line.quantity, line.rate)
            total += amount
            model.lines.append(
                OrderLineModel(
                    position=position,
                    product_name=line.product_name,
                    quantity=Decimal(line.quantity),
                    unit=line.unit,
                    rate=Decimal(line.rate),
                    amount=amount,
                    category=line.category,
                )
            )
        model.total_amount = total

        with translate_store_errors("orders.create"):
            self._session.add(model)
            self._session.flush()

        logger.info(
            "order_placed",
            extra={
                "order_id": str(model.id),
                "order_number": order_number,
                "batch_id": str(batch.batch_id),
                "batch_number": batch.batch_number,
                "total_amount": total,
            },
        )
        return model.to_dto()

    def cancel_order(self, order_id: UUID | str) -> Order:
        """
        pending -> cancelled, paired with the batch count decrement.

        The batch row is locked before the order row, the same order
        ``BatchLifecycle.confirm`` takes them, so a cancel racing a confirm
        waits for it instead of deadlocking.

        Cancelling an already-cancelled order is a no-op (no second
        decrement).

        Raises:
            InvalidIdentifierError: Malformed order id.
            OrderNotFoundError: No such order.
            OrderLockedError: The order's batch has already been confirmed.
        """
        oid = parse_identifier("order", order_id)

        with LogContext.bind(order_id=str(oid)):
            with translate_store_errors("orders.cancel"):
                row = self._session.execute(
                    select(OrderModel.batch_id).where(OrderModel.id == oid)
                ).one_or_none()
                if row is None:
                    raise OrderNotFoundError(str(oid))
                batch_id = row.batch_id
                if batch_id is not None:
                    self._batches.get_for_update(batch_id)

                result = self._session.execute(
                    update(OrderModel)
                    .where(
                        OrderModel.id == oid,
                        OrderModel.status == OrderStatus.PENDING.value,
                        OrderModel.batch_locked.is_(False),
                    )
                    .values(status=OrderStatus.CANCELLED.value)
                    .execution_options(synchronize_session=False)
                )

            if result.rowcount == 0:
                current = self._session.execute(
                    select(OrderModel.status).where(OrderModel.id == oid)
                ).scalar_one()
                if current == OrderStatus.CANCELLED.value:
                    return self._orders.get(oid)
                raise OrderLockedError(str(oid), current)

            if batch_id is not None:
                self._batches.decrement_order_count(batch_id)
            order = self._orders.get(oid)

            logger.info(
                "order_cancelled",
                extra={"order_number": order.order_number, "batch_id": order.batch_id},
            )
            return order

    def _next_order_number(self, instant: datetime) -> str:
        local_date = self._resolver.local_date_of(instant)
        prefix = f"ORD{local_date:%y%m}"
        seq = self._counter.next_value(f"order_{prefix}")
        return f"{prefix}{seq:04d}"
