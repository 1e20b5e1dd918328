"""
BillOrchestrator -- delivery bills for every confirmed order of a batch.

Contract:
    ``generate_for_batch(batch)`` bills each confirmed, not-yet-billed order
    inside its own SAVEPOINT.  A failure for one order rolls back that
    order's savepoint, is appended to ``errors`` and processing continues
    with the next order.

    Per order:
        1. split line items by firm (category -> firm, default firm for
           unmapped or missing categories);
        2. ``ensure_bill_number()`` -- one number per order, converging under
           concurrency through a conditional UPDATE;
        3. build, render and archive one document per firm portion as
           ``{bill_number}-{firm_id}.pdf``;
        4. mark the order billed.

Architecture: produce_batch/services.  Session-bound.  Rendering itself is
    an external collaborator (bytes in, bytes out).

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
    - Market-rate repricing happens upstream in the pricing subsystem.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from produce_kernel.domain.clock import Clock, SystemClock
from produce_kernel.exceptions import BillDataError
from produce_kernel.logging_config import LogContext, get_logger
from produce_kernel.services.counter_service import Counter

from produce_batch.config import FirmConfig
from produce_batch.domain.firms import FirmPortion, split_by_firm
from produce_batch.domain.time_window import TimeWindowResolver
from produce_batch.domain.types import (
    Batch,
    BillError,
    BillRunResult,
    GeneratedBill,
    Order,
)
from produce_batch.services.bill_archive import BillArchive
from produce_batch.services.order_store import OrderStore

logger = get_logger("batch.bills")

BILL_COPIES = ("ORIGINAL", "DUPLICATE")


class DocumentRenderer(Protocol):
    """Turns a bill document (UTF-8 JSON bytes) into the stored file bytes."""

    def render(self, document: bytes) -> bytes: ...


class PassthroughRenderer:
    """Stores the JSON document as-is.  For development and tests."""

    def render(self, document: bytes) -> bytes:
        return document


def _money(value: Decimal | None, order_number: str, context: str) -> str:
    if value is None:
        raise BillDataError(order_number, f'invalid amount "None" (context: {context})')
    amount = Decimal(value)
    if not amount.is_finite():
        raise BillDataError(order_number, f'invalid amount "{value}" (context: {context})')
    return str(amount.quantize(Decimal("0.01")))


def build_bill_document(
    order: Order,
    batch: Batch,
    portion: FirmPortion,
    bill_number: str,
    bill_date: str,
) -> dict[str, Any]:
    """The printable content of one firm's bill for one order.

    Raises:
        BillDataError: A line amount is missing or not finite.
    """
    items = []
    for index, line in enumerate(portion.lines, start=1):
        items.append({
            "index": index,
            "name": line.product_name,
            "quantity": str(line.quantity),
            "unit": line.unit,
            "rate": _money(line.rate, order.order_number, f"{line.product_name} rate"),
            "amount": _money(line.amount, order.order_number, f"{line.product_name} amount"),
        })

    return {
        "bill_number": bill_number,
        "order_number": order.order_number,
        "batch_number": batch.batch_number,
        "date": bill_date,
        "firm": {
            "id": portion.firm.id,
            "name": portion.firm.name,
            "address": portion.firm.address,
            "phone": portion.firm.phone,
            "email": portion.firm.email,
        },
        "customer": {
            "name": order.customer_name or "Unknown Customer",
            "phone": order.customer_phone,
            "address": order.delivery_address,
        },
        "items": items,
        "total": _money(portion.subtotal, order.order_number, "firm subtotal"),
        "copies": list(BILL_COPIES),
    }


def bill_filename(bill_number: str, firm_id: str) -> str:
    return f"{bill_number}-{firm_id}.pdf"


class BillOrchestrator:
    def __init__(
        self,
        session: Session,
        counter: Counter,
        renderer: DocumentRenderer,
        archive: BillArchive,
        firms: Sequence[FirmConfig],
        resolver: TimeWindowResolver,
        clock: Clock | None = None,
    ):
        self._session = session
        self._counter = counter
        self._renderer = renderer
        self._archive = archive
        self._firms = tuple(firms)
        self._resolver = resolver
        self._clock = clock or SystemClock()
        self._orders = OrderStore(session)

    def generate_for_batch(self, batch: Batch) -> BillRunResult:
        orders = self._orders.orders_to_bill(batch.batch_id)
        bills: list[GeneratedBill] = []
        errors: list[BillError] = []

        for order in orders:
            with LogContext.bind(order_id=str(order.order_id)):
                savepoint = self._session.begin_nested()
                try:
                    order_bills = self._bill_order(order, batch)
                    savepoint.commit()
                except Exception as exc:
                    savepoint.rollback()
                    errors.append(BillError(order_number=order.order_number, error=str(exc)))
                    logger.warning(
                        "bill_generation_failed",
                        extra={
                            "order_number": order.order_number,
                            "batch_number": batch.batch_number,
                        },
                        exc_info=True,
                    )
                    continue
            bills.extend(order_bills)

        result = BillRunResult(
            total_orders=len(orders),
            bills_generated=len(bills),
            errors=tuple(errors),
            bills=tuple(bills),
        )
        logger.info(
            "bill_run_completed",
            extra={
                "batch_id": str(batch.batch_id),
                "batch_number": batch.batch_number,
                "total_orders": result.total_orders,
                "bills_generated": result.bills_generated,
                "failed_orders": len(errors),
            },
        )
        return result

    def ensure_bill_number(self, order_id: UUID) -> str:
        """
        The order's bill number, issuing one if it has none.

        The number is written with ``... WHERE delivery_bill_number IS NULL``.
        A caller that loses the race re-reads and returns the winner's
        number, so an order never ends up with two numbers.
        """
        existing = self._orders.bill_number_of(order_id)
        if existing:
            return existing

        candidate = self._next_bill_number()
        if self._orders.claim_bill_number(order_id, candidate):
            logger.debug(
                "bill_number_issued",
                extra={"order_id": str(order_id), "bill_number": candidate},
            )
            return candidate

        winner = self._orders.bill_number_of(order_id)
        logger.info(
            "bill_number_race_lost",
            extra={
                "order_id": str(order_id),
                "discarded_number": candidate,
                "bill_number": winner,
            },
        )
        return winner

    def _bill_order(self, order: Order, batch: Batch) -> list[GeneratedBill]:
        portions = split_by_firm(self._firms, order.lines)
        if not portions:
            raise BillDataError(order.order_number, "order has no line items")

        bill_number = self.ensure_bill_number(order.order_id)
        now = self._clock.now_utc()
        bill_date = f"{self._resolver.local_date_of(now):%d/%m/%Y}"

        generated = []
        for portion in portions:
            document = build_bill_document(order, batch, portion, bill_number, bill_date)
            payload = json.dumps(document, sort_keys=True).encode("utf-8")
            rendered = self._renderer.render(payload)
            filename = bill_filename(bill_number, portion.firm.id)
            self._archive.save(filename, rendered)
            generated.append(
                GeneratedBill(
                    bill_number=bill_number,
                    order_number=order.order_number,
                    firm_id=portion.firm.id,
                    firm_name=portion.firm.name,
                    total=portion.subtotal,
                    filename=filename,
                )
            )

        self._orders.mark_billed(order.order_id, now)
        return generated

    def _next_bill_number(self) -> str:
        local_date = self._resolver.local_date_of(self._clock.now_utc())
        prefix = f"BILL{local_date:%y%m}"
        seq = self._counter.next_value(f"deliverybill_{prefix}")
        return f"{prefix}{seq:04d}"
