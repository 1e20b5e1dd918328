"""
OrderStore -- the batching engine's view of the order collaborator.

Contract:
    Reads orders by batch, transitions pending orders in bulk, claims and
    reads delivery-bill numbers, and records bill generation.  Every write
    is a single conditional UPDATE.

Architecture: produce_batch/services.  Session-bound.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
    - Generic order CRUD belongs to the order-management collaborator.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from produce_kernel.db.engine import translate_store_errors
from produce_kernel.logging_config import get_logger

from produce_batch.domain.types import Order, OrderStatus, ProductSummary
from produce_batch.models.order import OrderLineModel, OrderModel

logger = get_logger("batch.orders")


class OrderStore:
    def __init__(self, session: Session):
        self._session = session

    def get(self, order_id: UUID) -> Order | None:
        model = self._session.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .options(selectinload(OrderModel.lines))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def pending_order_ids(self, batch_id: UUID) -> list[UUID]:
        return list(
            self._session.execute(
                select(OrderModel.id)
                .where(
                    OrderModel.batch_id == batch_id,
                    OrderModel.status == OrderStatus.PENDING.value,
                )
                .order_by(OrderModel.order_number)
            ).scalars()
        )

    def bulk_confirm(self, order_ids: list[UUID]) -> int:
        """
        pending -> confirmed (and locked) for every id, in one UPDATE.

        Orders that left ``pending`` in the meantime are not touched.
        Returns the number of orders transitioned.
        """
        if not order_ids:
            return 0
        with translate_store_errors("orders.bulk_confirm"):
            result = self._session.execute(
                update(OrderModel)
                .where(
                    OrderModel.id.in_(order_ids),
                    OrderModel.status == OrderStatus.PENDING.value,
                )
                .values(status=OrderStatus.CONFIRMED.value, batch_locked=True)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount

    def orders_to_bill(self, batch_id: UUID) -> list[Order]:
        """Confirmed orders of the batch that have no bill yet."""
        rows = self._session.execute(
            select(OrderModel)
            .where(
                OrderModel.batch_id == batch_id,
                OrderModel.status == OrderStatus.CONFIRMED.value,
                OrderModel.delivery_bill_generated.is_(False),
            )
            .options(selectinload(OrderModel.lines))
            .order_by(OrderModel.order_number)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def claim_bill_number(self, order_id: UUID, bill_number: str) -> bool:
        """Set the bill number only if the order has none.  True if this call won."""
        with translate_store_errors("orders.claim_bill_number"):
            result = self._session.execute(
                update(OrderModel)
                .where(
                    OrderModel.id == order_id,
                    OrderModel.delivery_bill_number.is_(None),
                )
                .values(delivery_bill_number=bill_number)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def bill_number_of(self, order_id: UUID) -> str | None:
        return self._session.execute(
            select(OrderModel.delivery_bill_number).where(OrderModel.id == order_id)
        ).scalar_one_or_none()

    def mark_billed(self, order_id: UUID, at: datetime) -> None:
        with translate_store_errors("orders.mark_billed"):
            self._session.execute(
                update(OrderModel)
                .where(OrderModel.id == order_id)
                .values(delivery_bill_generated=True, delivery_bill_generated_at=at)
                .execution_options(synchronize_session=False)
            )

    def count_active(self, batch_id: UUID) -> int:
        """Orders referencing the batch that are not cancelled."""
        return self._session.execute(
            select(func.count(OrderModel.id)).where(
                OrderModel.batch_id == batch_id,
                OrderModel.status != OrderStatus.CANCELLED.value,
            )
        ).scalar_one()

    def quantity_summary(self, batch_id: UUID) -> list[ProductSummary]:
        """Per-product totals for procurement, largest quantity first."""
        rows = self._session.execute(
            select(
                OrderLineModel.product_name,
                OrderLineModel.unit,
                func.sum(OrderLineModel.quantity),
                func.sum(func.coalesce(OrderLineModel.amount, 0)),
                func.count(func.distinct(OrderModel.id)),
            )
            .join(OrderModel, OrderLineModel.order_id == OrderModel.id)
            .where(
                OrderModel.batch_id == batch_id,
                OrderModel.status != OrderStatus.CANCELLED.value,
            )
            .group_by(OrderLineModel.product_name, OrderLineModel.unit)
        ).all()

        summaries = [
            ProductSummary(
                product_name=name,
                unit=unit,
                total_quantity=Decimal(str(quantity)),
                total_amount=Decimal(str(amount)),
                order_count=count,
            )
            for name, unit, quantity, amount, count in rows
        ]
        summaries.sort(key=lambda s: (-s.total_quantity, s.product_name))
        return summaries
