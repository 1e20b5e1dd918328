"""
ORM models for orders and their line items.

Orders are owned by the order-management collaborator; the batching engine
reads them by batch, transitions pending orders in bulk, claims bill
numbers and records bill generation.

Architecture: produce_batch/models.  Imports from produce_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from produce_kernel.db.base import TimestampedBase, UUIDString, as_utc

if TYPE_CHECKING:
    from produce_batch.domain.types import Order


class OrderModel(TimestampedBase):
    __tablename__ = "orders"

    __table_args__ = (
        Index("ix_orders_batch_status", "batch_id", "status"),
    )

    order_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    delivery_address: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id"),
        nullable=True,
    )
    batch_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    total_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    delivery_bill_generated: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    delivery_bill_generated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    delivery_bill_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    lines: Mapped[list["OrderLineModel"]] = relationship(
        "OrderLineModel",
        back_populates="order",
        order_by="OrderLineModel.position",
        cascade="all, delete-orphan",
    )

    def to_dto(self) -> Order:
        from produce_batch.domain.types import Order, OrderLine, OrderStatus

        return Order(
            order_id=self.id,
            order_number=self.order_number,
            customer_name=self.customer_name,
            customer_phone=self.customer_phone,
            delivery_address=self.delivery_address,
            status=OrderStatus(self.status),
            batch_id=self.batch_id,
            batch_locked=self.batch_locked,
            total_amount=self.total_amount,
            delivery_bill_generated=self.delivery_bill_generated,
            delivery_bill_generated_at=as_utc(self.delivery_bill_generated_at),
            delivery_bill_number=self.delivery_bill_number,
            created_at=as_utc(self.created_at),
            lines=tuple(
                OrderLine(
                    product_name=line.product_name,
                    quantity=line.quantity,
                    unit=line.unit,
                    rate=line.rate,
                    amount=line.amount,
                    category=line.category,
                )
                for line in self.lines
            ),
        )


class OrderLineModel(TimestampedBase):
    __tablename__ = "order_lines"

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="kg")
    rate: Mapped[Decimal] = mapped_column(nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    order: Mapped["OrderModel"] = relationship("OrderModel", back_populates="lines")
