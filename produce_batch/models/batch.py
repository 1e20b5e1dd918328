"""
ORM models for batch persistence.

Contract:
    BatchModel persists procurement batches; JobLogModel records every
    scheduled job execution for missed-run catch-up.  Both convert to
    domain DTOs with ``to_dto()``.

Architecture: produce_batch/models.  Imports from produce_kernel.db.base only.

Invariants enforced:
    - (date, batch_type) is UNIQUE: one batch per window.
    - batch_number is UNIQUE and always derived from (date, batch_type).
    - Batches are never deleted.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from produce_kernel.db.base import Base, TimestampedBase, as_utc

if TYPE_CHECKING:
    from produce_batch.domain.types import Batch, JobLogEntry


class BatchModel(TimestampedBase):
    """One procurement/delivery window."""

    __tablename__ = "batches"

    __table_args__ = (
        UniqueConstraint("date", "batch_type", name="uq_batches_date_type"),
        Index("ix_batches_status", "status"),
        Index("ix_batches_date", "date"),
    )

    batch_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    batch_type: Mapped[str] = mapped_column(String(10), nullable=False)
    cutoff_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    auto_confirm_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    # None = confirmed by the system
    confirmed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    order_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_dto(self) -> Batch:
        from produce_batch.domain.types import Batch, BatchStatus, BatchType

        return Batch(
            batch_id=self.id,
            batch_number=self.batch_number,
            date=as_utc(self.date),
            batch_type=BatchType(self.batch_type),
            status=BatchStatus(self.status),
            cutoff_time=as_utc(self.cutoff_time),
            auto_confirm_time=as_utc(self.auto_confirm_time),
            confirmed_at=as_utc(self.confirmed_at),
            confirmed_by=self.confirmed_by,
            order_count=self.order_count,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )


class JobLogModel(Base):
    """One execution of a scheduled job (success or failure)."""

    __tablename__ = "job_logs"

    __table_args__ = (
        Index("ix_job_logs_name_executed", "job_name", "executed_at"),
    )

    job_name: Mapped[str] = mapped_column(String(100), nullable=False)
    executed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> JobLogEntry:
        from produce_batch.domain.types import JobLogEntry, JobRunStatus

        return JobLogEntry(
            job_name=self.job_name,
            executed_at=as_utc(self.executed_at),
            status=JobRunStatus(self.status),
            result=self.result,
            error=self.error,
        )
