"""
BatchStore -- persistence operations over batch rows.

Contract:
    - ``find_or_create()`` is idempotent and race-safe: concurrent callers
      for the same (date, batch_type) all receive the one persisted batch.
    - ``increment_order_count()`` / ``decrement_order_count()`` are single
      atomic ``UPDATE ... SET order_count = order_count + :delta``
      statements, never read-then-write.
    - ``confirm()`` / ``expire()`` are single guarded
      ``UPDATE ... WHERE status = 'open'`` statements.  They perform no
      cascades; those belong to BatchLifecycle.

Architecture: produce_batch/services.  Session-bound.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.

Failure modes:
    - BatchNotFoundError: batch id does not exist.
    - BatchStateConflictError: guarded transition found a non-open batch.
    - TransientStoreError: connection-level failure on a critical write.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from produce_kernel.db.engine import translate_store_errors
from produce_kernel.domain.clock import Clock, SystemClock
from produce_kernel.exceptions import BatchNotFoundError, BatchStateConflictError
from produce_kernel.logging_config import get_logger

from produce_batch.domain.time_window import TimeWindowResolver, to_utc
from produce_batch.domain.types import (
    Batch,
    BatchAssignment,
    BatchStatus,
    BatchType,
    format_batch_number,
)
from produce_batch.models.batch import BatchModel

logger = get_logger("batch.store")


class BatchStore:
    def __init__(
        self,
        session: Session,
        resolver: TimeWindowResolver,
        clock: Clock | None = None,
    ):
        self._session = session
        self._resolver = resolver
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def find_or_create(
        self,
        date: datetime,
        batch_type: BatchType,
        cutoff_time: datetime,
        auto_confirm_time: datetime | None = None,
    ) -> Batch:
        """
        Return the batch for (date, batch_type), creating it if absent.

        The insert runs inside a SAVEPOINT.  A concurrent creator makes the
        insert fail with IntegrityError; the savepoint is rolled back and
        the winner's row is returned instead.  Callers never see the
        uniqueness error.
        """
        date = to_utc(date)
        existing = self._find_model(date, batch_type, populate_existing=True)
        if existing is not None:
            return existing.to_dto()

        batch_number = format_batch_number(self._resolver.local_date_of(date), batch_type)

        with translate_store_errors("batch.find_or_create"):
            savepoint = self._session.begin_nested()
            try:
                model = BatchModel(
                    batch_number=batch_number,
                    date=date,
                    batch_type=batch_type.value,
                    cutoff_time=to_utc(cutoff_time),
                    auto_confirm_time=(
                        to_utc(auto_confirm_time) if auto_confirm_time else None
                    ),
                    status=BatchStatus.OPEN.value,
                    order_count=0,
                )
                self._session.add(model)
                self._session.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                logger.debug(
                    "batch_create_race_lost",
                    extra={"batch_number": batch_number},
                )
                winner = self._find_model(date, batch_type, populate_existing=True)
                if winner is None:
                    raise
                return winner.to_dto()

        logger.info(
            "batch_created",
            extra={
                "batch_id": str(model.id),
                "batch_number": batch_number,
                "batch_type": batch_type.value,
            },
        )
        return model.to_dto()

    def ensure(self, assignment: BatchAssignment) -> Batch:
        """find_or_create() for a policy-computed descriptor."""
        return self.find_or_create(
            assignment.date,
            assignment.batch_type,
            assignment.cutoff_time,
            assignment.auto_confirm_time,
        )

    # -------------------------------------------------------------------------
    # Cached order count
    # -------------------------------------------------------------------------

    def increment_order_count(self, batch_id: UUID) -> None:
        self._apply_order_count_delta(batch_id, 1)

    def decrement_order_count(self, batch_id: UUID) -> None:
        self._apply_order_count_delta(batch_id, -1)

    def _apply_order_count_delta(self, batch_id: UUID, delta: int) -> None:
        with translate_store_errors("batch.order_count"):
            result = self._session.execute(
                update(BatchModel)
                .where(BatchModel.id == batch_id)
                .values(order_count=BatchModel.order_count + delta)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount == 0:
            raise BatchNotFoundError(str(batch_id))

    # -------------------------------------------------------------------------
    # Guarded transitions
    # -------------------------------------------------------------------------

    def confirm(self, batch_id: UUID, actor_id: str | None = None) -> Batch:
        """
        open -> confirmed in one guarded write.

        ``actor_id`` None records a system confirmation.
        """
        batch = self._transition(
            batch_id,
            BatchStatus.CONFIRMED,
            confirmed_at=self._clock.now_utc(),
            confirmed_by=actor_id,
        )
        logger.info(
            "batch_confirmed",
            extra={
                "batch_id": str(batch_id),
                "batch_number": batch.batch_number,
                "confirmed_by": actor_id,
            },
        )
        return batch

    def expire(self, batch_id: UUID) -> Batch:
        """open -> expired in one guarded write."""
        batch = self._transition(batch_id, BatchStatus.EXPIRED)
        logger.info(
            "batch_expired",
            extra={"batch_id": str(batch_id), "batch_number": batch.batch_number},
        )
        return batch

    def _transition(self, batch_id: UUID, target: BatchStatus, **values) -> Batch:
        with translate_store_errors(f"batch.{target.value}"):
            result = self._session.execute(
                update(BatchModel)
                .where(
                    BatchModel.id == batch_id,
                    BatchModel.status == BatchStatus.OPEN.value,
                )
                .values(status=target.value, **values)
                .execution_options(synchronize_session=False)
            )

        if result.rowcount == 0:
            current = self._get_model(batch_id, populate_existing=True)
            if current is None:
                raise BatchNotFoundError(str(batch_id))
            logger.warning(
                "batch_transition_refused",
                extra={
                    "batch_id": str(batch_id),
                    "target_status": target.value,
                    "current_status": current.status,
                },
            )
            raise BatchStateConflictError(str(batch_id), current.status)

        return self._get_model(batch_id, populate_existing=True).to_dto()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, batch_id: UUID) -> Batch | None:
        model = self._get_model(batch_id, populate_existing=True)
        return model.to_dto() if model else None

    def get_for_update(self, batch_id: UUID) -> Batch | None:
        """Load with a row lock held until the caller's transaction ends."""
        model = self._session.execute(
            select(BatchModel)
            .where(BatchModel.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def find(
        self,
        date: datetime,
        batch_type: BatchType,
        status: BatchStatus | None = None,
    ) -> Batch | None:
        model = self._find_model(to_utc(date), batch_type, populate_existing=True)
        if model is None:
            return None
        if status is not None and model.status != status.value:
            return None
        return model.to_dto()

    def list_for_date(self, date: datetime) -> list[Batch]:
        rows = self._session.execute(
            select(BatchModel)
            .where(BatchModel.date == to_utc(date))
            .order_by(BatchModel.batch_type)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def list_recent(
        self,
        status: BatchStatus | None = None,
        limit: int = 50,
    ) -> list[Batch]:
        stmt = select(BatchModel)
        if status is not None:
            stmt = stmt.where(BatchModel.status == status.value)
        rows = self._session.execute(
            stmt.order_by(BatchModel.date.desc(), BatchModel.batch_type.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def _get_model(self, batch_id: UUID, populate_existing: bool = False) -> BatchModel | None:
        stmt = select(BatchModel).where(BatchModel.id == batch_id)
        if populate_existing:
            stmt = stmt.execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _find_model(
        self,
        date: datetime,
        batch_type: BatchType,
        populate_existing: bool = False,
    ) -> BatchModel | None:
        stmt = select(BatchModel).where(
            BatchModel.date == date,
            BatchModel.batch_type == batch_type.value,
        )
        if populate_existing:
            stmt = stmt.execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()
