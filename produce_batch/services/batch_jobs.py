"""
BatchJobs -- the two daily jobs driven by the scheduler.

Contract:
    - ``auto_confirm_first_batch()``: confirm today's open 1st batch as the
      system (actor None) and generate its bills.  No open batch is a
      successful no-op; a batch confirmed concurrently is reported as
      skipped.
    - ``create_next_day_batches()``: find-or-create tomorrow's 1st and 2nd
      batch shells.  Purely an optimization; order intake creates batches
      on demand anyway.

    Every execution, successful or failed, is recorded in the job log.
    Failures are recorded and then re-raised for the scheduler to isolate.

Architecture: produce_batch/services.  Owns its transactions through an
    injected session factory.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from produce_kernel.db.base import as_utc
from produce_kernel.db.engine import session_scope
from produce_kernel.domain.clock import Clock, SystemClock
from produce_kernel.exceptions import BatchStateConflictError
from produce_kernel.logging_config import LogContext, get_logger

from produce_batch.domain.assignment import BatchAssignmentPolicy
from produce_batch.domain.schedule import AUTO_CONFIRM_FIRST_BATCH, CREATE_NEXT_DAY_BATCHES
from produce_batch.domain.time_window import TimeWindowResolver
from produce_batch.domain.types import (
    BatchStatus,
    BatchType,
    JobLogEntry,
    JobOutcome,
    JobRunStatus,
)
from produce_batch.models.batch import JobLogModel
from produce_batch.services.batch_store import BatchStore
from produce_batch.services.lifecycle import BatchLifecycle

logger = get_logger("batch.jobs")


class BatchJobs:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        lifecycle: BatchLifecycle,
        policy: BatchAssignmentPolicy,
        resolver: TimeWindowResolver,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._lifecycle = lifecycle
        self._policy = policy
        self._resolver = resolver
        self._clock = clock or SystemClock()

    def run(self, job_name: str) -> JobOutcome:
        """Dispatch by job name (the scheduler's entry point)."""
        jobs = {
            AUTO_CONFIRM_FIRST_BATCH: self.auto_confirm_first_batch,
            CREATE_NEXT_DAY_BATCHES: self.create_next_day_batches,
        }
        if job_name not in jobs:
            raise KeyError(f"Unknown scheduled job: {job_name}")
        return jobs[job_name]()

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    def auto_confirm_first_batch(self) -> JobOutcome:
        with LogContext.bind(job_name=AUTO_CONFIRM_FIRST_BATCH):
            today = self._resolver.resolve(self._clock.now_utc())
            try:
                with session_scope(self._session_factory) as session:
                    batch = self._store(session).find(
                        today.day_start, BatchType.FIRST, status=BatchStatus.OPEN,
                    )

                if batch is None:
                    logger.info(
                        "auto_confirm_no_open_batch",
                        extra={"local_date": today.local_date},
                    )
                    return self._record(
                        AUTO_CONFIRM_FIRST_BATCH,
                        "No open batch",
                        {"date": today.local_date.isoformat()},
                    )

                try:
                    result = self._lifecycle.confirm(
                        batch.batch_id, actor_id=None, generate_bills=True,
                    )
                except BatchStateConflictError as exc:
                    logger.info(
                        "auto_confirm_skipped",
                        extra={
                            "batch_number": batch.batch_number,
                            "current_status": exc.current_status,
                        },
                    )
                    return self._record(
                        AUTO_CONFIRM_FIRST_BATCH,
                        "Batch already confirmed",
                        {"batch_number": batch.batch_number, "skipped": True},
                    )
            except Exception as exc:
                self._record_failure(AUTO_CONFIRM_FIRST_BATCH, exc)
                raise

            return self._record(
                AUTO_CONFIRM_FIRST_BATCH,
                "Batch confirmed",
                {
                    "batch_number": result.batch.batch_number,
                    "orders_confirmed": result.orders_confirmed,
                    "bills_generated": result.bills_generated,
                    "bill_errors": len(result.bill_errors),
                    "bill_stage_error": result.bill_stage_error,
                },
            )

    def create_next_day_batches(self) -> JobOutcome:
        with LogContext.bind(job_name=CREATE_NEXT_DAY_BATCHES):
            tomorrow = self._resolver.local_date_of(self._clock.now_utc()) + timedelta(days=1)
            try:
                with session_scope(self._session_factory) as session:
                    store = self._store(session)
                    created = [
                        store.ensure(self._policy.window_for(tomorrow, batch_type))
                        for batch_type in (BatchType.FIRST, BatchType.SECOND)
                    ]
            except Exception as exc:
                self._record_failure(CREATE_NEXT_DAY_BATCHES, exc)
                raise

            logger.info(
                "next_day_batches_ready",
                extra={"batch_numbers": [b.batch_number for b in created]},
            )
            return self._record(
                CREATE_NEXT_DAY_BATCHES,
                "Batches ready",
                {
                    "date": tomorrow.isoformat(),
                    "batch_numbers": [b.batch_number for b in created],
                },
            )

    # -------------------------------------------------------------------------
    # Job log
    # -------------------------------------------------------------------------

    def last_run_at(self, job_name: str) -> datetime | None:
        """Newest job-log timestamp for ``job_name`` (any status)."""
        session = self._session_factory()
        try:
            return as_utc(
                session.execute(
                    select(func.max(JobLogModel.executed_at)).where(
                        JobLogModel.job_name == job_name
                    )
                ).scalar_one_or_none()
            )
        finally:
            session.close()

    def recent_runs(self, job_name: str | None = None, limit: int = 20) -> list[JobLogEntry]:
        session = self._session_factory()
        try:
            stmt = select(JobLogModel)
            if job_name is not None:
                stmt = stmt.where(JobLogModel.job_name == job_name)
            rows = session.execute(
                stmt.order_by(JobLogModel.executed_at.desc()).limit(limit)
            ).scalars().all()
            return [row.to_dto() for row in rows]
        finally:
            session.close()

    def _record(self, job_name: str, message: str, result: dict[str, Any]) -> JobOutcome:
        payload = {"message": message, **result}
        with session_scope(self._session_factory) as session:
            session.add(
                JobLogModel(
                    job_name=job_name,
                    executed_at=self._clock.now_utc(),
                    status=JobRunStatus.SUCCESS.value,
                    result=payload,
                )
            )
        return JobOutcome(
            job_name=job_name,
            status=JobRunStatus.SUCCESS,
            message=message,
            result=payload,
        )

    def _record_failure(self, job_name: str, error: BaseException) -> None:
        try:
            with session_scope(self._session_factory) as session:
                session.add(
                    JobLogModel(
                        job_name=job_name,
                        executed_at=self._clock.now_utc(),
                        status=JobRunStatus.FAILED.value,
                        error=str(error),
                    )
                )
        except Exception:
            logger.exception("job_log_write_failed", extra={"failed_job": job_name})

    def _store(self, session: Session) -> BatchStore:
        return BatchStore(session, self._resolver, self._clock)
