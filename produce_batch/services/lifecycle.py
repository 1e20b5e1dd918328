"""
BatchLifecycle -- the batch state machine.

States: ``open`` (initial) -> ``confirmed`` | ``expired`` (both terminal).

Contract:
    ``confirm(batch_id, actor_id, generate_bills)``:
        1. parse the id; load the batch with a row lock (NotFound if absent);
        2. guard: StateConflict "Batch is already {status}" unless open;
        3. bulk-transition the batch's pending orders to confirmed;
        4. flip the batch to confirmed.
        Steps 3 and 4 commit as ONE transaction.
        5. optionally run the bill stage in a NEW transaction.  Any failure
           there is captured into the ConfirmResult, logged and alerted,
           and so are individual orders that got no bill.
           Steps 3 and 4 are never undone.

    Order confirmation and bill issuance fail independently: orders must
    not stay pending because rendering failed.

Architecture: produce_batch/services.  Owns its transactions through an
    injected session factory, like the scheduler.

Concurrency:
    Two confirms racing on one batch: the row lock plus the guarded UPDATE
    let exactly one through.  The loser gets BatchStateConflictError and
    its transaction (including any order transitions) rolls back.
"""

from __future__ import annotations

from typing import Any, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from produce_kernel.db.engine import session_scope
from produce_kernel.domain.clock import Clock, SystemClock
from produce_kernel.exceptions import (
    BatchNotFoundError,
    BatchStateConflictError,
    BillStageIncompleteError,
    StateConflictError,
)
from produce_kernel.logging_config import LogContext, get_logger

from produce_batch.domain.time_window import TimeWindowResolver
from produce_batch.domain.types import (
    Batch,
    BatchStatus,
    BillRunResult,
    ConfirmResult,
    OrderCountReport,
    parse_identifier,
)
from produce_batch.services.batch_store import BatchStore
from produce_batch.services.bill_orchestrator import BillOrchestrator
from produce_batch.services.notifier import Notifier, NullNotifier
from produce_batch.services.order_store import OrderStore

logger = get_logger("batch.lifecycle")


class BatchLifecycle:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        resolver: TimeWindowResolver,
        bill_orchestrator_factory: Callable[[Session], BillOrchestrator],
        clock: Clock | None = None,
        notifier: Notifier | None = None,
    ):
        self._session_factory = session_factory
        self._resolver = resolver
        self._bill_orchestrator_factory = bill_orchestrator_factory
        self._clock = clock or SystemClock()
        self._notifier = notifier or NullNotifier()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def confirm(
        self,
        batch_id: UUID | str,
        actor_id: str | None = None,
        generate_bills: bool = True,
    ) -> ConfirmResult:
        """
        Lock the batch and its pending orders, then optionally bill them.

        ``actor_id`` None marks a system (scheduled) confirmation.

        Raises:
            InvalidIdentifierError: Malformed batch id.
            BatchNotFoundError: No such batch.
            BatchStateConflictError: Batch is not open.
            TransientStoreError: Store failure before the commit.
        """
        bid = parse_identifier("batch", batch_id)

        with LogContext.bind(batch_id=str(bid), actor_id=actor_id):
            with session_scope(self._session_factory) as session:
                store = self._store(session)
                orders = OrderStore(session)

                batch = store.get_for_update(bid)
                if batch is None:
                    raise BatchNotFoundError(str(bid))
                if batch.status != BatchStatus.OPEN:
                    raise BatchStateConflictError(str(bid), batch.status.value)

                pending = orders.pending_order_ids(bid)
                orders_confirmed = orders.bulk_confirm(pending) if pending else 0
                batch = store.confirm(bid, actor_id)

            logger.info(
                "batch_lifecycle_confirmed",
                extra={
                    "batch_number": batch.batch_number,
                    "orders_confirmed": orders_confirmed,
                    "system_confirmed": actor_id is None,
                },
            )

            if not generate_bills:
                return ConfirmResult(batch=batch, orders_confirmed=orders_confirmed)
            return self._run_bill_stage(batch, orders_confirmed)

    def expire(self, batch_id: UUID | str) -> Batch:
        """
        open -> expired.  Refused while the batch still holds pending
        orders, so no order is ever stranded in an expired batch.
        """
        bid = parse_identifier("batch", batch_id)

        with LogContext.bind(batch_id=str(bid)):
            with session_scope(self._session_factory) as session:
                store = self._store(session)
                batch = store.get_for_update(bid)
                if batch is None:
                    raise BatchNotFoundError(str(bid))
                if batch.status != BatchStatus.OPEN:
                    raise BatchStateConflictError(str(bid), batch.status.value)

                pending = OrderStore(session).pending_order_ids(bid)
                if pending:
                    raise StateConflictError(
                        f"Batch {batch.batch_number} still has {len(pending)} "
                        "pending order(s); confirm it instead"
                    )
                return store.expire(bid)

    # -------------------------------------------------------------------------
    # Bill stage
    # -------------------------------------------------------------------------

    def regenerate_bills(self, batch_id: UUID | str) -> BillRunResult:
        """
        Operator retry of the bill stage.  Only orders still without a bill
        are processed.  Failures propagate to the operator.
        """
        bid = parse_identifier("batch", batch_id)

        with LogContext.bind(batch_id=str(bid)):
            with session_scope(self._session_factory) as session:
                batch = self._store(session).get(bid)
                if batch is None:
                    raise BatchNotFoundError(str(bid))
                if batch.status != BatchStatus.CONFIRMED:
                    raise StateConflictError(
                        f"Batch {batch.batch_number} is {batch.status.value}; "
                        "bills are generated only for confirmed batches"
                    )
                return self._bill_orchestrator_factory(session).generate_for_batch(batch)

    def _run_bill_stage(self, batch: Batch, orders_confirmed: int) -> ConfirmResult:
        try:
            with session_scope(self._session_factory) as session:
                run = self._bill_orchestrator_factory(session).generate_for_batch(batch)
        except Exception as exc:
            logger.error(
                "bill_stage_failed",
                extra={"batch_number": batch.batch_number},
                exc_info=True,
            )
            self._alert("bill_stage_failed", exc, {"batch_number": batch.batch_number})
            return ConfirmResult(
                batch=batch,
                orders_confirmed=orders_confirmed,
                bills_requested=True,
                bill_stage_error=str(exc),
            )

        if run.errors:
            failed = [e.order_number for e in run.errors]
            logger.warning(
                "bill_stage_incomplete",
                extra={"batch_number": batch.batch_number, "failed_orders": failed},
            )
            self._alert(
                "bill_stage_incomplete",
                BillStageIncompleteError(batch.batch_number, failed),
                {"batch_number": batch.batch_number, "failed_orders": failed},
            )

        return ConfirmResult(
            batch=batch,
            orders_confirmed=orders_confirmed,
            bills_requested=True,
            bills_generated=run.bills_generated,
            bill_errors=run.errors,
        )

    # -------------------------------------------------------------------------
    # Read projections
    # -------------------------------------------------------------------------

    def order_count_report(self, batch_id: UUID | str) -> OrderCountReport:
        """Cached order count next to the true active count.  Read-only."""
        bid = parse_identifier("batch", batch_id)
        session = self._session_factory()
        try:
            batch = self._store(session).get(bid)
            if batch is None:
                raise BatchNotFoundError(str(bid))
            actual = OrderStore(session).count_active(bid)
        finally:
            session.close()

        report = OrderCountReport(
            batch_id=bid,
            batch_number=batch.batch_number,
            cached_count=batch.order_count,
            actual_count=actual,
        )
        if report.drift:
            logger.info(
                "order_count_drift",
                extra={
                    "batch_number": batch.batch_number,
                    "cached_count": report.cached_count,
                    "actual_count": report.actual_count,
                },
            )
        return report

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _store(self, session: Session) -> BatchStore:
        return BatchStore(session, self._resolver, self._clock)

    def _alert(self, event: str, error: BaseException, context: dict[str, Any]) -> None:
        try:
            self._notifier.notify_failure(event, error, context)
        except Exception:
            logger.exception("notifier_failed", extra={"alert_event": event})
