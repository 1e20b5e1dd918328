"""
BatchingOrchestrator -- composition root for the batching engine.

Contract:
    Wires the resolver, assignment policy, stores, bill orchestrator,
    lifecycle and scheduled jobs from one BatchingConfig, one session
    factory, one Clock and one Notifier.  Exposes the operations the
    calling layer (HTTP handlers, operator tooling) needs.

    - ``confirm_batch()`` is the single entry point for manual confirmation;
      the scheduler reaches the same BatchLifecycle.confirm with actor None.
    - ``create_scheduler()`` returns an explicit BatchScheduler handle.

Non-goals:
    - Does NOT start the scheduler automatically -- caller decides.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from produce_kernel.db.engine import create_engine_for_url, make_session_factory, session_scope
from produce_kernel.domain.clock import Clock, SystemClock
from produce_kernel.exceptions import BatchNotFoundError
from produce_kernel.logging_config import configure_logging, get_logger
from produce_kernel.services.counter_service import CounterService

from produce_batch.config import BatchingConfig, load_config
from produce_batch.domain.assignment import BatchAssignmentPolicy
from produce_batch.domain.schedule import (
    AUTO_CONFIRM_FIRST_BATCH,
    CREATE_NEXT_DAY_BATCHES,
    DailyTrigger,
)
from produce_batch.domain.time_window import TimeWindowResolver
from produce_batch.domain.types import (
    Batch,
    BatchStatus,
    BillRunResult,
    ConfirmResult,
    Order,
    OrderCountReport,
    OrderLineInput,
    ProductSummary,
    parse_identifier,
    parse_local_date,
)
from produce_batch.services.batch_jobs import BatchJobs
from produce_batch.services.batch_store import BatchStore
from produce_batch.services.bill_archive import BillArchive
from produce_batch.services.bill_orchestrator import (
    BillOrchestrator,
    DocumentRenderer,
    PassthroughRenderer,
)
from produce_batch.services.lifecycle import BatchLifecycle
from produce_batch.services.notifier import Notifier, NullNotifier
from produce_batch.services.order_intake import OrderIntake
from produce_batch.services.order_store import OrderStore
from produce_batch.services.scheduler import BatchScheduler

logger = get_logger("batch.orchestrator")


class BatchingOrchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: BatchingConfig,
        clock: Clock | None = None,
        renderer: DocumentRenderer | None = None,
        notifier: Notifier | None = None,
        archive: BillArchive | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()
        self._renderer = renderer or PassthroughRenderer()
        self._notifier = notifier or NullNotifier()
        self._archive = archive or BillArchive(config.bills.storage_dir)

        self._resolver = TimeWindowResolver(config.business.tz, self._clock)
        self._policy = BatchAssignmentPolicy(
            self._resolver,
            first_cutoff_hour=config.batches.first_cutoff_hour,
            second_cutoff_hour=config.batches.second_cutoff_hour,
        )
        self._lifecycle = BatchLifecycle(
            session_factory=session_factory,
            resolver=self._resolver,
            bill_orchestrator_factory=self.bill_orchestrator,
            clock=self._clock,
            notifier=self._notifier,
        )
        self._jobs = BatchJobs(
            session_factory=session_factory,
            lifecycle=self._lifecycle,
            policy=self._policy,
            resolver=self._resolver,
            clock=self._clock,
        )

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_url(
        cls,
        database_url: str,
        config: BatchingConfig | None = None,
        clock: Clock | None = None,
        renderer: DocumentRenderer | None = None,
        notifier: Notifier | None = None,
    ) -> BatchingOrchestrator:
        """Build an orchestrator with its own engine and session factory."""
        configure_logging()
        engine = create_engine_for_url(database_url)
        return cls(
            session_factory=make_session_factory(engine),
            config=config or load_config(),
            clock=clock,
            renderer=renderer,
            notifier=notifier,
        )

    def bill_orchestrator(self, session: Session) -> BillOrchestrator:
        return BillOrchestrator(
            session=session,
            counter=CounterService(session),
            renderer=self._renderer,
            archive=self._archive,
            firms=self._config.firms,
            resolver=self._resolver,
            clock=self._clock,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def confirm_batch(
        self,
        batch_id: UUID | str,
        actor_id: str | None,
        generate_bills: bool = True,
    ) -> ConfirmResult:
        return self._lifecycle.confirm(batch_id, actor_id=actor_id, generate_bills=generate_bills)

    def expire_batch(self, batch_id: UUID | str) -> Batch:
        return self._lifecycle.expire(batch_id)

    def regenerate_bills(self, batch_id: UUID | str) -> BillRunResult:
        return self._lifecycle.regenerate_bills(batch_id)

    def order_count_report(self, batch_id: UUID | str) -> OrderCountReport:
        return self._lifecycle.order_count_report(batch_id)

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def place_order(
        self,
        customer_name: str,
        lines: Sequence[OrderLineInput],
        created_at: datetime | None = None,
        customer_phone: str = "",
        delivery_address: str = "",
    ) -> Order:
        with session_scope(self._session_factory) as session:
            return self._intake(session).place_order(
                customer_name,
                lines,
                created_at=created_at,
                customer_phone=customer_phone,
                delivery_address=delivery_address,
            )

    def cancel_order(self, order_id: UUID | str) -> Order:
        with session_scope(self._session_factory) as session:
            return self._intake(session).cancel_order(order_id)

    def get_order(self, order_id: UUID | str) -> Order | None:
        oid = parse_identifier("order", order_id)
        with session_scope(self._session_factory) as session:
            return OrderStore(session).get(oid)

    # -------------------------------------------------------------------------
    # Read projections
    # -------------------------------------------------------------------------

    def get_batch(self, batch_id: UUID | str) -> Batch:
        bid = parse_identifier("batch", batch_id)
        with session_scope(self._session_factory) as session:
            batch = self._store(session).get(bid)
        if batch is None:
            raise BatchNotFoundError(str(bid))
        return batch

    def batches_for_date(self, local_date: date | str) -> list[Batch]:
        day = parse_local_date(local_date)
        with session_scope(self._session_factory) as session:
            return self._store(session).list_for_date(self._resolver.day_start(day))

    def today_batches(self) -> list[Batch]:
        return self.batches_for_date(self._resolver.today())

    def recent_batches(self, status: BatchStatus | None = None, limit: int = 50) -> list[Batch]:
        with session_scope(self._session_factory) as session:
            return self._store(session).list_recent(status=status, limit=limit)

    def quantity_summary(self, batch_id: UUID | str) -> list[ProductSummary]:
        bid = parse_identifier("batch", batch_id)
        with session_scope(self._session_factory) as session:
            if self._store(session).get(bid) is None:
                raise BatchNotFoundError(str(bid))
            return OrderStore(session).quantity_summary(bid)

    def current_window_label(self, instant: datetime | None = None) -> str:
        return self._policy.describe_current_window(instant)

    def read_bill(self, filename: str) -> bytes:
        return self._archive.read(filename)

    # -------------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------------

    def triggers(self) -> tuple[DailyTrigger, ...]:
        windows = self._config.batches
        return (
            DailyTrigger(AUTO_CONFIRM_FIRST_BATCH, windows.first_cutoff_hour, 0),
            DailyTrigger(
                CREATE_NEXT_DAY_BATCHES,
                windows.second_cutoff_hour,
                windows.precreate_minute,
            ),
        )

    def create_scheduler(self) -> BatchScheduler:
        """A scheduler handle wired to this orchestrator.  Not started."""
        settings = self._config.scheduler
        return BatchScheduler(
            jobs=self._jobs,
            triggers=self.triggers(),
            resolver=self._resolver,
            clock=self._clock,
            notifier=self._notifier,
            tick_interval_seconds=settings.tick_interval_seconds,
            enabled=settings.enabled,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session_factory(self) -> Callable[[], Session]:
        return self._session_factory

    @property
    def config(self) -> BatchingConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def resolver(self) -> TimeWindowResolver:
        return self._resolver

    @property
    def policy(self) -> BatchAssignmentPolicy:
        return self._policy

    @property
    def lifecycle(self) -> BatchLifecycle:
        return self._lifecycle

    @property
    def jobs(self) -> BatchJobs:
        return self._jobs

    @property
    def archive(self) -> BillArchive:
        return self._archive

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _store(self, session: Session) -> BatchStore:
        return BatchStore(session, self._resolver, self._clock)

    def _intake(self, session: Session) -> OrderIntake:
        return OrderIntake(
            session=session,
            policy=self._policy,
            resolver=self._resolver,
            batch_store=self._store(session),
            counter=CounterService(session),
            clock=self._clock,
        )
