"""
CounterService -- named, strictly increasing counters via locked rows.

Responsibility:
    Issues the sequence part of human-readable document numbers (order
    numbers, delivery-bill numbers).  Counters are scoped by name, e.g.
    ``order_ORD2601`` or ``deliverybill_BILL2601``, so each kind of document
    restarts its sequence every month.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by OrderIntake and BillOrchestrator.

Invariants enforced:
    - Strict increase per name: the locked counter row is the sole source
      of truth.  Aggregate-max-plus-one over the document table is never
      used.
    - Transactional: an increment becomes visible only when the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError on concurrent first use of a name (handled via
      savepoint rollback and re-read).
    - CounterError if the stored value is not positive after increment.
"""

from typing import Protocol

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from produce_kernel.db.base import Base
from produce_kernel.exceptions import CounterError
from produce_kernel.logging_config import get_logger

logger = get_logger("services.counter")


class SequenceCounter(Base):
    """
    Counter table.

    Each row is one named counter with its last issued value.
    """

    __tablename__ = "sequence_counters"

    # Counter name (e.g., "order_ORD2601", "deliverybill_BILL2601")
    name: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class Counter(Protocol):
    """Anything that can hand out the next value of a named counter."""

    def next_value(self, name: str) -> int: ...


class CounterService:
    """
    Session-bound counter allocation.

    Contract:
        ``next_value(name)`` returns an integer strictly greater than every
        value previously returned for ``name``.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, name: str) -> int:
        """
        Lock (or create) the counter row for ``name``, increment it and
        return the new value.

        The row stays locked until the caller's transaction ends, which
        serializes concurrent allocations for the same name.
        """
        counter = self._locked(name)

        if counter is None:
            # First use: another transaction may be creating the same row.
            savepoint = self._session.begin_nested()
            try:
                self._session.add(SequenceCounter(name=name, current_value=1))
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "counter_allocated",
                    extra={"counter_name": name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "counter_create_race_retry",
                    extra={"counter_name": name},
                )
                savepoint.rollback()
                self._session.expire_all()
                counter = self._locked(name)
                if counter is None:
                    raise CounterError(name, "counter row vanished after create race")

        counter.current_value += 1
        if counter.current_value <= 0:
            raise CounterError(name, f"non-positive value {counter.current_value}")
        self._session.flush()
        logger.debug(
            "counter_allocated",
            extra={"counter_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        """Last issued value for ``name``, or None if never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == name)
        ).scalar_one_or_none()

    def _locked(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
