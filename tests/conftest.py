"""
Pytest fixtures for the produce batching test suite.

Provides:
- A throwaway database per test (temporary SQLite file by default)
- A DeterministicClock pinned to a known business-local instant
- A validated BatchingConfig with two firms
- A fully wired BatchingOrchestrator with a recording notifier

Environment Variables:
- DATABASE_URL: PostgreSQL connection URL.  When set, every test runs
  against PostgreSQL and the ``postgres``-marked race tests are enabled.
"""

import json
import logging
import os
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO
from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from produce_kernel.db.engine import (
    create_engine_for_url,
    create_tables,
    drop_tables,
    make_session_factory,
)
from produce_kernel.domain.clock import DeterministicClock
from produce_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

from produce_batch.config import (
    BatchingConfig,
    BatchWindowSettings,
    BillSettings,
    BusinessSettings,
    FirmConfig,
    SchedulerSettings,
)
from produce_batch.domain.assignment import BatchAssignmentPolicy
from produce_batch.domain.time_window import TimeWindowResolver
from produce_batch.domain.types import OrderLineInput
from produce_batch.orchestrator import BatchingOrchestrator
from produce_batch.services.bill_archive import BillArchive
from produce_batch.services.notifier import RecordingNotifier

# Business timezone used throughout the suite (+05:30, no DST).
IST = timezone(timedelta(hours=5, minutes=30))

# 2026-01-15 local calendar day.
BUSINESS_DAY = date(2026, 1, 15)


def local_instant(hour: int, minute: int = 0, day: date = BUSINESS_DAY) -> datetime:
    """UTC instant of ``hour:minute`` business-local time on ``day``."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=IST).astimezone(
        timezone.utc
    )


def line(
    product: str = "Tomato",
    quantity: str = "10",
    rate: str = "25.50",
    category: str | None = "Vegetables",
    unit: str = "kg",
) -> OrderLineInput:
    return OrderLineInput(
        product_name=product,
        quantity=Decimal(quantity),
        rate=Decimal(rate),
        unit=unit,
        category=category,
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture produce_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.confirm_batch(batch_id, actor_id="u-1")
            logs = captured_logs()
            assert any(r["message"] == "batch_confirmed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("produce_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(entry) for entry in lines if entry]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def pytest_collection_modifyitems(config, items):
    if os.environ.get("DATABASE_URL", "").startswith("postgresql"):
        return
    skip_pg = pytest.mark.skip(reason="requires DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'batching.db'}"


@pytest.fixture
def engine(database_url):
    eng = create_engine_for_url(database_url)
    if eng.dialect.name == "postgresql":
        drop_tables(eng)
    create_tables(eng)
    yield eng
    if eng.dialect.name == "postgresql":
        drop_tables(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def session(session_factory) -> Session:
    """A single session for store-level tests.  Rolled back afterwards."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Time
# =============================================================================


@pytest.fixture
def clock():
    """07:00 business-local on 2026-01-15: the 1st-batch window is open."""
    return DeterministicClock(local_instant(7, 0))


@pytest.fixture
def resolver(clock):
    return TimeWindowResolver(IST, clock)


@pytest.fixture
def policy(resolver):
    return BatchAssignmentPolicy(resolver, first_cutoff_hour=8, second_cutoff_hour=12)


# =============================================================================
# Configuration and collaborators
# =============================================================================


PRATIBHA = FirmConfig(
    id="pratibha",
    name="Pratibha Marketing",
    address="Market Yard, Pune",
    phone="+91 20 0000 0000",
    email="orders@pratibha.example",
    is_default=True,
)

VIKAS = FirmConfig(
    id="vikas",
    name="Vikas Frozen Foods",
    address="MIDC, Pune",
    phone="+91 20 1111 1111",
    email="billing@vikas.example",
    categories=frozenset({"Fruits", "Frozen"}),
)


@pytest.fixture
def firms() -> tuple[FirmConfig, ...]:
    return (PRATIBHA, VIKAS)


@pytest.fixture
def bill_dir(tmp_path) -> Path:
    return tmp_path / "bills"


@pytest.fixture
def config(firms, bill_dir) -> BatchingConfig:
    return BatchingConfig(
        business=BusinessSettings(name="Pratibha Marketing", utc_offset="+05:30"),
        batches=BatchWindowSettings(
            first_cutoff_hour=8, second_cutoff_hour=12, precreate_minute=1,
        ),
        scheduler=SchedulerSettings(enabled=True, tick_interval_seconds=30),
        bills=BillSettings(storage_dir=bill_dir),
        firms=firms,
    )


@pytest.fixture
def archive(bill_dir) -> BillArchive:
    return BillArchive(bill_dir)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


class FailingRenderer:
    """Renderer that refuses documents for chosen order numbers."""

    def __init__(self, fail_for: set[str] | None = None, fail_all: bool = False):
        self.fail_for = fail_for or set()
        self.fail_all = fail_all
        self.rendered: list[dict] = []

    def render(self, document: bytes) -> bytes:
        payload = json.loads(document)
        if self.fail_all or payload["order_number"] in self.fail_for:
            raise RuntimeError(f"renderer refused {payload['order_number']}")
        self.rendered.append(payload)
        return b"%PDF-1.4\n" + document


@pytest.fixture
def renderer() -> FailingRenderer:
    return FailingRenderer()


@pytest.fixture
def orchestrator(session_factory, config, clock, renderer, notifier, archive):
    return BatchingOrchestrator(
        session_factory=session_factory,
        config=config,
        clock=clock,
        renderer=renderer,
        notifier=notifier,
        archive=archive,
    )
