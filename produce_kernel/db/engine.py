"""
Module: produce_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factories and
    transactional scope utilities.  This is the single point of database
    connection configuration for the entire system.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from models/, services/, domain/, or outer layers
    (except for create_tables/drop_tables which import models).

Invariants enforced:
    - PostgreSQL is the production backend.  Session isolation level is
      READ COMMITTED with explicit row-level locking (FOR UPDATE) and
      guarded UPDATEs where stronger guarantees are needed.
    - SQLite is supported for tests.  The pysqlite driver defers BEGIN and
      breaks SAVEPOINT semantics, so SQLite engines get the event-hook
      recipe that emits BEGIN explicitly.
    - No process-wide engine: every composition root owns its engine and
      passes its session factory down.

Failure modes:
    - TransientStoreError (via translate_store_errors) when the database is
      unreachable or drops the connection mid-operation.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from produce_kernel.exceptions import TransientStoreError
from produce_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def create_engine_for_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Build an engine for ``database_url``.

    PostgreSQL engines get a sized QueuePool and READ COMMITTED isolation.
    SQLite engines get the SAVEPOINT recipe and a busy timeout.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": 15, "check_same_thread": False},
        )
        _install_sqlite_savepoint_support(engine)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    logger.info(
        "engine_created",
        extra={"dialect": engine.dialect.name, "echo": echo},
    )
    return engine


def _install_sqlite_savepoint_support(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory used everywhere: objects stay readable after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope(factory) as session:
            store.increment_order_count(batch_id)
            # Commits on successful exit, rolls back on exception
    """
    session = session_factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


@contextmanager
def translate_store_errors(operation: str) -> Generator[None, None, None]:
    """
    Re-raise connection-level database failures as TransientStoreError.

    Integrity and programming errors pass through untouched; only failures
    that a later retry could plausibly fix are translated.
    """
    try:
        yield
    except OperationalError as exc:
        logger.warning(
            "store_operation_failed",
            extra={"operation": operation, "error": str(exc.orig or exc)},
        )
        raise TransientStoreError(operation, str(exc.orig or exc)) from exc
    except DBAPIError as exc:
        if not exc.connection_invalidated:
            raise
        logger.warning(
            "store_connection_invalidated",
            extra={"operation": operation},
        )
        raise TransientStoreError(operation, "connection invalidated") from exc


def create_tables(engine: Engine) -> None:
    """
    Create all tables defined in the models.

    Imports every ORM module so Base.metadata contains all table definitions.
    """
    from produce_kernel.db.base import Base

    _import_all_models()
    Base.metadata.create_all(engine)


def drop_tables(engine: Engine) -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from produce_kernel.db.base import Base

    _import_all_models()
    Base.metadata.drop_all(engine)


def _import_all_models() -> None:
    import produce_kernel.services.counter_service  # noqa: F401
    import produce_batch.models  # noqa: F401


