"""Database layer - engine, base classes and session scopes."""

from produce_kernel.db.base import UUID, Base, TimestampedBase, UUIDString, as_utc
from produce_kernel.db.engine import (
    create_engine_for_url,
    create_tables,
    drop_tables,
    make_session_factory,
    session_scope,
    translate_store_errors,
)

__all__ = [
    "Base",
    "TimestampedBase",
    "UUIDString",
    "UUID",
    "as_utc",
    "create_engine_for_url",
    "create_tables",
    "drop_tables",
    "make_session_factory",
    "session_scope",
    "translate_store_errors",
]
