"""Database layer - engine, base classes, types."""

from contracts_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from contracts_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from contracts_kernel.db.types import round_money, to_decimal

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
    "create_tables",
    "Base",
    "UUIDString",
    "UTCDateTime",
    "UUID",
    "round_money",
    "to_decimal",
]
