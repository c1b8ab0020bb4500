"""Database layer - engine, base classes, types."""

from ledger_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from ledger_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_lock_conflict,
    session_scope,
)
from ledger_kernel.db.types import ZERO, round_money, to_money

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "is_lock_conflict",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "ZERO",
    "round_money",
    "to_money",
]
