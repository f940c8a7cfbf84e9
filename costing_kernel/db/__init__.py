"""Database layer - engine, base classes and immutability."""

from costing_kernel.db.base import UUID, Base, ExactDecimal, UTCDateTime, UUIDString
from costing_kernel.db.engine import create_tables, get_engine, get_session, session_scope

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "ExactDecimal",
    "UTCDateTime",
    "UUIDString",
    "UUID",
]
