"""Database layer - engine, base classes, types, and immutability."""

from disposition_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from disposition_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "UTCDateTime",
    "UUIDString",
    "UUID",
]
