"""Database layer - engine, base classes, types, and immutability."""

from progress_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from progress_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from progress_kernel.db.types import Hours, MilestoneValue, Weight

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "Hours",
    "Weight",
    "MilestoneValue",
]
