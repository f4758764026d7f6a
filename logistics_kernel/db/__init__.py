"""Database layer: declarative base and engine/session management."""

from logistics_kernel.db.base import Base, TrackedBase, new_id
from logistics_kernel.db.engine import Database

__all__ = [
    "Base",
    "Database",
    "TrackedBase",
    "new_id",
]
