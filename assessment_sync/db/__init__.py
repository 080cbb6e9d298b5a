"""Database bootstrap utilities for the assessment sync engine.

This module exposes the engine helper used by the SQL-backed key-value store.
The DB layer is intentionally minimal and does not leak ORM models into the
sync logic.
"""

from assessment_sync.db.base import dispose_engines, get_engine

__all__ = [
    "get_engine",
    "dispose_engines",
]
