"""Key-value persistence backends for the local answer cache.

`KeyValueStore` is the capability the cache depends on: get, set and delete
of JSON-serialisable values. Two implementations are provided:
- `InMemoryKeyValueStore`: process-local dict, the development default.
- `SqlKeyValueStore`: one `kv_store` table through SQLAlchemy, so caches
  survive process restarts (SQLite file locally, any SQLAlchemy URL elsewhere).

Backend failures are raised as `PersistenceError`; callers decide whether they
are fatal.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.exc import SQLAlchemyError

from assessment_sync.db.base import get_engine
from assessment_sync.logic.errors import PersistenceError

logger = logging.getLogger(__name__)

MEMORY_URL = "memory://"


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value or None when absent."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serialisable value, replacing any previous one."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the key; deleting an absent key is not an error."""


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        # Stored serialised so callers never share mutable state with the store
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"value for {key} is not serialisable: {exc}", key=key) from exc

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data.keys())


class SqlKeyValueStore(KeyValueStore):
    """Key-value store backed by a single SQL table."""

    def __init__(self, url: str) -> None:
        self._url = url
        self._engine = get_engine(url)
        self._ensure_table()

    def _ensure_table(self) -> None:
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    sql_text(
                        "CREATE TABLE IF NOT EXISTS kv_store ("
                        " key VARCHAR(512) PRIMARY KEY,"
                        " value TEXT NOT NULL)"
                    )
                )
        except SQLAlchemyError as exc:
            logger.error("kv_store_init_failed url=%s", self._url.split("@")[-1], exc_info=True)
            raise PersistenceError(f"cannot initialise kv_store: {exc}") from exc

    def get(self, key: str) -> Optional[Any]:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    sql_text("SELECT value FROM kv_store WHERE key = :k"), {"k": key}
                ).fetchone()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"read failed for {key}: {exc}", key=key) from exc
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"corrupt value for {key}: {exc}", key=key) from exc

    def set(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"value for {key} is not serialisable: {exc}", key=key) from exc
        try:
            with self._engine.begin() as conn:
                conn.execute(sql_text("DELETE FROM kv_store WHERE key = :k"), {"k": key})
                conn.execute(
                    sql_text("INSERT INTO kv_store (key, value) VALUES (:k, :v)"),
                    {"k": key, "v": payload},
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"write failed for {key}: {exc}", key=key) from exc

    def delete(self, key: str) -> None:
        try:
            with self._engine.begin() as conn:
                conn.execute(sql_text("DELETE FROM kv_store WHERE key = :k"), {"k": key})
        except SQLAlchemyError as exc:
            raise PersistenceError(f"delete failed for {key}: {exc}", key=key) from exc


def open_store(url: Optional[str]) -> KeyValueStore:
    """Open the store for a configured storage URL (`memory://` or SQLAlchemy URL)."""
    if not url or url == MEMORY_URL:
        return InMemoryKeyValueStore()
    return SqlKeyValueStore(url)


__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "SqlKeyValueStore",
    "open_store",
    "MEMORY_URL",
]
