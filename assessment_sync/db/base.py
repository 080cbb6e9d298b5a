"""SQLAlchemy engine helper for the durable key-value store.

Local answer caches default to an in-memory store; when a storage URL is
configured they live in a single `kv_store` table reachable through
SQLAlchemy (SQLite files locally, any SQLAlchemy URL elsewhere). This module
only manages engine lifecycle.
"""

from __future__ import annotations

import logging
from typing import Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


# Module-level cache so every store opened on one URL shares an Engine
_ENGINES: Dict[str, Engine] = {}


def get_engine(url: str) -> Engine:
    """Return a cached SQLAlchemy Engine for the given URL.

    For SQLite in-memory URLs, use a StaticPool to keep a single connection
    alive across sessions so the table survives between calls.
    """
    engine = _ENGINES.get(url)
    if engine is None:
        kwargs: dict = {"future": True, "pool_pre_ping": True}
        if url.startswith("sqlite") and ":memory:" in url:
            kwargs.update({
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            })
        engine = create_engine(url, **kwargs)
        _ENGINES[url] = engine
        logger.info("kv_engine_created url=%s", url.split("@")[-1])
    return engine


def dispose_engines() -> None:
    """Dispose every cached Engine (test teardown)."""
    for engine in _ENGINES.values():
        engine.dispose()
    _ENGINES.clear()


__all__ = ["get_engine", "dispose_engines"]
