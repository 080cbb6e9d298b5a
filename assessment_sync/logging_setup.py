"""Central logging configuration for the sync engine.

One stdout handler on the root logger; every module logs through
`logging.getLogger(__name__)`. The engine's own level follows
`ASSESSMENT_LOG_LEVEL` (default INFO) while httpx request chatter is kept at
WARNING. Configuration is applied once; later calls are no-ops.
"""
from __future__ import annotations
import logging
import os
from logging.config import dictConfig
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"


def _dict_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": LOG_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "DEBUG",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {"level": "INFO", "handlers": ["console"]},
        "loggers": {
            "assessment_sync": {"level": level, "handlers": ["console"], "propagate": False},
            "httpx": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": "INFO", "handlers": ["console"], "propagate": False},
        },
    }


def configure_logging(level: Optional[str] = None) -> None:
    """Configure engine-wide logging once.

    If the root logger already has handlers, return to prevent duplicate output
    (important under reloaders and test runners).
    """
    root = logging.getLogger()
    if root.handlers:
        return
    chosen = (level or os.environ.get("ASSESSMENT_LOG_LEVEL") or "INFO").upper()
    dictConfig(_dict_config(chosen))


__all__ = ["configure_logging", "LOG_FORMAT"]
