"""Assessment response synchronization engine.

Tracks one user's in-progress answers across the questionnaires of an
assessment cycle, mirrors unsent answers to a local key-value store,
reconciles them with the remote system of record, and enforces the
irreversible submission lifecycle. Business logic lives in
`assessment_sync/logic/`, payload models in `assessment_sync/models/`, and the
reference FastAPI backend in `assessment_sync/main.py` and `routes/`.
"""

from __future__ import annotations

from assessment_sync.config import SyncConfig, load_config
from assessment_sync.logic.engine import AssessmentEngine
from assessment_sync.logic.session import Session
from assessment_sync.main import create_app

__all__ = ["AssessmentEngine", "Session", "SyncConfig", "load_config", "create_app"]
