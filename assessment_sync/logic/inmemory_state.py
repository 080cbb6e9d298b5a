"""Central in-memory state for the reference backend (test/dev only).

Single source of truth for the questionnaires and submissions the reference
FastAPI backend serves. Routes read and write these holders; the test-support
reset endpoint clears them.
"""

from __future__ import annotations

from typing import Any, Dict, List

# Questionnaire listing per user: user_id -> [ {submission_name, questionnaire_type, status} ]
QUESTIONNAIRES_BY_USER: Dict[str, List[Dict[str, Any]]] = {}

# Submission records: submission_name -> {"status": str, "questions": [..], "answers": {qid: idx}}
SUBMISSIONS: Dict[str, Dict[str, Any]] = {}

# Count of accepted answer POSTs per submission (observability for idempotence checks)
SUBMIT_COUNTS: Dict[str, int] = {}


def clear_all() -> None:
    QUESTIONNAIRES_BY_USER.clear()
    SUBMISSIONS.clear()
    SUBMIT_COUNTS.clear()


__all__ = [
    "QUESTIONNAIRES_BY_USER",
    "SUBMISSIONS",
    "SUBMIT_COUNTS",
    "clear_all",
]
