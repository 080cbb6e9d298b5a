"""Error taxonomy for the sync engine.

Nothing raised from here is fatal to the process: callers recover locally
(LocalCache fallback, empty questionnaire) or surface the error to the UI.
"""

from __future__ import annotations

from typing import Optional


class AssessmentSyncError(Exception):
    pass


class ValidationError(AssessmentSyncError, ValueError):
    """An answer references an unknown question or an out-of-range option."""

    def __init__(self, message: str, question_id: Optional[str] = None, option_index: Optional[int] = None):
        super().__init__(message)
        self.question_id = question_id
        self.option_index = option_index


class PersistenceError(AssessmentSyncError):
    """The local key-value store failed (quota, disabled or broken storage)."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class NetworkError(AssessmentSyncError):
    """A fetch or submit call failed, timed out or returned a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StateConflictError(AssessmentSyncError):
    """The server refused a write because the submission is already finalised."""

    def __init__(self, message: str, submission_name: Optional[str] = None):
        super().__init__(message)
        self.submission_name = submission_name


class TransitionError(AssessmentSyncError):
    """A submission action was requested from a state that does not allow it."""


__all__ = [
    "AssessmentSyncError",
    "ValidationError",
    "PersistenceError",
    "NetworkError",
    "StateConflictError",
    "TransitionError",
]
