"""Answer, progress and submission record models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class Answer(BaseModel):
    question_id: str = Field(..., min_length=1)
    option_index: int = Field(..., ge=0)


class SubmissionRecord(BaseModel):
    """Terminal marker that a cycle's answers are final for the user."""

    model_config = ConfigDict(frozen=True)

    cycle_id: str
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class QuestionnaireProgress(BaseModel):
    questionnaire_id: str
    answered: int
    total: int

    @property
    def is_complete(self) -> bool:
        return self.total > 0 and self.answered == self.total

    @property
    def percent(self) -> int:
        return 0 if self.total == 0 else round(self.answered * 100 / self.total)


class CycleSummary(BaseModel):
    """What the user confirms before the irreversible submit."""

    cycle_id: str
    questionnaires: List[QuestionnaireProgress] = Field(default_factory=list)
    answers: Dict[str, Dict[str, int]] = Field(default_factory=dict)

    @property
    def total_answered(self) -> int:
        return sum(p.answered for p in self.questionnaires)


class SubmissionState(str, Enum):
    DRAFT = "Draft"
    READY = "Ready"
    SAVED = "Saved"
    SUBMITTED = "Submitted"


class EntryPoint(str, Enum):
    START = "start"
    CONTINUE = "continue"
    SUBMITTED = "submitted"


__all__ = [
    "Answer",
    "SubmissionRecord",
    "QuestionnaireProgress",
    "CycleSummary",
    "SubmissionState",
    "EntryPoint",
]
