"""Pydantic models for questionnaires and their questions.

Questions are immutable once fetched. A questionnaire carries the remote
`submission_name` used for every server call; the cycle it belongs to is
derived from that name.
"""

from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from assessment_sync.logic.cycles import cycle_id_from_submission_name


class QuestionnaireStatus(str, Enum):
    DRAFT = "Draft"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"

    @classmethod
    def parse(cls, raw: object) -> "QuestionnaireStatus":
        """Accept both the spaced and the compact spelling of In Progress."""
        if isinstance(raw, cls):
            return raw
        text = str(raw or "").strip()
        if text.replace(" ", "").lower() == "inprogress":
            return cls.IN_PROGRESS
        for member in cls:
            if member.value.lower() == text.lower():
                return member
        raise ValueError(f"unknown questionnaire status: {raw!r}")


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    text: str = ""
    options: List[str] = Field(default_factory=list)

    def accepts(self, option_index: int) -> bool:
        return isinstance(option_index, int) and not isinstance(option_index, bool) and 0 <= option_index < len(self.options)


class QuestionnaireSummary(BaseModel):
    """One row of the per-user questionnaire listing."""

    submission_name: str
    questionnaire_type: str
    status: QuestionnaireStatus = QuestionnaireStatus.DRAFT

    @field_validator("status", mode="before")
    @classmethod
    def normalise_status(cls, v: object) -> QuestionnaireStatus:
        return QuestionnaireStatus.parse(v)

    @property
    def cycle_id(self) -> str:
        return cycle_id_from_submission_name(self.submission_name)


class Questionnaire(BaseModel):
    id: str = Field(..., min_length=1)
    submission_name: str
    status: QuestionnaireStatus = QuestionnaireStatus.DRAFT
    questions: List[Question] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def normalise_status(cls, v: object) -> QuestionnaireStatus:
        return QuestionnaireStatus.parse(v)

    @property
    def cycle_id(self) -> str:
        return cycle_id_from_submission_name(self.submission_name)

    @property
    def question_ids(self) -> List[str]:
        return [q.id for q in self.questions]

    def page_count(self, page_size: int) -> int:
        if not self.questions:
            return 0
        return (len(self.questions) + page_size - 1) // page_size

    def index_of(self, question_id: str) -> int:
        for idx, question in enumerate(self.questions):
            if question.id == question_id:
                return idx
        return -1


__all__ = [
    "QuestionnaireStatus",
    "Question",
    "QuestionnaireSummary",
    "Questionnaire",
]
