"""Pydantic models for the remote system-of-record payloads.

Shared by the HTTP client and the reference backend routes so both sides of
the wire agree on one shape.
"""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field

from assessment_sync.models.questionnaire import Question, QuestionnaireSummary


class QuestionnaireListing(BaseModel):
    questionnaires: List[QuestionnaireSummary] = Field(default_factory=list)


class QuestionsAndAnswers(BaseModel):
    """Questions of one submission plus the answers the server already holds."""

    questions: List[Question] = Field(default_factory=list)
    answers: Dict[str, int] = Field(default_factory=dict)


class SubmitAnswersRequest(BaseModel):
    questions: List[Question] = Field(default_factory=list)
    answers: Dict[str, int] = Field(default_factory=dict)


class SubmitAck(BaseModel):
    status: str = "ok"
    saved: int = 0


__all__ = [
    "QuestionnaireListing",
    "QuestionsAndAnswers",
    "SubmitAnswersRequest",
    "SubmitAck",
]
