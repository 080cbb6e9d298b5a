"""Reference system-of-record endpoints.

Implements the three remote operations the sync engine consumes:
- GET  /questionnaires?user_id=...
- GET  /submissions/{submission_name}/questions
- POST /submissions/{submission_name}/answers (upsert)

Answers for a Completed submission are refused with 409; answers naming an
unknown question or an out-of-range option are refused with 422.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Query

from assessment_sync.http.problem import problem
from assessment_sync.logic import inmemory_state as state
from assessment_sync.logic.events import ANSWERS_SAVED, publish
from assessment_sync.models.questionnaire import Question, QuestionnaireStatus
from assessment_sync.models.remote import (
    QuestionnaireListing,
    QuestionsAndAnswers,
    SubmitAck,
    SubmitAnswersRequest,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _submission_or_404(submission_name: str) -> Dict[str, Any]:
    record = state.SUBMISSIONS.get(submission_name)
    if record is None:
        raise HTTPException(
            status_code=404,
            detail=problem(404, "Submission not found", f"unknown submission {submission_name}"),
        )
    return record


@router.get(
    "/questionnaires",
    summary="List the questionnaires assigned to a user",
    operation_id="listQuestionnaires",
    response_model=QuestionnaireListing,
)
def list_questionnaires(user_id: str = Query(..., min_length=1)) -> QuestionnaireListing:
    rows = state.QUESTIONNAIRES_BY_USER.get(user_id, [])
    listing = []
    for row in rows:
        record = state.SUBMISSIONS.get(row["submission_name"], {})
        listing.append({**row, "status": record.get("status", row.get("status", "Draft"))})
    return QuestionnaireListing.model_validate({"questionnaires": listing})


@router.get(
    "/submissions/{submission_name}/questions",
    summary="Questions of a submission plus the answers already stored",
    operation_id="getQuestionsAndAnswers",
    response_model=QuestionsAndAnswers,
)
def get_questions_and_answers(submission_name: str) -> QuestionsAndAnswers:
    record = _submission_or_404(submission_name)
    return QuestionsAndAnswers(
        questions=[Question.model_validate(q) for q in record["questions"]],
        answers=dict(record["answers"]),
    )


@router.post(
    "/submissions/{submission_name}/answers",
    summary="Upsert answers for a submission",
    operation_id="submitAnswers",
    response_model=SubmitAck,
)
def submit_answers(submission_name: str, body: SubmitAnswersRequest) -> SubmitAck:
    record = _submission_or_404(submission_name)
    if record["status"] == QuestionnaireStatus.COMPLETED.value:
        raise HTTPException(
            status_code=409,
            detail=problem(409, "Submission already completed", f"{submission_name} no longer accepts answers"),
        )

    options_by_id = {q["id"]: len(q.get("options", [])) for q in record["questions"]}
    invalid = [
        qid
        for qid, idx in body.answers.items()
        if qid not in options_by_id or not 0 <= int(idx) < options_by_id[qid]
    ]
    if invalid:
        raise HTTPException(
            status_code=422,
            detail=problem(422, "Invalid answers", "answers out of range", question_ids=sorted(invalid)),
        )

    record["answers"].update({qid: int(idx) for qid, idx in body.answers.items()})
    if record["status"] == QuestionnaireStatus.DRAFT.value and body.answers:
        record["status"] = QuestionnaireStatus.IN_PROGRESS.value
    state.SUBMIT_COUNTS[submission_name] = state.SUBMIT_COUNTS.get(submission_name, 0) + 1
    publish(
        ANSWERS_SAVED,
        {"submission_name": submission_name, "question_ids": sorted(body.answers.keys())},
    )
    logger.info("answers_saved submission=%s count=%s", submission_name, len(body.answers))
    return SubmitAck(status="ok", saved=len(body.answers))


__all__ = ["router"]
