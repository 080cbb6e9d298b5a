"""In-session answer store.

Holds the authoritative mapping `question_id -> option_index` for the active
session and the values the server has acknowledged for each question. A
question is server-confirmed only while its current value equals the value
the server acknowledged; a later edit makes it unconfirmed again.

Questions are registered per questionnaire so writes can be validated and
located on a page.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from assessment_sync.logic.errors import ValidationError
from assessment_sync.logic.events import ANSWER_CHANGED, EventBus
from assessment_sync.logic.session import Session
from assessment_sync.models.questionnaire import Question

logger = logging.getLogger(__name__)

PRIORITY_SERVER = "server"
PRIORITY_LOCAL = "local"


class AnswerStore:
    def __init__(self, session: Session, events: Optional[EventBus] = None) -> None:
        self.session = session
        self._events = events
        self._answers: Dict[str, int] = {}
        self._acknowledged: Dict[str, int] = {}
        self._questions: Dict[str, Question] = {}
        self._owner: Dict[str, str] = {}
        self._order: Dict[str, List[str]] = {}
        self._frozen = False

    # Question registry -----------------------------------------------------
    def register_questions(self, questionnaire_id: str, questions: Iterable[Question]) -> None:
        ids: List[str] = []
        for question in questions:
            owner = self._owner.get(question.id)
            if owner is not None and owner != questionnaire_id:
                logger.warning(
                    "question_registered_twice question_id=%s owner=%s other=%s",
                    question.id,
                    owner,
                    questionnaire_id,
                )
            self._questions[question.id] = question
            self._owner[question.id] = questionnaire_id
            ids.append(question.id)
        self._order[questionnaire_id] = ids

    def questions_of(self, questionnaire_id: str) -> List[Question]:
        return [self._questions[qid] for qid in self._order.get(questionnaire_id, [])]

    def locate(self, question_id: str) -> Optional[Tuple[str, int]]:
        """Return `(questionnaire_id, question_index)` for a registered question."""
        owner = self._owner.get(question_id)
        if owner is None:
            return None
        return owner, self._order[owner].index(question_id)

    # Reads -----------------------------------------------------------------
    def get_answer(self, question_id: str) -> Optional[int]:
        return self._answers.get(question_id)

    def answers(self, question_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        if question_ids is None:
            return dict(self._answers)
        return {qid: self._answers[qid] for qid in question_ids if qid in self._answers}

    def answered_count(self, question_ids: Iterable[str]) -> int:
        return sum(1 for qid in question_ids if qid in self._answers)

    @property
    def frozen(self) -> bool:
        return self._frozen

    # Writes ----------------------------------------------------------------
    def set_answer(self, question_id: str, option_index: int) -> Dict[str, int]:
        """Record the user's choice and return the full mapping.

        A frozen (submitted) store ignores the write. Unknown questions and
        out-of-range option indexes raise ValidationError.
        """
        if self._frozen:
            logger.info("answer_rejected_frozen question_id=%s", question_id)
            return dict(self._answers)
        question = self._questions.get(question_id)
        if question is None:
            raise ValidationError(f"unknown question: {question_id}", question_id=question_id)
        if not question.accepts(option_index):
            raise ValidationError(
                f"option_index {option_index!r} out of range for {question_id} ({len(question.options)} options)",
                question_id=question_id,
                option_index=option_index if isinstance(option_index, int) else None,
            )

        previous = self._answers.get(question_id)
        self._answers[question_id] = option_index
        if self._events is not None:
            self._events.publish(
                ANSWER_CHANGED,
                {
                    "questionnaire_id": self._owner[question_id],
                    "question_id": question_id,
                    "option_index": option_index,
                    "previous": previous,
                    "changed": previous != option_index,
                },
            )
        return dict(self._answers)

    def merge(self, incoming: Mapping[str, int], priority: str) -> List[str]:
        """Apply rehydrated answers without touching existing session answers.

        Returns the question ids that were applied. Entries for unknown
        questions or invalid indexes are skipped.
        """
        if priority not in (PRIORITY_SERVER, PRIORITY_LOCAL):
            raise ValueError(f"unknown merge priority: {priority!r}")
        applied: List[str] = []
        for qid, raw in (incoming or {}).items():
            if qid in self._answers:
                continue
            question = self._questions.get(qid)
            try:
                idx = int(raw)
            except (TypeError, ValueError):
                logger.warning("merge_skipped_invalid question_id=%s value=%r", qid, raw)
                continue
            if question is None or not question.accepts(idx):
                logger.warning("merge_skipped_invalid question_id=%s value=%r", qid, raw)
                continue
            self._answers[qid] = idx
            if priority == PRIORITY_SERVER:
                self._acknowledged[qid] = idx
            applied.append(qid)
        if applied:
            logger.debug("answers_merged priority=%s count=%s", priority, len(applied))
        return applied

    def mark_confirmed(self, acknowledged: Mapping[str, int]) -> None:
        for qid, idx in acknowledged.items():
            self._acknowledged[qid] = int(idx)

    def is_confirmed(self, question_id: str) -> bool:
        if question_id not in self._acknowledged:
            return False
        return self._answers.get(question_id) == self._acknowledged[question_id]

    def unconfirmed(self, question_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        ids = self._answers.keys() if question_ids is None else question_ids
        return {
            qid: self._answers[qid]
            for qid in ids
            if qid in self._answers and not self.is_confirmed(qid)
        }

    def reset_to(self, server_answers: Mapping[str, int]) -> None:
        """Replace every answer with the server's set (read-only rehydration)."""
        self._answers.clear()
        self._acknowledged.clear()
        self.merge(server_answers, PRIORITY_SERVER)

    def freeze(self) -> None:
        self._frozen = True


__all__ = ["AnswerStore", "PRIORITY_SERVER", "PRIORITY_LOCAL"]
