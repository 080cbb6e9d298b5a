"""Questionnaire orchestration for one assessment cycle.

Owns the ordered questionnaires of the active cycle, the active selection,
hydration of answers at first load, and flush-before-switch ordering when the
user moves from one questionnaire to another.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from assessment_sync.logic.answer_store import PRIORITY_LOCAL, PRIORITY_SERVER, AnswerStore
from assessment_sync.logic.cycles import latest_cycle, order_by_ranking
from assessment_sync.logic.errors import NetworkError, ValidationError
from assessment_sync.logic.events import FETCH_FAILED, QUESTIONNAIRE_CHANGED, EventBus
from assessment_sync.logic.local_cache import LocalCache
from assessment_sync.logic.pagination import PaginationController, page_slice
from assessment_sync.logic.remote_sync import RemoteSyncClient
from assessment_sync.logic.scheduler import SyncScheduler
from assessment_sync.logic.session import Session
from assessment_sync.models.answers import QuestionnaireProgress
from assessment_sync.models.questionnaire import Questionnaire, QuestionnaireStatus, QuestionnaireSummary

logger = logging.getLogger(__name__)


class QuestionnaireOrchestrator:
    def __init__(
        self,
        session: Session,
        answers: AnswerStore,
        cache: LocalCache,
        remote: RemoteSyncClient,
        pagination: PaginationController,
        scheduler: SyncScheduler,
        events: EventBus,
        ranking: Sequence[str],
        flush_wait_seconds: Optional[float] = None,
    ) -> None:
        self.session = session
        self._answers = answers
        self._cache = cache
        self._remote = remote
        self._pagination = pagination
        self._scheduler = scheduler
        self._events = events
        self._ranking = list(ranking)
        self._flush_wait_seconds = flush_wait_seconds
        self._questionnaires: Dict[str, Questionnaire] = {}
        self._order: List[str] = []
        self._server_answers: Dict[str, Dict[str, int]] = {}
        self._fetch_failed: Dict[str, bool] = {}
        self._active_id: Optional[str] = None

    # Accessors -------------------------------------------------------------
    @property
    def questionnaires(self) -> List[Questionnaire]:
        return [self._questionnaires[qid] for qid in self._order]

    @property
    def active(self) -> Optional[Questionnaire]:
        if self._active_id is None:
            return None
        return self._questionnaires.get(self._active_id)

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def cycle_id(self) -> str:
        for questionnaire in self.questionnaires:
            if questionnaire.cycle_id:
                return questionnaire.cycle_id
        return ""

    def get(self, questionnaire_id: str) -> Questionnaire:
        try:
            return self._questionnaires[questionnaire_id]
        except KeyError:
            raise ValidationError(f"unknown questionnaire: {questionnaire_id}") from None

    def server_answers(self, questionnaire_id: str) -> Dict[str, int]:
        return dict(self._server_answers.get(questionnaire_id, {}))

    # Loading ---------------------------------------------------------------
    async def load_cycle(self, user_id: Optional[str] = None) -> List[Questionnaire]:
        """List, filter to the latest cycle, order, fetch and hydrate."""
        try:
            summaries = await self._remote.list_questionnaires(user_id or self.session.remote_user_id)
        except NetworkError as exc:
            logger.warning("questionnaire_listing_failed user=%s error=%s", self.session.user_key, exc)
            self._events.publish(FETCH_FAILED, {"submission_name": None, "error": str(exc)})
            summaries = []
        return await self.load_summaries(summaries)

    async def load_summaries(self, summaries: Sequence[QuestionnaireSummary]) -> List[Questionnaire]:
        current = latest_cycle(summaries)
        by_label: Dict[str, QuestionnaireSummary] = {}
        for summary in current:
            if summary.questionnaire_type in by_label:
                logger.warning("duplicate_questionnaire_type label=%s", summary.questionnaire_type)
                continue
            by_label[summary.questionnaire_type] = summary

        self._questionnaires.clear()
        self._order = order_by_ranking(by_label.keys(), self._ranking)
        for label in self._order:
            questionnaire = await self._fetch(by_label[label])
            self._questionnaires[label] = questionnaire
            self.hydrate(questionnaire, self._server_answers.get(label, {}))

        self._active_id = self._order[0] if self._order else None
        if self.active is not None:
            self._pagination.set_questionnaire(self.active, self._cache.read_pointer() or 0)
        logger.info(
            "cycle_loaded cycle_id=%s questionnaires=%s",
            self.cycle_id,
            ",".join(self._order),
        )
        return self.questionnaires

    async def _fetch(self, summary: QuestionnaireSummary) -> Questionnaire:
        label = summary.questionnaire_type
        questionnaire = Questionnaire(
            id=label,
            submission_name=summary.submission_name,
            status=summary.status,
        )
        try:
            result = await self._remote.fetch_questionnaire(summary.submission_name)
        except NetworkError as exc:
            logger.warning("questionnaire_fetch_failed submission=%s error=%s", summary.submission_name, exc)
            self._events.publish(FETCH_FAILED, {"submission_name": summary.submission_name, "error": str(exc)})
            self._fetch_failed[label] = True
            self._server_answers[label] = {}
        else:
            questionnaire = questionnaire.model_copy(update={"questions": list(result.questions)})
            self._fetch_failed[label] = False
            self._server_answers[label] = dict(result.answers)
        self._answers.register_questions(label, questionnaire.questions)
        self._remote.register_questionnaire(questionnaire)
        self._scheduler.track_submission(label, questionnaire.submission_name)
        return questionnaire

    def hydrate(self, questionnaire: Questionnaire, server_answers: Dict[str, int]) -> None:
        """Apply session, then server, then local answers, once per question."""
        page_size = self._pagination.page_size
        self._answers.merge(server_answers, PRIORITY_SERVER)
        pages = range(questionnaire.page_count(page_size))
        for page in pages:
            self._answers.merge(self._cache.read(questionnaire.id, page), PRIORITY_LOCAL)
        snapshot = self._cache.read_snapshot()
        own_ids = set(questionnaire.question_ids)
        self._answers.merge({k: v for k, v in snapshot.items() if k in own_ids}, PRIORITY_LOCAL)

        for page in pages:
            ids = [q.id for q in page_slice(questionnaire.questions, page, page_size)]
            remaining = self._answers.unconfirmed(ids)
            if remaining:
                self._cache.write(questionnaire.id, page, remaining)
            else:
                self._cache.clear(questionnaire.id, page)

    def rehydrate_from_server(self) -> None:
        """Discard local answers and show exactly what the server holds."""
        merged: Dict[str, int] = {}
        for answers in self._server_answers.values():
            merged.update(answers)
        self._answers.reset_to(merged)

    # Selection -------------------------------------------------------------
    async def select_questionnaire(self, questionnaire_id: str) -> Questionnaire:
        """Flush the questionnaire being left, then make `questionnaire_id` active."""
        target = self.get(questionnaire_id)
        previous_id = self._active_id
        if previous_id == questionnaire_id:
            return target

        self._events.publish(
            QUESTIONNAIRE_CHANGED,
            {
                "previous_id": previous_id,
                "previous_page": self._pagination.current_page,
                "questionnaire_id": questionnaire_id,
            },
        )
        if previous_id is not None:
            await self._scheduler.wait_for(previous_id, timeout=self._flush_wait_seconds)

        if self._fetch_failed.get(questionnaire_id):
            self._remote.forget(target.submission_name)
            target = await self._fetch(
                QuestionnaireSummary(
                    submission_name=target.submission_name,
                    questionnaire_type=target.id,
                    status=target.status,
                )
            )
            self._questionnaires[questionnaire_id] = target
            self.hydrate(target, self._server_answers.get(questionnaire_id, {}))

        self._active_id = questionnaire_id
        self._pagination.set_questionnaire(target)
        logger.info("questionnaire_selected previous=%s current=%s", previous_id, questionnaire_id)
        return target

    def next_questionnaire_id(self) -> Optional[str]:
        if self._active_id is None:
            return None
        idx = self._order.index(self._active_id)
        if idx + 1 < len(self._order):
            return self._order[idx + 1]
        return None

    # Completion ------------------------------------------------------------
    def is_complete(self, questionnaire_id: str) -> bool:
        questionnaire = self.get(questionnaire_id)
        if not questionnaire.questions:
            return False
        return self._answers.answered_count(questionnaire.question_ids) == len(questionnaire.questions)

    def all_complete(self) -> bool:
        if not self._order:
            return False
        return all(self.is_complete(qid) for qid in self._order)

    def is_cycle_submitted_remotely(self) -> bool:
        if not self._order:
            return False
        return all(self._questionnaires[qid].status == QuestionnaireStatus.COMPLETED for qid in self._order)

    def progress_by_questionnaire(self) -> List[QuestionnaireProgress]:
        return [
            QuestionnaireProgress(
                questionnaire_id=q.id,
                answered=self._answers.answered_count(q.question_ids),
                total=len(q.questions),
            )
            for q in self.questionnaires
        ]


__all__ = ["QuestionnaireOrchestrator"]
