"""Facade wiring the sync components for one user session.

A UI layer holds one `AssessmentEngine` per authenticated user and drives it
with answer, navigation, selection, save and submit calls. Must be used from
inside a running event loop; `aclose` cancels outstanding flushes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import httpx

from assessment_sync.config import SyncConfig, load_config
from assessment_sync.logic.answer_store import AnswerStore
from assessment_sync.logic.cycles import resolve_entry_point
from assessment_sync.logic.events import EventBus
from assessment_sync.logic.kv_store import KeyValueStore, open_store
from assessment_sync.logic.local_cache import LocalCache
from assessment_sync.logic.orchestrator import QuestionnaireOrchestrator
from assessment_sync.logic.pagination import NO_ADVANCE, Advance, AdvanceKind, PaginationController
from assessment_sync.logic.remote_sync import RemoteSyncClient
from assessment_sync.logic.scheduler import SyncScheduler
from assessment_sync.logic.session import Session
from assessment_sync.logic.submission import SubmissionStateMachine
from assessment_sync.models.answers import (
    CycleSummary,
    EntryPoint,
    QuestionnaireProgress,
    SubmissionRecord,
    SubmissionState,
)
from assessment_sync.models.questionnaire import Questionnaire, QuestionnaireSummary

logger = logging.getLogger(__name__)


def flush_wait_seconds(config: SyncConfig) -> float:
    """Upper bound for a page flush followed by a questionnaire flush."""
    api = config.api
    retries = api.flush_retries
    per_call = api.request_timeout_seconds * (retries + 1) + api.retry_backoff_seconds * (2 ** retries - 1)
    return 2 * per_call


class AssessmentEngine:
    def __init__(
        self,
        session: Session,
        config: SyncConfig,
        store: Optional[KeyValueStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.session = session
        self.config = config
        page_size = config.pagination.page_size

        self.events = EventBus()
        self.store = store if store is not None else open_store(config.storage.url)
        self.answers = AnswerStore(session, self.events)
        self.cache = LocalCache(self.store, session, prefix=config.storage.key_prefix, events=self.events)
        self.pagination = PaginationController(self.answers, self.cache, self.events, page_size=page_size)
        self.remote = RemoteSyncClient(
            session,
            self.answers,
            self.cache,
            config.api,
            page_size=page_size,
            events=self.events,
            transport=transport,
            client=client,
        )
        self.scheduler = SyncScheduler(self.events, self.answers, self.cache, self.remote, page_size=page_size)
        self.orchestrator = QuestionnaireOrchestrator(
            session,
            self.answers,
            self.cache,
            self.remote,
            self.pagination,
            self.scheduler,
            self.events,
            ranking=config.questionnaire_ranking,
            flush_wait_seconds=flush_wait_seconds(config),
        )
        self.submission = SubmissionStateMachine(
            self.orchestrator,
            self.answers,
            self.cache,
            self.remote,
            self.pagination,
            self.events,
        )

    @classmethod
    def from_config(cls, session: Session, path: Optional[Path] = None, **kwargs) -> "AssessmentEngine":
        return cls(session, load_config(path), **kwargs)

    async def __aenter__(self) -> "AssessmentEngine":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # Lifecycle -------------------------------------------------------------
    async def load(self, user_id: Optional[str] = None) -> SubmissionState:
        await self.orchestrator.load_cycle(user_id)
        self.pagination.restore_pointer()
        return self.submission.restore()

    def entry_point(self) -> EntryPoint:
        questionnaires = self.orchestrator.questionnaires
        summaries = [
            QuestionnaireSummary(
                submission_name=q.submission_name,
                questionnaire_type=q.id,
                status=q.status,
            )
            for q in questionnaires
        ]
        server_counts = {q.submission_name: len(self.orchestrator.server_answers(q.id)) for q in questionnaires}
        question_counts = {q.submission_name: len(q.questions) for q in questionnaires}
        cycle_id = self.orchestrator.cycle_id
        started = self.cache.is_started(cycle_id) if cycle_id else False
        return resolve_entry_point(summaries, server_counts, question_counts, started=started)

    async def drain(self) -> None:
        await self.scheduler.drain()

    async def aclose(self) -> None:
        await self.scheduler.aclose()
        await self.remote.aclose()

    # Reads -----------------------------------------------------------------
    @property
    def state(self) -> SubmissionState:
        return self.submission.state

    @property
    def questionnaires(self) -> List[Questionnaire]:
        return self.orchestrator.questionnaires

    @property
    def active(self) -> Optional[Questionnaire]:
        return self.orchestrator.active

    def progress(self) -> List[QuestionnaireProgress]:
        return self.orchestrator.progress_by_questionnaire()

    # User actions ----------------------------------------------------------
    def answer(self, question_id: str, option_index: int) -> Advance:
        """Record an answer and schedule auto-advance when it ends a page."""
        if self.answers.frozen:
            logger.info("answer_ignored_submitted question_id=%s", question_id)
            return NO_ADVANCE
        self.answers.set_answer(question_id, option_index)
        advance = self.pagination.on_answered(question_id)
        if advance.kind == AdvanceKind.NEXT_PAGE and advance.page_index is not None:
            questionnaire_id = self.pagination.questionnaire.id
            from_page = advance.page_index - 1
            to_page = advance.page_index
            self.scheduler.call_later(
                self.config.pagination.auto_advance_delay_seconds,
                lambda: self._auto_advance(questionnaire_id, from_page, to_page),
                label=f"auto_advance:{to_page}",
            )
        return advance

    def _auto_advance(self, questionnaire_id: str, from_page: int, to_page: int) -> bool:
        # The user may have navigated during the delay
        active = self.pagination.questionnaire
        if active is None or active.id != questionnaire_id or self.pagination.current_page != from_page:
            return False
        return self.pagination.go_to(to_page)

    def go_to(self, page_index: int) -> bool:
        return self.pagination.go_to(page_index)

    async def select(self, questionnaire_id: str) -> Questionnaire:
        return await self.orchestrator.select_questionnaire(questionnaire_id)

    async def save(self) -> bool:
        return await self.submission.save_progress()

    def request_submit(self) -> CycleSummary:
        return self.submission.request_submit()

    async def submit(self) -> SubmissionRecord:
        return await self.submission.confirm_submit()


__all__ = ["AssessmentEngine", "flush_wait_seconds"]
