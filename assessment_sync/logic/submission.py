"""Submission state machine for an assessment cycle.

States: Draft -> Ready -> Saved -> Submitted.
- Draft -> Ready is automatic, re-evaluated on every answer change.
- Ready -> Saved only through `save_progress`; any later answer change drops
  back to Ready.
- Saved -> Submitted only through `confirm_submit` after `request_submit`
  returned the summary. Submitted is terminal: answers and navigation freeze,
  every local cache entry of the cycle is cleared, and a SubmissionRecord is
  stored.
- `restore` enters Submitted directly on load when the cycle was already
  submitted.

Every transition is recorded in `history` and published as STATUS_CHANGED.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from assessment_sync.logic.answer_store import AnswerStore
from assessment_sync.logic.errors import NetworkError, TransitionError
from assessment_sync.logic.events import ANSWER_CHANGED, CYCLE_SUBMITTED, STATUS_CHANGED, EventBus
from assessment_sync.logic.local_cache import LocalCache
from assessment_sync.logic.orchestrator import QuestionnaireOrchestrator
from assessment_sync.logic.pagination import PaginationController
from assessment_sync.logic.remote_sync import RemoteSyncClient
from assessment_sync.models.answers import CycleSummary, SubmissionRecord, SubmissionState

logger = logging.getLogger(__name__)


TRANSITIONS: Dict[SubmissionState, Set[SubmissionState]] = {
    SubmissionState.DRAFT: {SubmissionState.READY, SubmissionState.SUBMITTED},
    SubmissionState.READY: {SubmissionState.DRAFT, SubmissionState.SAVED},
    SubmissionState.SAVED: {SubmissionState.READY, SubmissionState.DRAFT, SubmissionState.SUBMITTED},
    SubmissionState.SUBMITTED: set(),
}


@dataclass
class StateTransition:
    from_state: SubmissionState
    to_state: SubmissionState
    reason: str = ""
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SubmissionStateMachine:
    def __init__(
        self,
        orchestrator: QuestionnaireOrchestrator,
        answers: AnswerStore,
        cache: LocalCache,
        remote: RemoteSyncClient,
        pagination: PaginationController,
        events: EventBus,
    ) -> None:
        self._orchestrator = orchestrator
        self._answers = answers
        self._cache = cache
        self._remote = remote
        self._pagination = pagination
        self._events = events
        self._state = SubmissionState.DRAFT
        self._saved = False
        self._record: Optional[SubmissionRecord] = None
        self.history: List[StateTransition] = []
        events.subscribe(ANSWER_CHANGED, self._on_answer_changed)

    @property
    def state(self) -> SubmissionState:
        return self._state

    @property
    def record(self) -> Optional[SubmissionRecord]:
        return self._record

    def can_transition(self, to_state: SubmissionState) -> bool:
        return to_state in TRANSITIONS.get(self._state, set())

    def _transition(self, to_state: SubmissionState, reason: str) -> None:
        if to_state == self._state:
            return
        if not self.can_transition(to_state):
            raise TransitionError(f"invalid transition {self._state.value} -> {to_state.value}")
        entry = StateTransition(from_state=self._state, to_state=to_state, reason=reason)
        self.history.append(entry)
        self._state = to_state
        logger.info("submission_transition from=%s to=%s reason=%s", entry.from_state.value, to_state.value, reason)
        self._events.publish(
            STATUS_CHANGED,
            {"from": entry.from_state.value, "to": to_state.value, "reason": reason},
        )

    def _derived(self) -> SubmissionState:
        if not self._orchestrator.all_complete():
            return SubmissionState.DRAFT
        if self._saved:
            return SubmissionState.SAVED
        return SubmissionState.READY

    def evaluate(self, reason: str = "evaluate") -> SubmissionState:
        if self._state == SubmissionState.SUBMITTED:
            return self._state
        target = self._derived()
        if self._state == SubmissionState.DRAFT and target == SubmissionState.SAVED:
            self._transition(SubmissionState.READY, reason)
        self._transition(target, reason)
        return self._state

    def _on_answer_changed(self, payload: Dict[str, Any]) -> None:
        if self._state == SubmissionState.SUBMITTED:
            return
        if payload.get("changed"):
            self._saved = False
        self.evaluate(reason="answer_changed")

    # Explicit actions ------------------------------------------------------
    async def save_progress(self) -> bool:
        """Flush the active page and questionnaire, then mark progress saved.

        Returns False (state unchanged) when a flush fails or an answer changed
        while it was in flight. On success the next questionnaire, if any,
        becomes active.
        """
        if self._state == SubmissionState.SUBMITTED:
            raise TransitionError("cycle already submitted")
        active = self._orchestrator.active
        if active is None:
            return False

        page = self._pagination.current_page
        page_ok = await self._remote.flush_page(active.id, page)
        questionnaire_ok = await self._remote.flush_questionnaire(active.id)
        if not (page_ok and questionnaire_ok):
            logger.warning("save_progress_failed questionnaire_id=%s page=%s", active.id, page)
            return False

        flushed = [active]
        if self._orchestrator.all_complete():
            flushed = self._orchestrator.questionnaires
            for questionnaire in flushed:
                if questionnaire.id != active.id and not await self._remote.flush_questionnaire(questionnaire.id):
                    logger.warning("save_progress_failed questionnaire_id=%s", questionnaire.id)
                    return False

        # Answers edited while the flushes were in flight are still unsent
        pending = self._answers.unconfirmed([qid for q in flushed for qid in q.question_ids])
        if pending:
            logger.warning(
                "save_progress_stale questionnaire_id=%s pending=%s", active.id, ",".join(sorted(pending))
            )
            return False

        self._cache.write_pointer(page)
        self._cache.write_snapshot(self._answers.answers())
        self._saved = True
        self.evaluate(reason="save_progress")

        next_id = self._orchestrator.next_questionnaire_id()
        if next_id is not None:
            await self._orchestrator.select_questionnaire(next_id)
        return True

    def request_submit(self) -> CycleSummary:
        if self._state != SubmissionState.SAVED:
            raise TransitionError(f"cannot request submit from {self._state.value}")
        return CycleSummary(
            cycle_id=self._orchestrator.cycle_id,
            questionnaires=self._orchestrator.progress_by_questionnaire(),
            answers={
                q.id: self._answers.answers(q.question_ids) for q in self._orchestrator.questionnaires
            },
        )

    async def confirm_submit(self) -> SubmissionRecord:
        """Final flush, SubmissionRecord, cache wipe and freeze."""
        if self._state == SubmissionState.SUBMITTED and self._record is not None:
            return self._record
        if self._state != SubmissionState.SAVED:
            raise TransitionError(f"cannot submit from {self._state.value}")

        for questionnaire in self._orchestrator.questionnaires:
            if not await self._remote.flush_questionnaire(questionnaire.id):
                raise NetworkError(f"final flush failed for {questionnaire.id}")

        record = SubmissionRecord(cycle_id=self._orchestrator.cycle_id)
        self._enter_submitted(record, reason="confirm_submit")
        self._cache.write_submission(record)
        self._cache.clear_all(self._orchestrator.questionnaires, self._pagination.page_size)
        self._events.publish(
            CYCLE_SUBMITTED,
            {"cycle_id": record.cycle_id, "submitted_at": record.submitted_at.isoformat()},
        )
        return record

    def restore(self) -> SubmissionState:
        """Enter Submitted on load when the cycle was already submitted.

        Called once, right after the cycle is loaded and before any answer
        event, so the machine is still in Draft.
        """
        if self._state == SubmissionState.SUBMITTED:
            return self._state
        cycle_id = self._orchestrator.cycle_id
        record = self._cache.read_submission(cycle_id) if cycle_id else None
        if record is None and self._orchestrator.is_cycle_submitted_remotely() and self._orchestrator.all_complete():
            record = SubmissionRecord(cycle_id=cycle_id)
            self._cache.write_submission(record)
        if record is None:
            return self.evaluate(reason="restore")

        self._orchestrator.rehydrate_from_server()
        self._cache.clear_all(self._orchestrator.questionnaires, self._pagination.page_size)
        self._enter_submitted(record, reason="restore")
        return self._state

    def _enter_submitted(self, record: SubmissionRecord, reason: str) -> None:
        self._record = record
        self._answers.freeze()
        self._pagination.freeze()
        self._transition(SubmissionState.SUBMITTED, reason)


__all__ = ["SubmissionStateMachine", "StateTransition", "TRANSITIONS"]
