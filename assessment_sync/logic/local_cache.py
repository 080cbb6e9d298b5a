"""Durable per-page, per-user mirror of answers not yet confirmed by the server.

Every key is namespaced by the session's user key. Storage failures never
propagate: they are logged, published as STORAGE_WARNING, and reported
through the return value while the in-memory AnswerStore stays authoritative.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from assessment_sync.logic.errors import PersistenceError
from assessment_sync.logic.events import STORAGE_WARNING, EventBus
from assessment_sync.logic.kv_store import KeyValueStore
from assessment_sync.logic.session import Session
from assessment_sync.logic.storage_keys import StorageKeys
from assessment_sync.models.answers import SubmissionRecord
from assessment_sync.models.questionnaire import Questionnaire

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _as_answer_map(raw: Any) -> Dict[str, int]:
    if not isinstance(raw, dict):
        return {}
    out: Dict[str, int] = {}
    for qid, val in raw.items():
        try:
            out[str(qid)] = int(val)
        except (TypeError, ValueError):
            logger.warning("cache_entry_dropped question_id=%s value=%r", qid, val)
    return out


class LocalCache:
    def __init__(
        self,
        store: KeyValueStore,
        session: Session,
        prefix: str = "assessment",
        events: Optional[EventBus] = None,
    ) -> None:
        self._store = store
        self._events = events
        self.keys = StorageKeys(session=session, prefix=prefix)

    def _guard(self, op: str, key: str, fn: Callable[[], T], default: T) -> T:
        try:
            return fn()
        except PersistenceError as exc:
            logger.warning("storage_warning op=%s key=%s error=%s", op, key, exc)
            if self._events is not None:
                self._events.publish(STORAGE_WARNING, {"op": op, "key": key, "error": str(exc)})
            return default

    def _set(self, key: str, value: Any) -> bool:
        def _do() -> bool:
            self._store.set(key, value)
            return True

        return self._guard("set", key, _do, False)

    def _delete(self, key: str) -> bool:
        def _do() -> bool:
            self._store.delete(key)
            return True

        return self._guard("delete", key, _do, False)

    def _get(self, key: str) -> Any:
        return self._guard("get", key, lambda: self._store.get(key), None)

    # Page answer sets ------------------------------------------------------
    def write(self, questionnaire_id: str, page_index: int, page_answers: Mapping[str, int]) -> bool:
        key = self.keys.page_answers(questionnaire_id, page_index)
        if not page_answers:
            return self._delete(key)
        return self._set(key, dict(page_answers))

    def read(self, questionnaire_id: str, page_index: int) -> Dict[str, int]:
        return _as_answer_map(self._get(self.keys.page_answers(questionnaire_id, page_index)))

    def clear(self, questionnaire_id: str, page_index: int) -> bool:
        return self._delete(self.keys.page_answers(questionnaire_id, page_index))

    def clear_all(self, questionnaires: Iterable[Questionnaire], page_size: int) -> bool:
        ok = True
        for questionnaire in questionnaires:
            for page in range(questionnaire.page_count(page_size)):
                ok = self.clear(questionnaire.id, page) and ok
        ok = self._delete(self.keys.answers_snapshot()) and ok
        ok = self._delete(self.keys.page_pointer()) and ok
        logger.info("cache_cleared user=%s ok=%s", self.keys.user, ok)
        return ok

    # Page pointer ----------------------------------------------------------
    def write_pointer(self, page_index: int) -> bool:
        return self._set(self.keys.page_pointer(), int(page_index))

    def read_pointer(self) -> Optional[int]:
        raw = self._get(self.keys.page_pointer())
        if isinstance(raw, bool) or not isinstance(raw, int):
            return None
        return raw

    # Whole-answer snapshot -------------------------------------------------
    def write_snapshot(self, answers: Mapping[str, int]) -> bool:
        return self._set(self.keys.answers_snapshot(), dict(answers))

    def read_snapshot(self) -> Dict[str, int]:
        return _as_answer_map(self._get(self.keys.answers_snapshot()))

    # Cycle markers ---------------------------------------------------------
    def write_submission(self, record: SubmissionRecord) -> bool:
        return self._set(self.keys.cycle_submitted(record.cycle_id), record.model_dump(mode="json"))

    def read_submission(self, cycle_id: str) -> Optional[SubmissionRecord]:
        raw = self._get(self.keys.cycle_submitted(cycle_id))
        if raw is None:
            return None
        try:
            return SubmissionRecord.model_validate(raw)
        except PydanticValidationError:
            logger.warning("submission_record_unreadable cycle_id=%s", cycle_id)
            return None

    def mark_started(self, cycle_id: str) -> bool:
        return self._set(self.keys.cycle_started(cycle_id), True)

    def is_started(self, cycle_id: str) -> bool:
        return bool(self._get(self.keys.cycle_started(cycle_id)))


__all__ = ["LocalCache"]
