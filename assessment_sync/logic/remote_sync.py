"""Async client for the remote system of record plus flush orchestration.

Network operations:
- `list_questionnaires(user_id)`: questionnaire listing for one user.
- `fetch_questionnaire(submission_name)`: questions and server answers,
  cached for the session on success.
- `submit_answers(submission_name, questions, answers)`: upsert of a partial
  answer set; safe to repeat.

Flushes send locally held answers through `submit_answers`. Flushes of one
page key are serialised by a per-key lock, questionnaire-wide flushes by a
per-questionnaire lock. Every request is bounded by a timeout and retried with
exponential backoff; HTTP 409 is a StateConflictError and is never retried.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx
from pydantic import ValidationError as PydanticValidationError

from assessment_sync.config import ApiConfig
from assessment_sync.logic.answer_store import AnswerStore
from assessment_sync.logic.errors import NetworkError, StateConflictError
from assessment_sync.logic.events import FLUSH_FAILED, PAGE_FLUSHED, QUESTIONNAIRE_FLUSHED, EventBus
from assessment_sync.logic.local_cache import LocalCache
from assessment_sync.logic.pagination import page_of, page_slice
from assessment_sync.logic.session import Session
from assessment_sync.models.questionnaire import Question, Questionnaire, QuestionnaireSummary
from assessment_sync.models.remote import (
    QuestionnaireListing,
    QuestionsAndAnswers,
    SubmitAck,
    SubmitAnswersRequest,
)

logger = logging.getLogger(__name__)

# Client errors that a retry will not fix
_NON_RETRYABLE = {400, 401, 403, 404, 405, 409, 410, 422}


class RemoteSyncClient:
    def __init__(
        self,
        session: Session,
        answers: AnswerStore,
        cache: LocalCache,
        api: ApiConfig,
        page_size: int = 5,
        events: Optional[EventBus] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.session = session
        self._answers = answers
        self._cache = cache
        self._api = api
        self._page_size = page_size
        self._events = events
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=api.base_url,
            timeout=api.request_timeout_seconds,
            transport=transport,
        )
        self._fetch_cache: Dict[str, QuestionsAndAnswers] = {}
        self._submission_names: Dict[str, str] = {}
        self._page_locks: Dict[Tuple[str, int], asyncio.Lock] = {}
        self._questionnaire_locks: Dict[str, asyncio.Lock] = {}

    # Transport -------------------------------------------------------------
    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        attempts = self._api.flush_retries + 1
        last_error: Optional[NetworkError] = None
        for attempt in range(attempts):
            if attempt:
                await asyncio.sleep(self._api.retry_backoff_seconds * (2 ** (attempt - 1)))
            try:
                response = await asyncio.wait_for(
                    self._client.request(method, path, **kwargs),
                    timeout=self._api.request_timeout_seconds,
                )
            except asyncio.TimeoutError:
                last_error = NetworkError(f"{method} {path} timed out")
                logger.warning("request_timeout method=%s path=%s attempt=%s", method, path, attempt + 1)
                continue
            except httpx.HTTPError as exc:
                last_error = NetworkError(f"{method} {path} failed: {exc}")
                logger.warning("request_failed method=%s path=%s attempt=%s error=%s", method, path, attempt + 1, exc)
                continue

            if response.status_code == 409:
                raise StateConflictError(f"{method} {path} rejected: submission already finalised")
            if response.status_code >= 400:
                last_error = NetworkError(
                    f"{method} {path} returned {response.status_code}", status_code=response.status_code
                )
                logger.warning(
                    "request_status method=%s path=%s status=%s attempt=%s",
                    method,
                    path,
                    response.status_code,
                    attempt + 1,
                )
                if response.status_code in _NON_RETRYABLE:
                    break
                continue
            try:
                return response.json()
            except ValueError as exc:
                raise NetworkError(f"{method} {path} returned invalid JSON") from exc
        raise last_error or NetworkError(f"{method} {path} failed")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # Remote operations -----------------------------------------------------
    async def list_questionnaires(self, user_id: str) -> List[QuestionnaireSummary]:
        data = await self._request("GET", "/questionnaires", params={"user_id": user_id})
        try:
            listing = QuestionnaireListing.model_validate(data)
        except PydanticValidationError as exc:
            raise NetworkError(f"malformed questionnaire listing: {exc}") from exc
        return listing.questionnaires

    async def fetch_questionnaire(self, submission_name: str) -> QuestionsAndAnswers:
        cached = self._fetch_cache.get(submission_name)
        if cached is not None:
            return cached
        if not submission_name:
            raise NetworkError("missing submission name")
        data = await self._request("GET", f"/submissions/{submission_name}/questions")
        try:
            result = QuestionsAndAnswers.model_validate(data)
        except PydanticValidationError as exc:
            raise NetworkError(f"malformed questions payload for {submission_name}: {exc}") from exc
        self._fetch_cache[submission_name] = result
        logger.info(
            "questionnaire_fetched submission=%s questions=%s answers=%s",
            submission_name,
            len(result.questions),
            len(result.answers),
        )
        return result

    async def submit_answers(
        self,
        submission_name: str,
        questions: Sequence[Question],
        answers: Mapping[str, int],
    ) -> SubmitAck:
        body = SubmitAnswersRequest(questions=list(questions), answers=dict(answers))
        try:
            data = await self._request(
                "POST",
                f"/submissions/{submission_name}/answers",
                json=body.model_dump(mode="json"),
            )
        except StateConflictError as exc:
            exc.submission_name = submission_name
            raise
        try:
            return SubmitAck.model_validate(data)
        except PydanticValidationError as exc:
            raise NetworkError(f"malformed submit acknowledgement: {exc}") from exc

    # Flushes ---------------------------------------------------------------
    def register_questionnaire(self, questionnaire: Questionnaire) -> None:
        self._submission_names[questionnaire.id] = questionnaire.submission_name

    def _page_lock(self, questionnaire_id: str, page_index: int) -> asyncio.Lock:
        key = (questionnaire_id, page_index)
        lock = self._page_locks.get(key)
        if lock is None:
            lock = self._page_locks[key] = asyncio.Lock()
        return lock

    def _questionnaire_lock(self, questionnaire_id: str) -> asyncio.Lock:
        lock = self._questionnaire_locks.get(questionnaire_id)
        if lock is None:
            lock = self._questionnaire_locks[questionnaire_id] = asyncio.Lock()
        return lock

    def _publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self._events is not None:
            self._events.publish(event_type, payload)

    def _refresh_page_cache(self, questionnaire_id: str, page_index: int) -> None:
        ids = [q.id for q in page_slice(self._answers.questions_of(questionnaire_id), page_index, self._page_size)]
        remaining = self._answers.unconfirmed(ids)
        if remaining:
            self._cache.write(questionnaire_id, page_index, remaining)
        else:
            self._cache.clear(questionnaire_id, page_index)

    async def _send(self, questionnaire_id: str, questions: List[Question], answers: Dict[str, int]) -> bool:
        submission_name = self._submission_names.get(questionnaire_id)
        if not submission_name:
            logger.warning("flush_skipped_unknown questionnaire_id=%s", questionnaire_id)
            return False
        try:
            await self.submit_answers(submission_name, questions, answers)
        except NetworkError as exc:
            logger.warning("flush_failed questionnaire_id=%s answers=%s error=%s", questionnaire_id, len(answers), exc)
            self._publish(FLUSH_FAILED, {"questionnaire_id": questionnaire_id, "error": str(exc)})
            return False
        self._answers.mark_confirmed(answers)
        return True

    async def flush_page(self, questionnaire_id: str, page_index: int) -> bool:
        """Submit the current answers of one page; True when nothing is left unsent."""
        async with self._page_lock(questionnaire_id, page_index):
            page_questions = page_slice(self._answers.questions_of(questionnaire_id), page_index, self._page_size)
            ids = [q.id for q in page_questions]
            if not self._answers.unconfirmed(ids):
                return True
            answers = self._answers.answers(ids)
            ok = await self._send(questionnaire_id, page_questions, answers)
            if not ok:
                return False
            self._refresh_page_cache(questionnaire_id, page_index)
            logger.info("page_flushed questionnaire_id=%s page=%s answers=%s", questionnaire_id, page_index, len(answers))
            self._publish(PAGE_FLUSHED, {"questionnaire_id": questionnaire_id, "page_index": page_index, "answers": answers})
            return True

    async def flush_questionnaire(self, questionnaire_id: str) -> bool:
        """Submit every unconfirmed answer of a questionnaire."""
        async with self._questionnaire_lock(questionnaire_id):
            questions = self._answers.questions_of(questionnaire_id)
            pending = self._answers.unconfirmed([q.id for q in questions])
            if not pending:
                return True
            sent_questions = [q for q in questions if q.id in pending]
            ok = await self._send(questionnaire_id, sent_questions, pending)
            if not ok:
                return False
            pages = sorted({page_of(idx, self._page_size) for idx, q in enumerate(questions) if q.id in pending})
            for page in pages:
                self._refresh_page_cache(questionnaire_id, page)
            logger.info("questionnaire_flushed questionnaire_id=%s answers=%s", questionnaire_id, len(pending))
            self._publish(QUESTIONNAIRE_FLUSHED, {"questionnaire_id": questionnaire_id, "answers": pending})
            return True

    def forget(self, submission_name: str) -> None:
        """Drop a cached fetch so the next selection re-fetches it."""
        self._fetch_cache.pop(submission_name, None)


__all__ = ["RemoteSyncClient"]
