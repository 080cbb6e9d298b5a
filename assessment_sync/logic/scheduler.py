"""Event-driven sync scheduler.

Consumes answer, page and questionnaire events and turns them into local
write-through and tracked flush tasks:
- ANSWER_CHANGED: rewrite the page's unconfirmed answers in LocalCache (the
  entry is dropped once nothing on the page is unsent) and mark the cycle
  started.
- PAGE_CHANGED: flush the page being left.
- QUESTIONNAIRE_CHANGED: flush the left questionnaire's current page, then its
  questionnaire-wide remainder.

Tasks are kept until they finish so they can be awaited (`wait_for`, `drain`)
or cancelled on teardown (`aclose`). Handlers must run inside an event loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from assessment_sync.logic.answer_store import AnswerStore
from assessment_sync.logic.cycles import cycle_id_from_submission_name
from assessment_sync.logic.errors import StateConflictError
from assessment_sync.logic.events import (
    ANSWER_CHANGED,
    FLUSH_CONFLICT,
    PAGE_CHANGED,
    QUESTIONNAIRE_CHANGED,
    EventBus,
)
from assessment_sync.logic.local_cache import LocalCache
from assessment_sync.logic.pagination import page_of, page_slice
from assessment_sync.logic.remote_sync import RemoteSyncClient

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(
        self,
        events: EventBus,
        answers: AnswerStore,
        cache: LocalCache,
        remote: RemoteSyncClient,
        page_size: int = 5,
    ) -> None:
        self._events = events
        self._answers = answers
        self._cache = cache
        self._remote = remote
        self._page_size = page_size
        self._tasks: Set[asyncio.Task] = set()
        self._by_questionnaire: Dict[str, Set[asyncio.Task]] = {}
        self._submission_names: Dict[str, str] = {}
        self._started_cycles: Set[str] = set()
        self._subscriptions = [
            (ANSWER_CHANGED, self._on_answer_changed),
            (PAGE_CHANGED, self._on_page_changed),
            (QUESTIONNAIRE_CHANGED, self._on_questionnaire_changed),
        ]
        for event_type, handler in self._subscriptions:
            events.subscribe(event_type, handler)

    def track_submission(self, questionnaire_id: str, submission_name: str) -> None:
        self._submission_names[questionnaire_id] = submission_name

    @property
    def pending(self) -> int:
        return len(self._tasks)

    # Handlers --------------------------------------------------------------
    def _on_answer_changed(self, payload: Dict[str, Any]) -> None:
        question_id = payload["question_id"]
        located = self._answers.locate(question_id)
        if located is None:
            return
        questionnaire_id, index = located
        cycle_id = cycle_id_from_submission_name(self._submission_names.get(questionnaire_id, ""))
        if cycle_id and cycle_id not in self._started_cycles:
            self._started_cycles.add(cycle_id)
            self._cache.mark_started(cycle_id)
        page = page_of(index, self._page_size)
        ids = [q.id for q in page_slice(self._answers.questions_of(questionnaire_id), page, self._page_size)]
        self._cache.write(questionnaire_id, page, self._answers.unconfirmed(ids))

    def _on_page_changed(self, payload: Dict[str, Any]) -> None:
        questionnaire_id = payload["questionnaire_id"]
        previous_page = payload["previous_page"]
        self.spawn(
            questionnaire_id,
            lambda: self._remote.flush_page(questionnaire_id, previous_page),
            label=f"flush_page:{questionnaire_id}:{previous_page}",
        )

    def _on_questionnaire_changed(self, payload: Dict[str, Any]) -> None:
        previous_id = payload.get("previous_id")
        if not previous_id:
            return
        previous_page = payload.get("previous_page", 0)

        async def _chain() -> bool:
            page_ok = await self._remote.flush_page(previous_id, previous_page)
            questionnaire_ok = await self._remote.flush_questionnaire(previous_id)
            return page_ok and questionnaire_ok

        self.spawn(previous_id, _chain, label=f"flush_switch:{previous_id}")

    # Task tracking ---------------------------------------------------------
    async def _guarded(self, label: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await factory()
        except StateConflictError as exc:
            logger.error("flush_conflict task=%s error=%s", label, exc)
            self._events.publish(FLUSH_CONFLICT, {"task": label, "error": str(exc)})
            return False

    def spawn(self, questionnaire_id: Optional[str], factory: Callable[[], Awaitable[Any]], label: str = "task") -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._guarded(label, factory), name=label)
        self._tasks.add(task)
        if questionnaire_id:
            self._by_questionnaire.setdefault(questionnaire_id, set()).add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if questionnaire_id:
                self._by_questionnaire.get(questionnaire_id, set()).discard(t)

        task.add_done_callback(_done)
        logger.debug("task_spawned label=%s pending=%s", label, len(self._tasks))
        return task

    def call_later(self, delay: float, callback: Callable[[], Any], label: str = "deferred") -> asyncio.Task:
        async def _later() -> Any:
            await asyncio.sleep(delay)
            return callback()

        return self.spawn(None, _later, label=label)

    async def wait_for(self, questionnaire_id: str, timeout: Optional[float] = None) -> bool:
        """Wait for a questionnaire's outstanding flush tasks; False on timeout."""
        tasks = list(self._by_questionnaire.get(questionnaire_id, set()))
        if not tasks:
            return True
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning("flush_wait_timeout questionnaire_id=%s pending=%s", questionnaire_id, len(pending))
            return False
        return all(not t.cancelled() and t.result() is not False for t in done)

    async def drain(self) -> None:
        """Await every outstanding task, including tasks spawned while draining."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        for event_type, handler in self._subscriptions:
            self._events.unsubscribe(event_type, handler)


__all__ = ["SyncScheduler"]
