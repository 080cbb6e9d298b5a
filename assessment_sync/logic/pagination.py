"""Page slicing, current-page tracking and auto-advance decisions.

Pages are fixed-size contiguous slices of the active questionnaire's ordered
questions: `page = question_index // page_size`. Navigating away from a page
publishes PAGE_CHANGED carrying the previous page so the scheduler flushes it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, TypeVar, Union

from assessment_sync.logic.answer_store import AnswerStore
from assessment_sync.logic.events import PAGE_CHANGED, EventBus
from assessment_sync.logic.local_cache import LocalCache
from assessment_sync.models.questionnaire import Questionnaire, Question

logger = logging.getLogger(__name__)

T = TypeVar("T")

ELLIPSIS = "ellipsis"


def page_of(question_index: int, page_size: int) -> int:
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    if question_index < 0:
        raise ValueError("question_index must be non-negative")
    return question_index // page_size


def page_slice(items: Sequence[T], page_index: int, page_size: int) -> List[T]:
    start = page_index * page_size
    return list(items[start:start + page_size])


class AdvanceKind(str, Enum):
    NONE = "none"
    NEXT_QUESTION = "next_question"
    NEXT_PAGE = "next_page"


@dataclass(frozen=True)
class Advance:
    kind: AdvanceKind
    question_id: Optional[str] = None
    page_index: Optional[int] = None


NO_ADVANCE = Advance(AdvanceKind.NONE)


class PaginationController:
    def __init__(
        self,
        answers: AnswerStore,
        cache: LocalCache,
        events: EventBus,
        page_size: int = 5,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.page_size = page_size
        self._answers = answers
        self._cache = cache
        self._events = events
        self._questionnaire: Optional[Questionnaire] = None
        self._current_page = 0
        self._frozen = False

    @property
    def questionnaire(self) -> Optional[Questionnaire]:
        return self._questionnaire

    @property
    def current_page(self) -> int:
        return self._current_page

    @property
    def page_count(self) -> int:
        if self._questionnaire is None:
            return 0
        return self._questionnaire.page_count(self.page_size)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def set_questionnaire(self, questionnaire: Questionnaire, page_index: int = 0) -> None:
        """Make a questionnaire active without flushing; selection handles flushes."""
        self._questionnaire = questionnaire
        self._current_page = page_index if 0 <= page_index < max(self.page_count, 1) else 0
        self._cache.write_pointer(self._current_page)

    def current_questions(self) -> List[Question]:
        if self._questionnaire is None:
            return []
        return page_slice(self._questionnaire.questions, self._current_page, self.page_size)

    def go_to(self, page_index: int) -> bool:
        """Navigate to a page; returns False when the move was refused."""
        if self._frozen or self._questionnaire is None:
            return False
        if not 0 <= page_index < self.page_count:
            logger.info(
                "page_out_of_bounds questionnaire_id=%s page=%s pages=%s",
                self._questionnaire.id,
                page_index,
                self.page_count,
            )
            return False
        if page_index == self._current_page:
            return False
        previous = self._current_page
        self._cache.write_pointer(page_index)
        self._events.publish(
            PAGE_CHANGED,
            {
                "questionnaire_id": self._questionnaire.id,
                "previous_page": previous,
                "page_index": page_index,
            },
        )
        self._current_page = page_index
        return True

    def on_answered(self, question_id: str) -> Advance:
        questionnaire = self._questionnaire
        if self._frozen or questionnaire is None:
            return NO_ADVANCE
        idx = questionnaire.index_of(question_id)
        if idx < 0:
            return NO_ADVANCE
        page = page_of(idx, self.page_size)
        last_on_page = min((page + 1) * self.page_size, len(questionnaire.questions)) - 1
        if idx < last_on_page:
            return Advance(AdvanceKind.NEXT_QUESTION, question_id=questionnaire.questions[idx + 1].id)
        if page < self.page_count - 1:
            return Advance(AdvanceKind.NEXT_PAGE, page_index=page + 1)
        return NO_ADVANCE

    def answered_count(self) -> int:
        if self._questionnaire is None:
            return 0
        return self._answers.answered_count(self._questionnaire.question_ids)

    def progress(self) -> float:
        if self._questionnaire is None or not self._questionnaire.questions:
            return 0.0
        return self.answered_count() / len(self._questionnaire.questions)

    def restore_pointer(self) -> int:
        pointer = self._cache.read_pointer()
        if pointer is not None and 0 <= pointer < self.page_count:
            self._current_page = pointer
        return self._current_page

    def freeze(self) -> None:
        self._frozen = True


def progress_message(percent: float) -> str:
    if percent <= 0:
        return "Just starting..."
    if percent < 20:
        return "Getting there..."
    if percent < 40:
        return "Making progress..."
    if percent < 60:
        return "Great job!"
    if percent < 80:
        return "Almost done!"
    if percent < 100:
        return "So close!"
    return "Perfect!"


def pagination_buttons(current_page: int, total_pages: int, max_visible: int = 10) -> List[Union[int, str]]:
    """Page buttons to show, with ELLIPSIS markers for collapsed ranges."""
    if total_pages <= max_visible:
        return list(range(total_pages))
    if current_page < 5:
        return list(range(7)) + [ELLIPSIS, total_pages - 1]
    if current_page > total_pages - 6:
        return [0, ELLIPSIS] + list(range(total_pages - 7, total_pages))
    return [0, ELLIPSIS, current_page - 1, current_page, current_page + 1, ELLIPSIS, total_pages - 1]


__all__ = [
    "page_of",
    "page_slice",
    "AdvanceKind",
    "Advance",
    "PaginationController",
    "progress_message",
    "pagination_buttons",
    "ELLIPSIS",
]
