"""Domain event constants and a synchronous event bus.

Answer, page and questionnaire changes are published here and consumed by the
sync scheduler and the submission state machine. Every published event is
also buffered so tests and diagnostics can observe the sequence.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

ANSWER_CHANGED = "answer.changed"
PAGE_CHANGED = "page.changed"
QUESTIONNAIRE_CHANGED = "questionnaire.changed"
PAGE_FLUSHED = "flush.page_succeeded"
QUESTIONNAIRE_FLUSHED = "flush.questionnaire_succeeded"
FLUSH_FAILED = "flush.failed"
FLUSH_CONFLICT = "flush.conflict"
STORAGE_WARNING = "storage.warning"
FETCH_FAILED = "fetch.failed"
STATUS_CHANGED = "submission.status_changed"
CYCLE_SUBMITTED = "submission.cycle_submitted"

Handler = Callable[[Dict[str, Any]], None]


class EventBus:
    """Minimal in-process pub/sub; handlers run in subscription order."""

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._buffer: List[Dict[str, Any]] = []

    def subscribe(self, event_type: str, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        """Publish a domain event to every subscriber.

        Handler errors propagate to the publisher; the sync pipeline treats a
        failing handler as a programming error, not a recoverable condition.
        """
        logger.debug("event_publish type=%s payload=%s", event_type, payload)
        self._buffer.append({"type": event_type, "payload": dict(payload)})
        for handler in list(self._handlers.get(event_type, [])):
            handler(payload)

    def buffered(self, clear: bool = False) -> List[Dict[str, Any]]:
        """Return buffered events; optionally clear the buffer."""
        events = list(self._buffer)
        if clear:
            self._buffer.clear()
        return events

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [e["payload"] for e in self._buffer if e["type"] == event_type]


# Process-wide buffer for the reference backend (test-only visibility)
EVENT_BUFFER: List[Dict[str, Any]] = []


def publish(event_type: str, payload: Dict[str, Any]) -> None:
    """Record a backend-side domain event."""
    logger.info("event_publish type=%s payload=%s", event_type, payload)
    EVENT_BUFFER.append({"type": event_type, "payload": payload})


def get_buffered_events(clear: bool = True) -> List[Dict[str, Any]]:
    """Return buffered backend events; optionally clear the buffer."""
    events = list(EVENT_BUFFER)
    if clear:
        EVENT_BUFFER.clear()
    return events


# Backend-side event names
ANSWERS_SAVED = "answers.saved"
SUBMISSION_STATUS_SET = "submission.status_set"

__all__ = [
    "ANSWER_CHANGED",
    "PAGE_CHANGED",
    "QUESTIONNAIRE_CHANGED",
    "PAGE_FLUSHED",
    "QUESTIONNAIRE_FLUSHED",
    "FLUSH_FAILED",
    "FLUSH_CONFLICT",
    "STORAGE_WARNING",
    "FETCH_FAILED",
    "STATUS_CHANGED",
    "CYCLE_SUBMITTED",
    "ANSWERS_SAVED",
    "SUBMISSION_STATUS_SET",
    "EventBus",
    "publish",
    "get_buffered_events",
    "EVENT_BUFFER",
]
