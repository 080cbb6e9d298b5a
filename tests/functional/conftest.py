"""Functional test bootstrap for the assessment sync engine.

Engines talk to the reference FastAPI backend in-process through
`httpx.ASGITransport`, wrapped by `RecordingTransport` so tests can count
requests, inspect bodies and inject failures. Backend in-memory state and the
event buffer are reset around every test.

Async tests run on the anyio pytest plugin with the asyncio backend.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Set, Tuple

import anyio
import httpx
import pytest

from assessment_sync.config import ApiConfig, PaginationConfig, StorageConfig, SyncConfig
from assessment_sync.db.base import dispose_engines
from assessment_sync.logic import events as backend_events
from assessment_sync.logic import inmemory_state
from assessment_sync.logic.engine import AssessmentEngine
from assessment_sync.logic.kv_store import InMemoryKeyValueStore, KeyValueStore
from assessment_sync.logic.session import Session
from assessment_sync.main import create_app
from assessment_sync.models.questionnaire import Question
from assessment_sync.routes.test_support import SeedCycle, seed_cycle

BASE_URL = "http://testserver/api/v1"
CYCLE_ID = "2D-0310"
USER_ID = "EMP-00039"
USER_EMAIL = "Emp.39@example.com"


def submission_name(label: str, cycle: str = "0310") -> str:
    return f"SUB-ASSESSMENT-HR-EMP-00039-2D-{cycle}-{label}-0311"


def make_questions(prefix: str, count: int, options: int = 4) -> List[Question]:
    return [
        Question(id=f"{prefix}{i}", text=f"{prefix} question {i}", options=[f"opt{n}" for n in range(options)])
        for i in range(1, count + 1)
    ]


def seed(questionnaires: List[Dict[str, Any]], user_id: str = USER_ID) -> None:
    """Seed the backend with a user's questionnaires (same path as the test route)."""
    rows = []
    for q in questionnaires:
        rows.append(
            {
                "submission_name": q.get("submission_name") or submission_name(q["label"]),
                "questionnaire_type": q["label"],
                "status": q.get("status", "Draft"),
                "questions": [question.model_dump() for question in q["questions"]],
                "answers": q.get("answers", {}),
            }
        )
    seed_cycle(SeedCycle.model_validate({"user_id": user_id, "questionnaires": rows}))


class RecordingTransport(httpx.AsyncBaseTransport):
    """ASGI transport that records requests and can simulate outages."""

    def __init__(self, app) -> None:
        self._inner = httpx.ASGITransport(app=app)
        self.calls: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []
        self.offline = False
        self.fail_next = 0
        self.fail_paths: Set[str] = set()
        self.delay = 0.0
        self.inflight = 0
        self.max_inflight = 0

    def posts(self, path_fragment: str = "") -> List[Dict[str, Any]]:
        return [body or {} for method, path, body in self.calls if method == "POST" and path_fragment in path]

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        body = None
        if request.method == "POST":
            request.read()
            body = json.loads(request.content or b"{}")
        self.calls.append((request.method, request.url.path, body))
        if self.offline or request.url.path in self.fail_paths:
            raise httpx.ConnectError("backend unreachable", request=request)
        if self.fail_next > 0:
            self.fail_next -= 1
            raise httpx.ConnectError("transient failure", request=request)
        self.inflight += 1
        self.max_inflight = max(self.max_inflight, self.inflight)
        try:
            if self.delay:
                await anyio.sleep(self.delay)
            return await self._inner.handle_async_request(request)
        finally:
            self.inflight -= 1


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_backend_state():
    inmemory_state.clear_all()
    backend_events.EVENT_BUFFER.clear()
    yield
    inmemory_state.clear_all()
    backend_events.EVENT_BUFFER.clear()
    dispose_engines()


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def transport(app) -> RecordingTransport:
    return RecordingTransport(app)


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(
        api=ApiConfig(
            base_url=BASE_URL,
            request_timeout_seconds=2.0,
            flush_retries=0,
            retry_backoff_seconds=0.0,
        ),
        pagination=PaginationConfig(page_size=5, auto_advance_delay_seconds=0.0),
        storage=StorageConfig(url="memory://", key_prefix="assessment"),
    )


@pytest.fixture
def session() -> Session:
    return Session(email=USER_EMAIL, user_id=USER_ID)


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
async def make_engine(sync_config, transport, store, session):
    created: List[AssessmentEngine] = []

    def _make(
        session_: Optional[Session] = None,
        store_: Optional[KeyValueStore] = None,
        config: Optional[SyncConfig] = None,
        transport_: Optional[httpx.AsyncBaseTransport] = None,
    ) -> AssessmentEngine:
        engine = AssessmentEngine(
            session_ or session,
            config or sync_config,
            store=store_ if store_ is not None else store,
            transport=transport_ or transport,
        )
        created.append(engine)
        return engine

    yield _make
    for engine in created:
        await engine.aclose()
