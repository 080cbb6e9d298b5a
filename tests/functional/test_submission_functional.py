"""Functional tests for the submission lifecycle: save, submit, freeze and restore."""

from __future__ import annotations

import asyncio

import pytest

from assessment_sync.logic import inmemory_state
from assessment_sync.logic.errors import StateConflictError, TransitionError
from assessment_sync.logic.events import CYCLE_SUBMITTED, STATUS_CHANGED
from assessment_sync.logic.pagination import AdvanceKind
from assessment_sync.models.answers import EntryPoint, SubmissionState

from conftest import make_questions, seed, submission_name

pytestmark = pytest.mark.anyio


@pytest.fixture
def self_and_boss():
    seed(
        [
            {"label": "Self", "questions": make_questions("S", 3)},
            {"label": "Boss", "questions": make_questions("B", 2)},
        ]
    )


async def _answer_all(engine, values=None):
    values = values or {"S1": 1, "S2": 2, "S3": 0, "B1": 3, "B2": 1}
    for qid, idx in values.items():
        engine.answer(qid, idx)


async def _saved_engine(make_engine):
    engine = make_engine()
    await engine.load()
    await _answer_all(engine)
    assert await engine.save() is True
    assert engine.state == SubmissionState.SAVED
    return engine


async def test_full_cycle_reaches_submitted(make_engine, transport, self_and_boss):
    engine = make_engine()
    assert await engine.load() == SubmissionState.DRAFT
    assert engine.entry_point() == EntryPoint.START

    for qid, idx in {"S1": 1, "S2": 2, "S3": 0}.items():
        engine.answer(qid, idx)
    assert engine.state == SubmissionState.DRAFT
    assert await engine.save() is True
    # Assert: save moved on to the next questionnaire
    assert engine.active.id == "Boss"
    assert engine.state == SubmissionState.DRAFT

    engine.answer("B1", 3)
    engine.answer("B2", 1)
    assert engine.state == SubmissionState.READY
    assert await engine.save() is True
    assert engine.state == SubmissionState.SAVED

    summary = engine.request_submit()
    assert summary.cycle_id == "2D-0310"
    assert summary.answers == {"Self": {"S1": 1, "S2": 2, "S3": 0}, "Boss": {"B1": 3, "B2": 1}}
    assert summary.total_answered == 5

    record = await engine.submit()
    assert engine.state == SubmissionState.SUBMITTED
    assert record.cycle_id == "2D-0310"
    assert engine.cache.read_submission("2D-0310") == record
    # Assert: every local answer entry of the cycle is gone
    assert engine.cache.read("Self", 0) == {}
    assert engine.cache.read("Boss", 0) == {}
    assert engine.cache.read_snapshot() == {}
    assert engine.cache.read_pointer() is None
    assert inmemory_state.SUBMISSIONS[submission_name("Self")]["answers"] == {"S1": 1, "S2": 2, "S3": 0}
    assert inmemory_state.SUBMISSIONS[submission_name("Boss")]["answers"] == {"B1": 3, "B2": 1}
    assert engine.events.of_type(CYCLE_SUBMITTED)[0]["cycle_id"] == "2D-0310"
    assert [(t.from_state, t.to_state) for t in engine.submission.history] == [
        (SubmissionState.DRAFT, SubmissionState.READY),
        (SubmissionState.READY, SubmissionState.SAVED),
        (SubmissionState.SAVED, SubmissionState.SUBMITTED),
    ]


async def test_answer_change_after_save_returns_to_ready(make_engine, self_and_boss):
    engine = await _saved_engine(make_engine)
    engine.answer("B1", 3)
    # Assert: same value is not a change
    assert engine.state == SubmissionState.SAVED
    engine.answer("B1", 0)
    assert engine.state == SubmissionState.READY
    with pytest.raises(TransitionError):
        engine.request_submit()


async def test_submitted_cycle_is_immutable(make_engine, self_and_boss):
    engine = await _saved_engine(make_engine)
    await engine.submit()
    before = engine.answers.answers()
    advance = engine.answer("S1", 3)
    # Assert: answer and navigation are ignored, save is refused
    assert advance.kind == AdvanceKind.NONE
    assert engine.answers.answers() == before
    assert engine.go_to(1) is False
    with pytest.raises(TransitionError):
        await engine.save()


async def test_confirm_submit_is_idempotent(make_engine, transport, self_and_boss):
    engine = await _saved_engine(make_engine)
    first = await engine.submit()
    posts = len(transport.posts())
    second = await engine.submit()
    assert first == second
    assert len(transport.posts()) == posts
    assert len(engine.events.of_type(CYCLE_SUBMITTED)) == 1


async def test_submit_requires_saved_state(make_engine, self_and_boss):
    engine = make_engine()
    await engine.load()
    with pytest.raises(TransitionError):
        engine.request_submit()
    with pytest.raises(TransitionError):
        await engine.submit()


async def test_save_failure_keeps_state_and_local_answers(make_engine, transport):
    seed([{"label": "Self", "questions": make_questions("S", 3)}])
    engine = make_engine()
    await engine.load()
    for qid in ("S1", "S2", "S3"):
        engine.answer(qid, 2)
    assert engine.state == SubmissionState.READY
    transport.offline = True
    assert await engine.save() is False
    assert engine.state == SubmissionState.READY
    assert engine.cache.read("Self", 0) == {"S1": 2, "S2": 2, "S3": 2}

    transport.offline = False
    assert await engine.save() is True
    assert engine.state == SubmissionState.SAVED
    assert engine.cache.read("Self", 0) == {}


async def test_answer_edited_during_save_keeps_progress_unsaved(make_engine, transport):
    seed(
        [
            {
                "label": "Self",
                "questions": make_questions("S", 7),
                "answers": {f"S{i}": 1 for i in range(1, 6)},
            }
        ]
    )
    engine = make_engine()
    await engine.load()
    engine.answer("S6", 2)
    engine.answer("S7", 0)
    assert engine.state == SubmissionState.READY
    transport.delay = 0.2

    async def _edit_mid_flush():
        await asyncio.sleep(0.1)
        engine.answer("S1", 3)

    saved, _ = await asyncio.gather(engine.save(), _edit_mid_flush())
    # Assert: the edit is still unsent, so the save does not count
    assert saved is False
    assert engine.state == SubmissionState.READY
    assert engine.answers.unconfirmed() == {"S1": 3}
    assert engine.cache.read("Self", 0) == {"S1": 3}

    transport.delay = 0.0
    assert await engine.save() is True
    assert engine.state == SubmissionState.SAVED
    assert inmemory_state.SUBMISSIONS[submission_name("Self")]["answers"]["S1"] == 3


async def test_save_against_completed_submission_raises_conflict(make_engine):
    seed([{"label": "Self", "questions": make_questions("S", 3)}])
    engine = make_engine()
    await engine.load()
    for qid in ("S1", "S2", "S3"):
        engine.answer(qid, 1)
    inmemory_state.SUBMISSIONS[submission_name("Self")]["status"] = "Completed"
    with pytest.raises(StateConflictError):
        await engine.save()
    assert engine.state == SubmissionState.READY


async def test_reload_after_submit_restores_submitted_from_record(make_engine, store, self_and_boss):
    engine = await _saved_engine(make_engine)
    await engine.submit()
    await engine.aclose()

    reloaded = make_engine()
    assert await reloaded.load() == SubmissionState.SUBMITTED
    assert reloaded.entry_point() == EntryPoint.SUBMITTED
    assert reloaded.answers.frozen is True
    assert reloaded.answers.answers() == {"S1": 1, "S2": 2, "S3": 0, "B1": 3, "B2": 1}
    assert reloaded.events.of_type(STATUS_CHANGED)[-1]["reason"] == "restore"


async def test_completed_and_fully_answered_cycle_restores_submitted(make_engine):
    seed(
        [
            {"label": "Self", "questions": make_questions("S", 2), "status": "Completed", "answers": {"S1": 0, "S2": 1}},
            {"label": "Boss", "questions": make_questions("B", 1), "status": "Completed", "answers": {"B1": 2}},
        ]
    )
    engine = make_engine()
    engine.cache.write("Self", 0, {"S1": 3})
    assert await engine.load() == SubmissionState.SUBMITTED
    # Assert: server answers shown, local leftovers discarded
    assert engine.answers.answers() == {"S1": 0, "S2": 1, "B1": 2}
    assert engine.cache.read("Self", 0) == {}
    assert engine.submission.record.cycle_id == "2D-0310"
    assert engine.entry_point() == EntryPoint.SUBMITTED


async def test_completed_status_without_full_server_answers_stays_editable(make_engine):
    seed(
        [
            {"label": "Self", "questions": make_questions("S", 2), "status": "Completed", "answers": {"S1": 0}},
        ]
    )
    engine = make_engine()
    assert await engine.load() == SubmissionState.DRAFT
    assert engine.answers.frozen is False


async def test_entry_point_continue_after_first_answer(make_engine, self_and_boss):
    engine = make_engine()
    await engine.load()
    engine.answer("S1", 0)
    assert engine.entry_point() == EntryPoint.CONTINUE
