"""Functional tests for the in-session AnswerStore.

Covers write validation, read-back, rehydration merge rules, value-based
server confirmation and the frozen (submitted) no-op behaviour.
"""

from __future__ import annotations

import pytest

from assessment_sync.logic.answer_store import AnswerStore
from assessment_sync.logic.errors import ValidationError
from assessment_sync.logic.events import ANSWER_CHANGED, EventBus
from assessment_sync.logic.session import Session

from conftest import make_questions


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def answer_store(bus) -> AnswerStore:
    store = AnswerStore(Session(email="someone@example.com"), events=bus)
    store.register_questions("Self", make_questions("S", 3, options=4))
    store.register_questions("Boss", make_questions("B", 2, options=3))
    return store


def test_set_answer_then_get_answer_returns_option_index(answer_store):
    """Every valid (question, option) pair reads back unchanged."""
    for qid in ("S1", "S2", "S3"):
        for idx in range(4):
            mapping = answer_store.set_answer(qid, idx)
            # Assert: returned mapping carries the new value
            assert mapping[qid] == idx
            # Assert: read-back equals written value
            assert answer_store.get_answer(qid) == idx


def test_set_answer_overwrites_previous_value(answer_store):
    answer_store.set_answer("S1", 0)
    answer_store.set_answer("S1", 3)
    assert answer_store.get_answer("S1") == 3
    assert answer_store.answers() == {"S1": 3}


@pytest.mark.parametrize("bad_index", [-1, 4, 99])
def test_set_answer_rejects_out_of_range_option(answer_store, bad_index):
    with pytest.raises(ValidationError) as excinfo:
        answer_store.set_answer("S1", bad_index)
    # Assert: error names the offending question and nothing was stored
    assert excinfo.value.question_id == "S1"
    assert answer_store.get_answer("S1") is None


def test_set_answer_rejects_unknown_question(answer_store):
    with pytest.raises(ValidationError):
        answer_store.set_answer("NOPE", 0)


def test_set_answer_rejects_boolean_index(answer_store):
    with pytest.raises(ValidationError):
        answer_store.set_answer("S1", True)


def test_set_answer_publishes_answer_changed(answer_store, bus):
    answer_store.set_answer("B1", 2)
    answer_store.set_answer("B1", 2)
    payloads = bus.of_type(ANSWER_CHANGED)
    # Assert: both writes published, only the first one changed the value
    assert [p["changed"] for p in payloads] == [True, False]
    assert payloads[0]["questionnaire_id"] == "Boss"


def test_merge_never_overwrites_session_answers(answer_store):
    answer_store.set_answer("S1", 1)
    applied_server = answer_store.merge({"S1": 3, "S2": 2}, "server")
    applied_local = answer_store.merge({"S1": 0, "S2": 0, "S3": 1}, "local")
    # Assert: session answer kept, server applied first, local filled the gap
    assert answer_store.answers() == {"S1": 1, "S2": 2, "S3": 1}
    assert applied_server == ["S2"]
    assert applied_local == ["S3"]


def test_merge_skips_invalid_entries(answer_store):
    applied = answer_store.merge({"S1": 9, "ZZ": 1, "S2": "x", "S3": 2}, "local")
    assert applied == ["S3"]
    assert answer_store.answers() == {"S3": 2}


def test_merge_rejects_unknown_priority(answer_store):
    with pytest.raises(ValueError):
        answer_store.merge({"S1": 1}, "remote")


def test_server_merge_marks_answers_confirmed(answer_store):
    answer_store.merge({"S1": 2}, "server")
    answer_store.merge({"S2": 1}, "local")
    assert answer_store.is_confirmed("S1") is True
    assert answer_store.is_confirmed("S2") is False
    assert answer_store.unconfirmed() == {"S2": 1}


def test_confirmation_tracks_acknowledged_value(answer_store):
    answer_store.set_answer("S1", 1)
    answer_store.mark_confirmed({"S1": 1})
    assert answer_store.is_confirmed("S1")
    # A later edit is unsent again until the server acknowledges it
    answer_store.set_answer("S1", 2)
    assert not answer_store.is_confirmed("S1")
    assert answer_store.unconfirmed(["S1", "S2"]) == {"S1": 2}
    # Returning to the acknowledged value counts as confirmed
    answer_store.set_answer("S1", 1)
    assert answer_store.is_confirmed("S1")


def test_frozen_store_ignores_writes(answer_store, bus):
    answer_store.set_answer("S1", 1)
    answer_store.freeze()
    before = bus.buffered()
    mapping = answer_store.set_answer("S1", 3)
    # Assert: mapping unchanged and no event emitted
    assert mapping == {"S1": 1}
    assert answer_store.get_answer("S1") == 1
    assert bus.buffered() == before


def test_locate_and_questions_of(answer_store):
    assert answer_store.locate("S3") == ("Self", 2)
    assert answer_store.locate("B1") == ("Boss", 0)
    assert answer_store.locate("missing") is None
    assert [q.id for q in answer_store.questions_of("Boss")] == ["B1", "B2"]


def test_reset_to_replaces_answers_with_server_set(answer_store):
    answer_store.set_answer("S1", 1)
    answer_store.set_answer("S2", 1)
    answer_store.reset_to({"S1": 3})
    assert answer_store.answers() == {"S1": 3}
    assert answer_store.is_confirmed("S1")
