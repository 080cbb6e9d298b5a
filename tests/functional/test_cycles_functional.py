"""Functional tests for cycle grouping, ranking order and entry point resolution."""

from __future__ import annotations

import pytest

from assessment_sync.config import DEFAULT_RANKING
from assessment_sync.logic.cycles import (
    cycle_id_from_submission_name,
    latest_cycle,
    order_by_ranking,
    rank_of,
    resolve_entry_point,
)
from assessment_sync.models.answers import EntryPoint
from assessment_sync.models.questionnaire import QuestionnaireStatus, QuestionnaireSummary

from conftest import submission_name


def _summary(label: str, status: str = "Draft", cycle: str = "0310") -> QuestionnaireSummary:
    return QuestionnaireSummary(
        submission_name=submission_name(label, cycle=cycle),
        questionnaire_type=label,
        status=status,
    )


def test_cycle_id_is_dimension_and_cycle_number():
    assert cycle_id_from_submission_name("SUB-ASSESSMENT-HR-EMP-00039-2D-0310-Self-0311") == "2D-0310"
    assert cycle_id_from_submission_name("") == ""


def test_latest_cycle_keeps_highest_cycle_number():
    summaries = [_summary("Self", cycle="0309"), _summary("Self"), _summary("Boss")]
    latest = latest_cycle(summaries)
    # Assert: only the 0310 questionnaires remain
    assert [s.questionnaire_type for s in latest] == ["Self", "Boss"]
    assert {s.cycle_id for s in latest} == {"2D-0310"}


def test_latest_cycle_passes_through_unparseable_names():
    summaries = [QuestionnaireSummary(submission_name="odd", questionnaire_type="Self")]
    assert latest_cycle(summaries) == summaries


def test_ranking_orders_labels_and_keeps_unranked_last():
    labels = ["Company", "Peer", "Self", "Dept Review", "Boss"]
    assert order_by_ranking(labels, DEFAULT_RANKING) == ["Self", "Boss", "Dept Review", "Company", "Peer"]
    assert rank_of("Peer", DEFAULT_RANKING) is None


def test_status_accepts_compact_in_progress_spelling():
    assert _summary("Self", status="InProgress").status == QuestionnaireStatus.IN_PROGRESS
    with pytest.raises(ValueError):
        QuestionnaireStatus.parse("Archived")


def test_entry_point_start_without_answers():
    summaries = [_summary("Self"), _summary("Boss")]
    assert resolve_entry_point(summaries, {}, {}) == EntryPoint.START
    assert resolve_entry_point([], {}, {}) == EntryPoint.START


def test_entry_point_continue_with_answers_or_started_marker():
    summaries = [_summary("Self", status="In Progress"), _summary("Boss")]
    counts = {submission_name("Self"): 2}
    totals = {submission_name("Self"): 3, submission_name("Boss"): 2}
    assert resolve_entry_point(summaries, counts, totals) == EntryPoint.CONTINUE
    assert resolve_entry_point(summaries, {}, totals, started=True) == EntryPoint.CONTINUE


def test_entry_point_submitted_when_all_completed():
    summaries = [_summary("Self", status="Completed"), _summary("Boss", status="Completed")]
    assert resolve_entry_point(summaries, {}, {}) == EntryPoint.SUBMITTED


def test_entry_point_draft_blocks_submitted_even_when_fully_answered():
    summaries = [_summary("Self", status="In Progress"), _summary("Boss", status="Draft")]
    counts = {submission_name("Self"): 3, submission_name("Boss"): 2}
    totals = dict(counts)
    assert resolve_entry_point(summaries, counts, totals) == EntryPoint.CONTINUE
