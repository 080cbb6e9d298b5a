"""Assessment cycle helpers.

A submission name such as ``SUB-ASSESSMENT-HR-EMP-00039-2D-0310-Self-0311``
encodes the cycle it belongs to (``2D-0310``: dimension and cycle number).
These helpers group questionnaires by cycle, pick the latest cycle, order
questionnaires for display and decide which entry point the user lands on.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional, Sequence

from assessment_sync.models.answers import EntryPoint

if TYPE_CHECKING:  # pragma: no cover
    from assessment_sync.models.questionnaire import QuestionnaireSummary

logger = logging.getLogger(__name__)

# Labels that mean the same ranking slot
_RANK_ALIASES: Dict[str, str] = {"dept": "department"}


def cycle_id_from_submission_name(submission_name: str) -> str:
    parts = [p for p in str(submission_name or "").split("-")]
    if len(parts) >= 7:
        return f"{parts[5]}-{parts[6]}"
    if len(parts) >= 2:
        return f"{parts[-2]}-{parts[-1]}"
    return ""


def _cycle_number(cycle_id: str) -> Optional[int]:
    tokens = cycle_id.split("-")
    if len(tokens) < 2:
        return None
    try:
        return int(tokens[1])
    except ValueError:
        return None


def latest_cycle(summaries: Sequence["QuestionnaireSummary"]) -> List["QuestionnaireSummary"]:
    """Return the summaries of the cycle with the highest cycle number.

    When no summary carries a parseable cycle number the input is returned
    unchanged.
    """
    by_cycle: Dict[str, List["QuestionnaireSummary"]] = {}
    for summary in summaries:
        cid = cycle_id_from_submission_name(summary.submission_name)
        if cid:
            by_cycle.setdefault(cid, []).append(summary)

    best_cycle = ""
    best_number = -1
    for cid in by_cycle:
        number = _cycle_number(cid)
        if number is not None and number > best_number:
            best_number = number
            best_cycle = cid
    if not best_cycle:
        return list(summaries)
    logger.info("latest_cycle cycle_id=%s questionnaires=%s", best_cycle, len(by_cycle[best_cycle]))
    return list(by_cycle[best_cycle])


def rank_of(label: str, ranking: Sequence[str]) -> Optional[int]:
    """Position of a questionnaire label in the ranking, or None when unranked."""
    lowered = str(label or "").lower()
    for alias, canonical in _RANK_ALIASES.items():
        if alias in lowered and canonical not in lowered:
            lowered = lowered.replace(alias, canonical)
    for idx, token in enumerate(ranking):
        if token.lower() in lowered:
            return idx
    return None


def order_by_ranking(labels: Iterable[str], ranking: Sequence[str]) -> List[str]:
    """Sort labels by ranking position; unranked labels keep their order at the end."""
    items = list(labels)
    unranked_base = len(ranking)

    def key(pair):
        pos, label = pair
        rank = rank_of(label, ranking)
        return (rank if rank is not None else unranked_base, pos)

    return [label for _, label in sorted(enumerate(items), key=key)]


def resolve_entry_point(
    summaries: Sequence["QuestionnaireSummary"],
    server_answer_counts: Mapping[str, int],
    question_counts: Mapping[str, int],
    started: bool = False,
) -> EntryPoint:
    """Decide whether the user starts, continues or has already submitted.

    Counts are keyed by submission name. Submitted when every questionnaire is
    Completed (or every one is fully answered server-side) and none is still a
    Draft; continue when anything has been answered or the cycle was started
    locally; start otherwise.
    """
    if not summaries:
        return EntryPoint.START

    statuses = [s.status.value for s in summaries]
    all_completed = all(st == "Completed" for st in statuses)
    has_draft = any(st == "Draft" for st in statuses)

    all_answered = True
    any_answers = False
    for summary in summaries:
        answered = int(server_answer_counts.get(summary.submission_name, 0))
        total = int(question_counts.get(summary.submission_name, 0))
        if answered > 0:
            any_answers = True
        if total == 0 or answered < total:
            all_answered = False

    if (all_completed or all_answered) and not has_draft:
        return EntryPoint.SUBMITTED
    if any_answers or started:
        return EntryPoint.CONTINUE
    return EntryPoint.START


__all__ = [
    "cycle_id_from_submission_name",
    "latest_cycle",
    "rank_of",
    "order_by_ranking",
    "resolve_entry_point",
]
