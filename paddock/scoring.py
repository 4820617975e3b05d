"""Scoring utilities turning raw race outcomes into ranked, pointed results."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .timing import finish_sort_key

logger = logging.getLogger(__name__)

FINISHED = "FINISHED"
DNF = "DNF"
DNS = "DNS"
STATUSES = frozenset({FINISHED, DNF, DNS})

# Points awarded by finishing rank (index 0 is the winner).
POINTS_TABLE = (25, 18, 15, 12, 10, 8, 6, 4, 2, 1)


def points_for_rank(rank: Optional[int]) -> int:
    """Return championship points for a 1-based rank; 0 outside the table."""
    if rank is None or rank < 1 or rank > len(POINTS_TABLE):
        return 0
    return POINTS_TABLE[rank - 1]


def _laps(outcome: Dict) -> int:
    try:
        return int(outcome.get("laps_completed") or 0)
    except (TypeError, ValueError):
        return 0


def _finish_text(outcome: Dict) -> Optional[str]:
    val = outcome.get("finish_time")
    if val is None:
        return None
    s = str(val).strip()
    return s or None


def score_race(race_id: str, outcomes: Iterable[Dict]) -> List[Dict]:
    """Rank and score every outcome submitted for one race.

    Each outcome provides ``racer_id``, ``status`` (``FINISHED``, ``DNF`` or
    ``DNS``), ``laps_completed`` and, for finishers, ``finish_time`` text.
    An optional ``team_id`` is carried through as the team the racer was
    registered under.

    Finishers are ordered by laps completed (most first) and then by finish
    text ascending; equal keys keep their input order. Rank is the position
    in that order and points come from :data:`POINTS_TABLE`. DNF and DNS
    rows get no rank and score 0 whatever laps they completed.

    Returns one result per outcome, in input order, ready for an upsert
    keyed on ``(race_id, racer_id)``.
    """
    outcomes = list(outcomes)

    finishers = [i for i, o in enumerate(outcomes) if o.get("status") == FINISHED]
    finishers.sort(
        key=lambda i: (-_laps(outcomes[i]), finish_sort_key(_finish_text(outcomes[i])))
    )
    ranks = {i: pos for pos, i in enumerate(finishers, start=1)}

    results: List[Dict] = []
    for idx, outcome in enumerate(outcomes):
        status = outcome.get("status")
        rank = ranks.get(idx)
        results.append(
            {
                "race_id": race_id,
                "racer_id": outcome.get("racer_id"),
                "team_id": outcome.get("team_id"),
                "status": status,
                "laps_completed": _laps(outcome),
                "finish_time": _finish_text(outcome) if status == FINISHED else None,
                "rank": rank,
                "score": points_for_rank(rank),
            }
        )

    logger.info(
        "score_run race=%s outcomes=%d finishers=%d", race_id, len(outcomes), len(finishers)
    )
    return results


def outcomes_from_results(rows: Iterable[Dict]) -> List[Dict]:
    """Rebuild scoring input from stored result rows so a race can be rescored.

    A row with no stored status stays unclassified and scores nothing.
    """
    return [
        {
            "racer_id": row.get("racer_id"),
            "team_id": row.get("team_id"),
            "status": row.get("status"),
            "laps_completed": row.get("laps_completed") or 0,
            "finish_time": row.get("finish_time"),
        }
        for row in rows
    ]


__all__ = [
    "DNF",
    "DNS",
    "FINISHED",
    "POINTS_TABLE",
    "STATUSES",
    "outcomes_from_results",
    "points_for_rank",
    "score_race",
]
