"""Season standings for racers and teams computed from stored results."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from .scoring import FINISHED
from .timing import DurationError, format_duration, parse_duration

logger = logging.getLogger(__name__)

UNKNOWN_TEAM = {"team_id": "unknown", "team_name": "Unknown", "team_brand": "Unknown"}


def contribution_ms(row: Dict[str, Any]) -> int:
    """Return the time a result adds to its racer's and team's totals.

    Only finishers with a recorded finish time contribute. Stored text that
    cannot be parsed contributes nothing.
    """
    text = row.get("finish_time")
    if row.get("status") != FINISHED or not text:
        return 0
    try:
        return parse_duration(str(text))
    except DurationError:
        logger.warning(
            "unparseable finish_time race=%s racer=%s value=%r",
            row.get("race_id"),
            row.get("racer_id"),
            text,
        )
        return 0


def _team_of(row: Dict[str, Any]) -> Dict[str, Any]:
    if row.get("team_id") is None:
        return UNKNOWN_TEAM
    return {
        "team_id": row.get("team_id"),
        "team_name": row.get("team_name"),
        "team_brand": row.get("team_brand"),
    }


def _rank(entries: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    table = list(entries)
    table.sort(key=lambda e: (-e["total_score"], e["total_time_ms"]))
    for place, entry in enumerate(table, start=1):
        entry["place"] = place
        entry["total_time"] = format_duration(entry["total_time_ms"])
    return table


def aggregate(rows: Iterable[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Build racer and team leaderboards from joined result rows.

    Args:
        rows: Result rows joined with ``race_name``, racer fields
            (``racer_id``, ``racer_name``, ``racer_nationality``) and team
            fields (``team_id``, ``team_name``, ``team_brand``).

    Returns:
        ``{"racers": [...], "teams": [...]}``, each sorted by total score
        (high wins) and then total time (low wins). Racer entries keep their
        raw rows under ``results``; team entries carry one row per race under
        ``races`` with that race's scores and times summed across the team's
        racers.
    """
    racers: Dict[Any, Dict[str, Any]] = {}
    teams: Dict[Any, Dict[str, Any]] = {}
    # team_id -> race_id -> per-race row
    team_races: Dict[Any, Dict[Any, Dict[str, Any]]] = {}

    for row in rows:
        time_ms = contribution_ms(row)
        score = int(row.get("score") or 0)
        team = _team_of(row)
        detail = dict(row)

        racer_id = row.get("racer_id")
        racer = racers.get(racer_id)
        if racer is None:
            racer = racers[racer_id] = {
                "id": racer_id,
                "name": row.get("racer_name"),
                "nationality": row.get("racer_nationality") or "",
                "team_name": team["team_name"],
                "total_score": 0,
                "total_time_ms": 0,
                "results": [],
            }
        racer["total_score"] += score
        racer["total_time_ms"] += time_ms
        racer["results"].append(detail)

        team_id = team["team_id"]
        entry = teams.get(team_id)
        if entry is None:
            entry = teams[team_id] = {
                "id": team_id,
                "name": team["team_name"],
                "brand": team["team_brand"],
                "total_score": 0,
                "total_time_ms": 0,
                "races": [],
            }
            team_races[team_id] = {}
        entry["total_score"] += score
        entry["total_time_ms"] += time_ms

        race_id = row.get("race_id")
        per_race = team_races[team_id].get(race_id)
        if per_race is None:
            per_race = team_races[team_id][race_id] = {
                "race_id": race_id,
                "race_name": row.get("race_name"),
                "score": 0,
                "time_ms": 0,
            }
            entry["races"].append(per_race)
        per_race["score"] += score
        per_race["time_ms"] += time_ms

    for entry in teams.values():
        for per_race in entry["races"]:
            per_race["time"] = format_duration(per_race["time_ms"])

    return {"racers": _rank(racers.values()), "teams": _rank(teams.values())}


def _find(entries: Iterable[Dict[str, Any]], subject_id: Any) -> Optional[Dict[str, Any]]:
    for entry in entries:
        if str(entry.get("id")) == str(subject_id):
            return entry
    return None


def racer_detail(standings: Dict[str, List[Dict[str, Any]]], racer_id: Any) -> Optional[Dict[str, Any]]:
    """Return the racer's standing entry with its per-race rows, or None."""
    return _find(standings.get("racers", []), racer_id)


def team_detail(standings: Dict[str, List[Dict[str, Any]]], team_id: Any) -> Optional[Dict[str, Any]]:
    """Return the team's standing entry with one row per race, or None."""
    return _find(standings.get("teams", []), team_id)


def summary(entries: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Leaderboard rows without their drill-down lists."""
    return [{k: v for k, v in e.items() if k not in ("results", "races")} for e in entries]


__all__ = [
    "aggregate",
    "contribution_ms",
    "racer_detail",
    "summary",
    "team_detail",
]
