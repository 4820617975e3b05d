from flask import Blueprint, abort, current_app, request
import os

import psycopg2

from .scoring import FINISHED, STATUSES, outcomes_from_results, score_race
from .standings import aggregate, racer_detail, summary, team_detail
from .timing import is_canonical
from .datastore import (
    get_race as ds_get_race,
    list_registrations as ds_list_registrations,
    list_results as ds_list_results,
    list_joined_results as ds_list_joined_results,
    upsert_results as ds_upsert_results,
)


bp = Blueprint('main', __name__)


@bp.route('/health/db')
def health_db():
    """Database connectivity health check.

    Always returns HTTP 200 with a JSON body describing connection status.
    """
    url = os.environ.get('DATABASE_URL')
    if not url:
        return {
            'connected': False,
            'status': 'no_database_url',
            'message': 'DATABASE_URL is not set.'
        }
    try:
        with psycopg2.connect(url, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute('SELECT current_user, current_database(), version()')
                user, db, ver = cur.fetchone()
            return {
                'connected': True,
                'status': 'ok',
                'user': user,
                'database': db,
                'server_version': (ver or '').split('\n')[0],
            }
    except psycopg2.Error as e:
        return {
            'connected': False,
            'status': 'error',
            'error': str(e),
        }


def _require_race(race_id: str) -> dict:
    race = ds_get_race(race_id)
    if not race:
        abort(404)
    return race


def _parse_laps(val, who: str) -> int:
    if val is None or val == '':
        return 0
    if isinstance(val, bool):
        abort(400, description=f"Invalid laps '{val}' for {who}. Expected a non-negative integer.")
    try:
        laps = int(val)
    except (TypeError, ValueError):
        abort(400, description=f"Invalid laps '{val}' for {who}. Expected a non-negative integer.")
    if laps < 0 or str(laps) != str(val).strip():
        abort(400, description=f"Invalid laps '{val}' for {who}. Expected a non-negative integer.")
    return laps


def _validate_outcomes(payload: list, registrations: list) -> list[dict]:
    """Check operator input and attach each racer's registered team."""
    teams_by_racer = {str(r['racer_id']): r.get('team_id') for r in registrations}
    seen: set[str] = set()
    outcomes: list[dict] = []
    for item in payload:
        if not isinstance(item, dict):
            abort(400, description='Each outcome must be an object.')
        racer_id = item.get('racer_id')
        who = str(racer_id)
        if racer_id is None or who not in teams_by_racer:
            abort(400, description=f"Racer {racer_id} is not registered for this race.")
        if who in seen:
            abort(400, description=f"Duplicate outcome for racer {racer_id}.")
        seen.add(who)

        status = item.get('status') or FINISHED
        if not isinstance(status, str) or status not in STATUSES:
            abort(400, description=f"Invalid status '{status}' for {who}. Expected FINISHED, DNF or DNS.")
        laps = _parse_laps(item.get('laps_completed'), who)

        finish_time = item.get('finish_time')
        if isinstance(finish_time, str):
            finish_time = finish_time.strip() or None
        if status == FINISHED and not is_canonical(finish_time):
            abort(400, description=f"Invalid finish time '{finish_time or ''}' for {who}. Expected HH:MM:SS.mmm.")

        outcomes.append({
            'racer_id': who,
            'team_id': teams_by_racer[who],
            'status': status,
            'laps_completed': laps,
            'finish_time': finish_time if status == FINISHED else None,
        })
    return outcomes


@bp.route('/api/races/<race_id>/results')
def race_results(race_id):
    race = _require_race(race_id)
    return {
        'race': race,
        'registrations': ds_list_registrations(race_id),
        'results': ds_list_results(race_id),
    }


@bp.route('/api/races/<race_id>/results', methods=['POST'])
def save_race_results(race_id):
    _require_race(race_id)
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        abort(400, description='Expected a JSON object with an "outcomes" list.')
    payload = data.get('outcomes')
    if not isinstance(payload, list) or not payload:
        abort(400, description='Expected a non-empty "outcomes" list.')

    outcomes = _validate_outcomes(payload, ds_list_registrations(race_id))
    results = score_race(race_id, outcomes)
    try:
        written = ds_upsert_results(results)
    except psycopg2.Error as e:
        current_app.logger.exception("upsert_results failed race=%s", race_id)
        return {'saved': False, 'error': f'Failed to save results: {e}'}, 500
    current_app.logger.info("upsert_results race=%s rows=%d", race_id, written)
    return {'saved': True, 'results': results}


@bp.route('/api/standings')
def standings():
    table = aggregate(ds_list_joined_results())
    return {
        'racers': summary(table['racers']),
        'teams': summary(table['teams']),
    }


@bp.route('/api/standings/racers/<racer_id>')
def racer_standing(racer_id):
    entry = racer_detail(aggregate(ds_list_joined_results()), racer_id)
    if entry is None:
        abort(404)
    return entry


@bp.route('/api/standings/teams/<team_id>')
def team_standing(team_id):
    entry = team_detail(aggregate(ds_list_joined_results()), team_id)
    if entry is None:
        abort(404)
    return entry


def rescore_all_races() -> int:
    """Re-run scoring over every stored result and write it back.

    Idempotent: stored outcomes that were already scored produce the same
    rows. Returns the number of races rescored.
    """
    by_race: dict[str, list[dict]] = {}
    for row in ds_list_results():
        by_race.setdefault(str(row.get('race_id')), []).append(row)
    for race_id, rows in by_race.items():
        ds_upsert_results(score_race(race_id, outcomes_from_results(rows)))
    return len(by_race)
