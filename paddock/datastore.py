from typing import Any, Dict, List, Optional

# Datastore proxy
# Route handlers import from here; every call delegates to datastore_pg so
# tests can patch the PostgreSQL functions in one place.

from . import datastore_pg as _pg


def create_tables() -> None:
    _pg.create_tables()


def list_races() -> List[Dict[str, Any]]:
    return _pg.list_races()


def get_race(race_id: str) -> Optional[Dict[str, Any]]:
    return _pg.get_race(race_id)


def list_registrations(race_id: str) -> List[Dict[str, Any]]:
    return _pg.list_registrations(race_id)


def list_results(race_id: Optional[str] = None) -> List[Dict[str, Any]]:
    return _pg.list_results(race_id)


def list_joined_results() -> List[Dict[str, Any]]:
    return _pg.list_joined_results()


def upsert_results(results: List[Dict[str, Any]]) -> int:
    return _pg.upsert_results(results)
