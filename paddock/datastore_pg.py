import os
from typing import Any, Dict, List, Optional, Tuple

import psycopg2
from psycopg2 import pool as pg_pool
from psycopg2.extras import RealDictCursor, execute_values
from contextlib import contextmanager, suppress


_POOL: Optional[pg_pool.AbstractConnectionPool] = None

SCHEMA_SQL = (
    """
    CREATE TABLE IF NOT EXISTS teams (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        code VARCHAR(3) NOT NULL,
        name TEXT NOT NULL,
        brand TEXT,
        description TEXT,
        created_at TIMESTAMPTZ DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS racers (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        code VARCHAR(3) NOT NULL,
        name TEXT NOT NULL,
        nationality TEXT,
        dob DATE,
        biography TEXT,
        team_id UUID REFERENCES teams(id) ON DELETE SET NULL,
        created_at TIMESTAMPTZ DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS races (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        code VARCHAR(3) NOT NULL,
        name TEXT NOT NULL,
        location TEXT,
        laps INTEGER,
        time TIMESTAMPTZ,
        description TEXT,
        created_at TIMESTAMPTZ DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS race_registrations (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        race_id UUID NOT NULL REFERENCES races(id) ON DELETE CASCADE,
        team_id UUID NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
        racer_id UUID NOT NULL REFERENCES racers(id) ON DELETE CASCADE,
        created_at TIMESTAMPTZ DEFAULT now(),
        UNIQUE (race_id, racer_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS race_results (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        race_id UUID NOT NULL REFERENCES races(id) ON DELETE CASCADE,
        racer_id UUID NOT NULL REFERENCES racers(id) ON DELETE CASCADE,
        team_id UUID REFERENCES teams(id) ON DELETE SET NULL,
        status VARCHAR(10),
        laps_completed INTEGER,
        finish_time TEXT,
        rank INTEGER,
        score INTEGER DEFAULT 0,
        created_at TIMESTAMPTZ DEFAULT now(),
        UNIQUE (race_id, racer_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_results_race ON race_results(race_id)",
    "CREATE INDEX IF NOT EXISTS idx_registrations_race ON race_registrations(race_id)",
)


def _env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _connect_kwargs() -> Dict[str, Any]:
    """Connection kwargs shared by pooled and direct connections.

    Defaults to a 10 second connect timeout (DB_CONNECT_TIMEOUT) with TCP
    keepalives on unless DB_KEEPALIVES=0. Keepalive tunables are passed only
    when set.
    """
    kwargs: Dict[str, Any] = {"connect_timeout": _env_int("DB_CONNECT_TIMEOUT", 10)}

    ka_env = os.environ.get("DB_KEEPALIVES")
    if ka_env is None:
        kwargs["keepalives"] = 1
    else:
        kwargs["keepalives"] = 0 if str(ka_env).lower() in ("0", "false") else 1

    for env_name, key in (
        ("DB_KEEPALIVES_IDLE", "keepalives_idle"),
        ("DB_KEEPALIVES_INTERVAL", "keepalives_interval"),
        ("DB_KEEPALIVES_COUNT", "keepalives_count"),
    ):
        val = _env_int(env_name)
        if val is not None:
            kwargs[key] = val
    return kwargs


def init_pool(minconn: int = 1, maxconn: int = 10) -> None:
    """Create the global connection pool from DATABASE_URL once."""
    global _POOL
    if _POOL is not None:
        return
    url = os.environ.get("DATABASE_URL")
    if not url:
        return
    _POOL = pg_pool.ThreadedConnectionPool(minconn, maxconn, dsn=url, **_connect_kwargs())


def _ping(conn) -> bool:
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
        if not getattr(conn, "autocommit", False):
            conn.rollback()
        return True
    except (psycopg2.OperationalError, psycopg2.InterfaceError):
        return False


def _checkout():
    """Take a live connection from the pool, replacing one stale connection."""
    for _ in range(2):
        conn = _POOL.getconn()
        if _ping(conn):
            return conn
        _POOL.putconn(conn, close=True)
    raise psycopg2.OperationalError("Failed to acquire healthy DB connection after retry")


@contextmanager
def _get_conn():
    """Yield a psycopg2 connection from the pool, or a direct one without a pool.

    Any exception inside the block rolls the open transaction back before it
    propagates.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set; configure a PostgreSQL connection string")
    pooled = _POOL is not None
    conn = _checkout() if pooled else psycopg2.connect(url, **_connect_kwargs())
    try:
        yield conn
    except Exception:
        if not getattr(conn, "closed", 0):
            with suppress(psycopg2.Error):
                conn.rollback()
        raise
    finally:
        if pooled:
            # status 0 = idle; anything else still holds a transaction
            if not getattr(conn, "closed", 0) and getattr(conn, "status", 0) in (1, 2, 3):
                with suppress(psycopg2.Error):
                    conn.rollback()
            _POOL.putconn(conn)
        else:
            conn.close()


def create_tables() -> None:
    with _get_conn() as conn, conn.cursor() as cur:
        for stmt in SCHEMA_SQL:
            cur.execute(stmt)
        conn.commit()


def list_races() -> List[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            "SELECT id::text AS id, code, name, location, laps, time, description "
            "FROM races ORDER BY created_at DESC"
        )
        return [dict(r) for r in cur.fetchall()]


def get_race(race_id: str) -> Optional[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            "SELECT id::text AS id, code, name, location, laps, time, description "
            "FROM races WHERE id::text = %s",
            (str(race_id),),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def list_registrations(race_id: str) -> List[Dict[str, Any]]:
    """Return who is entered in ``race_id`` and under which team."""
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            """
            SELECT rr.id::text AS id,
                   rr.race_id::text AS race_id,
                   rr.team_id::text AS team_id,
                   rr.racer_id::text AS racer_id,
                   r.name AS racer_name,
                   r.code AS racer_code,
                   t.name AS team_name,
                   t.code AS team_code
            FROM race_registrations rr
            JOIN racers r ON r.id = rr.racer_id
            JOIN teams t ON t.id = rr.team_id
            WHERE rr.race_id::text = %s
            ORDER BY rr.id
            """,
            (str(race_id),),
        )
        return [dict(r) for r in cur.fetchall()]


_RESULT_COLUMNS = (
    "race_id::text AS race_id, racer_id::text AS racer_id, team_id::text AS team_id, "
    "status, laps_completed, finish_time, rank, score"
)


def list_results(race_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Return stored results for one race, or for every race when ``race_id`` is None."""
    sql = f"SELECT {_RESULT_COLUMNS} FROM race_results"
    params: Tuple[Any, ...] = ()
    if race_id is not None:
        sql += " WHERE race_id::text = %s"
        params = (str(race_id),)
    sql += " ORDER BY race_id, rank NULLS LAST, racer_id"
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(sql, params)
        return [dict(r) for r in cur.fetchall()]


def list_joined_results() -> List[Dict[str, Any]]:
    """Every stored result joined with race, racer and team names.

    The team is the one snapshotted on the result when it was scored,
    falling back to the racer's current team for older rows.
    """
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            """
            SELECT res.race_id::text AS race_id,
                   ra.name AS race_name,
                   res.racer_id::text AS racer_id,
                   r.name AS racer_name,
                   r.nationality AS racer_nationality,
                   t.id::text AS team_id,
                   t.name AS team_name,
                   t.brand AS team_brand,
                   res.status,
                   res.laps_completed,
                   res.finish_time,
                   res.rank,
                   res.score
            FROM race_results res
            JOIN races ra ON ra.id = res.race_id
            JOIN racers r ON r.id = res.racer_id
            LEFT JOIN teams t ON t.id = COALESCE(res.team_id, r.team_id)
            ORDER BY ra.created_at, res.race_id, res.rank NULLS LAST
            """
        )
        return [dict(r) for r in cur.fetchall()]


def upsert_results(results: List[Dict[str, Any]]) -> int:
    """Insert or overwrite scored results keyed by (race_id, racer_id).

    All rows are written in one transaction; on error nothing is committed.
    Returns the number of rows written.
    """
    rows = [
        (
            str(res["race_id"]),
            str(res["racer_id"]),
            str(res["team_id"]) if res.get("team_id") is not None else None,
            res.get("status"),
            res.get("laps_completed"),
            res.get("finish_time"),
            res.get("rank"),
            int(res.get("score") or 0),
        )
        for res in (results or [])
    ]
    if not rows:
        return 0
    with _get_conn() as conn, conn.cursor() as cur:
        execute_values(
            cur,
            """
            INSERT INTO race_results
                (race_id, racer_id, team_id, status, laps_completed, finish_time, rank, score)
            VALUES %s
            ON CONFLICT (race_id, racer_id) DO UPDATE SET
                team_id = EXCLUDED.team_id,
                status = EXCLUDED.status,
                laps_completed = EXCLUDED.laps_completed,
                finish_time = EXCLUDED.finish_time,
                rank = EXCLUDED.rank,
                score = EXCLUDED.score
            """,
            rows,
            template="(%s::uuid, %s::uuid, %s::uuid, %s, %s, %s, %s, %s)",
        )
        conn.commit()
    return len(rows)
