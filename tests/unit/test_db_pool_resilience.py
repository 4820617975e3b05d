import importlib

import psycopg2
import pytest


class _Cursor:
    def __init__(self, fail):
        self.fail = fail

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, sql, params=None):
        if self.fail:
            raise psycopg2.OperationalError("SSL connection has been closed unexpectedly")


class _Conn:
    autocommit = False
    closed = 0
    status = 0

    def __init__(self, healthy=True):
        self.healthy = healthy
        self.rollbacks = 0

    def cursor(self, cursor_factory=None):
        return _Cursor(fail=not self.healthy)

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = 1


class _Pool:
    def __init__(self, conns):
        self.conns = list(conns)
        self.calls_get = 0
        self.calls_put = []

    def getconn(self):
        self.calls_get += 1
        return self.conns.pop(0)

    def putconn(self, conn, close=False):
        self.calls_put.append((conn, close))
        if close:
            conn.close()


def test_pool_checkout_retries_on_stale_connection(monkeypatch):
    import paddock.datastore_pg as pg
    pg = importlib.reload(pg)

    good = _Conn()
    pool = _Pool([_Conn(healthy=False), good])
    monkeypatch.setattr(pg, "_POOL", pool)

    with pg._get_conn() as conn:
        assert conn is good

    assert pool.calls_get == 2
    assert pool.calls_put[0][1] is True
    # Healthy connection goes back to the pool afterwards
    assert pool.calls_put[-1] == (good, False)


def test_pool_checkout_gives_up_after_second_failure(monkeypatch):
    import paddock.datastore_pg as pg
    pg = importlib.reload(pg)

    pool = _Pool([_Conn(healthy=False), _Conn(healthy=False)])
    monkeypatch.setattr(pg, "_POOL", pool)

    with pytest.raises(psycopg2.OperationalError):
        with pg._get_conn():
            pass


def test_error_inside_block_rolls_back_and_propagates(monkeypatch):
    import paddock.datastore_pg as pg
    pg = importlib.reload(pg)

    conn = _Conn()
    pool = _Pool([conn])
    monkeypatch.setattr(pg, "_POOL", pool)

    with pytest.raises(RuntimeError):
        with pg._get_conn():
            raise RuntimeError("boom")

    # One rollback from the liveness ping, one from the failure
    assert conn.rollbacks == 2
    assert pool.calls_put == [(conn, False)]
