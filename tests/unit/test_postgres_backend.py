from __future__ import annotations

from typing import Any, List

import psycopg
import pytest
from psycopg import errors

from iotbench.backends.postgres import TIMEOUT, PostgresBackend
from iotbench.domain.errors import BackendError
from iotbench.domain.models import Status

TABLE = "usertable"
KEY = "client11:cor_1_Flow:100"


class _FakeCursor:
    def __init__(self, conn: "_FakeConnection") -> None:
        self.conn = conn
        self.rowcount = conn.rowcount

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def execute(self, query: Any, params: Any = None) -> None:
        if self.conn.fail_with is not None and params is not None:
            raise self.conn.fail_with
        self.conn.executed.append((query, params))

    def executemany(self, query: Any, params_seq: List[Any]) -> None:
        if self.conn.fail_batches_with is not None:
            raise self.conn.fail_batches_with
        self.conn.batches.append(list(params_seq))

    def fetchall(self) -> List[Any]:
        return list(self.conn.rows)


class _FakeConnection:
    def __init__(self) -> None:
        self.autocommit = False
        self.executed: List[Any] = []
        self.batches: List[List[Any]] = []
        self.rows: List[Any] = []
        self.rowcount = 1
        self.fail_with: Exception | None = None
        self.fail_batches_with: Exception | None = None

    def cursor(self) -> _FakeCursor:
        return _FakeCursor(self)


class _FakePool:
    def __init__(self, conn: _FakeConnection | None = None, error: Exception | None = None) -> None:
        self.conn = conn or _FakeConnection()
        self.error = error
        self.returned: List[Any] = []

    def getconn(self) -> _FakeConnection:
        if self.error is not None:
            raise self.error
        return self.conn

    def putconn(self, conn: _FakeConnection) -> None:
        self.returned.append(conn)


@pytest.fixture
def pool() -> _FakePool:
    return _FakePool()


@pytest.fixture
def backend(pool: _FakePool) -> PostgresBackend:
    backend = PostgresBackend(pool=pool, batch_size=3)
    backend.init()
    return backend


def test_init_configures_session(backend: PostgresBackend, pool: _FakePool) -> None:
    assert pool.conn.autocommit is True
    assert len(pool.conn.executed) == 1


def test_init_failure_raises_backend_error() -> None:
    backend = PostgresBackend(pool=_FakePool(error=psycopg.OperationalError("refused")))
    with pytest.raises(BackendError):
        backend.init()


def test_use_before_init_is_an_error() -> None:
    with pytest.raises(BackendError):
        PostgresBackend(pool=_FakePool()).update(TABLE, KEY, {"field0": b"a"})


def test_inserts_are_batched(backend: PostgresBackend, pool: _FakePool) -> None:
    assert backend.insert(TABLE, "client11:cor_1_Flow:1", {"field0": b"a"}) == Status.BATCHED_OK
    assert backend.insert(TABLE, "client11:cor_1_Flow:2", {"field0": b"b"}) == Status.BATCHED_OK
    assert pool.conn.batches == []

    assert backend.insert(TABLE, "client11:cor_1_Flow:3", {"field0": b"c"}) == Status.OK
    assert len(pool.conn.batches) == 1
    batch = pool.conn.batches[0]
    assert [(device, ts) for device, ts, _ in batch] == [
        ("client11:cor_1_Flow", 1),
        ("client11:cor_1_Flow", 2),
        ("client11:cor_1_Flow", 3),
    ]


def test_cleanup_flushes_and_returns_connection(backend: PostgresBackend, pool: _FakePool) -> None:
    backend.insert(TABLE, KEY, {"field0": b"a"})
    backend.cleanup()

    assert len(pool.conn.batches) == 1
    assert pool.returned == [pool.conn]


def test_read_decodes_fields(backend: PostgresBackend, pool: _FakePool) -> None:
    pool.conn.rows = [({"field0": "abc", "field1": "xyz"},)]

    status, row = backend.read(TABLE, KEY, ["field1"])

    assert status == Status.OK
    assert row == {"field1": b"xyz"}


def test_read_miss_is_not_found(backend: PostgresBackend) -> None:
    assert backend.read(TABLE, KEY) == (Status.NOT_FOUND, {})
    assert backend.queries_empty == 1


def test_statement_timeout_maps_to_timeout_status(backend: PostgresBackend, pool: _FakePool) -> None:
    pool.conn.fail_with = errors.QueryCanceled("canceling statement due to statement timeout")

    status, rows = backend.scan_window(TABLE, "cor_1_Flow", "client11", 0, 10)

    assert status == TIMEOUT
    assert rows == []
    assert backend.queries_failed == 1


def test_other_database_errors_are_errors(backend: PostgresBackend, pool: _FakePool) -> None:
    pool.conn.fail_with = psycopg.OperationalError("connection lost")
    assert backend.delete(TABLE, KEY) == Status.ERROR


def test_update_reports_missing_rows(backend: PostgresBackend, pool: _FakePool) -> None:
    assert backend.update(TABLE, KEY, {"field0": b"a"}) == Status.OK
    pool.conn.rowcount = 0
    assert backend.update(TABLE, KEY, {"field0": b"a"}) == Status.NOT_FOUND


def test_malformed_keys_are_bad_requests(backend: PostgresBackend) -> None:
    assert backend.insert(TABLE, "nope", {}) == Status.BAD_REQUEST
    assert backend.read(TABLE, "nope") == (Status.BAD_REQUEST, {})
    assert backend.scan(TABLE, "nope", 10) == (Status.BAD_REQUEST, [])


def test_payload_bytes_survive_the_json_round_trip(backend: PostgresBackend, pool: _FakePool) -> None:
    payload = bytes(range(0x20, 0x7F))
    backend.insert(TABLE, KEY, {"field0": payload})
    backend.cleanup()

    stored = pool.conn.batches[0][0][2].obj
    pool.conn.rows = [(stored,)]
    backend.init()

    assert backend.read(TABLE, KEY)[1] == {"field0": payload}


def test_failed_flush_keeps_acknowledged_rows(backend: PostgresBackend, pool: _FakePool) -> None:
    pool.conn.fail_batches_with = psycopg.OperationalError("connection lost")
    assert backend.insert(TABLE, "client11:cor_1_Flow:1", {"field0": b"a"}) == Status.BATCHED_OK
    assert backend.insert(TABLE, "client11:cor_1_Flow:2", {"field0": b"b"}) == Status.BATCHED_OK
    assert backend.insert(TABLE, "client11:cor_1_Flow:3", {"field0": b"c"}) == Status.ERROR

    pool.conn.fail_batches_with = None
    assert backend.insert(TABLE, "client11:cor_1_Flow:3", {"field0": b"c"}) == Status.OK

    assert [ts for _, ts, _ in pool.conn.batches[0]] == [1, 2, 3]


def test_failed_cleanup_flush_leaves_rows_pending(backend: PostgresBackend, pool: _FakePool) -> None:
    backend.insert(TABLE, KEY, {"field0": b"a"})
    pool.conn.fail_batches_with = psycopg.OperationalError("connection lost")
    backend.cleanup()
    assert pool.returned == [pool.conn]

    pool.conn.fail_batches_with = None
    backend.init()
    backend.cleanup()

    assert [ts for _, ts, _ in pool.conn.batches[0]] == [100]
