"""
Integration tests against a live PostgreSQL instance.

Run with:
    RUN_INTEGRATION_TESTS=1 pytest tests/integration
"""

from __future__ import annotations

import os
import random
import uuid
from typing import Generator

import psycopg
import pytest
from psycopg import sql
from psycopg_pool import ConnectionPool

from iotbench.backends.postgres import PostgresBackend
from iotbench.domain.models import RecordKey, Status, VerificationOutcome
from iotbench.measurements.recorder import MeasurementRecorder
from iotbench.workload.engine import SharedWorkloadState, WorkloadEngine
from iotbench.workload.properties import load_workload_properties

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require a running PostgreSQL (set RUN_INTEGRATION_TESTS=1)",
)

BATCH_SIZE = 5
LOAD_OPERATIONS = 23
FIELD_LENGTH = 48


@pytest.fixture
def table(db_connection: psycopg.Connection) -> Generator[str, None, None]:
    """A throwaway table name, dropped after the test."""
    name = f"iot_{uuid.uuid4().hex[:12]}"
    yield name
    with db_connection.cursor() as cur:
        cur.execute(sql.SQL("DROP TABLE IF EXISTS {}").format(sql.Identifier(name)))


@pytest.fixture
def pool(test_dsn: str, db_connection: psycopg.Connection) -> Generator[ConnectionPool, None, None]:
    pool = ConnectionPool(conninfo=test_dsn, min_size=1, max_size=2, open=True)
    try:
        yield pool
    finally:
        pool.close()


class TestPostgresBackend:
    """Record calls against a real table."""

    def test_insert_read_update_delete(self, pool: ConnectionPool, table: str):
        backend = PostgresBackend(pool=pool, batch_size=1)
        backend.init()
        try:
            key = "client11:cor_1_Flow:1000"
            assert backend.insert(table, key, {"field0": b"a", "field1": b"b"}) == Status.OK
            assert backend.read(table, key) == (Status.OK, {"field0": b"a", "field1": b"b"})

            assert backend.update(table, key, {"field0": b"z"}) == Status.OK
            assert backend.read(table, key, ["field0"]) == (Status.OK, {"field0": b"z"})

            assert backend.delete(table, key) == Status.OK
            assert backend.read(table, key)[0] == Status.NOT_FOUND
        finally:
            backend.cleanup()

    def test_batched_inserts_are_flushed_on_cleanup(self, pool: ConnectionPool, table: str, db_connection):
        backend = PostgresBackend(pool=pool, batch_size=BATCH_SIZE)
        backend.init()
        statuses = [
            backend.insert(table, f"client11:cor_1_Flow:{ts}", {"field0": b"x"}) for ts in range(7)
        ]
        backend.cleanup()

        assert statuses.count(Status.BATCHED_OK) == 6
        with db_connection.cursor() as cur:
            cur.execute(sql.SQL("SELECT count(*) FROM {}").format(sql.Identifier(table)))
            assert cur.fetchone()[0] == 7

    def test_dual_window_scan(self, pool: ConnectionPool, table: str):
        backend = PostgresBackend(pool=pool, batch_size=1, rng=random.Random(0))
        backend.init()
        try:
            for ts in (1_000, 3_000, 10_500, 12_000):
                backend.insert(table, f"client11:cor_5_Level:{ts}", {"field0": str(ts).encode()})

            result = backend.dual_window_scan(table, "cor_5_Level", "client11", 10_000, 1)

            assert result.status == Status.OK
            assert [r["field0"] for r in result.recent] == [b"10500", b"12000"]
            assert [r["field0"] for r in result.historical] == [b"1000", b"3000"]
            assert result.result_count_outcome == "complete"
        finally:
            backend.cleanup()


class TestEngineAgainstPostgres:
    """Load then verify through the workload engine."""

    def test_loaded_records_verify(self, pool: ConnectionPool, table: str, db_connection):
        props = load_workload_properties(
            {
                "table": table,
                "insertstart": "5000",
                "recordcount": str(LOAD_OPERATIONS),
                "fieldlength": str(FIELD_LENGTH),
                "readproportion": "1",
                "insertproportion": "0",
                "scanproportion": "0",
            }
        )
        recorder = MeasurementRecorder()
        state = SharedWorkloadState.from_properties(props, run_start_time=0)
        engine = WorkloadEngine(
            props, PostgresBackend(pool=pool, batch_size=BATCH_SIZE), recorder, state, rng=random.Random(3)
        )

        engine.init()
        try:
            for _ in range(LOAD_OPERATIONS):
                assert engine.do_insert()
        finally:
            engine.cleanup()

        with db_connection.cursor() as cur:
            cur.execute(sql.SQL("SELECT device_id, ts FROM {} ORDER BY ts").format(sql.Identifier(table)))
            stored = cur.fetchall()
        assert [ts for _, ts in stored] == list(range(5000, 5000 + LOAD_OPERATIONS))

        engine.init()
        try:
            for device_id, ts in stored:
                key = RecordKey.parse(f"{device_id}:{ts}")
                status, cells = engine.db.read(table, str(key))
                assert status == Status.OK
                engine.verify_row(key, cells)
        finally:
            engine.cleanup()

        assert recorder.verification_count(VerificationOutcome.MATCH) == LOAD_OPERATIONS
        assert recorder.count("INSERT") == LOAD_OPERATIONS
