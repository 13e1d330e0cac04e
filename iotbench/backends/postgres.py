"""
PostgreSQL storage backend (psycopg 3).

Schema, one table per workload table name::

    CREATE TABLE <table> (
        device_id TEXT NOT NULL,     -- client:sensor
        ts        BIGINT NOT NULL,   -- logical timestamp
        fields    JSONB NOT NULL,    -- field name -> payload
        PRIMARY KEY (device_id, ts)
    )

Each worker checks one connection out of the shared pool in ``init`` and
returns it in ``cleanup``. Inserts are buffered and written with
``executemany`` once ``batch_size`` rows are pending; buffered inserts report
``BATCHED_OK``.
"""

from __future__ import annotations

import random
from typing import Any, Dict, List, Optional, Tuple

import psycopg
from psycopg import errors, sql
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from iotbench.backends.abstract import AbstractStorageBackend, FieldFilter, project_fields
from iotbench.backends.windows import HISTORICAL_FALLBACK_OFFSET, RECENT_WINDOW_WIDTH
from iotbench.domain.errors import BackendError
from iotbench.domain.models import FieldMap, RecordKey, Status
from iotbench.infrastructure.db_factory import get_sync_pool
from iotbench.utils.logging import get_logger

log = get_logger(__name__)

TIMEOUT = Status("TIMEOUT", "The statement exceeded the configured statement timeout.")

_ENCODING = "latin-1"


def _encode(values: FieldMap) -> Jsonb:
    return Jsonb({name: bytes(payload).decode(_ENCODING) for name, payload in values.items()})


def _decode(document: Dict[str, Any]) -> FieldMap:
    return {name: str(payload).encode(_ENCODING) for name, payload in (document or {}).items()}


class PostgresBackend(AbstractStorageBackend):
    name = "postgres"

    def __init__(
        self,
        pool: Optional[ConnectionPool] = None,
        batch_size: int = 3000,
        statement_timeout_ms: int = 30_000,
        create_schema: bool = True,
        window_width: int = RECENT_WINDOW_WIDTH,
        historical_offset: int = HISTORICAL_FALLBACK_OFFSET,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(window_width, historical_offset, rng)
        self.pool = pool
        self.batch_size = max(1, batch_size)
        self.statement_timeout_ms = statement_timeout_ms
        self.create_schema = create_schema
        self._conn: Optional[psycopg.Connection] = None
        self._pending: Dict[str, List[Tuple[str, int, Jsonb]]] = {}
        self._known_tables: set[str] = set()
        self.queries_executed = 0
        self.queries_failed = 0
        self.queries_empty = 0

    # ------------------------------------------------------------------ lifecycle

    def init(self) -> None:
        if self.pool is None:
            self.pool = get_sync_pool()
        try:
            conn = self.pool.getconn()
        except (psycopg.Error, TimeoutError) as exc:
            raise BackendError(f"Could not check out a PostgreSQL connection: {exc}") from exc
        try:
            conn.autocommit = True
            with conn.cursor() as cur:
                cur.execute(
                    sql.SQL("SET statement_timeout = {}").format(sql.Literal(self.statement_timeout_ms))
                )
        except psycopg.Error as exc:
            self.pool.putconn(conn)
            raise BackendError(f"Could not configure PostgreSQL session: {exc}") from exc
        self._conn = conn

    def cleanup(self) -> None:
        if self._conn is None:
            return
        try:
            for table in list(self._pending):
                status = self._flush(table)
                if not status.is_ok:
                    log.error(
                        "Pending inserts could not be flushed at cleanup",
                        extra={"table": table, "rows": len(self._pending.get(table, []))},
                    )
        finally:
            log.info(
                "PostgreSQL query statistics",
                extra={
                    "executed": self.queries_executed,
                    "failed": self.queries_failed,
                    "empty": self.queries_empty,
                },
            )
            if self.pool is not None:
                self.pool.putconn(self._conn)
            self._conn = None

    # ------------------------------------------------------------------ helpers

    def _connection(self) -> psycopg.Connection:
        if self._conn is None:
            raise BackendError("PostgreSQL backend used before init()")
        return self._conn

    def _ensure_table(self, table: str) -> None:
        if not self.create_schema or table in self._known_tables:
            return
        with self._connection().cursor() as cur:
            cur.execute(
                sql.SQL(
                    "CREATE TABLE IF NOT EXISTS {} ("
                    "device_id TEXT NOT NULL, ts BIGINT NOT NULL, fields JSONB NOT NULL, "
                    "PRIMARY KEY (device_id, ts))"
                ).format(sql.Identifier(table))
            )
        self._known_tables.add(table)

    def _failure(self, exc: psycopg.Error, query: str) -> Status:
        self.queries_failed += 1
        log.warning("PostgreSQL query failed", extra={"query": query, "error": str(exc)})
        if isinstance(exc, errors.QueryCanceled):
            return TIMEOUT
        return Status.ERROR

    def _fetch(
        self, table: str, query: sql.Composed, params: Tuple[Any, ...], label: str
    ) -> Tuple[Status, List[FieldMap]]:
        try:
            self._ensure_table(table)
            with self._connection().cursor() as cur:
                self.queries_executed += 1
                cur.execute(query, params)
                rows = cur.fetchall()
        except psycopg.Error as exc:
            return self._failure(exc, label), []
        if not rows:
            self.queries_empty += 1
        return Status.OK, [_decode(row[0]) for row in rows]

    def _flush(self, table: str, requeue_last: bool = True) -> Status:
        """
        Send the pending rows of ``table`` in one ``executemany``.

        On failure the rows stay pending for the next flush. With
        ``requeue_last=False`` the newest row is dropped instead; the insert
        that triggered the flush reports that row as failed.
        """
        batch = self._pending.pop(table, [])
        if not batch:
            return Status.OK
        query = sql.SQL(
            "INSERT INTO {} (device_id, ts, fields) VALUES (%s, %s, %s) "
            "ON CONFLICT (device_id, ts) DO UPDATE SET fields = EXCLUDED.fields"
        ).format(sql.Identifier(table))
        try:
            self._ensure_table(table)
            with self._connection().cursor() as cur:
                self.queries_executed += 1
                cur.executemany(query, batch)
        except psycopg.Error as exc:
            kept = batch if requeue_last else batch[:-1]
            if kept:
                self._pending[table] = kept
            return self._failure(exc, "insert")
        return Status.OK

    # ------------------------------------------------------------------ contract

    def insert(self, table: str, key: str, values: FieldMap) -> Status:
        try:
            record = RecordKey.parse(key)
        except ValueError:
            return Status.BAD_REQUEST
        batch = self._pending.setdefault(table, [])
        batch.append((record.device_id, record.timestamp, _encode(values)))
        if len(batch) < self.batch_size:
            return Status.BATCHED_OK
        return self._flush(table, requeue_last=False)

    def read(self, table: str, key: str, fields: FieldFilter = None) -> Tuple[Status, FieldMap]:
        try:
            record = RecordKey.parse(key)
        except ValueError:
            return Status.BAD_REQUEST, {}
        query = sql.SQL("SELECT fields FROM {} WHERE device_id = %s AND ts = %s").format(sql.Identifier(table))
        status, rows = self._fetch(table, query, (record.device_id, record.timestamp), "read")
        if not status.is_ok:
            return status, {}
        if not rows:
            return Status.NOT_FOUND, {}
        return Status.OK, project_fields(rows[0], fields)

    def update(self, table: str, key: str, values: FieldMap) -> Status:
        try:
            record = RecordKey.parse(key)
        except ValueError:
            return Status.BAD_REQUEST
        query = sql.SQL(
            "UPDATE {} SET fields = fields || %s WHERE device_id = %s AND ts = %s"
        ).format(sql.Identifier(table))
        try:
            self._ensure_table(table)
            with self._connection().cursor() as cur:
                self.queries_executed += 1
                cur.execute(query, (_encode(values), record.device_id, record.timestamp))
                updated = cur.rowcount
        except psycopg.Error as exc:
            return self._failure(exc, "update")
        return Status.OK if updated else Status.NOT_FOUND

    def delete(self, table: str, key: str) -> Status:
        try:
            record = RecordKey.parse(key)
        except ValueError:
            return Status.BAD_REQUEST
        query = sql.SQL("DELETE FROM {} WHERE device_id = %s AND ts = %s").format(sql.Identifier(table))
        try:
            self._ensure_table(table)
            with self._connection().cursor() as cur:
                self.queries_executed += 1
                cur.execute(query, (record.device_id, record.timestamp))
                deleted = cur.rowcount
        except psycopg.Error as exc:
            return self._failure(exc, "delete")
        return Status.OK if deleted else Status.NOT_FOUND

    def scan(
        self, table: str, start_key: str, limit: int, fields: FieldFilter = None
    ) -> Tuple[Status, List[FieldMap]]:
        try:
            record = RecordKey.parse(start_key)
        except ValueError:
            return Status.BAD_REQUEST, []
        query = sql.SQL(
            "SELECT fields FROM {} WHERE (device_id, ts) >= (%s, %s) ORDER BY device_id, ts LIMIT %s"
        ).format(sql.Identifier(table))
        status, rows = self._fetch(table, query, (record.device_id, record.timestamp, limit), "scan")
        return status, [project_fields(row, fields) for row in rows]

    def scan_window(
        self,
        table: str,
        sensor: str,
        client: str,
        start: int,
        end: int,
        fields: FieldFilter = None,
    ) -> Tuple[Status, List[FieldMap]]:
        query = sql.SQL(
            "SELECT fields FROM {} WHERE device_id = %s AND ts BETWEEN %s AND %s ORDER BY ts"
        ).format(sql.Identifier(table))
        status, rows = self._fetch(table, query, (f"{client}:{sensor}", start, end), "scan_window")
        return status, [project_fields(row, fields) for row in rows]


__all__ = ["PostgresBackend", "TIMEOUT"]
