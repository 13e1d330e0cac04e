"""
In-process storage backend.

``MemoryStore`` holds every table in sorted per-device timestamp lists and is
shared by all workers of a run; ``MemoryBackend`` is the per-worker adapter
over it. Used by the test suite and as the default CLI backend.
"""

from __future__ import annotations

import bisect
import random
import threading
from typing import Dict, List, Optional, Tuple

from iotbench.backends.abstract import AbstractStorageBackend, FieldFilter, project_fields
from iotbench.backends.windows import HISTORICAL_FALLBACK_OFFSET, RECENT_WINDOW_WIDTH
from iotbench.domain.models import FieldMap, RecordKey, Status

_Series = Tuple[List[int], Dict[int, FieldMap]]


class MemoryStore:
    """Thread-safe ``(table, device) -> timestamp -> fields`` map."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tables: Dict[str, Dict[str, _Series]] = {}

    def _series(self, table: str, device_id: str, create: bool = False) -> Optional[_Series]:
        devices = self._tables.get(table)
        if devices is None:
            if not create:
                return None
            devices = self._tables[table] = {}
        series = devices.get(device_id)
        if series is None and create:
            series = devices[device_id] = ([], {})
        return series

    def put(self, table: str, device_id: str, timestamp: int, values: FieldMap, merge: bool = False) -> None:
        with self._lock:
            timestamps, rows = self._series(table, device_id, create=True)
            if timestamp in rows:
                if merge:
                    rows[timestamp].update(values)
                else:
                    rows[timestamp] = dict(values)
                return
            bisect.insort(timestamps, timestamp)
            rows[timestamp] = dict(values)

    def get(self, table: str, device_id: str, timestamp: int) -> Optional[FieldMap]:
        with self._lock:
            series = self._series(table, device_id)
            if series is None or timestamp not in series[1]:
                return None
            return dict(series[1][timestamp])

    def remove(self, table: str, device_id: str, timestamp: int) -> bool:
        with self._lock:
            series = self._series(table, device_id)
            if series is None or timestamp not in series[1]:
                return False
            timestamps, rows = series
            del rows[timestamp]
            timestamps.pop(bisect.bisect_left(timestamps, timestamp))
            return True

    def between(self, table: str, device_id: str, start: int, end: int) -> List[FieldMap]:
        with self._lock:
            series = self._series(table, device_id)
            if series is None:
                return []
            timestamps, rows = series
            lo = bisect.bisect_left(timestamps, start)
            hi = bisect.bisect_right(timestamps, end)
            return [dict(rows[ts]) for ts in timestamps[lo:hi]]

    def after(self, table: str, device_id: str, timestamp: int, limit: int) -> List[FieldMap]:
        """Records ordered by ``(device_id, timestamp)`` starting at the given position."""
        results: List[FieldMap] = []
        with self._lock:
            devices = self._tables.get(table, {})
            for device in sorted(d for d in devices if d >= device_id):
                timestamps, rows = devices[device]
                lo = bisect.bisect_left(timestamps, timestamp) if device == device_id else 0
                for ts in timestamps[lo:]:
                    if len(results) >= limit:
                        return results
                    results.append(dict(rows[ts]))
        return results

    def count(self, table: str) -> int:
        with self._lock:
            return sum(len(rows) for _, rows in self._tables.get(table, {}).values())


class MemoryBackend(AbstractStorageBackend):
    name = "memory"

    def __init__(
        self,
        store: Optional[MemoryStore] = None,
        window_width: int = RECENT_WINDOW_WIDTH,
        historical_offset: int = HISTORICAL_FALLBACK_OFFSET,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(window_width, historical_offset, rng)
        self.store = store if store is not None else MemoryStore()

    def insert(self, table: str, key: str, values: FieldMap) -> Status:
        try:
            record = RecordKey.parse(key)
        except ValueError:
            return Status.BAD_REQUEST
        self.store.put(table, record.device_id, record.timestamp, values)
        return Status.OK

    def read(self, table: str, key: str, fields: FieldFilter = None) -> Tuple[Status, FieldMap]:
        try:
            record = RecordKey.parse(key)
        except ValueError:
            return Status.BAD_REQUEST, {}
        row = self.store.get(table, record.device_id, record.timestamp)
        if row is None:
            return Status.NOT_FOUND, {}
        return Status.OK, project_fields(row, fields)

    def update(self, table: str, key: str, values: FieldMap) -> Status:
        try:
            record = RecordKey.parse(key)
        except ValueError:
            return Status.BAD_REQUEST
        if self.store.get(table, record.device_id, record.timestamp) is None:
            return Status.NOT_FOUND
        self.store.put(table, record.device_id, record.timestamp, values, merge=True)
        return Status.OK

    def delete(self, table: str, key: str) -> Status:
        try:
            record = RecordKey.parse(key)
        except ValueError:
            return Status.BAD_REQUEST
        if not self.store.remove(table, record.device_id, record.timestamp):
            return Status.NOT_FOUND
        return Status.OK

    def scan(
        self, table: str, start_key: str, limit: int, fields: FieldFilter = None
    ) -> Tuple[Status, List[FieldMap]]:
        try:
            record = RecordKey.parse(start_key)
        except ValueError:
            return Status.BAD_REQUEST, []
        rows = self.store.after(table, record.device_id, record.timestamp, limit)
        return Status.OK, [project_fields(row, fields) for row in rows]

    def scan_window(
        self,
        table: str,
        sensor: str,
        client: str,
        start: int,
        end: int,
        fields: FieldFilter = None,
    ) -> Tuple[Status, List[FieldMap]]:
        rows = self.store.between(table, f"{client}:{sensor}", start, end)
        return Status.OK, [project_fields(row, fields) for row in rows]


__all__ = ["MemoryBackend", "MemoryStore"]
