"""
Instrumented storage proxy.

``InstrumentedBackend`` wraps any ``StorageBackend`` and times every call,
``init`` and ``cleanup`` included. For each call it records:

* the service latency (start to end) under the outcome label,
* the intended latency (intended start to end) under the same label,
* one status count for the operation.

The label is the operation name on success. On failure it is
``<OP>-<STATUS>`` when every error is tracked or the status is in the tracked
set, else ``<OP>-FAILED``. Return values are passed through untouched;
exceptions are measured as ``ERROR`` and re-raised.
"""

from __future__ import annotations

import time
from typing import Any, Callable, FrozenSet, Iterable, List, Optional, Tuple, TypeVar

from iotbench.backends.abstract import DualWindowResult, FieldFilter, StorageBackend
from iotbench.domain.models import FieldMap, MeasurementSample, Operation, Status
from iotbench.measurements.recorder import MeasurementRecorder

R = TypeVar("R")


def _status_of(result: Any) -> Status:
    if isinstance(result, Status):
        return result
    if isinstance(result, DualWindowResult):
        return result.status
    if isinstance(result, tuple) and result and isinstance(result[0], Status):
        return result[0]
    return Status.OK


class InstrumentedBackend:
    def __init__(
        self,
        backend: StorageBackend,
        recorder: MeasurementRecorder,
        report_latency_for_each_error: bool = False,
        latency_tracked_errors: Optional[Iterable[str]] = None,
    ) -> None:
        self.backend = backend
        self.recorder = recorder
        self.report_latency_for_each_error = report_latency_for_each_error
        self.latency_tracked_errors: FrozenSet[str] = frozenset(latency_tracked_errors or ())

    @property
    def name(self) -> str:
        return self.backend.name

    def label_for(self, operation: Operation, status: Status) -> str:
        if status.is_ok:
            return operation.value
        if self.report_latency_for_each_error or status.name in self.latency_tracked_errors:
            return f"{operation.value}-{status.name}"
        return f"{operation.value}-FAILED"

    def _report(self, operation: Operation, status: Status, intended_ns: int, start_ns: int, end_ns: int) -> None:
        sample = MeasurementSample(
            operation=operation.value,
            label=self.label_for(operation, status),
            latency_us=(end_ns - start_ns) // 1000,
            intended_latency_us=(end_ns - intended_ns) // 1000,
        )
        self.recorder.record(sample)
        self.recorder.report_status(operation.value, status)

    def _measure(self, operation: Operation, call: Callable[[], R]) -> R:
        intended_ns = self.recorder.intended_start_ns()
        start_ns = time.perf_counter_ns()
        try:
            result = call()
        except Exception:
            self._report(operation, Status.ERROR, intended_ns, start_ns, time.perf_counter_ns())
            raise
        end_ns = time.perf_counter_ns()
        self._report(operation, _status_of(result), intended_ns, start_ns, end_ns)
        return result

    def init(self) -> None:
        self._measure(Operation.INIT, self.backend.init)

    def cleanup(self) -> None:
        self._measure(Operation.CLEANUP, self.backend.cleanup)

    def insert(self, table: str, key: str, values: FieldMap) -> Status:
        return self._measure(Operation.INSERT, lambda: self.backend.insert(table, key, values))

    def read(self, table: str, key: str, fields: FieldFilter = None) -> Tuple[Status, FieldMap]:
        return self._measure(Operation.READ, lambda: self.backend.read(table, key, fields))

    def update(self, table: str, key: str, values: FieldMap) -> Status:
        return self._measure(Operation.UPDATE, lambda: self.backend.update(table, key, values))

    def delete(self, table: str, key: str) -> Status:
        return self._measure(Operation.DELETE, lambda: self.backend.delete(table, key))

    def scan(
        self, table: str, start_key: str, limit: int, fields: FieldFilter = None
    ) -> Tuple[Status, List[FieldMap]]:
        return self._measure(Operation.SCAN, lambda: self.backend.scan(table, start_key, limit, fields))

    def dual_window_scan(
        self,
        table: str,
        sensor: str,
        client: str,
        reference_timestamp: int,
        run_start_time: int,
        fields: FieldFilter = None,
    ) -> DualWindowResult:
        result = self._measure(
            Operation.SCAN,
            lambda: self.backend.dual_window_scan(
                table, sensor, client, reference_timestamp, run_start_time, fields
            ),
        )
        if result.status.is_ok:
            self.recorder.report_result_count(Operation.SCAN.value, result.result_count_outcome)
        return result


__all__ = ["InstrumentedBackend"]
