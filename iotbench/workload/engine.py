"""
Workload engine.

One ``WorkloadEngine`` runs per worker thread. Each call to ``do_insert``
(load phase) or ``do_transaction`` (run phase) performs exactly one logical
operation against the backend through the instrumented proxy.

The only state shared between engines is ``SharedWorkloadState``: the load
insert sequence, the acknowledged transaction insert sequence and the run
start time. Everything else (generators, synthesizer, chooser) is private
to the engine.
"""
from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, stop_when_event_set, wait_random

from iotbench.backends.abstract import DualWindowResult, StorageBackend
from iotbench.domain.models import FieldMap, Operation, RecordKey, Status
from iotbench.generators.base import NumberGenerator
from iotbench.generators.counter import AcknowledgedCounterGenerator, CounterGenerator
from iotbench.generators.factory import build_number_generator
from iotbench.generators.numeric import ExponentialGenerator, UniformLongGenerator
from iotbench.measurements.proxy import InstrumentedBackend
from iotbench.measurements.recorder import MeasurementRecorder
from iotbench.utils.logging import get_logger
from iotbench.workload.integrity import IntegrityVerifier
from iotbench.workload.properties import WorkloadProperties
from iotbench.workload.router import ClusterTopology, admit
from iotbench.workload.scheduler import create_operation_chooser
from iotbench.workload.synthesizer import KeyValueSynthesizer, payload_value

log = get_logger(__name__)

AVERAGED_FIELD = "field0"


def _now_millis() -> int:
    return int(time.time() * 1000)


@dataclass
class SharedWorkloadState:
    """
    Cross-worker counters, passed by reference to every engine.

    ``load_sequence`` numbers load-phase inserts from ``insert_start``.
    ``transaction_sequence`` numbers run-phase inserts after the loaded
    records; its ``last()`` bounds which key numbers reads may select.
    Both counters are lock guarded, so updates from one worker are visible to
    every other worker as soon as the call returns.
    """

    insert_start: int
    load_sequence: CounterGenerator
    transaction_sequence: AcknowledgedCounterGenerator
    run_start_time: int

    @classmethod
    def from_properties(
        cls, properties: WorkloadProperties, run_start_time: Optional[int] = None
    ) -> "SharedWorkloadState":
        start = properties.insert_start
        return cls(
            insert_start=start,
            load_sequence=CounterGenerator(start),
            transaction_sequence=AcknowledgedCounterGenerator(start + properties.record_count),
            run_start_time=_now_millis() if run_start_time is None else run_start_time,
        )


def window_average(records: List[FieldMap], field: str = AVERAGED_FIELD) -> Optional[float]:
    """Mean of the readings embedded in ``field`` of ``records``; None if there are none."""
    readings = []
    for record in records:
        payload = record.get(field)
        if payload is None:
            continue
        reading = payload_value(payload)
        if reading is not None:
            readings.append(reading)
    if not readings:
        return None
    return sum(readings) / len(readings)


class WorkloadEngine:
    """
    Parameters
    ----------
    properties : WorkloadProperties
        Validated workload configuration.
    backend : StorageBackend
        Raw adapter for this worker; the engine wraps it in an
        ``InstrumentedBackend``.
    recorder : MeasurementRecorder
        Run-wide recorder.
    shared_state : SharedWorkloadState
        Run-wide counters.
    stop_event : threading.Event | None
        Set to ask the worker to stop; also interrupts a pending insert retry.
    rng : random.Random | None
        Source for every random choice of this engine.
    """

    def __init__(
        self,
        properties: WorkloadProperties,
        backend: StorageBackend,
        recorder: MeasurementRecorder,
        shared_state: SharedWorkloadState,
        stop_event: Optional[threading.Event] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.properties = properties
        self.recorder = recorder
        self.state = shared_state
        self.stop_event = stop_event or threading.Event()
        self._rng = rng or random.Random()
        self.table = properties.table

        self.db = InstrumentedBackend(
            backend,
            recorder,
            report_latency_for_each_error=properties.report_latency_for_each_error,
            latency_tracked_errors=properties.latency_tracked_errors,
        )
        self.synthesizer = KeyValueSynthesizer(properties, rng=self._rng)
        self.verifier = IntegrityVerifier(self.synthesizer.payloads, properties.field_length)
        self.operation_chooser = create_operation_chooser(properties, rng=self._rng)
        self.topology = ClusterTopology.from_properties(properties)
        self.rank = self.topology.rank(properties.client_id)
        self.scan_length = build_number_generator(
            properties.scan_length_distribution, 1, properties.max_scan_length, rng=self._rng
        )
        self.key_chooser = self._build_key_chooser()

        self._handlers: Dict[Operation, Callable[[], None]] = {
            Operation.INSERT: self.do_transaction_insert,
            Operation.SCAN: self.do_transaction_scan,
            Operation.READ: self.do_transaction_read,
            Operation.UPDATE: self.do_transaction_update,
            Operation.READ_MODIFY_WRITE: self.do_transaction_read_modify_write,
        }

    # ------------------------------------------------------------------ setup

    @property
    def keyspace_size(self) -> int:
        if self.properties.record_count > 0:
            return self.properties.record_count
        return max(1, self.topology.per_worker_capacity)

    def _build_key_chooser(self) -> NumberGenerator:
        props = self.properties
        if props.request_distribution == "exponential":
            return ExponentialGenerator.from_fraction(
                props.exponential_percentile, props.exponential_frac, self.keyspace_size, rng=self._rng
            )
        insert_count = props.insert_count if props.insert_count else self.keyspace_size
        return UniformLongGenerator(
            props.insert_start, props.insert_start + max(1, insert_count) - 1, rng=self._rng
        )

    def init(self) -> None:
        self.db.init()

    def cleanup(self) -> None:
        self.db.cleanup()

    # ------------------------------------------------------------------ key choice

    def next_key_number(self) -> int:
        """
        Pick the key number for a read-side operation.

        Exponential draws count back from the acknowledged insert ceiling and
        are redrawn until non-negative. Uniform draws past the ceiling are
        folded back into ``[lower, ceiling]``.
        """
        ceiling = self.state.transaction_sequence.last()
        if isinstance(self.key_chooser, ExponentialGenerator):
            if ceiling < 0:
                return 0
            while True:
                keynum = ceiling - self.key_chooser.next()
                if keynum >= 0:
                    return keynum

        keynum = self.key_chooser.next()
        lower = self.key_chooser.lower
        if keynum > ceiling >= lower:
            keynum = lower + (keynum - lower) % (ceiling - lower + 1)
        return keynum

    def _field_filter(self) -> Optional[List[str]]:
        if self.properties.read_all_fields:
            return None
        return [self.synthesizer.choose_field()]

    # ------------------------------------------------------------------ inserts

    def do_insert(self) -> bool:
        """Load-phase insert. Returns False only when the insert failed for good."""
        return self._insert(self.state.load_sequence.next())

    def do_transaction_insert(self) -> None:
        keynum = self.state.transaction_sequence.next()
        try:
            self._insert(keynum)
        finally:
            self.state.transaction_sequence.acknowledge(keynum)

    def _insert(self, keynum: int) -> bool:
        if not admit(self.topology, self.rank, keynum - self.state.insert_start):
            return True
        key = self.synthesizer.build_insert_key(keynum)
        values = self.synthesizer.build_values(key)
        return self.insert_with_retry(str(key), values).is_ok

    def insert_with_retry(self, key: str, values: FieldMap) -> Status:
        """
        Insert, retrying failures up to ``core_workload_insertion_retry_limit`` times.

        Waits ``[0.8, 1.2] * core_workload_insertion_retry_interval`` seconds
        between attempts on the stop event, so a shutdown ends the loop early.
        """
        interval = self.properties.insertion_retry_interval
        retrying = Retrying(
            stop=stop_after_attempt(self.properties.insertion_retry_limit + 1)
            | stop_when_event_set(self.stop_event),
            wait=wait_random(0.8 * interval, 1.2 * interval),
            retry=retry_if_result(lambda status: status is None or not status.is_ok),
            sleep=self.stop_event.wait,
            before_sleep=self._log_retry,
            retry_error_callback=self._log_give_up,
        )
        status = Status.ERROR
        for attempt in retrying:
            if attempt.retry_state.attempt_number > 1 and self.stop_event.is_set():
                break
            with attempt:
                status = self.db.insert(self.table, key, values)
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(status)
        return status

    def _log_retry(self, retry_state: RetryCallState) -> None:
        log.warning(
            "Retrying insertion",
            extra={"retry": retry_state.attempt_number, "limit": self.properties.insertion_retry_limit},
        )

    def _log_give_up(self, retry_state: RetryCallState) -> Optional[Status]:
        log.error(
            "Error inserting, not retrying any more",
            extra={
                "attempts": retry_state.attempt_number,
                "limit": self.properties.insertion_retry_limit,
            },
        )
        return retry_state.outcome.result() if retry_state.outcome else None

    # ------------------------------------------------------------------ transactions

    def do_transaction(self) -> bool:
        operation = Operation(self.operation_chooser.next())
        self._handlers[operation]()
        return True

    def do_transaction_read(self) -> None:
        key = self.synthesizer.build_read_key(self.next_key_number())
        _, cells = self.db.read(self.table, str(key), self._field_filter())
        if self.properties.data_integrity:
            self.verify_row(key, cells)

    def do_transaction_update(self) -> None:
        key = self.synthesizer.build_insert_key(self.next_key_number())
        self.db.update(self.table, str(key), self.synthesizer.build_value(key))

    def do_transaction_read_modify_write(self) -> None:
        key = self.synthesizer.build_insert_key(self.next_key_number())
        fields = self._field_filter()
        values = self.synthesizer.build_value(key)

        intended_ns = self.recorder.intended_start_ns()
        start_ns = time.perf_counter_ns()
        _, cells = self.db.read(self.table, str(key), fields)
        self.db.update(self.table, str(key), values)
        end_ns = time.perf_counter_ns()

        if self.properties.data_integrity:
            self.verify_row(key, cells)

        label = Operation.READ_MODIFY_WRITE.value
        self.recorder.measure(label, (end_ns - start_ns) // 1000)
        self.recorder.measure_intended(label, (end_ns - intended_ns) // 1000)

    def do_transaction_scan(self) -> None:
        key = self.synthesizer.build_read_key(self.next_key_number())
        if self.properties.scan_mode == "range":
            self.db.scan(self.table, str(key), self.scan_length.next(), self._field_filter())
            return
        result = self.db.dual_window_scan(
            self.table, key.sensor, key.client, key.timestamp, self.state.run_start_time
        )
        if result.status.is_ok:
            self._log_window_averages(key, result)

    def _log_window_averages(self, key: RecordKey, result: DualWindowResult) -> None:
        context = {"client": key.client, "sensor": key.sensor, "timestamp": key.timestamp}
        recent = window_average(result.recent)
        if recent is None:
            log.warning("No values in the latest time interval", extra=context)
        else:
            log.info(
                f"Latest time interval :: avg value for {key.sensor} = {recent:.4f}",
                extra={**context, "average": recent, "records": len(result.recent)},
            )
        historical = window_average(result.historical)
        if historical is not None:
            log.info(
                f"Historical window :: avg value for {key.sensor} = {historical:.4f}",
                extra={**context, "average": historical, "records": len(result.historical)},
            )

    # ------------------------------------------------------------------ verification

    def verify_row(self, key: RecordKey, cells: FieldMap) -> None:
        start_ns = time.perf_counter_ns()
        outcome = self.verifier.verify(key, cells)
        end_ns = time.perf_counter_ns()
        label = Operation.VERIFY.value
        self.recorder.measure(label, (end_ns - start_ns) // 1000)
        self.recorder.report_status(label, outcome.status)
        self.recorder.report_verification(outcome)


__all__ = ["SharedWorkloadState", "WorkloadEngine", "window_average"]
