"""
Measurement recorder.

Collects latency samples into HDR histograms keyed by label (``INSERT``,
``READ-FAILED``, ``SCAN-TIMEOUT``, ``VERIFY``, ...), one histogram for the
raw service latency and one for the latency measured from the intended start
time. Also counts outcomes per operation, dual-window result shapes and
verification results.

All writers may run concurrently; ``snapshot()`` is meant to be called once
the workers stopped.
"""

from __future__ import annotations

import threading
import time
from collections import Counter
from typing import Dict, Optional, Tuple, TypedDict

from hdrh.histogram import HdrHistogram

from iotbench.domain.models import MeasurementSample, Status, VerificationOutcome

LOWEST_TRACKABLE_US = 1
HIGHEST_TRACKABLE_US = 60 * 60 * 1_000_000
SIGNIFICANT_FIGURES = 3


class LatencySummary(TypedDict):
    count: int
    mean_us: float
    min_us: int
    max_us: int
    p50_us: int
    p95_us: int
    p99_us: int
    p999_us: int


class MeasurementSnapshot(TypedDict):
    latency: Dict[str, LatencySummary]
    intended_latency: Dict[str, LatencySummary]
    statuses: Dict[str, Dict[str, int]]
    result_counts: Dict[str, Dict[str, int]]
    verification: Dict[str, int]


def summarize(histogram: HdrHistogram) -> LatencySummary:
    return LatencySummary(
        count=histogram.get_total_count(),
        mean_us=round(histogram.get_mean_value(), 2),
        min_us=histogram.get_min_value(),
        max_us=histogram.get_max_value(),
        p50_us=histogram.get_value_at_percentile(50),
        p95_us=histogram.get_value_at_percentile(95),
        p99_us=histogram.get_value_at_percentile(99),
        p999_us=histogram.get_value_at_percentile(99.9),
    )


class MeasurementRecorder:
    def __init__(
        self,
        highest_trackable_us: int = HIGHEST_TRACKABLE_US,
        significant_figures: int = SIGNIFICANT_FIGURES,
    ) -> None:
        self.highest_trackable_us = highest_trackable_us
        self.significant_figures = significant_figures
        self._lock = threading.Lock()
        self._latency: Dict[str, HdrHistogram] = {}
        self._intended: Dict[str, HdrHistogram] = {}
        self._statuses: Counter[Tuple[str, str]] = Counter()
        self._result_counts: Counter[Tuple[str, str]] = Counter()
        self._verification: Counter[str] = Counter()
        self._local = threading.local()

    # Intended start time is per worker thread: the pacing loop of a worker
    # sets it before each invocation.

    def set_intended_start_ns(self, value: Optional[int]) -> None:
        self._local.intended_start_ns = value

    def intended_start_ns(self) -> int:
        value = getattr(self._local, "intended_start_ns", None)
        return value if value is not None else time.perf_counter_ns()

    def _histogram(self, table: Dict[str, HdrHistogram], label: str) -> HdrHistogram:
        histogram = table.get(label)
        if histogram is None:
            histogram = HdrHistogram(LOWEST_TRACKABLE_US, self.highest_trackable_us, self.significant_figures)
            table[label] = histogram
        return histogram

    def _clamp(self, latency_us: int) -> int:
        return min(max(int(latency_us), 0), self.highest_trackable_us)

    def measure(self, label: str, latency_us: int) -> None:
        with self._lock:
            self._histogram(self._latency, label).record_value(self._clamp(latency_us))

    def measure_intended(self, label: str, latency_us: int) -> None:
        with self._lock:
            self._histogram(self._intended, label).record_value(self._clamp(latency_us))

    def record(self, sample: MeasurementSample) -> None:
        self.measure(sample.label, sample.latency_us)
        self.measure_intended(sample.label, sample.intended_latency_us)

    def report_status(self, operation: str, status: Status) -> None:
        with self._lock:
            self._statuses[(operation, status.name)] += 1

    def report_result_count(self, operation: str, outcome: str) -> None:
        with self._lock:
            self._result_counts[(operation, outcome)] += 1

    def report_verification(self, outcome: VerificationOutcome) -> None:
        with self._lock:
            self._verification[outcome.value] += 1

    # Read side

    def count(self, label: str) -> int:
        with self._lock:
            histogram = self._latency.get(label)
            return histogram.get_total_count() if histogram is not None else 0

    def status_count(self, operation: str, status: Status | str) -> int:
        name = status.name if isinstance(status, Status) else status
        with self._lock:
            return self._statuses[(operation, name)]

    def result_count(self, operation: str, outcome: str) -> int:
        with self._lock:
            return self._result_counts[(operation, outcome)]

    def verification_count(self, outcome: VerificationOutcome) -> int:
        with self._lock:
            return self._verification[outcome.value]

    def labels(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._latency))

    def snapshot(self) -> MeasurementSnapshot:
        with self._lock:
            statuses: Dict[str, Dict[str, int]] = {}
            for (operation, status), count in sorted(self._statuses.items()):
                statuses.setdefault(operation, {})[status] = count
            result_counts: Dict[str, Dict[str, int]] = {}
            for (operation, outcome), count in sorted(self._result_counts.items()):
                result_counts.setdefault(operation, {})[outcome] = count
            return MeasurementSnapshot(
                latency={label: summarize(h) for label, h in sorted(self._latency.items())},
                intended_latency={label: summarize(h) for label, h in sorted(self._intended.items())},
                statuses=statuses,
                result_counts=result_counts,
                verification={outcome.value: self._verification[outcome.value] for outcome in VerificationOutcome},
            )


__all__ = [
    "LatencySummary",
    "MeasurementRecorder",
    "MeasurementSnapshot",
    "summarize",
]
