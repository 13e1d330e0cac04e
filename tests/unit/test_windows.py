from __future__ import annotations

import random
from typing import List, Tuple

from iotbench.backends.abstract import AbstractStorageBackend, DualWindowResult
from iotbench.backends.windows import (
    HISTORICAL_FALLBACK_OFFSET,
    HISTORICAL_GUARD,
    historical_base,
    historical_window,
    recent_window,
)
from iotbench.domain.models import FieldMap, Status

T = 1_700_000_000_000
WIDTH = 5000


class _ScriptedBackend(AbstractStorageBackend):
    """Returns scripted ``scan_window`` results and remembers the windows asked for."""

    name = "scripted"

    def __init__(self, results: List[Tuple[Status, List[FieldMap]]], **kwargs) -> None:
        super().__init__(**kwargs)
        self.results = list(results)
        self.windows: List[Tuple[int, int]] = []

    def insert(self, table, key, values):
        return Status.OK

    def read(self, table, key, fields=None):
        return Status.OK, {}

    def update(self, table, key, values):
        return Status.OK

    def delete(self, table, key):
        return Status.OK

    def scan(self, table, start_key, limit, fields=None):
        return Status.OK, []

    def scan_window(self, table, sensor, client, start, end, fields=None):
        self.windows.append((start, end))
        return self.results.pop(0)


def test_recent_window_follows_reference() -> None:
    assert recent_window(T, WIDTH) == (T, T + WIDTH)


def test_historical_base_without_run_start() -> None:
    assert historical_base(T, 0) == T - HISTORICAL_FALLBACK_OFFSET


def test_historical_base_with_run_start() -> None:
    assert historical_base(T, T - 500) == T - 500


def test_historical_window_ends_before_recent_window_for_fresh_runs() -> None:
    rng = random.Random(3)
    for run_start in (T - 9_999, T - 500, T, T + 3_000):
        start, end = historical_window(T, run_start, WIDTH, rng=rng)
        assert end <= T
        assert start < recent_window(T, WIDTH)[0]
        assert start == T - HISTORICAL_GUARD


def test_historical_window_samples_span_after_run_start() -> None:
    rng = random.Random(5)
    starts = {historical_window(T, T - 60_000, WIDTH, rng=rng)[0] for _ in range(200)}
    assert min(starts) >= T - 60_000
    assert max(starts) <= T - HISTORICAL_GUARD
    assert len(starts) > 1


def test_historical_window_is_clamped_by_a_wide_window() -> None:
    _, end = historical_window(T, 0, 20_000, rng=random.Random(0))
    assert end <= T


def test_historical_window_without_run_start_samples_elapsed_span() -> None:
    rng = random.Random(11)
    for _ in range(500):
        start, end = historical_window(T, 0, WIDTH, rng=rng)
        assert T - HISTORICAL_FALLBACK_OFFSET <= start <= T - HISTORICAL_GUARD
        assert end - start == WIDTH


def test_historical_window_never_starts_below_zero() -> None:
    assert historical_window(1_000, 0, WIDTH, rng=random.Random(0)) == (0, WIDTH)


def test_dual_window_scan_success_reports_both_windows() -> None:
    backend = _ScriptedBackend(
        [(Status.OK, [{"field0": b"a"}]), (Status.OK, [{"field0": b"b"}, {"field0": b"c"}])],
        rng=random.Random(1),
    )

    result = backend.dual_window_scan("usertable", "cent_9_Flow", "client11", T, T - 500)

    assert result.status == Status.OK
    assert result.historical_status == Status.OK
    assert len(result.recent) == 1
    assert len(result.historical) == 2
    assert result.result_count_outcome == "complete"
    assert backend.windows == [(T, T + WIDTH), (T - HISTORICAL_GUARD, T - HISTORICAL_GUARD + WIDTH)]


def test_dual_window_scan_first_failure_skips_historical_query() -> None:
    backend = _ScriptedBackend([(Status.ERROR, [])])

    result = backend.dual_window_scan("usertable", "cent_9_Flow", "client11", T, 0)

    assert result.status == Status.ERROR
    assert result.recent == [] and result.historical == []
    assert len(backend.windows) == 1


def test_dual_window_scan_second_failure_keeps_recent_rows(caplog) -> None:
    backend = _ScriptedBackend([(Status.OK, [{"field0": b"a"}]), (Status.SERVICE_UNAVAILABLE, [{"x": b"y"}])])

    with caplog.at_level("WARNING"):
        result = backend.dual_window_scan("usertable", "cent_9_Flow", "client11", T, 0)

    assert result.status == Status.OK
    assert result.historical_status == Status.SERVICE_UNAVAILABLE
    assert result.recent == [{"field0": b"a"}]
    assert result.historical == []
    assert result.result_count_outcome == "historical-empty"
    assert "Historical window query failed" in caplog.text


def test_result_count_outcomes() -> None:
    row = [{"field0": b"x"}]
    assert DualWindowResult(Status.OK, recent=row, historical=row).result_count_outcome == "complete"
    assert DualWindowResult(Status.OK, recent=[], historical=row).result_count_outcome == "recent-empty"
    assert DualWindowResult(Status.OK, recent=row, historical=[]).result_count_outcome == "historical-empty"
    assert DualWindowResult(Status.OK).result_count_outcome == "both-empty"
