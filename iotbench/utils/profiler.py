"""
Process profiling for a benchmark phase.

``profile_block`` wraps a whole load or run phase and measures:
- Wall-clock time (perf_counter)
- Process CPU time and utilisation (psutil)
- Peak RSS via a background sampling thread (psutil)
- Peak Python allocations (tracemalloc)

Usage:
    from iotbench.utils.profiler import profile_block

    with profile_block("run") as stats:
        drive_workers()

    print(stats.duration_seconds, stats.peak_rss_bytes, stats.cpu_percent)
"""

from __future__ import annotations

import contextlib
import threading
import time
import tracemalloc
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Generator, Optional

import psutil


@dataclass
class ProfileStats:
    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    cpu_seconds: Optional[float] = field(default=None)
    cpu_percent: Optional[float] = field(default=None)
    peak_rss_bytes: Optional[int] = field(default=None)
    peak_traced_bytes: Optional[int] = field(default=None)

    def as_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        for name in ("start_ts", "end_ts"):
            payload[name] = round(payload[name], 3)
        for name in ("duration_seconds", "cpu_seconds"):
            if payload[name] is not None:
                payload[name] = round(payload[name], 3)
        if payload["cpu_percent"] is not None:
            payload["cpu_percent"] = round(payload["cpu_percent"], 1)
        return payload


class _RssSampler(threading.Thread):
    """Polls the process RSS until stopped and keeps the maximum."""

    def __init__(self, process: psutil.Process, interval_seconds: float) -> None:
        super().__init__(name="rss-sampler", daemon=True)
        self.process = process
        self.interval_seconds = interval_seconds
        self.peak = process.memory_info().rss
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.peak = max(self.peak, self.process.memory_info().rss)
            except psutil.Error:
                return
            self._stop_event.wait(self.interval_seconds)

    def stop(self) -> int:
        self._stop_event.set()
        self.join(timeout=1.0)
        return self.peak


def _cpu_seconds(process: psutil.Process) -> float:
    times = process.cpu_times()
    return times.user + times.system


@contextlib.contextmanager
def profile_block(
    label: str, sample_interval_ms: int = 50, enable_tracemalloc: bool = False
) -> Generator[ProfileStats, None, None]:
    """
    Profile the enclosed block.

    Parameters
    ----------
    label : str
        Phase name recorded in the stats.
    sample_interval_ms : int
        RSS sampling period. Lower is more accurate but costs more.
    enable_tracemalloc : bool
        Track Python allocations. Off by default: tracing slows every
        allocation and therefore the measured workload.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process()

    started_tracing = False
    if enable_tracemalloc and not tracemalloc.is_tracing():
        tracemalloc.start()
        started_tracing = True

    sampler = _RssSampler(process, sample_interval_ms / 1000.0)
    sampler.start()
    cpu_before = _cpu_seconds(process)
    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts
        stats.peak_rss_bytes = sampler.stop()

        stats.cpu_seconds = _cpu_seconds(process) - cpu_before
        if stats.duration_seconds > 0:
            stats.cpu_percent = 100.0 * stats.cpu_seconds / stats.duration_seconds

        if enable_tracemalloc and tracemalloc.is_tracing():
            _, stats.peak_traced_bytes = tracemalloc.get_traced_memory()
            if started_tracing:
                tracemalloc.stop()


__all__ = ["ProfileStats", "profile_block"]
