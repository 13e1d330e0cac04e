"""
Orchestrator for running a workload phase, profiling execution, and persisting results.

Usage (example from CLI):
    from iotbench.orchestrator import RunConfig, run_workload

    result = run_workload(RunConfig(phase="run", backend="memory", threads=4, operation_count=10_000))
    print(result["throughput_ops_per_sec"])

Each worker thread owns one WorkloadEngine and one backend instance; the
engines share the insert counters and the measurement recorder.

Outputs are saved to `results/` by default:
- `results/latest.json` (last run)
- `results/<phase>-<timestamp>.json` (timestamped archive)
"""

from __future__ import annotations

import json
import random
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from iotbench.backends.abstract import StorageBackend
from iotbench.backends.memory import MemoryBackend, MemoryStore
from iotbench.backends.postgres import PostgresBackend
from iotbench.config import Settings, get_settings
from iotbench.domain.errors import WorkloadConfigError
from iotbench.infrastructure.db_factory import get_sync_pool
from iotbench.measurements.recorder import MeasurementRecorder
from iotbench.utils.logging import get_logger
from iotbench.utils.profiler import profile_block
from iotbench.workload.engine import SharedWorkloadState, WorkloadEngine
from iotbench.workload.properties import WorkloadProperties, load_from_sources

log = get_logger(__name__)

PHASES = ("load", "run")


@dataclass
class RunConfig:
    """
    One invocation of a phase. ``None`` fields fall back to `Settings`.

    Parameters
    ----------
    phase : str
        ``load`` issues inserts only; ``run`` issues the configured mix.
    backend : str | None
        Registered backend name (see `available_backends`).
    threads : int | None
        Worker thread count.
    operation_count : int | None
        Total operations across all workers.
    target_ops_per_sec : float | None
        Offered rate across all workers; 0 means as fast as possible.
    max_execution_seconds : float | None
        Stop workers after this long even if operations remain.
    properties_path : str | None
        Workload properties file.
    overrides : dict
        Property values applied on top of the file.
    seed : int | None
        Seeds every engine for reproducible runs.
    """

    phase: str = "run"
    backend: Optional[str] = None
    threads: Optional[int] = None
    operation_count: Optional[int] = None
    target_ops_per_sec: Optional[float] = None
    max_execution_seconds: Optional[float] = None
    properties_path: Optional[str] = None
    overrides: Dict[str, Any] = field(default_factory=dict)
    results_dir: Optional[Path | str] = None
    persist: bool = True
    seed: Optional[int] = None


@dataclass
class BackendContext:
    properties: WorkloadProperties
    settings: Settings
    threads: int
    store: MemoryStore = field(default_factory=MemoryStore)


def _memory_backend(ctx: BackendContext) -> StorageBackend:
    return MemoryBackend(
        ctx.store,
        window_width=ctx.properties.scan_window_width,
        historical_offset=ctx.properties.scan_historical_offset,
    )


def _postgres_backend(ctx: BackendContext) -> StorageBackend:
    return PostgresBackend(
        pool=get_sync_pool(min_size=1, max_size=ctx.threads),
        batch_size=ctx.settings.db_insert_batch_size,
        statement_timeout_ms=ctx.settings.db_statement_timeout_ms,
        window_width=ctx.properties.scan_window_width,
        historical_offset=ctx.properties.scan_historical_offset,
    )


def _backend_factories() -> Dict[str, Callable[[BackendContext], StorageBackend]]:
    """Registry of available backends."""
    return {
        "memory": _memory_backend,
        "postgres": _postgres_backend,
    }


def available_backends() -> List[str]:
    """List available backend names."""
    return sorted(_backend_factories().keys())


def _resolve_backend(name: str) -> Callable[[BackendContext], StorageBackend]:
    factories = _backend_factories()
    if name not in factories:
        raise WorkloadConfigError(f"Unknown backend '{name}'. Available: {', '.join(factories)}")
    return factories[name]


def _split_operations(total: int, workers: int) -> List[int]:
    """Split ``total`` operations into ``workers`` near-equal shares."""
    base, remainder = divmod(total, workers)
    return [base + (1 if i < remainder else 0) for i in range(workers)]


class _Worker(threading.Thread):
    """
    Drives one engine for ``operations`` invocations.

    When ``target_ops_per_sec`` is set, invocation ``n`` is due at
    ``start + n / target``; that due time is handed to the recorder as the
    intended start, so queueing behind a slow call shows up in the intended
    latency.
    """

    def __init__(
        self,
        index: int,
        engine: WorkloadEngine,
        phase: str,
        operations: int,
        target_ops_per_sec: float,
        stop_event: threading.Event,
    ) -> None:
        super().__init__(name=f"worker-{index}", daemon=True)
        self.engine = engine
        self.phase = phase
        self.operations = operations
        self.target_ops_per_sec = target_ops_per_sec
        self.stop_event = stop_event
        self.completed = 0
        self.failed = 0
        self.error: Optional[str] = None

    def run(self) -> None:
        try:
            self.engine.init()
        except Exception as exc:  # noqa: BLE001 - a failed init aborts only this worker
            log.exception("[WORKER INIT FAILED]", extra={"worker": self.name})
            self.error = str(exc)
            return
        try:
            self._loop()
        finally:
            try:
                self.engine.cleanup()
            except Exception as exc:  # noqa: BLE001 - record and keep the other workers' results
                log.exception("[WORKER CLEANUP FAILED]", extra={"worker": self.name})
                self.error = str(exc)

    def _loop(self) -> None:
        recorder = self.engine.recorder
        interval_ns = int(1e9 / self.target_ops_per_sec) if self.target_ops_per_sec > 0 else 0
        start_ns = time.perf_counter_ns()
        step = self.engine.do_insert if self.phase == "load" else self.engine.do_transaction
        try:
            while self.completed < self.operations and not self.stop_event.is_set():
                if interval_ns:
                    due_ns = start_ns + self.completed * interval_ns
                    recorder.set_intended_start_ns(due_ns)
                    delay = (due_ns - time.perf_counter_ns()) / 1e9
                    if delay > 0 and self.stop_event.wait(delay):
                        break
                try:
                    ok = step()
                except Exception:  # noqa: BLE001 - a failing record never ends the run
                    log.exception("[OPERATION FAILED]", extra={"worker": self.name, "phase": self.phase})
                    ok = False
                self.completed += 1
                if not ok:
                    self.failed += 1
        finally:
            recorder.set_intended_start_ns(None)


def _persist_results(payload: dict, results_dir: Path) -> None:
    results_dir.mkdir(parents=True, exist_ok=True)
    latest_path = results_dir / "latest.json"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    archive_path = results_dir / f"{payload['phase']}-{timestamp}.json"

    for path in (latest_path, archive_path):
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True, default=str)

    log.info("Results persisted", extra={"latest": str(latest_path), "archive": str(archive_path)})


def _join_all(workers: List[_Worker], stop_event: threading.Event) -> None:
    try:
        for worker in workers:
            while worker.is_alive():
                worker.join(timeout=0.2)
    except KeyboardInterrupt:
        log.warning("[INTERRUPTED] Stopping workers")
        stop_event.set()
        for worker in workers:
            worker.join()
        raise


def run_workload(config: RunConfig, properties: Optional[WorkloadProperties] = None) -> dict:
    """
    Run one phase with ``config`` and optionally persist the result.

    Parameters
    ----------
    config : RunConfig
        What to run.
    properties : WorkloadProperties | None
        Pre-validated properties; when None they are loaded from
        ``config.properties_path`` (or ``WORKLOAD_PROPERTIES``) and
        ``config.overrides``.

    Returns
    -------
    dict
        Throughput, profile and measurement snapshot of the phase.

    Raises
    ------
    WorkloadConfigError
        Invalid phase, backend, thread count or workload properties.
    """
    if config.phase not in PHASES:
        raise WorkloadConfigError(f"Unknown phase '{config.phase}'. Expected one of: {', '.join(PHASES)}")

    settings = get_settings()
    if properties is None:
        properties = load_from_sources(config.properties_path or settings.workload_properties, config.overrides)

    backend_name = config.backend or settings.benchmark_backend
    threads = config.threads if config.threads is not None else settings.benchmark_threads
    total_ops = config.operation_count if config.operation_count is not None else settings.benchmark_operations
    target = config.target_ops_per_sec if config.target_ops_per_sec is not None else settings.benchmark_target_ops
    if threads < 1:
        raise WorkloadConfigError(f"Thread count must be at least 1, got {threads}")

    factory = _resolve_backend(backend_name)
    context = BackendContext(properties=properties, settings=settings, threads=threads)
    recorder = MeasurementRecorder()
    state = SharedWorkloadState.from_properties(properties)
    stop_event = threading.Event()

    workers: List[_Worker] = []
    for index, operations in enumerate(_split_operations(total_ops, threads)):
        rng = random.Random(config.seed + index) if config.seed is not None else None
        engine = WorkloadEngine(properties, factory(context), recorder, state, stop_event, rng)
        workers.append(_Worker(index, engine, config.phase, operations, target / threads, stop_event))

    label = f"{config.phase}:{backend_name}"
    log.info(
        f"[PHASE START] {label}",
        extra={
            "phase": config.phase,
            "backend": backend_name,
            "threads": threads,
            "operations": total_ops,
            "target_ops_per_sec": target,
        },
    )

    timer: Optional[threading.Timer] = None
    if config.max_execution_seconds:
        timer = threading.Timer(config.max_execution_seconds, stop_event.set)
        timer.daemon = True

    with profile_block(label) as stats:
        if timer is not None:
            timer.start()
        for worker in workers:
            worker.start()
        try:
            _join_all(workers, stop_event)
        finally:
            if timer is not None:
                timer.cancel()

    completed = sum(w.completed for w in workers)
    failed = sum(w.failed for w in workers)
    worker_errors = {w.name: w.error for w in workers if w.error}
    duration = stats.duration_seconds
    result = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "phase": config.phase,
        "backend": backend_name,
        "threads": threads,
        "operations": completed,
        "failed_operations": failed,
        "requested_operations": total_ops,
        "duration_seconds": round(duration, 3),
        "throughput_ops_per_sec": round(completed / duration, 2) if duration > 0 else 0.0,
        "target_ops_per_sec": target,
        "run_start_time": state.run_start_time,
        "stopped_early": stop_event.is_set() and completed < total_ops,
        "worker_errors": worker_errors,
        "profile": stats.as_dict(),
        "measurements": recorder.snapshot(),
        "properties": properties.model_dump(by_alias=True, mode="json"),
    }

    if config.persist:
        _persist_results(result, Path(config.results_dir or settings.results_dir))

    log.info(
        f"[PHASE COMPLETE] {label}",
        extra={
            "operations": completed,
            "failed": failed,
            "duration": result["duration_seconds"],
            "throughput_ops": result["throughput_ops_per_sec"],
        },
    )
    return result


__all__ = [
    "RunConfig",
    "available_backends",
    "run_workload",
]
