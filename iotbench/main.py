from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import List, Optional

import typer

from iotbench.config import get_settings
from iotbench.domain.errors import IotBenchError
from iotbench.orchestrator import RunConfig, available_backends, run_workload
from iotbench.reporter import print_results
from iotbench.utils.logging import configure_logging
from iotbench.workload.properties import parse_overrides

app = typer.Typer(help="IoT time-series workload harness CLI.")


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"backend={settings.benchmark_backend} threads={settings.benchmark_threads} "
        f"operations={settings.benchmark_operations} target={settings.benchmark_target_ops or 'unthrottled'} "
        f"properties={settings.workload_properties or '-'}"
    )


@app.command()
def backends() -> None:
    """
    List registered storage backends.
    """
    typer.echo("Available backends: " + ", ".join(available_backends()))


def _execute(
    phase: str,
    backend: Optional[str],
    threads: Optional[int],
    operations: Optional[int],
    target: Optional[float],
    max_seconds: Optional[float],
    properties: Optional[Path],
    overrides: List[str],
    seed: Optional[int],
    json_logs: bool,
    no_persist: bool,
    as_json: bool,
) -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=json_logs or settings.log_json)

    try:
        config = RunConfig(
            phase=phase,
            backend=backend,
            threads=threads,
            operation_count=operations,
            target_ops_per_sec=target,
            max_execution_seconds=max_seconds,
            properties_path=str(properties) if properties else None,
            overrides=parse_overrides(overrides),
            persist=not no_persist,
            seed=seed,
        )
        result = run_workload(config)
    except IotBenchError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    if as_json:
        typer.echo(json.dumps(result, indent=2, default=str))
    else:
        print_results(result)


_BACKEND = typer.Option(None, "--backend", "-b", help="Storage backend (see `backends`).")
_THREADS = typer.Option(None, "--threads", "-t", help="Worker threads (default BENCHMARK_THREADS).")
_OPERATIONS = typer.Option(None, "--operations", "-n", help="Total operations (default BENCHMARK_OPERATIONS).")
_TARGET = typer.Option(None, "--target", help="Target ops/sec across all workers; 0 = unthrottled.")
_MAX_SECONDS = typer.Option(None, "--max-seconds", help="Stop after this many seconds.")
_PROPERTIES = typer.Option(None, "--properties", "-P", help="Workload properties file.")
_SET = typer.Option([], "--set", "-p", help="Override a workload property, name=value. Repeatable.")
_SEED = typer.Option(None, "--seed", help="Seed every worker for a reproducible run.")
_JSON_LOGS = typer.Option(False, "--json-logs", help="Emit structured JSON logs.")
_NO_PERSIST = typer.Option(False, "--no-persist", help="Do not write results/*.json.")
_AS_JSON = typer.Option(False, "--json", help="Print the result as JSON instead of tables.")


@app.command()
def load(
    backend: Optional[str] = _BACKEND,
    threads: Optional[int] = _THREADS,
    operations: Optional[int] = _OPERATIONS,
    target: Optional[float] = _TARGET,
    max_seconds: Optional[float] = _MAX_SECONDS,
    properties: Optional[Path] = _PROPERTIES,
    overrides: List[str] = _SET,
    seed: Optional[int] = _SEED,
    json_logs: bool = _JSON_LOGS,
    no_persist: bool = _NO_PERSIST,
    as_json: bool = _AS_JSON,
) -> None:
    """
    Load phase: insert records from the load sequence.
    """
    _execute("load", backend, threads, operations, target, max_seconds, properties, overrides, seed, json_logs, no_persist, as_json)


@app.command()
def run(
    backend: Optional[str] = _BACKEND,
    threads: Optional[int] = _THREADS,
    operations: Optional[int] = _OPERATIONS,
    target: Optional[float] = _TARGET,
    max_seconds: Optional[float] = _MAX_SECONDS,
    properties: Optional[Path] = _PROPERTIES,
    overrides: List[str] = _SET,
    seed: Optional[int] = _SEED,
    json_logs: bool = _JSON_LOGS,
    no_persist: bool = _NO_PERSIST,
    as_json: bool = _AS_JSON,
) -> None:
    """
    Transaction phase: issue the configured operation mix.
    """
    _execute("run", backend, threads, operations, target, max_seconds, properties, overrides, seed, json_logs, no_persist, as_json)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
