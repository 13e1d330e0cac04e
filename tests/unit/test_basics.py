from __future__ import annotations

import json
from time import sleep

import pytest
from pydantic import ValidationError
from rich.console import Console
from typer.testing import CliRunner

from iotbench import config
from iotbench.infrastructure.db_factory import build_dsn
from iotbench.main import app
from iotbench.orchestrator import available_backends
from iotbench.reporter import print_results
from iotbench.utils import profiler

runner = CliRunner()


def test_get_settings_defaults(monkeypatch):
    for name in ("DB_HOST", "DB_PORT", "DB_NAME", "BENCHMARK_BACKEND", "BENCHMARK_THREADS"):
        monkeypatch.delenv(name, raising=False)
    settings = config.get_settings()
    assert settings.db_host == "localhost"
    assert settings.db_port == 5432
    assert settings.db_user == "postgres"
    assert settings.db_name == "iotbench"
    assert settings.benchmark_backend == "memory"
    assert settings.benchmark_threads > 0
    assert settings.benchmark_operations > 0
    assert settings.db_insert_batch_size > 0


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("BENCHMARK_THREADS", "16")
    monkeypatch.setenv("DB_NAME", "tsdb")
    settings = config.get_settings()
    assert settings.benchmark_threads == 16
    assert build_dsn(settings).endswith("/tsdb")


def test_settings_validate_values(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    assert config.get_settings().log_level == "DEBUG"

    config.get_settings.cache_clear()
    monkeypatch.setenv("DB_INSERT_BATCH_SIZE", "0")
    with pytest.raises(ValidationError):
        config.get_settings()


def test_profile_block_measures_time():
    with profiler.profile_block("sleep") as stats:
        sleep(0.05)
    assert stats.duration_seconds >= 0.05
    assert isinstance(stats.cpu_percent, float)
    assert stats.peak_rss_bytes > 0
    assert stats.peak_traced_bytes is None
    assert stats.as_dict()["label"] == "sleep"


def test_profile_block_traces_allocations_when_asked():
    with profiler.profile_block("alloc", enable_tracemalloc=True) as stats:
        blob = [bytes(1024) for _ in range(100)]
    assert blob
    assert stats.peak_traced_bytes > 0


def test_available_backends_contains_known_entries():
    names = available_backends()
    assert names == ["memory", "postgres"]


def test_print_results_renders_tables():
    console = Console(record=True, width=160)
    result = {
        "phase": "run",
        "backend": "memory",
        "threads": 2,
        "operations": 10,
        "failed_operations": 0,
        "duration_seconds": 0.5,
        "throughput_ops_per_sec": 20.0,
        "profile": {"peak_rss_bytes": 10 * 1024 * 1024, "cpu_percent": 12.5},
        "measurements": {
            "latency": {
                "INSERT": {"count": 10, "mean_us": 12.0, "p50_us": 10, "p95_us": 20, "p99_us": 30, "max_us": 40}
            },
            "intended_latency": {"INSERT": {"p99_us": 2_500}},
            "statuses": {"INSERT": {"OK": 10}},
            "result_counts": {"SCAN": {"complete": 1}},
            "verification": {"match": 3, "mismatch": 0, "missing": 0},
        },
    }

    print_results(result, console=console)
    text = console.export_text()

    assert "IoT Workload :: run on memory" in text
    assert "INSERT" in text
    assert "2.50ms" in text
    assert "Dual-window scan results" in text
    assert "Data integrity" in text


def test_print_results_without_result():
    console = Console(record=True)
    print_results(None, console=console)
    assert "No results" in console.export_text()


def test_cli_backends_command():
    result = runner.invoke(app, ["backends"])
    assert result.exit_code == 0
    assert "memory" in result.output


def test_cli_load_command_emits_json(monkeypatch):
    monkeypatch.setattr("iotbench.main.configure_logging", lambda **kwargs: None)
    result = runner.invoke(
        app,
        [
            "load",
            "--backend", "memory",
            "--threads", "2",
            "--operations", "40",
            "--seed", "1",
            "--no-persist",
            "--json",
            "--set", "insertstart=1000",
            "--set", "fieldlength=32",
        ],
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout[result.stdout.index("{"):])
    assert payload["phase"] == "load"
    assert payload["operations"] == 40
    assert payload["measurements"]["latency"]["INSERT"]["count"] == 40


def test_cli_configuration_error_exits_with_code_2(monkeypatch):
    monkeypatch.setattr("iotbench.main.configure_logging", lambda **kwargs: None)
    result = runner.invoke(app, ["run", "--backend", "nope", "--no-persist"])
    assert result.exit_code == 2
