"""
Pytest configuration for the IoT workload harness.

Provides fixtures for:
- Settings and DSN for the PostgreSQL integration tests
- Database connection management
- Workload properties, a shared in-memory store and engine construction
"""

from __future__ import annotations

import os
import random
import threading
from typing import Callable, Generator

import psycopg
import pytest

from iotbench.backends.memory import MemoryBackend, MemoryStore
from iotbench.config import Settings, get_settings
from iotbench.measurements.recorder import MeasurementRecorder
from iotbench.workload.engine import SharedWorkloadState, WorkloadEngine
from iotbench.workload.properties import WorkloadProperties, load_workload_properties

TEST_SEED = 20240611
TEST_INSERT_START = 1_000_000


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        DB_HOST=os.getenv("DB_HOST", "localhost"),
        DB_PORT=int(os.getenv("DB_PORT", "5432")),
        DB_USER=os.getenv("DB_USER", "postgres"),
        DB_PASSWORD=os.getenv("DB_PASSWORD", "postgres"),
        DB_NAME=os.getenv("DB_NAME", "iotbench"),
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except Exception:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped autocommit connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(autouse=True)
def _fresh_settings_cache() -> Generator[None, None, None]:
    """Environment changes made by a test must not leak through the settings cache."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(TEST_SEED)


@pytest.fixture
def make_properties() -> Callable[..., WorkloadProperties]:
    """
    Build validated properties from property-name keyword overrides.

    ``insertstart`` is pinned so tests never depend on the wall clock.
    """

    def _make(**overrides: object) -> WorkloadProperties:
        values = {"insertstart": TEST_INSERT_START, "fieldlength": 64}
        values.update({name.replace("__", "."): value for name, value in overrides.items()})
        return load_workload_properties(values)

    return _make


@pytest.fixture
def properties(make_properties: Callable[..., WorkloadProperties]) -> WorkloadProperties:
    return make_properties()


@pytest.fixture
def recorder() -> MeasurementRecorder:
    return MeasurementRecorder()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def make_engine(
    recorder: MeasurementRecorder, memory_store: MemoryStore
) -> Callable[..., WorkloadEngine]:
    """
    Build a seeded engine. Without an explicit backend the engine writes to
    the shared ``memory_store``.
    """

    def _make(
        properties: WorkloadProperties,
        backend=None,
        state: SharedWorkloadState = None,
        stop_event: threading.Event = None,
        seed: int = TEST_SEED,
    ) -> WorkloadEngine:
        return WorkloadEngine(
            properties,
            backend if backend is not None else MemoryBackend(memory_store, rng=random.Random(seed)),
            recorder,
            state if state is not None else SharedWorkloadState.from_properties(properties, run_start_time=0),
            stop_event,
            random.Random(seed),
        )

    return _make
