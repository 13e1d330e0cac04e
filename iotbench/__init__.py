"""
iotbench - Load generation and measurement harness for time-series/IoT stores.

This package drives a reproducible IoT workload against a pluggable storage
backend, including:

- Sensor-keyed inserts with deterministic, verifiable payloads
- Point reads, updates and read-modify-write with integrity checks
- Dual-window (recent vs. historical) scans with running averages
- Shard/overflow admission across a fixed cluster topology

Every backend call is timed (service latency and latency from the intended
start time) into HDR histograms, and failed inserts are retried with bounded,
jittered, cancellable backoff.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from iotbench.backends.abstract import AbstractStorageBackend, DualWindowResult, StorageBackend
from iotbench.config import Settings, get_settings
from iotbench.domain.errors import BackendError, IotBenchError, WorkloadConfigError
from iotbench.domain.models import Operation, RecordKey, Status
from iotbench.measurements.recorder import MeasurementRecorder
from iotbench.orchestrator import RunConfig, available_backends, run_workload
from iotbench.utils.logging import configure_logging, get_logger
from iotbench.utils.profiler import ProfileStats, profile_block
from iotbench.workload.engine import SharedWorkloadState, WorkloadEngine
from iotbench.workload.properties import WorkloadProperties, load_workload_properties

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    "WorkloadProperties",
    "load_workload_properties",
    # Orchestration
    "RunConfig",
    "available_backends",
    "run_workload",
    # Workload
    "SharedWorkloadState",
    "WorkloadEngine",
    "MeasurementRecorder",
    # Backend abstractions
    "AbstractStorageBackend",
    "DualWindowResult",
    "StorageBackend",
    # Domain
    "Operation",
    "RecordKey",
    "Status",
    "BackendError",
    "IotBenchError",
    "WorkloadConfigError",
    # Logging
    "configure_logging",
    "get_logger",
    # Profiling
    "ProfileStats",
    "profile_block",
]
