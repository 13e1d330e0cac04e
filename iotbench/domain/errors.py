"""
Exception hierarchy for the IoT workload harness.

Only configuration and startup problems are fatal; per-record failures are
reported as statuses and never raised through the worker loop.
"""
from __future__ import annotations


class IotBenchError(Exception):
    """Base class for harness errors."""


class WorkloadConfigError(IotBenchError, ValueError):
    """Invalid or missing workload configuration. Fatal at initialization."""


class BackendError(IotBenchError):
    """A storage backend could not be started or shut down cleanly."""


__all__ = ["BackendError", "IotBenchError", "WorkloadConfigError"]
