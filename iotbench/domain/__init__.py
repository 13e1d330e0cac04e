"""
Domain package for the IoT workload harness.

Exports the value objects and the error hierarchy shared by the workload
engine, measurements and backends. Keep this package free of I/O.
"""

from iotbench.domain.errors import BackendError, IotBenchError, WorkloadConfigError
from iotbench.domain.models import (
    ClientId,
    FieldMap,
    MeasurementSample,
    Operation,
    RecordKey,
    Status,
    VerificationOutcome,
)

__all__ = [
    "BackendError",
    "ClientId",
    "FieldMap",
    "IotBenchError",
    "MeasurementSample",
    "Operation",
    "RecordKey",
    "Status",
    "VerificationOutcome",
    "WorkloadConfigError",
]
