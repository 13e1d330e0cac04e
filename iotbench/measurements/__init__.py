"""
Measurements package: the latency recorder and the instrumented backend proxy.
"""

from iotbench.measurements.proxy import InstrumentedBackend
from iotbench.measurements.recorder import (
    LatencySummary,
    MeasurementRecorder,
    MeasurementSnapshot,
    summarize,
)

__all__ = [
    "InstrumentedBackend",
    "LatencySummary",
    "MeasurementRecorder",
    "MeasurementSnapshot",
    "summarize",
]
