"""
Workload package.

Key/value synthesis, operation scheduling, shard admission, integrity checks
and the per-worker engine that drives them.
"""

from iotbench.workload.engine import SharedWorkloadState, WorkloadEngine, window_average
from iotbench.workload.integrity import IntegrityVerifier
from iotbench.workload.properties import (
    WorkloadProperties,
    load_from_sources,
    load_workload_properties,
    parse_overrides,
)
from iotbench.workload.router import ClusterTopology, admit
from iotbench.workload.scheduler import create_operation_chooser
from iotbench.workload.synthesizer import SENSOR_CATALOG, KeyValueSynthesizer, PayloadFactory

__all__ = [
    "ClusterTopology",
    "IntegrityVerifier",
    "KeyValueSynthesizer",
    "PayloadFactory",
    "SENSOR_CATALOG",
    "SharedWorkloadState",
    "WorkloadEngine",
    "WorkloadProperties",
    "admit",
    "create_operation_chooser",
    "load_from_sources",
    "load_workload_properties",
    "parse_overrides",
    "window_average",
]
