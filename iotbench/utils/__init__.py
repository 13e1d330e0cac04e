"""
Utilities package for the IoT workload harness.

Exports shared helpers for logging and profiling.
Keep this package lightweight and free of workload-specific logic.
"""

from iotbench.utils.logging import configure_logging, get_logger
from iotbench.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
