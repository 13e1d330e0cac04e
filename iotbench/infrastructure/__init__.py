"""
Infrastructure package for the IoT workload harness.

Owns database connectivity (DSN, the shared worker pool). Keep this layer
focused on I/O and resource management, decoupled from workload logic.
"""

from iotbench.infrastructure.db_factory import PoolManager, build_dsn, get_sync_pool

__all__ = [
    "PoolManager",
    "build_dsn",
    "get_sync_pool",
]
