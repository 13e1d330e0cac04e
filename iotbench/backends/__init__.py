"""
Storage backends package.

Re-exports the backend contract, the dual-window result and the shipped
adapters so downstream code can import from `iotbench.backends` directly.
"""

from iotbench.backends.abstract import (
    AbstractStorageBackend,
    DualWindowResult,
    StorageBackend,
    project_fields,
)
from iotbench.backends.memory import MemoryBackend, MemoryStore
from iotbench.backends.postgres import PostgresBackend

__all__ = [
    # Abstracts
    "AbstractStorageBackend",
    "DualWindowResult",
    "StorageBackend",
    "project_fields",
    # Concrete backends
    "MemoryBackend",
    "MemoryStore",
    "PostgresBackend",
]
