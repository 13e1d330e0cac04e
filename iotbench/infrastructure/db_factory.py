"""
PostgreSQL connection pool for the workload workers.

Every PostgreSQL backend instance checks one connection out of a single
process-wide pool for the whole phase, so the pool is sized to the worker
count. ``PoolManager`` owns that pool, grows it when a later phase asks for
more workers and closes it at interpreter exit.

Opening the pool waits for the first connection and retries transient
failures with tenacity before giving up with ``BackendError``.
"""

from __future__ import annotations

import atexit
import threading
from typing import Optional

import psycopg
from psycopg_pool import ConnectionPool, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from iotbench.config import Settings, get_settings
from iotbench.domain.errors import BackendError
from iotbench.utils.logging import get_logger

log = get_logger(__name__)

POOL_OPEN_TIMEOUT_SECONDS = 10.0


def build_dsn(settings: Optional[Settings] = None) -> str:
    """``postgresql://`` URL for the configured database."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(PoolTimeout),
    reraise=True,
)
def _open_pool(conninfo: str, min_size: int, max_size: int) -> ConnectionPool:
    pool = ConnectionPool(conninfo=conninfo, min_size=min_size, max_size=max_size, open=True)
    try:
        pool.wait(timeout=POOL_OPEN_TIMEOUT_SECONDS)
    except PoolTimeout:
        pool.close()
        log.warning("PostgreSQL not reachable yet, retrying", extra={"max_size": max_size})
        raise
    return pool


class PoolManager:
    """Process-wide owner of the worker connection pool (singleton)."""

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._pool: Optional[ConnectionPool] = None
                atexit.register(cls._instance.close_all)
            return cls._instance

    def get_pool(self, min_size: int = 1, max_size: int = 10) -> ConnectionPool:
        """
        Return the pool, opening it on first use.

        Parameters
        ----------
        min_size : int
            Connections kept open while idle.
        max_size : int
            Upper bound on connections; pass the worker count. An open pool
            smaller than this is resized in place.

        Raises
        ------
        BackendError
            If no connection could be made after retrying.
        """
        max_size = max(min_size, max_size)
        with self._lock:
            if self._pool is None:
                try:
                    self._pool = _open_pool(build_dsn(), min_size, max_size)
                except PoolTimeout as exc:
                    settings = get_settings()
                    raise BackendError(
                        f"Could not connect to PostgreSQL at {settings.db_host}:{settings.db_port}/{settings.db_name}: {exc}"
                    ) from exc
                log.info("Connection pool opened", extra={"min_size": min_size, "max_size": max_size})
            elif self._pool.max_size < max_size:
                self._pool.resize(min_size=self._pool.min_size, max_size=max_size)
                log.info("Connection pool resized", extra={"max_size": max_size})
            return self._pool

    def close_all(self) -> None:
        """Close the pool. Registered with ``atexit``; safe to call twice."""
        with self._lock:
            if self._pool is None:
                return
            try:
                self._pool.close()
            except psycopg.Error as exc:
                log.warning("Connection pool did not close cleanly", extra={"error": str(exc)})
            finally:
                self._pool = None


def get_sync_pool(min_size: int = 1, max_size: int = 10) -> ConnectionPool:
    """Shared worker pool, see ``PoolManager.get_pool``."""
    return PoolManager().get_pool(min_size=min_size, max_size=max_size)


__all__ = [
    "PoolManager",
    "build_dsn",
    "get_sync_pool",
]
