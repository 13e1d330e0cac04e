"""
Storage backend interfaces and result contracts.

The workload engine depends only on ``StorageBackend``. Concrete adapters
(in-memory, PostgreSQL, ...) usually subclass ``AbstractStorageBackend``,
implement the single-record calls plus ``scan_window`` and inherit the
dual-window scan.

Keys are passed as rendered ``client:sensor:timestamp`` strings; field maps
are ``Dict[str, bytes]``. Calls report problems through the returned
``Status``; raising is reserved for ``init``/``cleanup`` failures.
"""

from __future__ import annotations

import abc
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from iotbench.backends.windows import (
    HISTORICAL_FALLBACK_OFFSET,
    RECENT_WINDOW_WIDTH,
    Window,
    historical_window,
    recent_window,
)
from iotbench.domain.models import FieldMap, Status
from iotbench.utils.logging import get_logger

log = get_logger(__name__)

FieldFilter = Optional[Sequence[str]]


@dataclass(frozen=True)
class DualWindowResult:
    """
    Outcome of a dual-window scan.

    ``status`` is the outcome of the recent-window query and decides success
    of the whole call. ``historical_status`` reports the second query on its
    own; a failed second query leaves ``historical`` empty.
    """

    status: Status
    recent: List[FieldMap] = field(default_factory=list)
    historical: List[FieldMap] = field(default_factory=list)
    historical_status: Status = Status.OK
    recent_window: Optional[Window] = None
    historical_window: Optional[Window] = None

    @property
    def result_count_outcome(self) -> str:
        if self.recent and self.historical:
            return "complete"
        if self.historical:
            return "recent-empty"
        if self.recent:
            return "historical-empty"
        return "both-empty"


@runtime_checkable
class StorageBackend(Protocol):
    """
    Contract every storage adapter satisfies.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    """

    name: str

    def init(self) -> None:
        ...

    def cleanup(self) -> None:
        ...

    def insert(self, table: str, key: str, values: FieldMap) -> Status:
        ...

    def read(self, table: str, key: str, fields: FieldFilter = None) -> Tuple[Status, FieldMap]:
        ...

    def update(self, table: str, key: str, values: FieldMap) -> Status:
        ...

    def delete(self, table: str, key: str) -> Status:
        ...

    def scan(
        self, table: str, start_key: str, limit: int, fields: FieldFilter = None
    ) -> Tuple[Status, List[FieldMap]]:
        """Up to ``limit`` records at or after ``start_key`` in backend order."""
        ...

    def dual_window_scan(
        self,
        table: str,
        sensor: str,
        client: str,
        reference_timestamp: int,
        run_start_time: int,
        fields: FieldFilter = None,
    ) -> DualWindowResult:
        ...


class AbstractStorageBackend(abc.ABC):
    """
    ABC helper for adapters.

    Subclasses set ``name`` and implement the record calls and
    ``scan_window``; ``dual_window_scan`` is built on top of ``scan_window``.

    Parameters
    ----------
    window_width : int
        Width of both scan windows, in timestamp units.
    historical_offset : int
        Distance back from the reference timestamp used as the historical
        base when no run start time is known.
    rng : random.Random | None
        Source for the historical window jitter.
    """

    name: str

    def __init__(
        self,
        window_width: int = RECENT_WINDOW_WIDTH,
        historical_offset: int = HISTORICAL_FALLBACK_OFFSET,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.window_width = window_width
        self.historical_offset = historical_offset
        self._rng = rng or random.Random()

    def init(self) -> None:
        """Acquire per-worker resources. Raise ``BackendError`` on failure."""

    def cleanup(self) -> None:
        """Release per-worker resources and flush pending writes."""

    @abc.abstractmethod
    def insert(self, table: str, key: str, values: FieldMap) -> Status:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def read(
        self, table: str, key: str, fields: FieldFilter = None
    ) -> Tuple[Status, FieldMap]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def update(self, table: str, key: str, values: FieldMap) -> Status:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, table: str, key: str) -> Status:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def scan(
        self, table: str, start_key: str, limit: int, fields: FieldFilter = None
    ) -> Tuple[Status, List[FieldMap]]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def scan_window(
        self,
        table: str,
        sensor: str,
        client: str,
        start: int,
        end: int,
        fields: FieldFilter = None,
    ) -> Tuple[Status, List[FieldMap]]:  # pragma: no cover - interface only
        """Records of ``client:sensor`` with ``start <= timestamp <= end``."""
        raise NotImplementedError

    def dual_window_scan(
        self,
        table: str,
        sensor: str,
        client: str,
        reference_timestamp: int,
        run_start_time: int,
        fields: FieldFilter = None,
    ) -> DualWindowResult:
        recent_bounds = recent_window(reference_timestamp, self.window_width)
        status, recent = self.scan_window(table, sensor, client, *recent_bounds, fields)
        if not status.is_ok:
            return DualWindowResult(status=status, recent_window=recent_bounds)

        historical_bounds = historical_window(
            reference_timestamp,
            run_start_time,
            width=self.window_width,
            fallback_offset=self.historical_offset,
            rng=self._rng,
        )
        historical_status, historical = self.scan_window(table, sensor, client, *historical_bounds, fields)
        if not historical_status.is_ok:
            log.warning(
                "Historical window query failed",
                extra={
                    "backend": self.name,
                    "sensor": sensor,
                    "client": client,
                    "window": list(historical_bounds),
                    "status": historical_status.name,
                },
            )
            historical = []

        return DualWindowResult(
            status=status,
            recent=list(recent),
            historical=list(historical),
            historical_status=historical_status,
            recent_window=recent_bounds,
            historical_window=historical_bounds,
        )


def project_fields(values: Dict[str, bytes], fields: FieldFilter) -> FieldMap:
    """Restrict ``values`` to ``fields`` (all fields when None)."""
    if fields is None:
        return dict(values)
    return {name: values[name] for name in fields if name in values}


__all__ = [
    "AbstractStorageBackend",
    "DualWindowResult",
    "FieldFilter",
    "StorageBackend",
    "project_fields",
]
