"""
Insert-sequence counters.

Both counters are shared by every worker of a run and are safe to call
concurrently.
"""

from __future__ import annotations

import threading
from typing import Optional

from iotbench.generators.base import NumberGenerator

ACKNOWLEDGE_WINDOW_SIZE = 1 << 20


class CounterGenerator(NumberGenerator):
    """Monotonic counter starting at ``start``; ``next()`` never loses an update."""

    def __init__(self, start: int) -> None:
        super().__init__()
        self.start = int(start)
        self._counter = self.start
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            value = self._counter
            self._counter += 1
            self._last = value
        return value

    def last(self) -> Optional[int]:
        with self._lock:
            return self._counter - 1

    def mean(self) -> float:
        """Mean of the values handed out so far (``start`` before the first call)."""
        with self._lock:
            if self._counter == self.start:
                return float(self.start)
            return (self.start + self._counter - 1) / 2


class AcknowledgedCounterGenerator(CounterGenerator):
    """
    Counter whose ``last()`` only moves past values that were acknowledged.

    Values are handed out by ``next()`` and reported back through
    ``acknowledge()`` once the corresponding insert finished. ``last()`` is the
    highest value below which every handed-out value has been acknowledged, so
    readers never select a record that may not exist yet.

    At most ``window_size`` values may be outstanding at once.
    """

    def __init__(self, start: int, window_size: int = ACKNOWLEDGE_WINDOW_SIZE) -> None:
        if window_size <= 0 or window_size & (window_size - 1):
            raise ValueError(f"Acknowledge window must be a power of two, got {window_size}")
        super().__init__(start)
        self._window = bytearray(window_size)
        self._mask = window_size - 1
        self._limit = self.start - 1
        self._ack_lock = threading.Lock()

    def last(self) -> int:
        return self._limit

    def acknowledge(self, value: int) -> None:
        with self._ack_lock:
            if value <= self._limit:
                return
            slot = value & self._mask
            if self._window[slot]:
                raise RuntimeError("Too many unacknowledged insertion keys.")
            self._window[slot] = 1

            index = self._limit + 1
            while self._window[index & self._mask]:
                self._window[index & self._mask] = 0
                index += 1
            self._limit = index - 1


__all__ = ["AcknowledgedCounterGenerator", "CounterGenerator", "ACKNOWLEDGE_WINDOW_SIZE"]
