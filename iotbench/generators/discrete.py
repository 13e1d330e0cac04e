from __future__ import annotations

import random
import threading
from typing import Dict, List, Optional, Tuple

from iotbench.generators.base import Generator


class DiscreteGenerator(Generator[str]):
    """
    Weighted chooser over a fixed set of string values.

    Weights need not sum to one. Values added with a zero or negative weight
    are never returned. Shared by all workers, so sampling takes a lock.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        super().__init__(rng)
        self._values: List[Tuple[float, str]] = []
        self._total = 0.0
        self._lock = threading.Lock()

    def add_value(self, weight: float, value: str) -> None:
        if weight <= 0:
            return
        with self._lock:
            self._values.append((float(weight), value))
            self._total += float(weight)

    @property
    def values(self) -> Dict[str, float]:
        """Normalized probability per selectable value."""
        return {value: weight / self._total for weight, value in self._values}

    def next(self) -> str:
        with self._lock:
            if not self._values:
                raise ValueError("DiscreteGenerator has no selectable values")
            chooser = self._rng.random() * self._total
            for weight, value in self._values:
                if chooser < weight:
                    self._last = value
                    return value
                chooser -= weight
            # Float rounding can leave a sliver past the last bucket.
            value = self._values[-1][1]
            self._last = value
            return value


__all__ = ["DiscreteGenerator"]
