"""
Generator interfaces.

A generator produces the next value of a sequence under some statistical law.
``next()`` advances and returns; ``last()`` returns the most recent value
without advancing (``None`` before the first call).

Generators are not thread-safe unless stated otherwise. The engine keeps one
instance per logical role inside a worker; workload-wide generators (counters,
the discrete chooser) serialize access themselves.
"""

from __future__ import annotations

import abc
import random
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class Generator(abc.ABC, Generic[T]):
    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()
        self._last: Optional[T] = None

    @abc.abstractmethod
    def next(self) -> T:  # pragma: no cover - interface only
        """Advance the sequence and return the new value."""
        raise NotImplementedError

    def last(self) -> Optional[T]:
        return self._last

    def _emit(self, value: T) -> T:
        self._last = value
        return value


class NumberGenerator(Generator[int]):
    """Generator of integers with a known (or estimated) mean."""

    @abc.abstractmethod
    def mean(self) -> float:  # pragma: no cover - interface only
        raise NotImplementedError


__all__ = ["Generator", "NumberGenerator"]
