"""
Numeric distribution generators: constant, uniform, zipfian and exponential.

The zipfian sampler follows Gray et al., "Quickly Generating Billion-Record
Synthetic Databases" (SIGMOD 1994), the same algorithm used by the YCSB
reference client.
"""

from __future__ import annotations

import math
import random
from typing import Optional

from iotbench.generators.base import NumberGenerator

ZIPFIAN_CONSTANT = 0.99

EXPONENTIAL_PERCENTILE_DEFAULT = 95.0
EXPONENTIAL_FRAC_DEFAULT = 0.8571428571

_LONG_MIN = -(2**63)
_LONG_MAX = 2**63 - 1


class ConstantGenerator(NumberGenerator):
    def __init__(self, value: int) -> None:
        super().__init__()
        self._value = int(value)

    def next(self) -> int:
        return self._emit(self._value)

    def mean(self) -> float:
        return float(self._value)


class UniformIntegerGenerator(NumberGenerator):
    """Uniform integers in ``[lower, upper]`` (both inclusive)."""

    def __init__(self, lower: int, upper: int, rng: Optional[random.Random] = None) -> None:
        if upper < lower:
            raise ValueError(f"Empty uniform range [{lower}, {upper}]")
        super().__init__(rng)
        self.lower = int(lower)
        self.upper = int(upper)

    def next(self) -> int:
        return self._emit(self._rng.randint(self.lower, self.upper))

    def mean(self) -> float:
        return (self.lower + self.upper) / 2.0


class UniformLongGenerator(UniformIntegerGenerator):
    """Uniform generator over a key space, bounded to signed 64-bit values."""

    def __init__(self, lower: int, upper: int, rng: Optional[random.Random] = None) -> None:
        if lower < _LONG_MIN or upper > _LONG_MAX:
            raise ValueError(f"Range [{lower}, {upper}] exceeds the signed 64-bit key space")
        super().__init__(lower, upper, rng)


class ZipfianGenerator(NumberGenerator):
    """
    Zipfian integers in ``[lower, upper]``; small values are the popular ones.

    Parameters
    ----------
    lower, upper : int
        Inclusive bounds.
    zipfian_constant : float
        Skew (theta). 0.99 matches the usual YCSB setting.
    """

    def __init__(
        self,
        lower: int,
        upper: int,
        zipfian_constant: float = ZIPFIAN_CONSTANT,
        rng: Optional[random.Random] = None,
    ) -> None:
        if upper < lower:
            raise ValueError(f"Empty zipfian range [{lower}, {upper}]")
        super().__init__(rng)
        self.base = int(lower)
        self.items = int(upper) - int(lower) + 1
        self.theta = zipfian_constant
        self._alpha = 1.0 / (1.0 - self.theta)
        self._zeta_n = self.zeta(self.items, self.theta)
        self._zeta_2 = self.zeta(2, self.theta)
        if self.items > 1:
            self._eta = (1.0 - (2.0 / self.items) ** (1.0 - self.theta)) / (
                1.0 - self._zeta_2 / self._zeta_n
            )
        else:
            self._eta = 0.0

    @staticmethod
    def zeta(n: int, theta: float) -> float:
        """Generalized harmonic number H(n, theta)."""
        return sum(1.0 / (i**theta) for i in range(1, n + 1))

    def next(self) -> int:
        u = self._rng.random()
        uz = u * self._zeta_n
        if uz < 1.0:
            return self._emit(self.base)
        if uz < 1.0 + 0.5**self.theta:
            return self._emit(self.base + 1)
        offset = int(self.items * ((self._eta * u - self._eta + 1.0) ** self._alpha))
        return self._emit(self.base + min(offset, self.items - 1))

    def mean(self) -> float:
        # No closed form; the weighted sum is exact and cheap for the item
        # counts used for lengths.
        weights = [1.0 / (i**self.theta) for i in range(1, self.items + 1)]
        return self.base + sum(i * w for i, w in enumerate(weights)) / sum(weights)


class ExponentialGenerator(NumberGenerator):
    """
    Exponentially distributed non-negative integers.

    ``percentile`` percent of the samples are below ``range``. Used to pick
    offsets back from the most recent insert, favouring fresh records.
    """

    def __init__(
        self,
        percentile: float = EXPONENTIAL_PERCENTILE_DEFAULT,
        range: float = 1.0,  # noqa: A002 - property name
        rng: Optional[random.Random] = None,
    ) -> None:
        if not 0 < percentile < 100:
            raise ValueError(f"Exponential percentile must be in (0, 100), got {percentile}")
        if range <= 0:
            raise ValueError(f"Exponential range must be positive, got {range}")
        super().__init__(rng)
        self.gamma = -math.log(1.0 - percentile / 100.0) / range

    @classmethod
    def from_fraction(
        cls,
        percentile: float,
        fraction: float,
        keyspace: int,
        rng: Optional[random.Random] = None,
    ) -> "ExponentialGenerator":
        return cls(percentile, keyspace * fraction, rng=rng)

    def next(self) -> int:
        # 1 - random() is in (0, 1], keeping log() finite.
        return self._emit(int(-math.log(1.0 - self._rng.random()) / self.gamma))

    def mean(self) -> float:
        return 1.0 / self.gamma


__all__ = [
    "ConstantGenerator",
    "ExponentialGenerator",
    "UniformIntegerGenerator",
    "UniformLongGenerator",
    "ZipfianGenerator",
    "EXPONENTIAL_FRAC_DEFAULT",
    "EXPONENTIAL_PERCENTILE_DEFAULT",
    "ZIPFIAN_CONSTANT",
]
