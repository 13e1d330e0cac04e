"""
Arbitrary discrete distribution loaded from weighted buckets.

File format::

    BlockSize<TAB>10
    0<TAB>5
    1<TAB>20
    ...

Bucket ``i`` with count ``c`` is chosen with probability ``c / total`` and
yields ``(i + 1) * block_size``.
"""

from __future__ import annotations

import bisect
import itertools
import random
from pathlib import Path
from typing import List, Optional, Sequence

from iotbench.generators.base import NumberGenerator


class HistogramGenerator(NumberGenerator):
    def __init__(
        self,
        buckets: Sequence[int],
        block_size: int = 1,
        rng: Optional[random.Random] = None,
    ) -> None:
        if block_size <= 0:
            raise ValueError(f"Histogram block size must be positive, got {block_size}")
        if any(count < 0 for count in buckets):
            raise ValueError("Histogram bucket counts must be non-negative")
        area = sum(buckets)
        if area <= 0:
            raise ValueError("Histogram has no weight")
        super().__init__(rng)
        self.block_size = block_size
        self.buckets: List[int] = list(buckets)
        self._area = area
        self._weighted_area = sum(i * count for i, count in enumerate(self.buckets))
        self._cumulative = list(itertools.accumulate(self.buckets))

    @classmethod
    def from_file(cls, path: Path | str, rng: Optional[random.Random] = None) -> "HistogramGenerator":
        """
        Load a histogram file.

        Raises
        ------
        OSError
            If the file cannot be read.
        ValueError
            If the header or a bucket line is malformed.
        """
        lines = [
            line.strip()
            for line in Path(path).read_text(encoding="utf-8").splitlines()
            if line.strip() and not line.lstrip().startswith("#")
        ]
        if not lines:
            raise ValueError(f"Histogram file {path} is empty")
        header = lines[0].split("\t")
        if len(header) != 2 or header[0] != "BlockSize":
            raise ValueError(f"First line of {path} must be 'BlockSize<TAB>n', got {lines[0]!r}")
        block_size = int(header[1])

        counts: dict[int, int] = {}
        for line in lines[1:]:
            bucket, _, count = line.partition("\t")
            counts[int(bucket)] = int(count)
        size = max(counts) + 1 if counts else 0
        buckets = [counts.get(i, 0) for i in range(size)]
        return cls(buckets, block_size=block_size, rng=rng)

    def next(self) -> int:
        number = self._rng.randrange(self._area)
        index = bisect.bisect_right(self._cumulative, number)
        return self._emit((index + 1) * self.block_size)

    def mean(self) -> float:
        return self._weighted_area * self.block_size / self._area


__all__ = ["HistogramGenerator"]
