"""Map workload property names onto generator instances."""

from __future__ import annotations

import random
from typing import Optional

from iotbench.domain.errors import WorkloadConfigError
from iotbench.generators.base import NumberGenerator
from iotbench.generators.histogram import HistogramGenerator
from iotbench.generators.numeric import ConstantGenerator, UniformIntegerGenerator, ZipfianGenerator

LENGTH_DISTRIBUTIONS = ("constant", "uniform", "zipfian", "histogram")


def build_number_generator(
    distribution: str,
    lower: int,
    upper: int,
    histogram_file: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> NumberGenerator:
    """
    Build a length generator (field length, scan length).

    ``constant`` always returns ``upper``; ``uniform`` and ``zipfian`` draw from
    ``[lower, upper]``; ``histogram`` loads ``histogram_file``.

    Raises
    ------
    WorkloadConfigError
        Unknown distribution name or unreadable histogram file.
    """
    name = (distribution or "").strip().lower()
    try:
        if name == "constant":
            return ConstantGenerator(upper)
        if name == "uniform":
            return UniformIntegerGenerator(lower, upper, rng=rng)
        if name == "zipfian":
            return ZipfianGenerator(lower, upper, rng=rng)
        if name == "histogram":
            if not histogram_file:
                raise WorkloadConfigError("Histogram distribution requires a histogram file")
            return HistogramGenerator.from_file(histogram_file, rng=rng)
    except WorkloadConfigError:
        raise
    except (OSError, ValueError) as exc:
        raise WorkloadConfigError(f"Cannot build {name} distribution: {exc}") from exc

    raise WorkloadConfigError(
        f'Unknown distribution "{distribution}". Expected one of: {", ".join(LENGTH_DISTRIBUTIONS)}'
    )


__all__ = ["LENGTH_DISTRIBUTIONS", "build_number_generator"]
