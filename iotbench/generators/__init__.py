"""
Distribution generators package.

Re-exports the samplers used to pick field lengths, scan lengths, key numbers,
sensors and operations, so callers can import from `iotbench.generators`.
"""

from iotbench.generators.base import Generator, NumberGenerator
from iotbench.generators.counter import AcknowledgedCounterGenerator, CounterGenerator
from iotbench.generators.discrete import DiscreteGenerator
from iotbench.generators.factory import build_number_generator
from iotbench.generators.histogram import HistogramGenerator
from iotbench.generators.numeric import (
    ConstantGenerator,
    ExponentialGenerator,
    UniformIntegerGenerator,
    UniformLongGenerator,
    ZipfianGenerator,
)

__all__ = [
    "AcknowledgedCounterGenerator",
    "ConstantGenerator",
    "CounterGenerator",
    "DiscreteGenerator",
    "ExponentialGenerator",
    "Generator",
    "HistogramGenerator",
    "NumberGenerator",
    "UniformIntegerGenerator",
    "UniformLongGenerator",
    "ZipfianGenerator",
    "build_number_generator",
]
