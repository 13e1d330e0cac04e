"""Weighted operation chooser built from the workload proportions."""
from __future__ import annotations

import random
from typing import Optional

from iotbench.domain.errors import WorkloadConfigError
from iotbench.domain.models import Operation
from iotbench.generators.discrete import DiscreteGenerator
from iotbench.workload.properties import WorkloadProperties


def create_operation_chooser(
    properties: Optional[WorkloadProperties],
    rng: Optional[random.Random] = None,
) -> DiscreteGenerator:
    """
    Build the operation chooser.

    Only operations with a positive proportion are selectable. The generator
    yields ``Operation`` values (``"INSERT"``, ``"READ-MODIFY-WRITE"``, ...).

    Raises
    ------
    WorkloadConfigError
        If ``properties`` is None or no operation has a positive proportion.
    """
    if properties is None:
        raise WorkloadConfigError("Operation proportions are not configured")

    chooser = DiscreteGenerator(rng=rng)
    for name, weight in properties.proportions().items():
        chooser.add_value(weight, Operation(name).value)

    if not chooser.values:
        raise WorkloadConfigError("At least one operation proportion must be positive")
    return chooser


__all__ = ["create_operation_chooser"]
