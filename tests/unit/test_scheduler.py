from __future__ import annotations

import random
from collections import Counter

import pytest

from iotbench.domain.errors import WorkloadConfigError
from iotbench.domain.models import Operation
from iotbench.workload.scheduler import create_operation_chooser

DRAWS = 20_000
# Chi-square critical value for 2 degrees of freedom at p = 0.0001.
CHI_SQUARE_CRITICAL_DF2 = 18.42


def test_operation_mix_matches_proportions(make_properties) -> None:
    props = make_properties(
        insertproportion=0.5, readproportion=0.3, scanproportion=0.2, dataintegrity=False
    )
    chooser = create_operation_chooser(props, rng=random.Random(7))

    counts = Counter(chooser.next() for _ in range(DRAWS))
    expected = {"INSERT": 0.5, "READ": 0.3, "SCAN": 0.2}

    assert set(counts) == set(expected)
    chi_square = sum(
        (counts[name] - DRAWS * share) ** 2 / (DRAWS * share) for name, share in expected.items()
    )
    assert chi_square < CHI_SQUARE_CRITICAL_DF2


def test_zero_proportions_are_never_scheduled(make_properties) -> None:
    props = make_properties(insertproportion=0, scanproportion=0, readmodifywriteproportion=1)
    chooser = create_operation_chooser(props, rng=random.Random(1))

    assert {chooser.next() for _ in range(1_000)} == {Operation.READ_MODIFY_WRITE.value}


def test_missing_configuration_raises() -> None:
    with pytest.raises(WorkloadConfigError):
        create_operation_chooser(None)


def test_all_zero_proportions_raise(make_properties) -> None:
    props = make_properties(insertproportion=0, scanproportion=0)
    with pytest.raises(WorkloadConfigError, match="positive"):
        create_operation_chooser(props)


def test_only_schedulable_operations_are_produced(make_properties) -> None:
    props = make_properties(
        insertproportion=1,
        readproportion=1,
        updateproportion=1,
        scanproportion=1,
        readmodifywriteproportion=1,
    )
    chooser = create_operation_chooser(props, rng=random.Random(3))

    seen = {Operation(chooser.next()) for _ in range(2_000)}
    assert seen == {op for op in Operation if op.schedulable}
