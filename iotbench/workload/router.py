"""
Shard/overflow admission for inserts.

A cluster of ``node_count * instances_per_node`` workers shares an insert
budget. Each worker may insert freely up to ``overflow_threshold`` records;
past that point only the designated overflow ranks keep inserting, so the
tail of the budget lands on a fixed, known subset of workers.

Everything here is a pure function of its arguments.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet

from iotbench.domain.models import ClientId
from iotbench.workload.properties import DEFAULT_OVERFLOW_INSTANCES, WorkloadProperties


@dataclass(frozen=True)
class ClusterTopology:
    node_count: int = 4
    instances_per_node: int = 11
    overflow_ranks: FrozenSet[int] = field(default_factory=lambda: frozenset(DEFAULT_OVERFLOW_INSTANCES))
    total_insert_budget: int = 4_000_000_000

    @classmethod
    def from_properties(cls, properties: WorkloadProperties) -> "ClusterTopology":
        return cls(
            node_count=properties.node_count,
            instances_per_node=properties.instances_per_node,
            overflow_ranks=frozenset(properties.overflow_instances),
            total_insert_budget=properties.total_insert_count,
        )

    @property
    def per_worker_capacity(self) -> int:
        return self.total_insert_budget // self.node_count // self.instances_per_node

    @property
    def overflow_threshold(self) -> int:
        return self.per_worker_capacity // 16

    def rank(self, client: ClientId) -> int:
        return (client.node_number - 1) * self.instances_per_node + client.instance_number


def admit(topology: ClusterTopology, rank: int, record_ordinal: int) -> bool:
    """
    Whether the worker with ``rank`` may insert its ``record_ordinal``-th record.

    Overflow ranks are always admitted; every other rank stops at the
    overflow threshold.
    """
    return rank in topology.overflow_ranks or record_ordinal < topology.overflow_threshold


__all__ = ["ClusterTopology", "admit"]
