"""
Domain models for the IoT workload harness.

Defines the value objects shared by the workload engine, the instrumentation
layer and the storage backends: record keys, client identities, operation
labels and call outcomes.
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import ClassVar, Dict

from iotbench.domain.errors import WorkloadConfigError

FieldMap = Dict[str, bytes]

_CLIENT_PATTERN = re.compile(r"^(?P<prefix>[A-Za-z_\-]*)(?P<node>\d)(?P<instance>\d+)$")


class Operation(str, enum.Enum):
    """
    Operation labels.

    The value is the label used for measurements. Only the first five members
    can be chosen by the operation scheduler; the rest label proxy-only calls.
    """

    INSERT = "INSERT"
    SCAN = "SCAN"
    READ = "READ"
    UPDATE = "UPDATE"
    READ_MODIFY_WRITE = "READ-MODIFY-WRITE"
    DELETE = "DELETE"
    INIT = "INIT"
    CLEANUP = "CLEANUP"
    VERIFY = "VERIFY"

    @property
    def schedulable(self) -> bool:
        return self in _SCHEDULABLE


_SCHEDULABLE = frozenset(
    {
        Operation.INSERT,
        Operation.SCAN,
        Operation.READ,
        Operation.UPDATE,
        Operation.READ_MODIFY_WRITE,
    }
)


@dataclass(frozen=True)
class Status:
    """
    Outcome of a storage backend call.

    Backends may define their own error codes (``Status("TIMEOUT", ...)``);
    only ``OK`` and ``BATCHED_OK`` count as success.
    """

    name: str
    description: str = ""

    OK: ClassVar["Status"]
    BATCHED_OK: ClassVar["Status"]
    ERROR: ClassVar["Status"]
    NOT_FOUND: ClassVar["Status"]
    NOT_IMPLEMENTED: ClassVar["Status"]
    UNEXPECTED_STATE: ClassVar["Status"]
    BAD_REQUEST: ClassVar["Status"]
    FORBIDDEN: ClassVar["Status"]
    SERVICE_UNAVAILABLE: ClassVar["Status"]

    @property
    def is_ok(self) -> bool:
        return self.name in ("OK", "BATCHED_OK")

    def __str__(self) -> str:
        return self.name


Status.OK = Status("OK", "The operation completed successfully.")
Status.BATCHED_OK = Status("BATCHED_OK", "The operation has been batched by the binding.")
Status.ERROR = Status("ERROR", "The operation failed.")
Status.NOT_FOUND = Status("NOT_FOUND", "The requested record was not found.")
Status.NOT_IMPLEMENTED = Status("NOT_IMPLEMENTED", "The operation is not implemented.")
Status.UNEXPECTED_STATE = Status("UNEXPECTED_STATE", "The operation reported success, but the result was not as expected.")
Status.BAD_REQUEST = Status("BAD_REQUEST", "The request was not valid.")
Status.FORBIDDEN = Status("FORBIDDEN", "The operation is forbidden.")
Status.SERVICE_UNAVAILABLE = Status("SERVICE_UNAVAILABLE", "Dependant service for the current binding is not available.")


class VerificationOutcome(str, enum.Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    MISSING = "missing"

    @property
    def status(self) -> Status:
        if self is VerificationOutcome.MATCH:
            return Status.OK
        if self is VerificationOutcome.MISMATCH:
            return Status.UNEXPECTED_STATE
        return Status.ERROR


@dataclass(frozen=True)
class ClientId:
    """
    Identity of the issuing worker, e.g. ``client11`` (node 1, instance 1).

    After an optional alphabetic prefix the first digit is the node number and
    the remaining digits are the instance number.
    """

    name: str
    node_number: int
    instance_number: int

    @classmethod
    def parse(cls, name: str) -> "ClientId":
        match = _CLIENT_PATTERN.match(name or "")
        if match is None:
            raise WorkloadConfigError(
                f"Malformed client name {name!r}: expected <prefix><node digit><instance digits>"
            )
        return cls(
            name=name,
            node_number=int(match.group("node")),
            instance_number=int(match.group("instance")),
        )

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class RecordKey:
    """
    Composite record key ``client:sensor:timestamp``.

    ``padding`` only affects rendering: the timestamp is zero-padded to that
    many digits so that string order follows numeric order.
    """

    client: str
    sensor: str
    timestamp: int
    padding: int = 1

    @property
    def device_id(self) -> str:
        return f"{self.client}:{self.sensor}"

    @classmethod
    def parse(cls, text: str) -> "RecordKey":
        parts = text.split(":")
        if len(parts) != 3:
            raise ValueError(f"Record key must have 3 ':'-separated parts, got {text!r}")
        client, sensor, timestamp = parts
        return cls(client=client, sensor=sensor, timestamp=int(timestamp), padding=len(timestamp))

    def __str__(self) -> str:
        return f"{self.client}:{self.sensor}:{self.timestamp:0{self.padding}d}"


@dataclass(frozen=True)
class MeasurementSample:
    operation: str
    label: str
    latency_us: int
    intended_latency_us: int


__all__ = [
    "ClientId",
    "FieldMap",
    "MeasurementSample",
    "Operation",
    "RecordKey",
    "Status",
    "VerificationOutcome",
]
