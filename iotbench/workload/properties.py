"""
Workload properties.

The workload is configured with flat ``name=value`` properties (the format of
YCSB workload files). They are read from an optional properties file, merged
with command line overrides and validated into a frozen pydantic model.

Example:
    from iotbench.workload.properties import load_workload_properties

    props = load_workload_properties({"insertproportion": "0.5", "readproportion": "0.5"})
    assert props.read_proportion == 0.5
"""
from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from iotbench.domain.errors import WorkloadConfigError
from iotbench.domain.models import ClientId
from iotbench.generators.factory import LENGTH_DISTRIBUTIONS

REQUEST_DISTRIBUTIONS = ("uniform", "exponential")
SCAN_LENGTH_DISTRIBUTIONS = ("uniform", "zipfian")
SCAN_MODES = ("window", "range")
INSERT_ORDERS = ("hashed", "ordered")

DEFAULT_OVERFLOW_INSTANCES = (42, 40, 39, 38, 44, 43, 34, 37, 41)


def _now_millis() -> int:
    return int(time.time() * 1000)


def _choice(value: str, allowed: Tuple[str, ...], prop: str) -> str:
    normalized = str(value).strip().lower()
    if normalized not in allowed:
        raise ValueError(f'Unknown {prop} "{value}". Expected one of: {", ".join(allowed)}')
    return normalized


class WorkloadProperties(BaseModel):
    """Validated workload configuration. Field aliases are the property names."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    # Records
    table: str = Field("usertable", alias="table")
    client: str = Field("client11", alias="client")
    field_count: int = Field(1, alias="fieldcount", ge=1)
    field_length: int = Field(1000, alias="fieldlength", ge=1)
    field_length_distribution: str = Field("constant", alias="fieldlengthdistribution")
    field_length_histogram: str = Field("hist.txt", alias="fieldlengthhistogram")
    read_all_fields: bool = Field(True, alias="readallfields")
    write_all_fields: bool = Field(False, alias="writeallfields")
    data_integrity: bool = Field(True, alias="dataintegrity")
    payload_seed: int = Field(0, alias="payloadseed")

    # Operation mix
    read_proportion: float = Field(0.0, alias="readproportion", ge=0)
    update_proportion: float = Field(0.0, alias="updateproportion", ge=0)
    insert_proportion: float = Field(1.0, alias="insertproportion", ge=0)
    scan_proportion: float = Field(0.00005, alias="scanproportion", ge=0)
    read_modify_write_proportion: float = Field(0.0, alias="readmodifywriteproportion", ge=0)

    # Key choice
    request_distribution: str = Field("uniform", alias="requestdistribution")
    exponential_percentile: float = Field(95.0, alias="exponential.percentile", gt=0, lt=100)
    exponential_frac: float = Field(0.8571428571, alias="exponential.frac", gt=0)
    zero_padding: int = Field(1, alias="zeropadding", ge=1)
    insert_order: str = Field("hashed", alias="insertorder")
    record_count: int = Field(0, alias="recordcount", ge=0)
    insert_start: int = Field(default_factory=_now_millis, alias="insertstart", ge=0)
    insert_count: Optional[int] = Field(None, alias="insertcount", ge=0)
    read_timestamp_offset: int = Field(5000, alias="readtimestampoffset", ge=0)

    # Scans
    max_scan_length: int = Field(100, alias="maxscanlength", ge=1)
    scan_length_distribution: str = Field("uniform", alias="scanlengthdistribution")
    scan_mode: str = Field("window", alias="scanmode")
    scan_window_width: int = Field(5000, alias="scanwindowwidth", ge=1)
    scan_historical_offset: int = Field(1_800_000, alias="scanhistoricaloffset", ge=0)

    # Insert retries
    insertion_retry_limit: int = Field(0, alias="core_workload_insertion_retry_limit", ge=0)
    insertion_retry_interval: float = Field(3.0, alias="core_workload_insertion_retry_interval", ge=0)

    # Error latency tracking
    report_latency_for_each_error: bool = Field(False, alias="reportlatencyforeacherror")
    latency_tracked_errors: FrozenSet[str] = Field(frozenset(), alias="latencytrackederrors")

    # Cluster topology
    node_count: int = Field(4, alias="nodecount", ge=1)
    instances_per_node: int = Field(11, alias="instancespernode", ge=1)
    overflow_instances: Tuple[int, ...] = Field(DEFAULT_OVERFLOW_INSTANCES, alias="overflowinstances")
    total_insert_count: int = Field(4_000_000_000, alias="totalinsertcount", ge=0)

    @field_validator("field_length_distribution")
    @classmethod
    def _check_length_distribution(cls, value: str) -> str:
        return _choice(value, LENGTH_DISTRIBUTIONS, "field length distribution")

    @field_validator("request_distribution")
    @classmethod
    def _check_request_distribution(cls, value: str) -> str:
        return _choice(value, REQUEST_DISTRIBUTIONS, "request distribution")

    @field_validator("scan_length_distribution")
    @classmethod
    def _check_scan_length_distribution(cls, value: str) -> str:
        return _choice(value, SCAN_LENGTH_DISTRIBUTIONS, "scan length distribution")

    @field_validator("scan_mode")
    @classmethod
    def _check_scan_mode(cls, value: str) -> str:
        return _choice(value, SCAN_MODES, "scan mode")

    @field_validator("insert_order")
    @classmethod
    def _check_insert_order(cls, value: str) -> str:
        return _choice(value, INSERT_ORDERS, "insert order")

    @field_validator("client")
    @classmethod
    def _check_client(cls, value: str) -> str:
        ClientId.parse(value)
        return value

    @field_validator("latency_tracked_errors", mode="before")
    @classmethod
    def _split_error_codes(cls, value: Any) -> Any:
        if isinstance(value, str):
            return frozenset(code.strip() for code in value.split(",") if code.strip())
        return value

    @field_validator("overflow_instances", mode="before")
    @classmethod
    def _split_ranks(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(int(rank) for rank in value.split(",") if rank.strip())
        return value

    @field_validator("total_insert_count", "record_count", "insert_start", "insert_count", mode="before")
    @classmethod
    def _accept_scientific(cls, value: Any) -> Any:
        # Workload files commonly write large budgets as 4E9.
        if isinstance(value, str) and "e" in value.lower():
            return int(float(value))
        return value

    @model_validator(mode="after")
    def _check_integrity(self) -> "WorkloadProperties":
        if self.data_integrity and self.field_length_distribution != "constant":
            raise ValueError("Data integrity check requires a fixed field length distribution.")
        return self

    @property
    def client_id(self) -> ClientId:
        return ClientId.parse(self.client)

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f"field{i}" for i in range(self.field_count))

    def proportions(self) -> Dict[str, float]:
        return {
            "INSERT": self.insert_proportion,
            "SCAN": self.scan_proportion,
            "READ": self.read_proportion,
            "UPDATE": self.update_proportion,
            "READ-MODIFY-WRITE": self.read_modify_write_proportion,
        }


def read_properties_file(path: Path | str) -> Dict[str, str]:
    """
    Parse a ``.properties`` file: ``name=value`` or ``name: value`` lines,
    ``#`` and ``!`` comments.
    """
    entries: Dict[str, str] = {}
    for raw in Path(path).read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line[0] in "#!":
            continue
        separators = [i for i in (line.find("="), line.find(":")) if i > 0]
        if not separators:
            entries[line] = ""
            continue
        cut = min(separators)
        entries[line[:cut].strip()] = line[cut + 1 :].strip()
    return entries


def parse_overrides(pairs: Iterable[str]) -> Dict[str, str]:
    """Turn ``["a=1", "b=2"]`` into ``{"a": "1", "b": "2"}``."""
    overrides: Dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise WorkloadConfigError(f"Property override must look like name=value, got {pair!r}")
        overrides[name.strip()] = value.strip()
    return overrides


def _describe(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        problems.append(f"{location}: {message}" if location else message)
    return "Invalid workload properties: " + "; ".join(problems)


def load_workload_properties(values: Optional[Mapping[str, Any]]) -> WorkloadProperties:
    """
    Validate raw property values.

    Raises
    ------
    WorkloadConfigError
        If ``values`` is None or any property is invalid.
    """
    if values is None:
        raise WorkloadConfigError("Workload configuration is absent")
    try:
        return WorkloadProperties.model_validate(dict(values))
    except ValidationError as exc:
        raise WorkloadConfigError(_describe(exc)) from exc


def load_from_sources(
    path: Optional[Path | str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> WorkloadProperties:
    """Read ``path`` (if any), apply ``overrides`` on top and validate."""
    values: Dict[str, Any] = {}
    if path:
        try:
            values.update(read_properties_file(path))
        except OSError as exc:
            raise WorkloadConfigError(f"Cannot read workload properties {path}: {exc}") from exc
    if overrides:
        values.update(overrides)
    return load_workload_properties(values)


__all__ = [
    "WorkloadProperties",
    "load_from_sources",
    "load_workload_properties",
    "parse_overrides",
    "read_properties_file",
]
