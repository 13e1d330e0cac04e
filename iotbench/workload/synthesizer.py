"""
Record key and payload synthesis.

Keys look like ``client11:cent_9_Humidity:1718000000123``: the issuing client,
a sensor channel from ``SENSOR_CATALOG`` and a logical timestamp taken from
the insert sequence.

Payloads are either deterministic (reproducible from key, field, seed and
length, so reads can be verified) or random printable filler.
"""
from __future__ import annotations

import random
import zlib
from typing import Optional, Tuple

from iotbench.domain.models import FieldMap, RecordKey
from iotbench.generators.factory import build_number_generator
from iotbench.generators.numeric import UniformIntegerGenerator
from iotbench.workload.properties import WorkloadProperties

SENSOR_LOCATIONS: Tuple[str, ...] = (
    "cent_9",
    "side_8",
    "side_7",
    "ang_30",
    "ang_45",
    "ang_60",
    "ang_90",
    "bef_1195",
    "aft_1120",
    "mid_1125",
    "cor_4",
    "cor_1",
    "cor_5",
)

SENSOR_CHANNELS: Tuple[str, ...] = (
    "Humidity",
    "Power",
    "Pressure",
    "Flow",
    "Level",
    "Temperature",
    "vibration",
    "tilt",
    "level",
    "level_vibrating",
    "level_rotating",
    "level_admittance",
)

SENSOR_CATALOG: Tuple[str, ...] = tuple(
    f"{location}_{channel}" for channel in SENSOR_CHANNELS for location in SENSOR_LOCATIONS
) + tuple(f"{location}_Pneumatic_level" for location in SENSOR_LOCATIONS[:4])

_PRINTABLE = range(0x20, 0x7F)


class PayloadFactory:
    """
    Deterministic payload builder.

    The payload starts with the sensor name and is extended with
    ``:<sensor>_value:<decimal>:timestamp:<ts>:<crc32>`` tuples until it
    reaches ``length`` characters, then truncated. The decimal comes from a
    generator seeded with ``(seed, key, field)`` and the timestamp is the
    key's logical timestamp, so calling this twice with the same arguments
    yields identical bytes.
    """

    def __init__(self, seed: int = 0) -> None:
        self.seed = seed

    def _measurement(self, key: RecordKey, field: str) -> str:
        rng = random.Random(f"{self.seed}|{key.client}|{key.sensor}|{key.timestamp}|{field}")
        return f"{rng.random():.4f}"

    def deterministic_payload(self, key: RecordKey, field: str, length: int) -> bytes:
        sensor = key.sensor
        value = self._measurement(key, field)
        buffer = sensor
        while len(buffer) < length:
            buffer += f":{sensor}_value:{value}:timestamp:{key.timestamp}"
            buffer += f":{zlib.crc32(buffer.encode('ascii'))}"
        return buffer[:length].encode("ascii")


def payload_value(payload: bytes) -> Optional[float]:
    """Numeric reading embedded in a deterministic payload, or None."""
    parts = payload.decode("ascii", errors="replace").split(":")
    if len(parts) < 3:
        return None
    try:
        return float(parts[2])
    except ValueError:
        return None


class KeyValueSynthesizer:
    """Builds keys and field maps for one worker."""

    def __init__(self, properties: WorkloadProperties, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()
        self.client = properties.client
        self.fields = properties.field_names
        self.write_all_fields = properties.write_all_fields
        self.data_integrity = properties.data_integrity
        self.read_offset = properties.read_timestamp_offset
        self.padding = properties.zero_padding if properties.insert_order == "ordered" else 1

        last_sensor = len(SENSOR_CATALOG) - 1
        self._write_sensor = UniformIntegerGenerator(0, last_sensor, rng=self._rng)
        self._read_sensor = UniformIntegerGenerator(0, last_sensor, rng=self._rng)
        self._field_chooser = UniformIntegerGenerator(0, len(self.fields) - 1, rng=self._rng)
        self.field_length = build_number_generator(
            properties.field_length_distribution,
            1,
            properties.field_length,
            histogram_file=properties.field_length_histogram,
            rng=self._rng,
        )
        self.payloads = PayloadFactory(properties.payload_seed)

    def build_insert_key(self, sequence_number: int) -> RecordKey:
        sensor = SENSOR_CATALOG[self._write_sensor.next()]
        return RecordKey(self.client, sensor, sequence_number, self.padding)

    def build_read_key(self, key_selection: int) -> RecordKey:
        """Key ``read_offset`` time units behind ``key_selection`` on a random sensor."""
        sensor = SENSOR_CATALOG[self._read_sensor.next()]
        timestamp = max(0, key_selection - self.read_offset)
        return RecordKey(self.client, sensor, timestamp, self.padding)

    def choose_field(self) -> str:
        return self.fields[self._field_chooser.next()]

    def build_value(self, key: RecordKey) -> FieldMap:
        if self.write_all_fields:
            return self.build_values(key)
        field = self.choose_field()
        return {field: self._payload(key, field)}

    def build_values(self, key: RecordKey) -> FieldMap:
        return {field: self._payload(key, field) for field in self.fields}

    def _payload(self, key: RecordKey, field: str) -> bytes:
        length = self.field_length.next()
        if self.data_integrity:
            return self.payloads.deterministic_payload(key, field, length)
        return bytes(self._rng.choices(_PRINTABLE, k=length))


__all__ = [
    "KeyValueSynthesizer",
    "PayloadFactory",
    "SENSOR_CATALOG",
    "payload_value",
]
