"""Fixed-layout aggregate payloads built from scalar fields."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass

from nevermorectl.core import codec
from nevermorectl.core.codec import ScalarFormat
from nevermorectl.core.errors import MalformedPayloadError


@dataclass(frozen=True)
class AggregateField:
    name: str
    offset: int
    format: ScalarFormat


@dataclass(frozen=True)
class AggregateLayout:
    name: str
    fields: tuple[AggregateField, ...]

    @classmethod
    def sequential(cls, name: str, *fields: tuple[str, ScalarFormat]) -> AggregateLayout:
        """Pack fields back to back in declaration order."""
        offset = 0
        packed: list[AggregateField] = []
        for field_name, fmt in fields:
            packed.append(AggregateField(field_name, offset, fmt))
            offset += fmt.width
        return cls(name=name, fields=tuple(packed))

    @property
    def width(self) -> int:
        return sum(f.format.width for f in self.fields)

    def decode(self, data: bytes) -> dict[str, float | None]:
        if len(data) != self.width:
            raise MalformedPayloadError(
                f"{self.name} aggregate expects {self.width} bytes, got {len(data)}"
            )
        view = bytes(data)
        return {
            f.name: codec.decode(f.format, view[f.offset : f.offset + f.format.width])
            for f in self.fields
        }

    def encode(self, values: Mapping[str, float | None]) -> bytes:
        buffer = bytearray(self.width)
        for f in self.fields:
            buffer[f.offset : f.offset + f.format.width] = codec.encode(f.format, values.get(f.name))
        return bytes(buffer)


ENVIRONMENTAL_LAYOUT = AggregateLayout.sequential(
    "environmental",
    ("temperature_intake", codec.TEMPERATURE),
    ("temperature_exhaust", codec.TEMPERATURE),
    ("temperature_mcu", codec.TEMPERATURE),
    ("humidity_intake", codec.HUMIDITY),
    ("humidity_exhaust", codec.HUMIDITY),
    ("pressure_intake", codec.PRESSURE),
    ("pressure_exhaust", codec.PRESSURE),
    ("voc_index_intake", codec.VOC_INDEX),
    ("voc_index_exhaust", codec.VOC_INDEX),
    ("voc_raw_intake", codec.VOC_RAW),
    ("voc_raw_exhaust", codec.VOC_RAW),
)

FAN_POWER_TACHO_LAYOUT = AggregateLayout.sequential(
    "fan_power_tacho",
    ("power", codec.PERCENTAGE8),
    ("tachometer", codec.RPM),
)

FAN_AGGREGATE_LAYOUT = AggregateLayout.sequential(
    "fan",
    ("power", codec.PERCENTAGE8),
    ("power_override", codec.PERCENTAGE8),
    ("power_passive", codec.PERCENTAGE8),
    ("power_automatic", codec.PERCENTAGE8),
    ("power_coefficient", codec.PERCENTAGE8),
    ("tachometer", codec.RPM),
)

THERMAL_LIMIT_LAYOUT = AggregateLayout.sequential(
    "thermal_limit",
    ("lower", codec.TEMPERATURE),
    ("upper", codec.TEMPERATURE),
    ("scaler", codec.PERCENTAGE16),
)

SERVO_RANGE_LAYOUT = AggregateLayout.sequential(
    "servo_range",
    ("start", codec.PERCENTAGE16),
    ("end", codec.PERCENTAGE16),
)


@dataclass(frozen=True)
class EnvironmentalData:
    temperature_intake: float | None
    temperature_exhaust: float | None
    temperature_mcu: float | None
    humidity_intake: float | None
    humidity_exhaust: float | None
    pressure_intake: float | None
    pressure_exhaust: float | None
    voc_index_intake: float | None
    voc_index_exhaust: float | None
    voc_raw_intake: float | None
    voc_raw_exhaust: float | None


@dataclass(frozen=True)
class FanPowerTachoData:
    power: float | None
    tachometer: float | None


@dataclass(frozen=True)
class FanAggregateData:
    power: float | None
    power_override: float | None
    power_passive: float | None
    power_automatic: float | None
    power_coefficient: float | None
    tachometer: float | None


@dataclass(frozen=True)
class ThermalLimitData:
    lower: float | None
    upper: float | None
    scaler: float | None


@dataclass(frozen=True)
class ServoRangeData:
    start: float | None
    end: float | None


def parse_environmental_aggregate(data: bytes) -> EnvironmentalData:
    return EnvironmentalData(**ENVIRONMENTAL_LAYOUT.decode(data))


def parse_fan_power_tacho_aggregate(data: bytes) -> FanPowerTachoData:
    return FanPowerTachoData(**FAN_POWER_TACHO_LAYOUT.decode(data))


def parse_fan_aggregate(data: bytes) -> FanAggregateData:
    return FanAggregateData(**FAN_AGGREGATE_LAYOUT.decode(data))


def parse_thermal_limit(data: bytes) -> ThermalLimitData:
    return ThermalLimitData(**THERMAL_LIMIT_LAYOUT.decode(data))


def encode_thermal_limit(value: ThermalLimitData) -> bytes:
    return THERMAL_LIMIT_LAYOUT.encode(asdict(value))


def parse_servo_range(data: bytes) -> ServoRangeData:
    return ServoRangeData(**SERVO_RANGE_LAYOUT.decode(data))


def encode_servo_range(value: ServoRangeData) -> bytes:
    return SERVO_RANGE_LAYOUT.encode(asdict(value))
