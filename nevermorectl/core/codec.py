"""BLE SIG scalar codec.

A scalar characteristic carries an integer raw code. Its physical value is
``raw * M * 10**d * 2**b``. Every quantity reserves one raw code (usually the
all-ones pattern) meaning "not known", which decodes to ``None``.

All multi-byte values are little-endian.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from nevermorectl.core.errors import MalformedPayloadError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScalarFormat:
    name: str
    width: int
    signed: bool
    multiplier: int = 1
    decimal_exponent: int = 0
    binary_exponent: int = 0
    # unsigned bit pattern, compared against the unsigned raw code
    not_known: int | None = None

    @property
    def raw_min(self) -> int:
        return -(1 << (self.width * 8 - 1)) if self.signed else 0

    @property
    def raw_max(self) -> int:
        bits = self.width * 8
        return (1 << (bits - 1)) - 1 if self.signed else (1 << bits) - 1

    @property
    def not_known_bytes(self) -> bytes:
        if self.not_known is None:
            raise ValueError(f"{self.name} has no not-known sentinel")
        return self.not_known.to_bytes(self.width, "little", signed=False)


TEMPERATURE = ScalarFormat("temperature", 2, True, decimal_exponent=-2, not_known=0x7FFF)
HUMIDITY = ScalarFormat("humidity", 2, False, decimal_exponent=-2, not_known=0xFFFF)
PRESSURE = ScalarFormat("pressure", 4, False, decimal_exponent=-1, not_known=0xFFFFFFFF)
PERCENTAGE8 = ScalarFormat("percentage8", 1, False, binary_exponent=-1, not_known=0xFF)
PERCENTAGE16 = ScalarFormat("percentage16", 2, False, decimal_exponent=-2, not_known=0xFFFF)
VOC_INDEX = ScalarFormat("voc_index", 2, False, not_known=0xFFFF)
VOC_RAW = ScalarFormat("voc_raw", 2, False, not_known=0xFFFF)
RPM = ScalarFormat("rpm", 2, False, not_known=0xFFFF)
TIME_SECOND16 = ScalarFormat("time_second16", 2, False, not_known=0xFFFF)
TIME_MILLI24 = ScalarFormat("time_milli24", 3, False, decimal_exponent=-3, not_known=0xFFFFFF)
COUNT16 = ScalarFormat("count16", 2, False, not_known=0xFFFF)

FORMATS: dict[str, ScalarFormat] = {
    fmt.name: fmt
    for fmt in (
        TEMPERATURE,
        HUMIDITY,
        PRESSURE,
        PERCENTAGE8,
        PERCENTAGE16,
        VOC_INDEX,
        VOC_RAW,
        RPM,
        TIME_SECOND16,
        TIME_MILLI24,
        COUNT16,
    )
}


def _raw_to_value(fmt: ScalarFormat, raw: int) -> float:
    # exact powers of ten on division keep 2507 -> 25.07 correctly rounded
    value = math.ldexp(float(raw * fmt.multiplier), fmt.binary_exponent)
    if fmt.decimal_exponent < 0:
        return value / (10 ** -fmt.decimal_exponent)
    return value * (10**fmt.decimal_exponent)


def _value_to_raw(fmt: ScalarFormat, value: float) -> float:
    scaled = math.ldexp(value, -fmt.binary_exponent)
    if fmt.decimal_exponent < 0:
        scaled = scaled * (10 ** -fmt.decimal_exponent)
    else:
        scaled = scaled / (10**fmt.decimal_exponent)
    return scaled / fmt.multiplier


def _round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


def decode(fmt: ScalarFormat, data: bytes) -> float | None:
    """Decode exactly ``fmt.width`` bytes into a physical value or ``None``."""
    if len(data) != fmt.width:
        raise MalformedPayloadError(
            f"{fmt.name} expects {fmt.width} byte(s), got {len(data)}"
        )
    if fmt.not_known is not None and int.from_bytes(data, "little", signed=False) == fmt.not_known:
        return None
    return _raw_to_value(fmt, int.from_bytes(data, "little", signed=fmt.signed))


def encode(fmt: ScalarFormat, value: float | None) -> bytes:
    """Encode a physical value, or ``None`` for the not-known sentinel."""
    if value is None or math.isnan(value):
        return fmt.not_known_bytes

    raw_min, raw_max = fmt.raw_min, fmt.raw_max
    if fmt.not_known is not None:
        sentinel = int.from_bytes(fmt.not_known_bytes, "little", signed=fmt.signed)
        if sentinel == raw_max:
            raw_max -= 1
        elif sentinel == raw_min:
            raw_min += 1

    if math.isinf(value):
        raw = raw_max if value > 0 else raw_min
    else:
        raw = _round_half_up(_value_to_raw(fmt, value))
    if raw < raw_min or raw > raw_max:
        clamped = min(max(raw, raw_min), raw_max)
        LOGGER.debug("%s value %r out of range, clamping raw %d -> %d", fmt.name, value, raw, clamped)
        raw = clamped
    return raw.to_bytes(fmt.width, "little", signed=fmt.signed)


def parse_temperature(data: bytes) -> float | None:
    return decode(TEMPERATURE, data)


def parse_humidity(data: bytes) -> float | None:
    return decode(HUMIDITY, data)


def parse_pressure(data: bytes) -> float | None:
    return decode(PRESSURE, data)


def parse_percentage8(data: bytes) -> float | None:
    return decode(PERCENTAGE8, data)


def parse_percentage16(data: bytes) -> float | None:
    return decode(PERCENTAGE16, data)


def parse_voc_index(data: bytes) -> float | None:
    return decode(VOC_INDEX, data)


def parse_voc_raw(data: bytes) -> float | None:
    return decode(VOC_RAW, data)


def parse_rpm(data: bytes) -> float | None:
    return decode(RPM, data)


def parse_time_second16(data: bytes) -> float | None:
    return decode(TIME_SECOND16, data)


def parse_time_milli24(data: bytes) -> float | None:
    return decode(TIME_MILLI24, data)


def parse_count16(data: bytes) -> float | None:
    return decode(COUNT16, data)


def encode_percentage8(value: float | None) -> bytes:
    return encode(PERCENTAGE8, value)


def encode_percentage16(value: float | None) -> bytes:
    return encode(PERCENTAGE16, value)


def encode_voc_index(value: float | None) -> bytes:
    return encode(VOC_INDEX, value)


def encode_time_second16(value: float | None) -> bytes:
    return encode(TIME_SECOND16, value)


def encode_time_milli24(value: float | None) -> bytes:
    return encode(TIME_MILLI24, value)


def encode_count16(value: float | None) -> bytes:
    return encode(COUNT16, value)
