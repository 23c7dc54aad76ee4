"""Bluetooth SIG UUID helpers."""

from __future__ import annotations

import re

BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"

_UUID16_RE = re.compile(r"^[0-9a-f]{4}$")
_UUID32_RE = re.compile(r"^[0-9a-f]{8}$")
_UUID128_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


def short_uuid(x: int) -> str:
    if not 0 <= x <= 0xFFFF:
        raise ValueError(f"not a 16-bit UUID: {x:#x}")
    return f"0000{x:04x}{BASE_UUID_SUFFIX}"


def expand_uuid(value: str) -> str:
    """Expand 16/32-bit UUID strings to the 128-bit lowercase form."""
    normalized = value.strip().lower()
    if _UUID16_RE.match(normalized):
        return f"0000{normalized}{BASE_UUID_SUFFIX}"
    if _UUID32_RE.match(normalized):
        return f"{normalized}{BASE_UUID_SUFFIX}"
    if _UUID128_RE.match(normalized):
        return normalized
    raise ValueError(f"not a 16-bit, 32-bit, or 128-bit UUID string: {value!r}")


USER_DESCRIPTION = short_uuid(0x2901)
