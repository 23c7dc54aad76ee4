"""Per-service characteristic discovery and commands."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from typing import Any, ClassVar

from nevermorectl.core import aggregate, codec
from nevermorectl.core import characteristic as chars
from nevermorectl.core.characteristic import Characteristic, Notify, ReadOnly, Writeable
from nevermorectl.core.errors import (
    CapabilityMissingError,
    DiscoveryIncompleteError,
    InvalidValueError,
    NevermoreError,
    TransportError,
)
from nevermorectl.core.model import DeviceProfile, ServiceKind, ServiceSnapshot
from nevermorectl.core.uuids import USER_DESCRIPTION
from nevermorectl.transports.base import CharacteristicHandle, GattTransport

LOGGER = logging.getLogger(__name__)


def clamp_percentage(value: float) -> float:
    if math.isnan(value):
        raise InvalidValueError(f"percentage must be a number, got {value}")
    return max(0.0, min(100.0, float(value)))


def bucket_by_uuid(handles: Iterable[CharacteristicHandle]) -> dict[str, list[CharacteristicHandle]]:
    buckets: dict[str, list[CharacteristicHandle]] = {}
    for handle in handles:
        buckets.setdefault(handle.uuid.lower(), []).append(handle)
    return buckets


class Service:
    kind: ClassVar[ServiceKind]
    SLOTS: ClassVar[tuple[str, ...]]

    def __init__(self, transport: GattTransport, handle: Any, profile: DeviceProfile) -> None:
        self.transport = transport
        self.handle = handle
        self.profile = profile
        self.slots: dict[str, Characteristic | None] = dict.fromkeys(self.SLOTS)
        self.last_error: NevermoreError | None = None

    async def discover(self) -> None:
        await self._discover()
        missing = tuple(name for name, char in self.slots.items() if char is None)
        if missing:
            self.last_error = DiscoveryIncompleteError(self.kind.value, missing)
            LOGGER.info("%s", self.last_error)
        else:
            self.last_error = None

    async def _discover(self) -> None:
        raise NotImplementedError

    def get(self, slot: str) -> Characteristic | None:
        return self.slots.get(slot)

    def require(self, slot: str) -> Characteristic:
        char = self.slots.get(slot)
        if char is None:
            raise CapabilityMissingError(
                f"{self.kind.value} characteristic '{slot}' is not available on this device"
            )
        return char

    async def refresh(self) -> None:
        """Read every discovered characteristic once."""
        for char in self.slots.values():
            if char is not None:
                await chars.read(char)

    async def close(self) -> None:
        """Tear down every live subscription owned by this service."""
        for char in self.slots.values():
            if char is not None and chars.can_notify(char):
                await chars.unsubscribe(char)

    def release(self) -> None:
        for char in self.slots.values():
            if char is not None:
                chars.release(char)

    def snapshot(self) -> ServiceSnapshot:
        return ServiceSnapshot(
            kind=self.kind,
            slots={
                name: chars.snapshot(char) if char is not None else None
                for name, char in self.slots.items()
            },
            error=str(self.last_error) if self.last_error is not None else None,
        )

    async def _characteristics(self, key: str | None = None) -> list[CharacteristicHandle]:
        uuid: str | None = None
        if key is not None:
            uuid = self.profile.characteristic_uuid(key)
            if uuid is None:
                LOGGER.debug("profile %s defines no '%s' characteristic", self.profile.id, key)
                return []
        try:
            return list(await self.transport.get_characteristics(self.handle, uuid))
        except TransportError as exc:
            LOGGER.warning("%s: listing '%s' characteristics failed: %s", self.kind.value, key or "*", exc)
            return []

    async def _first(self, key: str) -> CharacteristicHandle | None:
        handles = await self._characteristics(key)
        return handles[0] if handles else None

    async def _bind(self, slot: str, char: Characteristic) -> None:
        """Install a characteristic into its slot and fetch its initial state."""
        self.slots[slot] = char
        match char:
            case Notify():
                await chars.subscribe(char)
                await chars.read(char)
            case Writeable():
                await chars.read(char)
            case ReadOnly():
                pass


class EnvironmentalSensingService(Service):
    kind = ServiceKind.ENVIRONMENTAL_SENSING
    SLOTS = (
        "temperature_intake",
        "temperature_exhaust",
        "temperature_mcu",
        "humidity_intake",
        "humidity_exhaust",
        "pressure_intake",
        "pressure_exhaust",
        "voc_index_intake",
        "voc_index_exhaust",
        "voc_raw_intake",
        "voc_raw_exhaust",
        "aggregate",
    )

    # characteristics sharing one UUID are told apart by discovery order
    _GROUPS = (
        ("temperature", ("temperature_intake", "temperature_exhaust", "temperature_mcu"), codec.parse_temperature),
        ("humidity", ("humidity_intake", "humidity_exhaust"), codec.parse_humidity),
        ("pressure", ("pressure_intake", "pressure_exhaust"), codec.parse_pressure),
        ("voc_index", ("voc_index_intake", "voc_index_exhaust"), codec.parse_voc_index),
        ("voc_raw", ("voc_raw_intake", "voc_raw_exhaust"), codec.parse_voc_raw),
    )

    async def _discover(self) -> None:
        buckets = bucket_by_uuid(await self._characteristics())

        for key, slots, parser in self._GROUPS:
            uuid = self.profile.characteristic_uuid(key)
            group = buckets.get(uuid, []) if uuid else []
            if len(group) > len(slots):
                LOGGER.debug("ignoring %d extra '%s' characteristic(s)", len(group) - len(slots), key)
            for slot, handle in zip(slots, group):
                await self._bind(slot, ReadOnly(handle, self.transport, parser))

        uuid = self.profile.characteristic_uuid("environmental_aggregate")
        group = buckets.get(uuid, []) if uuid else []
        if group:
            await self._bind(
                "aggregate",
                Notify(group[0], self.transport, aggregate.parse_environmental_aggregate),
            )

    @property
    def aggregate(self) -> Characteristic | None:
        return self.get("aggregate")


class FanService(Service):
    kind = ServiceKind.FAN
    SLOTS = ("aggregate", "fan_aggregate", "power_override")

    async def _discover(self) -> None:
        handle = await self._first("fan_power_tacho_aggregate")
        if handle is not None:
            await self._bind(
                "aggregate",
                Notify(handle, self.transport, aggregate.parse_fan_power_tacho_aggregate),
            )

        handle = await self._first("fan_aggregate")
        if handle is not None:
            await self._bind("fan_aggregate", Notify(handle, self.transport, aggregate.parse_fan_aggregate))

        handle = await self._find_power_override()
        if handle is not None:
            await self._bind(
                "power_override",
                Writeable(handle, self.transport, codec.parse_percentage8, codec.encode_percentage8),
            )

    async def _find_power_override(self) -> CharacteristicHandle | None:
        rule = self.profile.labels.get("fan_power_override")
        if rule is None:
            LOGGER.info("profile %s has no label rule for the fan power override", self.profile.id)
            return None

        for candidate in await self._characteristics("percentage8"):
            try:
                descriptors = await self.transport.get_descriptors(candidate)
                for descriptor in descriptors:
                    if descriptor.uuid.lower() != USER_DESCRIPTION:
                        continue
                    label = bytes(await self.transport.read_descriptor(descriptor)).decode(
                        "utf-8", errors="replace"
                    )
                    if rule.matches(label):
                        LOGGER.debug("power override matched label %r", label)
                        return candidate
            except TransportError as exc:
                LOGGER.debug("skipping percentage8 candidate without readable label: %s", exc)
        return None

    async def set_power_override(self, percentage: float | None) -> bool:
        """Override fan power (0-100 %), or hand control back with ``None``."""
        char = self.require("power_override")
        value = None if percentage is None else clamp_percentage(percentage)
        ok = await chars.write(char, value)
        if ok and self.aggregate is not None:
            await chars.read(self.aggregate)
        return ok

    @property
    def aggregate(self) -> Characteristic | None:
        return self.get("aggregate")


class FanPolicyService(Service):
    kind = ServiceKind.FAN_POLICY
    SLOTS = ("cooldown", "voc_passive_max", "voc_improve_min", "thermal_limit")

    async def _discover(self) -> None:
        handle = await self._first("time_second16")
        if handle is not None:
            await self._bind(
                "cooldown",
                Writeable(handle, self.transport, codec.parse_time_second16, codec.encode_time_second16),
            )

        voc_handles = await self._characteristics("voc_index")
        for slot, handle in zip(("voc_passive_max", "voc_improve_min"), voc_handles):
            await self._bind(
                slot,
                Writeable(handle, self.transport, codec.parse_voc_index, codec.encode_voc_index),
            )

        handle = await self._first("fan_thermal_limit")
        if handle is not None:
            await self._bind(
                "thermal_limit",
                Writeable(handle, self.transport, aggregate.parse_thermal_limit, aggregate.encode_thermal_limit),
            )

    async def set_cooldown(self, seconds: float | None) -> bool:
        return await chars.write(self.require("cooldown"), seconds)

    async def set_thermal_limit(self, lower: float | None, upper: float | None, scaler: float | None) -> bool:
        value = aggregate.ThermalLimitData(
            lower=lower,
            upper=upper,
            scaler=None if scaler is None else clamp_percentage(scaler),
        )
        return await chars.write(self.require("thermal_limit"), value)


class ServoService(Service):
    kind = ServiceKind.SERVO
    SLOTS = ("position", "range")

    async def _discover(self) -> None:
        handle = await self._first("servo_position")
        if handle is not None:
            await self._bind(
                "position",
                Notify(handle, self.transport, codec.parse_percentage16, codec.encode_percentage16),
            )

        handle = await self._first("servo_range")
        if handle is not None:
            await self._bind(
                "range",
                Writeable(handle, self.transport, aggregate.parse_servo_range, aggregate.encode_servo_range),
            )

    async def set_position(self, percentage: float) -> bool:
        char = self.require("position")
        ok = await chars.write(char, clamp_percentage(percentage))
        if ok:
            # the peripheral does not always notify after a write
            await chars.read(char)
        return ok

    async def set_range(self, start: float, end: float) -> bool:
        value = aggregate.ServoRangeData(start=clamp_percentage(start), end=clamp_percentage(end))
        return await chars.write(self.require("range"), value)


SERVICE_TYPES: dict[ServiceKind, type[Service]] = {
    ServiceKind.ENVIRONMENTAL_SENSING: EnvironmentalSensingService,
    ServiceKind.FAN: FanService,
    ServiceKind.FAN_POLICY: FanPolicyService,
    ServiceKind.SERVO: ServoService,
}
