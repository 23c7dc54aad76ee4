"""Stable public API for building tooling on top of nevermorectl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from nevermorectl.core.aggregate import (
    EnvironmentalData,
    FanAggregateData,
    FanPowerTachoData,
    ServoRangeData,
    ThermalLimitData,
)
from nevermorectl.core.device import DeviceConnection
from nevermorectl.core.errors import (
    CapabilityMissingError,
    ConnectionFailedError,
    DeviceDiscoveryError,
    DeviceSelectionError,
    DiscoveryIncompleteError,
    ErrorKind,
    InvalidValueError,
    MalformedPayloadError,
    NevermoreError,
    OperationFailedError,
    ProfileLoadError,
    ProfileValidationError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
    TransportUnsupportedError,
    UserCancelledError,
)
from nevermorectl.core.model import (
    ConnectionState,
    DeviceProfile,
    DeviceSnapshot,
    ServiceKind,
    ServiceSnapshot,
    SlotSnapshot,
)
from nevermorectl.core.profile_loader import load_profiles
from nevermorectl.core.registry import DeviceRegistry
from nevermorectl.transports.base import GattTransport
from nevermorectl.transports.ble_gatt import BLEGATTTransport, Chooser

__all__ = [
    "NevermoreError",
    "ErrorKind",
    "CapabilityMissingError",
    "ConnectionFailedError",
    "DeviceDiscoveryError",
    "DeviceSelectionError",
    "DiscoveryIncompleteError",
    "InvalidValueError",
    "MalformedPayloadError",
    "OperationFailedError",
    "ProfileLoadError",
    "ProfileValidationError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "TransportUnsupportedError",
    "UserCancelledError",
    "ConnectionState",
    "DeviceProfile",
    "DeviceSnapshot",
    "ServiceKind",
    "ServiceSnapshot",
    "SlotSnapshot",
    "EnvironmentalData",
    "FanAggregateData",
    "FanPowerTachoData",
    "ServoRangeData",
    "ThermalLimitData",
    "BLEGATTTransport",
    "GattTransport",
    "Client",
]


class Client:
    """Public client for interacting with nevermorectl core capabilities.

    A `Client` instance wraps profile loading, device discovery and the
    per-device connection registry behind a stable async API intended for
    third-party tools (GUI/TUI/services/scripts). Each client owns its own
    registry; there is no process-wide device state.
    """

    def __init__(
        self,
        *,
        profile_id: str | None = None,
        transport: GattTransport | None = None,
        chooser: Chooser | None = None,
    ) -> None:
        loaded = load_profiles()
        self._profiles = loaded.profiles
        self._load_warnings = loaded.warnings
        self.profile = loaded.get(profile_id)
        if transport is None:
            transport = BLEGATTTransport(
                scan_timeout_s=self.profile.scan_timeout_s,
                connect_timeout_s=self.profile.connect_timeout_s,
                chooser=chooser,
            )
        self._registry = DeviceRegistry(transport, self.profile)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._load_warnings

    @property
    def last_error(self) -> NevermoreError | None:
        return self._registry.last_error

    def list_profiles(self) -> list[DeviceProfile]:
        return sorted(self._profiles.values(), key=lambda p: p.id)

    async def request_device(self, *, address: str | None = None) -> DeviceConnection | None:
        return await self._registry.request_device(address=address)

    def get_device(self, device_id: str) -> DeviceConnection | None:
        return self._registry.get(device_id)

    async def connect(self, device_id: str) -> bool:
        return await self._registry.connect(device_id)

    async def disconnect(self, device_id: str) -> None:
        await self._registry.disconnect(device_id)

    async def remove(self, device_id: str) -> None:
        await self._registry.remove(device_id)

    async def disconnect_all(self) -> None:
        await self._registry.disconnect_all()

    async def refresh(self, device_id: str) -> None:
        await self._registry.require(device_id).refresh()

    def snapshot(self, device_id: str) -> DeviceSnapshot:
        return self._registry.require(device_id).snapshot()

    def snapshots(self) -> list[DeviceSnapshot]:
        return self._registry.snapshots()

    async def set_power_override(self, device_id: str, percentage: float | None) -> bool:
        return await self._registry.set_power_override(device_id, percentage)

    async def set_servo_position(self, device_id: str, percentage: float) -> bool:
        return await self._registry.set_servo_position(device_id, percentage)

    async def set_servo_range(self, device_id: str, start: float, end: float) -> bool:
        return await self._registry.set_servo_range(device_id, start, end)
