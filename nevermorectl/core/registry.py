"""Registry of device connections keyed by device id."""

from __future__ import annotations

import logging

from nevermorectl.core.device import DeviceConnection
from nevermorectl.core.errors import DeviceSelectionError, NevermoreError, UserCancelledError
from nevermorectl.core.model import DeviceProfile, DeviceSnapshot
from nevermorectl.transports.base import GattTransport

LOGGER = logging.getLogger(__name__)


class DeviceRegistry:
    """Owns one ``DeviceConnection`` per device id.

    Devices are fully independent: each has its own state and error, and
    operations on distinct devices never wait on each other.
    """

    def __init__(self, transport: GattTransport, profile: DeviceProfile) -> None:
        self.transport = transport
        self.profile = profile
        self.devices: dict[str, DeviceConnection] = {}
        self.is_scanning = False
        self.last_error: NevermoreError | None = None

    async def request_device(self, *, address: str | None = None) -> DeviceConnection | None:
        """Scan for a peripheral, register it and connect.

        Returns ``None`` if the user cancelled or the scan failed; scan
        failures other than a cancel are kept in ``last_error``.
        """
        self.is_scanning = True
        self.last_error = None
        try:
            handle = await self.transport.scan(
                self.profile.match.name_prefix,
                self.profile.service_allowlist,
                address=address,
            )
        except UserCancelledError:
            LOGGER.info("device selection cancelled")
            return None
        except NevermoreError as exc:
            LOGGER.warning("device request failed: %s", exc)
            self.last_error = exc
            return None
        finally:
            self.is_scanning = False

        connection = self.devices.get(handle.id)
        if connection is None:
            connection = DeviceConnection(handle, self.transport, self.profile)
            self.devices[connection.id] = connection
        await connection.connect()
        return connection

    def get(self, device_id: str) -> DeviceConnection | None:
        return self.devices.get(device_id)

    def require(self, device_id: str) -> DeviceConnection:
        connection = self.devices.get(device_id)
        if connection is None:
            known = ", ".join(sorted(self.devices)) or "<none>"
            raise DeviceSelectionError(f"Unknown device '{device_id}'. Known: {known}")
        return connection

    async def connect(self, device_id: str) -> bool:
        return await self.require(device_id).connect()

    async def disconnect(self, device_id: str) -> None:
        await self.require(device_id).disconnect()

    async def remove(self, device_id: str) -> None:
        connection = self.devices.get(device_id)
        if connection is None:
            return
        await connection.disconnect()
        del self.devices[device_id]

    async def disconnect_all(self) -> None:
        for connection in list(self.devices.values()):
            await connection.disconnect()
        self.devices.clear()

    @property
    def connected_devices(self) -> list[DeviceConnection]:
        return [d for d in self.devices.values() if d.is_connected]

    def snapshots(self) -> list[DeviceSnapshot]:
        return [d.snapshot() for d in self.devices.values()]

    async def set_power_override(self, device_id: str, percentage: float | None) -> bool:
        return await self.require(device_id).set_power_override(percentage)

    async def set_servo_position(self, device_id: str, percentage: float) -> bool:
        return await self.require(device_id).set_servo_position(percentage)

    async def set_servo_range(self, device_id: str, start: float, end: float) -> bool:
        return await self.require(device_id).set_servo_range(start, end)
