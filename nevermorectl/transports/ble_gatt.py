"""BLE GATT transport implementation backed by bleak."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from nevermorectl.core.errors import (
    DeviceDiscoveryError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
    TransportUnsupportedError,
    UserCancelledError,
)
from nevermorectl.transports.base import DisconnectCallback, NotificationCallback

LOGGER = logging.getLogger(__name__)

_A = TypeVar("_A")

# picks one of several scan results; ``None`` means the user backed out
Chooser = Callable[[list["BleakDevice"]], "BleakDevice | None"]


def _import_bleak() -> Any:
    try:
        import bleak
    except ImportError as exc:  # pragma: no cover - import failure path
        raise TransportUnsupportedError(
            "BLE transport requires 'bleak'. Install dependency and retry."
        ) from exc
    return bleak


@dataclass(frozen=True)
class BleakDevice:
    inner: Any

    @property
    def id(self) -> str:
        return self.inner.address

    @property
    def name(self) -> str | None:
        return self.inner.name


@dataclass(frozen=True)
class BleakService:
    client: Any
    inner: Any


@dataclass(frozen=True)
class BleakCharacteristic:
    client: Any
    inner: Any

    @property
    def uuid(self) -> str:
        return self.inner.uuid.lower()


@dataclass(frozen=True)
class BleakDescriptor:
    client: Any
    inner: Any

    @property
    def uuid(self) -> str:
        return self.inner.uuid.lower()


class BLEGATTTransport:
    def __init__(
        self,
        *,
        scan_timeout_s: float = 10.0,
        connect_timeout_s: float = 10.0,
        chooser: Chooser | None = None,
    ) -> None:
        self.scan_timeout_s = scan_timeout_s
        self.connect_timeout_s = connect_timeout_s
        self.chooser = chooser

    async def scan(
        self,
        name_filter: str,
        service_allowlist: Sequence[str],
        *,
        address: str | None = None,
    ) -> BleakDevice:
        bleak = _import_bleak()
        LOGGER.debug("scanning for '%s*' (services: %s)", name_filter, ", ".join(service_allowlist))
        try:
            if address:
                found = await bleak.BleakScanner.find_device_by_address(address, timeout=self.scan_timeout_s)
                candidates = [BleakDevice(found)] if found is not None else []
            else:
                found_all = await bleak.BleakScanner.discover(timeout=self.scan_timeout_s)
                candidates = [
                    BleakDevice(d) for d in found_all if (d.name or "").startswith(name_filter)
                ]
        except OSError as exc:
            raise TransportUnsupportedError(f"No usable Bluetooth adapter: {exc}") from exc
        except bleak.exc.BleakError as exc:
            raise TransportConnectError(f"BLE scan failed: {exc}") from exc

        if not candidates:
            target = address or f"name starting with '{name_filter}'"
            raise DeviceDiscoveryError(f"No BLE device found matching {target}")

        if len(candidates) == 1 or self.chooser is None:
            return candidates[0]

        chosen = self.chooser(candidates)
        if chosen is None:
            raise UserCancelledError("Device selection cancelled")
        return chosen

    async def connect(self, device: BleakDevice, on_disconnect: DisconnectCallback) -> Any:
        bleak = _import_bleak()

        def _disconnected(_client: Any) -> None:
            on_disconnect()

        client = bleak.BleakClient(
            device.inner,
            timeout=self.connect_timeout_s,
            disconnected_callback=_disconnected,
        )
        try:
            await client.connect()
        except TimeoutError as exc:
            raise TransportTimeoutError(f"BLE connect timed out for {device.id}") from exc
        except (bleak.exc.BleakError, OSError) as exc:
            raise TransportConnectError(f"BLE connect failed for {device.id}: {exc}") from exc
        return client

    async def disconnect(self, server: Any) -> None:
        await self._request("disconnect", server.disconnect)

    async def get_primary_service(self, server: Any, uuid: str) -> BleakService:
        service = server.services.get_service(uuid)
        if service is None:
            raise TransportError(f"Service {uuid} not found")
        return BleakService(server, service)

    async def get_characteristics(
        self,
        service: BleakService,
        uuid: str | None = None,
    ) -> list[BleakCharacteristic]:
        wanted = uuid.lower() if uuid else None
        return [
            BleakCharacteristic(service.client, c)
            for c in sorted(service.inner.characteristics, key=lambda c: c.handle)
            if wanted is None or c.uuid.lower() == wanted
        ]

    async def read(self, handle: BleakCharacteristic) -> bytes:
        data = await self._request("read", lambda: handle.client.read_gatt_char(handle.inner))
        return bytes(data)

    async def write(self, handle: BleakCharacteristic, data: bytes) -> None:
        response = "write" in handle.inner.properties
        await self._request(
            "write",
            lambda: handle.client.write_gatt_char(handle.inner, data, response=response),
        )

    async def start_notifications(
        self,
        handle: BleakCharacteristic,
        callback: NotificationCallback,
    ) -> None:
        def _notify_handler(_: Any, data: bytearray) -> None:
            callback(bytes(data))

        await self._request("subscribe", lambda: handle.client.start_notify(handle.inner, _notify_handler))

    async def stop_notifications(self, handle: BleakCharacteristic) -> None:
        await self._request("unsubscribe", lambda: handle.client.stop_notify(handle.inner))

    async def get_descriptors(self, handle: BleakCharacteristic) -> list[BleakDescriptor]:
        return [BleakDescriptor(handle.client, d) for d in handle.inner.descriptors]

    async def read_descriptor(self, handle: BleakDescriptor) -> bytes:
        data = await self._request(
            "descriptor read",
            lambda: handle.client.read_gatt_descriptor(handle.inner.handle),
        )
        return bytes(data)

    async def _request(self, action: str, call: Callable[[], Awaitable[_A]]) -> _A:
        bleak = _import_bleak()
        try:
            return await call()
        except TimeoutError as exc:
            raise TransportTimeoutError(f"BLE {action} timed out") from exc
        except (bleak.exc.BleakError, OSError) as exc:
            raise TransportSendError(f"BLE GATT {action} failed: {exc}") from exc
