"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol

NotificationCallback = Callable[[bytes], None]
DisconnectCallback = Callable[[], None]


class DeviceHandle(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def name(self) -> str | None: ...


class CharacteristicHandle(Protocol):
    @property
    def uuid(self) -> str: ...


class DescriptorHandle(Protocol):
    @property
    def uuid(self) -> str: ...


class GattTransport(Protocol):
    """Asynchronous GATT client capability provided by the host BLE stack.

    Implementations raise ``TransportError`` subclasses on failure. Server and
    service handles are opaque to the core.
    """

    async def scan(
        self,
        name_filter: str,
        service_allowlist: Sequence[str],
        *,
        address: str | None = None,
    ) -> DeviceHandle:
        """Find one peripheral. Raises ``UserCancelledError`` if the user aborts."""

    async def connect(self, device: DeviceHandle, on_disconnect: DisconnectCallback) -> Any:
        """Open a GATT connection and return a server handle."""

    async def disconnect(self, server: Any) -> None: ...

    async def get_primary_service(self, server: Any, uuid: str) -> Any: ...

    async def get_characteristics(
        self,
        service: Any,
        uuid: str | None = None,
    ) -> list[CharacteristicHandle]:
        """List characteristics of a service in discovery order."""

    async def read(self, handle: CharacteristicHandle) -> bytes: ...

    async def write(self, handle: CharacteristicHandle, data: bytes) -> None: ...

    async def start_notifications(
        self,
        handle: CharacteristicHandle,
        callback: NotificationCallback,
    ) -> None: ...

    async def stop_notifications(self, handle: CharacteristicHandle) -> None: ...

    async def get_descriptors(self, handle: CharacteristicHandle) -> list[DescriptorHandle]: ...

    async def read_descriptor(self, handle: DescriptorHandle) -> bytes: ...
