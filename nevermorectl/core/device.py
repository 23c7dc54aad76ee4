"""Per-device GATT connection lifecycle."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from nevermorectl.core.errors import (
    CapabilityMissingError,
    ConnectionFailedError,
    NevermoreError,
    TransportError,
)
from nevermorectl.core.model import ConnectionState, DeviceProfile, DeviceSnapshot, ServiceKind
from nevermorectl.core.services import (
    SERVICE_TYPES,
    EnvironmentalSensingService,
    FanPolicyService,
    FanService,
    Service,
    ServoService,
)
from nevermorectl.transports.base import DeviceHandle, GattTransport

LOGGER = logging.getLogger(__name__)

_S = TypeVar("_S", bound=Service)


class DeviceConnection:
    """Connection state machine for one peripheral.

    ``DISCONNECTED -> CONNECTING -> CONNECTED``; a failed connect falls back to
    ``DISCONNECTED``. Any disconnect, requested or not, drops every discovered
    service while the device identity is kept so ``connect()`` can be called
    again.
    """

    def __init__(self, device: DeviceHandle, transport: GattTransport, profile: DeviceProfile) -> None:
        self.device = device
        self.transport = transport
        self.profile = profile
        self.state = ConnectionState.DISCONNECTED
        self.last_error: NevermoreError | None = None
        self.services: dict[ServiceKind, Service | None] = dict.fromkeys(profile.services)
        self._server: Any = None
        self._attempt = 0
        self._discovering = False

    @property
    def id(self) -> str:
        return self.device.id

    @property
    def name(self) -> str:
        return self.device.name or "Unknown Device"

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    async def connect(self) -> bool:
        if self.state is not ConnectionState.DISCONNECTED:
            return self.is_connected

        self.state = ConnectionState.CONNECTING
        self.last_error = None
        self._attempt += 1
        attempt = self._attempt
        try:
            server = await self.transport.connect(self.device, self._handle_disconnected)
        except TransportError as exc:
            if attempt != self._attempt:
                return False
            error = ConnectionFailedError(f"Could not connect to {self.name} ({self.id}): {exc}")
            error.__cause__ = exc
            self.last_error = error
            self.state = ConnectionState.DISCONNECTED
            LOGGER.warning("%s", error)
            return False

        if attempt != self._attempt:
            # disconnect() ran while the link was still coming up
            LOGGER.info("%s: connect aborted, closing link", self.name)
            await self._close_link(server)
            return False

        self._server = server
        self.state = ConnectionState.CONNECTED
        LOGGER.info("connected to %s (%s)", self.name, self.id)
        self._discovering = True
        try:
            await self._discover_services(server)
        finally:
            self._discovering = False
        return self.is_connected

    async def _discover_services(self, server: Any) -> None:
        for kind, uuid in self.profile.services.items():
            if self._server is not server:
                LOGGER.info("%s: link lost during discovery, stopping", self.name)
                return

            try:
                handle = await self.transport.get_primary_service(server, uuid)
            except TransportError as exc:
                LOGGER.info("%s: %s service not available: %s", self.name, kind.value, exc)
                self.services[kind] = None
                continue
            if self._server is not server:
                return

            service = SERVICE_TYPES[kind](self.transport, handle, self.profile)
            await service.discover()
            if self._server is not server:
                service.release()
                return
            self.services[kind] = service

    async def disconnect(self) -> None:
        server = self._server
        for service in list(self.services.values()):
            if service is not None:
                await service.close()
        self._reset()

        if server is None:
            return
        if await self._close_link(server):
            self.last_error = None

    async def _close_link(self, server: Any) -> bool:
        try:
            await self.transport.disconnect(server)
        except TransportError as exc:
            self.last_error = exc
            LOGGER.warning("%s: disconnect failed: %s", self.name, exc)
            return False
        return True

    def _handle_disconnected(self) -> None:
        if self._server is None and self.state is ConnectionState.DISCONNECTED:
            return
        LOGGER.info("%s (%s) disconnected", self.name, self.id)
        if self._discovering:
            self.last_error = ConnectionFailedError(f"{self.name}: link lost during discovery")
        for service in self.services.values():
            if service is not None:
                service.release()
        self._reset()

    def _reset(self) -> None:
        # invalidates any connect() still waiting on the transport
        self._attempt += 1
        self._server = None
        self.state = ConnectionState.DISCONNECTED
        self.services = dict.fromkeys(self.profile.services)

    async def refresh(self) -> None:
        for service in list(self.services.values()):
            if service is not None:
                await service.refresh()

    def service(self, kind: ServiceKind) -> Service | None:
        return self.services.get(kind)

    def _require(self, kind: ServiceKind, expected: type[_S]) -> _S:
        service = self.services.get(kind)
        if not isinstance(service, expected):
            raise CapabilityMissingError(f"{self.name} has no {kind.value} service")
        return service

    @property
    def environmental(self) -> EnvironmentalSensingService | None:
        service = self.services.get(ServiceKind.ENVIRONMENTAL_SENSING)
        return service if isinstance(service, EnvironmentalSensingService) else None

    @property
    def fan(self) -> FanService | None:
        service = self.services.get(ServiceKind.FAN)
        return service if isinstance(service, FanService) else None

    @property
    def fan_policy(self) -> FanPolicyService | None:
        service = self.services.get(ServiceKind.FAN_POLICY)
        return service if isinstance(service, FanPolicyService) else None

    @property
    def servo(self) -> ServoService | None:
        service = self.services.get(ServiceKind.SERVO)
        return service if isinstance(service, ServoService) else None

    async def set_power_override(self, percentage: float | None) -> bool:
        return await self._require(ServiceKind.FAN, FanService).set_power_override(percentage)

    async def set_servo_position(self, percentage: float) -> bool:
        return await self._require(ServiceKind.SERVO, ServoService).set_position(percentage)

    async def set_servo_range(self, start: float, end: float) -> bool:
        return await self._require(ServiceKind.SERVO, ServoService).set_range(start, end)

    def snapshot(self) -> DeviceSnapshot:
        return DeviceSnapshot(
            id=self.id,
            name=self.name,
            connection_state=self.state,
            error=str(self.last_error) if self.last_error is not None else None,
            services={
                kind: service.snapshot() if service is not None else None
                for kind, service in self.services.items()
            },
        )
