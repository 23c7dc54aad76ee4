"""Core data models shared by the device layer, the API and the CLI."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ServiceKind(str, enum.Enum):
    ENVIRONMENTAL_SENSING = "environmental_sensing"
    FAN = "fan"
    FAN_POLICY = "fan_policy"
    SERVO = "servo"


@dataclass(frozen=True)
class MatchRules:
    name_prefix: str


@dataclass(frozen=True)
class LabelRule:
    include: str
    exclude: str | None = None

    def matches(self, text: str) -> bool:
        if self.include not in text:
            return False
        return self.exclude is None or self.exclude not in text


@dataclass(frozen=True)
class DeviceProfile:
    id: str
    name: str
    match: MatchRules
    services: dict[ServiceKind, str]
    characteristics: dict[str, str]
    labels: dict[str, LabelRule]
    scan_timeout_s: float = 10.0
    connect_timeout_s: float = 10.0

    @property
    def service_allowlist(self) -> tuple[str, ...]:
        return tuple(self.services.values())

    def characteristic_uuid(self, key: str) -> str | None:
        return self.characteristics.get(key)


@dataclass(frozen=True)
class SlotSnapshot:
    current_value: Any
    last_update: datetime | None
    error: str | None


@dataclass(frozen=True)
class ServiceSnapshot:
    kind: ServiceKind
    slots: dict[str, SlotSnapshot | None]
    error: str | None


@dataclass(frozen=True)
class DeviceSnapshot:
    id: str
    name: str
    connection_state: ConnectionState
    error: str | None
    services: dict[ServiceKind, ServiceSnapshot | None]
