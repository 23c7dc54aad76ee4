"""Domain-specific errors for nevermorectl."""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    TRANSPORT_UNSUPPORTED = "transport_unsupported"
    USER_CANCELLED = "user_cancelled"
    CONNECTION_FAILED = "connection_failed"
    DISCOVERY_INCOMPLETE = "discovery_incomplete"
    MALFORMED_PAYLOAD = "malformed_payload"
    OPERATION_FAILED = "operation_failed"
    CAPABILITY_MISSING = "capability_missing"
    TRANSPORT = "transport"
    CONFIGURATION = "configuration"
    INVALID_VALUE = "invalid_value"


class NevermoreError(Exception):
    """Base error for nevermorectl."""

    kind: ErrorKind = ErrorKind.OPERATION_FAILED


class ProfileValidationError(NevermoreError):
    """Raised when a profile file does not conform to schema or semantics."""

    kind = ErrorKind.CONFIGURATION


class ProfileLoadError(NevermoreError):
    """Raised when loading profile sources fails."""

    kind = ErrorKind.CONFIGURATION


class DeviceSelectionError(NevermoreError):
    """Raised when a device id or profile id cannot be resolved."""

    kind = ErrorKind.CONFIGURATION


class DeviceDiscoveryError(NevermoreError):
    """Raised when a scan finishes without finding a matching peripheral."""

    kind = ErrorKind.CONNECTION_FAILED


class UserCancelledError(NevermoreError):
    """Raised when the user aborts device selection. Never shown as an error."""

    kind = ErrorKind.USER_CANCELLED


class ConnectionFailedError(NevermoreError):
    """Recorded on a device when the GATT connection cannot be established."""

    kind = ErrorKind.CONNECTION_FAILED


class DiscoveryIncompleteError(NevermoreError):
    """Recorded on a service when one or more expected slots are absent."""

    kind = ErrorKind.DISCOVERY_INCOMPLETE

    def __init__(self, service: str, missing: tuple[str, ...]) -> None:
        super().__init__(f"{service}: missing {', '.join(missing)}")
        self.service = service
        self.missing = missing


class MalformedPayloadError(NevermoreError):
    """Raised when a payload does not match the expected layout width."""

    kind = ErrorKind.MALFORMED_PAYLOAD


class OperationFailedError(NevermoreError):
    """Recorded on a characteristic when a read/write/subscribe fails."""

    kind = ErrorKind.OPERATION_FAILED


class CapabilityMissingError(NevermoreError):
    """Raised when a command targets a slot or capability that was never discovered."""

    kind = ErrorKind.CAPABILITY_MISSING


class InvalidValueError(NevermoreError, ValueError):
    """Raised when a command argument cannot be encoded, e.g. a NaN percentage."""

    kind = ErrorKind.INVALID_VALUE


class TransportError(NevermoreError):
    """Base transport error."""

    kind = ErrorKind.TRANSPORT


class TransportUnsupportedError(TransportError):
    """Raised when the host offers no usable BLE capability."""

    kind = ErrorKind.TRANSPORT_UNSUPPORTED


class TransportConnectError(TransportError):
    """Raised on GATT connect failures."""


class TransportSendError(TransportError):
    """Raised when a GATT read, write or notification request fails."""


class TransportTimeoutError(TransportError):
    """Raised when a GATT request times out."""
