"""Characteristic wrappers and their read/write/notify state machine.

A characteristic is one of three tagged variants sharing a common state record:

- ``ReadOnly``: read only.
- ``Notify``: read plus subscribe/unsubscribe. May carry an encoder when the
  peripheral also accepts writes on it (e.g. the servo position).
- ``Writeable``: read plus write.

Operations are module-level coroutines that select behaviour by matching on the
variant. Failures of a single operation are recorded on the characteristic's
``last_error`` and never raised to the caller; only invoking a capability the
variant lacks raises ``CapabilityMissingError``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Any, Generic, TypeVar, Union

from nevermorectl.core.errors import (
    CapabilityMissingError,
    MalformedPayloadError,
    NevermoreError,
    OperationFailedError,
    TransportError,
)
from nevermorectl.core.model import SlotSnapshot
from nevermorectl.transports.base import CharacteristicHandle, GattTransport

T = TypeVar("T")
LOGGER = logging.getLogger(__name__)


@dataclass
class CharacteristicState(Generic[T]):
    current_value: T | None = None
    last_update: datetime | None = None
    last_error: NevermoreError | None = None
    reading: bool = False
    writing: bool = False
    subscribing: bool = False


@dataclass(eq=False)
class ReadOnly(Generic[T]):
    handle: CharacteristicHandle
    transport: GattTransport
    decode: Callable[[bytes], T]
    state: CharacteristicState[T] = field(default_factory=CharacteristicState)


@dataclass(eq=False)
class Notify(Generic[T]):
    handle: CharacteristicHandle
    transport: GattTransport
    decode: Callable[[bytes], T]
    encode: Callable[[T], bytes] | None = None
    state: CharacteristicState[T] = field(default_factory=CharacteristicState)
    is_subscribed: bool = False


@dataclass(eq=False)
class Writeable(Generic[T]):
    handle: CharacteristicHandle
    transport: GattTransport
    decode: Callable[[bytes], T]
    encode: Callable[[T], bytes]
    state: CharacteristicState[T] = field(default_factory=CharacteristicState)


Characteristic = Union[ReadOnly[Any], Notify[Any], Writeable[Any]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _record_failure(char: Characteristic, action: str, exc: NevermoreError) -> None:
    error = OperationFailedError(f"{action} {char.handle.uuid} failed: {exc}")
    error.__cause__ = exc
    char.state.last_error = error
    LOGGER.warning("%s", error)


def _require_notify(char: Characteristic, action: str) -> Notify[Any]:
    match char:
        case Notify():
            return char
    raise CapabilityMissingError(f"Characteristic {char.handle.uuid} does not support {action}")


def _require_encoder(char: Characteristic) -> Callable[[Any], bytes]:
    match char:
        case Writeable(encode=encoder):
            return encoder
        case Notify(encode=encoder) if encoder is not None:
            return encoder
    raise CapabilityMissingError(f"Characteristic {char.handle.uuid} is not writeable")


def can_write(char: Characteristic) -> bool:
    match char:
        case Writeable():
            return True
        case Notify(encode=encoder):
            return encoder is not None
        case _:
            return False


def can_notify(char: Characteristic) -> bool:
    match char:
        case Notify():
            return True
        case _:
            return False


async def read(char: Characteristic) -> Any:
    """Read and decode the current value. Returns ``None`` on failure."""
    state = char.state
    state.reading = True
    try:
        data = await char.transport.read(char.handle)
        value = char.decode(bytes(data))
    except (TransportError, MalformedPayloadError) as exc:
        _record_failure(char, "read", exc)
        return None
    finally:
        state.reading = False

    state.current_value = value
    state.last_update = _now()
    state.last_error = None
    return value


async def write(char: Characteristic, value: Any) -> bool:
    """Encode and transmit ``value``; on success it becomes the current value."""
    encoder = _require_encoder(char)
    state = char.state
    state.writing = True
    try:
        await char.transport.write(char.handle, encoder(value))
    except (TransportError, MalformedPayloadError) as exc:
        _record_failure(char, "write", exc)
        return False
    finally:
        state.writing = False

    state.current_value = value
    state.last_update = _now()
    state.last_error = None
    return True


def _on_notification(char: Notify[Any], data: bytes) -> None:
    if not char.is_subscribed:
        return
    try:
        value = char.decode(bytes(data))
    except MalformedPayloadError as exc:
        char.state.last_error = exc
        LOGGER.debug("dropping notification from %s: %s", char.handle.uuid, exc)
        return
    char.state.current_value = value
    char.state.last_update = _now()


async def subscribe(char: Characteristic) -> bool:
    notify = _require_notify(char, "subscribe")
    if notify.is_subscribed:
        return True

    state = notify.state
    state.subscribing = True
    # accept notifications delivered before start_notifications returns
    notify.is_subscribed = True
    try:
        await notify.transport.start_notifications(notify.handle, partial(_on_notification, notify))
    except TransportError as exc:
        notify.is_subscribed = False
        _record_failure(notify, "subscribe", exc)
        return False
    finally:
        state.subscribing = False

    state.last_error = None
    return True


async def unsubscribe(char: Characteristic) -> bool:
    """Stop notifications. A no-op success when not subscribed."""
    notify = _require_notify(char, "unsubscribe")
    if not notify.is_subscribed:
        return True

    notify.is_subscribed = False
    try:
        await notify.transport.stop_notifications(notify.handle)
    except TransportError as exc:
        _record_failure(notify, "unsubscribe", exc)
        return False
    notify.state.last_error = None
    return True


def release(char: Characteristic) -> None:
    """Drop the local subscription after the link went away."""
    match char:
        case Notify():
            char.is_subscribed = False


def snapshot(char: Characteristic) -> SlotSnapshot:
    state = char.state
    return SlotSnapshot(
        current_value=state.current_value,
        last_update=state.last_update,
        error=str(state.last_error) if state.last_error is not None else None,
    )
