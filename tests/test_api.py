from __future__ import annotations

import asyncio

import pytest

from fakes import FakeTransport, nevermore_transport
from nevermorectl.api import (
    BLEGATTTransport,
    Client,
    ConnectionState,
    DeviceSelectionError,
    ServiceKind,
)
from nevermorectl.core.profile_loader import load_profiles


def _client() -> tuple[Client, FakeTransport]:
    transport = nevermore_transport(load_profiles().get())
    return Client(transport=transport), transport


def test_public_client_list_profiles() -> None:
    client, _ = _client()
    profiles = client.list_profiles()
    assert [p.id for p in profiles] == ["nevermore"]
    assert client.load_warnings == ()


def test_default_transport_is_bleak_backed() -> None:
    client = Client()
    transport = client._registry.transport
    assert isinstance(transport, BLEGATTTransport)
    assert transport.scan_timeout_s == client.profile.scan_timeout_s


def test_unknown_profile_rejected() -> None:
    with pytest.raises(DeviceSelectionError):
        Client(profile_id="nope")


def test_public_client_request_and_snapshot() -> None:
    client, _ = _client()

    connection = asyncio.run(client.request_device())

    assert connection is not None
    assert client.get_device(connection.id) is connection
    snap = client.snapshot(connection.id)
    assert snap.connection_state is ConnectionState.CONNECTED
    fan = snap.services[ServiceKind.FAN]
    assert fan is not None
    assert fan.slots["aggregate"].current_value.tachometer == 1200
    assert [s.id for s in client.snapshots()] == [connection.id]


def test_public_client_commands() -> None:
    client, _ = _client()

    async def _scenario() -> tuple[bool, bool, bool]:
        connection = await client.request_device()
        assert connection is not None
        return (
            await client.set_power_override(connection.id, None),
            await client.set_servo_position(connection.id, 120),
            await client.set_servo_range(connection.id, 0, 100),
        )

    assert asyncio.run(_scenario()) == (True, True, True)


def test_public_client_disconnect_and_remove() -> None:
    client, transport = _client()
    connection = asyncio.run(client.request_device())
    assert connection is not None

    asyncio.run(client.disconnect(connection.id))
    assert client.snapshot(connection.id).connection_state is ConnectionState.DISCONNECTED
    assert asyncio.run(client.connect(connection.id)) is True

    asyncio.run(client.remove(connection.id))
    assert client.get_device(connection.id) is None
    assert transport.disconnect_calls == 2


def test_scan_failure_exposed_as_last_error() -> None:
    client, transport = _client()
    transport.devices = []

    assert asyncio.run(client.request_device()) is None
    assert client.last_error is not None
