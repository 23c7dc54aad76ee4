"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import typer

from nevermorectl.api import Client
from nevermorectl.core.device import DeviceConnection
from nevermorectl.core.errors import ConnectionFailedError, NevermoreError, OperationFailedError
from nevermorectl.core.model import DeviceSnapshot
from nevermorectl.transports.ble_gatt import BleakDevice

app = typer.Typer(help="Nevermore air filter control over Bluetooth LE")

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=LOG_FORMAT)


def _choose_device(devices: list[BleakDevice]) -> BleakDevice | None:
    typer.echo("Multiple devices found:")
    for index, device in enumerate(devices, start=1):
        typer.echo(f"  [{index}] {device.id} {device.name or '<unnamed>'}")
    answer = typer.prompt("Select device (empty to cancel)", default="", show_default=False)
    try:
        index = int(answer)
    except ValueError:
        return None
    if 1 <= index <= len(devices):
        return devices[index - 1]
    return None


def _build_client(profile: str | None) -> Client:
    client = Client(profile_id=profile, chooser=_choose_device)
    for warning in client.load_warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return client


def _run(command: Callable[[], Awaitable[None]]) -> None:
    try:
        asyncio.run(command())
    except NevermoreError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


async def _open(client: Client, address: str | None) -> DeviceConnection | None:
    connection = await client.request_device(address=address)
    if connection is None:
        if client.last_error is not None:
            raise client.last_error
        typer.echo("Device selection cancelled", err=True)
        return None
    if not connection.is_connected:
        raise connection.last_error or ConnectionFailedError(f"Could not connect to {connection.name}")
    return connection


def _format_value(value: Any) -> str:
    if value is None:
        return "n/a"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return ", ".join(f"{k}={_format_value(v)}" for k, v in dataclasses.asdict(value).items())
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def _echo_snapshot(snapshot: DeviceSnapshot) -> None:
    typer.echo(f"{snapshot.name} ({snapshot.id}): {snapshot.connection_state.value}")
    if snapshot.error:
        typer.echo(f"  error: {snapshot.error}")
    for kind, service in snapshot.services.items():
        if service is None:
            typer.echo(f"  {kind.value}: <not available>")
            continue
        typer.echo(f"  {kind.value}:")
        for slot, state in service.slots.items():
            if state is None:
                continue
            line = f"    {slot}: {_format_value(state.current_value)}"
            if state.error:
                line += f" (error: {state.error})"
            typer.echo(line)


def _parse_override(value: str) -> float | None:
    if value.strip().lower() in {"off", "none", "auto"}:
        return None
    try:
        return float(value)
    except ValueError:
        raise typer.BadParameter(f"expected a percentage or 'off', got '{value}'") from None


@app.command("profiles")
def list_profiles() -> None:
    """List available device profiles."""
    try:
        client = _build_client(None)
    except NevermoreError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    for profile in client.list_profiles():
        typer.echo(f"{profile.id}: {profile.name} (name prefix '{profile.match.name_prefix}')")
        for kind in sorted(profile.services, key=lambda k: k.value):
            typer.echo(f"  {kind.value}: {profile.services[kind]}")


@app.command("scan")
def scan(
    device: str | None = typer.Option(None, "--device", help="BLE address to look for"),
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
) -> None:
    """Find a peripheral, connect and report which services it exposes."""

    async def _scan() -> None:
        client = _build_client(profile)
        try:
            connection = await _open(client, device)
            if connection is None:
                return
            snapshot = connection.snapshot()
            available = [k.value for k, s in snapshot.services.items() if s is not None]
            typer.echo(f"{snapshot.id} {snapshot.name} -> {', '.join(available) or '<no services>'}")
        finally:
            await client.disconnect_all()

    _run(_scan)


@app.command("status")
def status(
    device: str | None = typer.Option(None, "--device", help="BLE address to connect to"),
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
    watch: float = typer.Option(0.0, "--watch", min=0.0, help="Keep printing live values for N seconds"),
    interval: float = typer.Option(1.0, "--interval", min=0.1, help="Seconds between updates with --watch"),
) -> None:
    """Connect and print every discovered value."""

    async def _status() -> None:
        client = _build_client(profile)
        try:
            connection = await _open(client, device)
            if connection is None:
                return
            await client.refresh(connection.id)
            _echo_snapshot(connection.snapshot())
            loop = asyncio.get_running_loop()
            deadline = loop.time() + watch
            while loop.time() < deadline and connection.is_connected:
                await asyncio.sleep(interval)
                _echo_snapshot(connection.snapshot())
        finally:
            await client.disconnect_all()

    _run(_status)


@app.command("fan-override")
def fan_override(
    value: str = typer.Argument(..., help="Fan power percentage (0-100) or 'off'"),
    device: str | None = typer.Option(None, "--device", help="BLE address to connect to"),
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
) -> None:
    """Override fan power, or hand control back to the controller with 'off'."""
    percentage = _parse_override(value)

    async def _apply() -> None:
        client = _build_client(profile)
        try:
            connection = await _open(client, device)
            if connection is None:
                return
            ok = await client.set_power_override(connection.id, percentage)
            _report(ok, connection, "fan power override", "off" if percentage is None else f"{percentage:g}%")
        finally:
            await client.disconnect_all()

    _run(_apply)


@app.command("servo-position")
def servo_position(
    percentage: float = typer.Argument(..., help="Vent position 0-100 (clamped)"),
    device: str | None = typer.Option(None, "--device", help="BLE address to connect to"),
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
) -> None:
    """Move the vent servo."""

    async def _apply() -> None:
        client = _build_client(profile)
        try:
            connection = await _open(client, device)
            if connection is None:
                return
            ok = await client.set_servo_position(connection.id, percentage)
            _report(ok, connection, "servo position", f"{percentage:g}%")
        finally:
            await client.disconnect_all()

    _run(_apply)


@app.command("servo-range")
def servo_range(
    start: float = typer.Argument(..., help="PWM range start 0-100 (clamped)"),
    end: float = typer.Argument(..., help="PWM range end 0-100 (clamped)"),
    device: str | None = typer.Option(None, "--device", help="BLE address to connect to"),
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
) -> None:
    """Set the vent servo PWM range."""

    async def _apply() -> None:
        client = _build_client(profile)
        try:
            connection = await _open(client, device)
            if connection is None:
                return
            ok = await client.set_servo_range(connection.id, start, end)
            _report(ok, connection, "servo range", f"{start:g}%..{end:g}%")
        finally:
            await client.disconnect_all()

    _run(_apply)


def _report(ok: bool, connection: DeviceConnection, what: str, value: str) -> None:
    if not ok:
        raise OperationFailedError(f"Writing {what} to {connection.name} failed")
    typer.echo(f"Set {what}={value} on {connection.id} ({connection.name})")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
