"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer

from cpenctl.api import Client
from cpenctl.core.device_match import is_target, parse_discovery_line
from cpenctl.core.errors import CpenctlError, ErrorKind

T = TypeVar("T")

app = typer.Typer(help="CPen companion device control over Bluetooth LE")

_HINTS = {
    ErrorKind.HARDWARE_UNAVAILABLE: "No Bluetooth adapter was found on this machine.",
    ErrorKind.HARDWARE_DISABLED: "Bluetooth is turned off. Enable it and retry.",
    ErrorKind.DEVICE_NOT_FOUND: "Make sure the pen is powered on and nearby.",
    ErrorKind.CONNECTION_TIMEOUT: "The device did not respond in time. Move closer and retry.",
    ErrorKind.COMMAND_TIMEOUT: "The device did not answer the command. Retry.",
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_client() -> Client:
    client = Client()
    for warning in client.load_warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return client


def _run(operation: Callable[[Client], Awaitable[T]]) -> T:
    client = _build_client()

    async def _session() -> T:
        try:
            return await operation(client)
        finally:
            await client.close()

    return asyncio.run(_session())


def _fail(exc: CpenctlError) -> typer.Exit:
    typer.echo(f"Error: {exc}", err=True)
    hint = _HINTS.get(exc.kind)
    if hint:
        typer.echo(f"Hint: {hint}", err=True)
    return typer.Exit(code=1)


@app.command("devices")
def list_devices() -> None:
    """Scan for nearby Bluetooth devices and mark CPen targets."""
    try:
        lines = _run(lambda client: client.scan())
    except CpenctlError as exc:
        raise _fail(exc) from None

    if not lines:
        typer.echo("No Bluetooth devices found")
        return
    for line in lines:
        device = parse_discovery_line(line)
        marker = "target" if is_target(device) else "-"
        typer.echo(f"{device.address} {device.name} [{marker}]")


@app.command("totp")
def get_totp() -> None:
    """Connect if needed and print the current one-time code."""
    try:
        value = _run(lambda client: client.get_value())
    except CpenctlError as exc:
        raise _fail(exc) from None
    typer.echo(value)


@app.command("id")
def get_id() -> None:
    """Connect if needed and print the device identifier."""
    try:
        device_id = _run(lambda client: client.get_id())
    except CpenctlError as exc:
        raise _fail(exc) from None
    typer.echo(device_id)


@app.command("send")
def send_command(
    command: str,
    timeout_ms: int = typer.Option(500, "--timeout-ms", min=1, help="Response wait in milliseconds"),
) -> None:
    """Send a raw command to the device and print its response."""

    async def _send(client: Client):
        await client.connect()
        return await client.send_command(command, timeout_ms / 1000)

    try:
        result = _run(_send)
    except CpenctlError as exc:
        raise _fail(exc) from None

    if result.timed_out:
        typer.echo(f"No response to '{command}' within {timeout_ms}ms")
        return
    typer.echo(f"response={result.payload}")


@app.command("listen")
def listen(
    timeout_ms: int = typer.Option(2000, "--timeout-ms", min=1, help="How long to wait for data"),
) -> None:
    """Wait for one unsolicited message from the device."""

    async def _listen(client: Client) -> str:
        await client.connect()
        return await client.recv(timeout_ms / 1000)

    try:
        data = _run(_listen)
    except CpenctlError as exc:
        raise _fail(exc) from None

    if not data:
        typer.echo(f"No data received within {timeout_ms}ms")
        return
    typer.echo(data)


@app.command("status")
def status() -> None:
    """Connect and report the session status and device identity."""

    async def _status(client: Client) -> tuple[str, str]:
        await client.connect()
        device_id = await client.get_id()
        return client.status_text(), device_id

    try:
        text, device_id = _run(_status)
    except CpenctlError as exc:
        raise _fail(exc) from None
    typer.echo(text)
    typer.echo(f"Device ID: {device_id}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
