"""BLE GATT hardware access implementation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from cpenctl.core.errors import (
    ConnectFailureError,
    CpenctlError,
    DeviceNotFoundError,
    HardwareDisabledError,
    HardwareUnavailableError,
    NotConnectedError,
    ScanFailureError,
    UnknownError,
)
from cpenctl.core.model import TransportSpec
from cpenctl.transports.base import LinkLostCallback, PushCallback

UNKNOWN_DEVICE_NAME = "Unknown device"
LOGGER = logging.getLogger(__name__)


def classify_error(exc: Exception, *, stage: str) -> CpenctlError:
    """Translate a bleak/OS failure into a structured cpenctl error."""
    if isinstance(exc, CpenctlError):
        return exc

    from bleak.exc import (  # type: ignore
        BleakBluetoothNotAvailableError,
        BleakBluetoothNotAvailableReason,
        BleakDeviceNotFoundError,
        BleakError,
    )

    if isinstance(exc, BleakBluetoothNotAvailableError):
        if exc.reason is BleakBluetoothNotAvailableReason.POWERED_OFF:
            return HardwareDisabledError(f"Bluetooth is turned off: {exc}")
        return HardwareUnavailableError(f"Bluetooth is not available: {exc}")
    if isinstance(exc, BleakDeviceNotFoundError):
        return DeviceNotFoundError(f"Device not found during {stage}: {exc}")
    if stage == "scan" and isinstance(exc, (BleakError, OSError, TimeoutError)):
        return ScanFailureError(f"BLE scan failed: {exc}")
    if stage == "connect" and isinstance(exc, (BleakError, OSError, TimeoutError)):
        return ConnectFailureError(f"BLE connect failed: {exc}")
    return UnknownError(f"BLE {stage} failed: {exc}")


class BLEGATTHardware:
    """Single-link BLE access to one write/notify characteristic."""

    def __init__(self, spec: TransportSpec) -> None:
        self._spec = spec
        self._client: Any | None = None
        self._subscribers: list[PushCallback] = []

    @property
    def is_connected(self) -> bool:
        return self._client is not None and bool(self._client.is_connected)

    async def scan(self) -> list[str]:
        from bleak import BleakScanner  # type: ignore

        try:
            discovered = await BleakScanner.discover(timeout=self._spec.scan_timeout_s, return_adv=True)
        except Exception as exc:
            raise classify_error(exc, stage="scan") from exc

        lines: list[str] = []
        for device, adv in discovered.values():
            name = adv.local_name or device.name or UNKNOWN_DEVICE_NAME
            lines.append(f"{name} - {device.address}")
        LOGGER.debug("Scan returned %d device(s)", len(lines))
        return lines

    async def connect(
        self,
        address: str,
        *,
        on_link_lost: LinkLostCallback | None = None,
    ) -> None:
        from bleak import BleakClient, BleakScanner  # type: ignore

        if self._client is not None:
            await self.disconnect()

        client: Any | None = None
        try:
            device = await BleakScanner.find_device_by_address(address, timeout=self._spec.scan_timeout_s)
            if device is None:
                raise DeviceNotFoundError(f"Device {address} is no longer advertising")

            def _disconnected(closed: Any) -> None:
                # Only a drop of the current link counts; our own disconnect clears it first.
                if closed is self._client:
                    self._client = None
                    if on_link_lost is not None:
                        on_link_lost()

            client = BleakClient(
                device,
                disconnected_callback=_disconnected,
                timeout=self._spec.connect_timeout_s,
            )
            await client.connect()
            self._client = client
            await client.start_notify(self._spec.char_uuid, self._on_notification)
        except Exception as exc:
            self._client = None
            if client is not None:
                await _close_quietly(client)
            raise classify_error(exc, stage="connect") from exc

        LOGGER.debug("Notifications started on %s", self._spec.char_uuid)

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.stop_notify(self._spec.char_uuid)
        except Exception as exc:
            LOGGER.debug("stop_notify failed during disconnect: %s", exc)
        try:
            await client.disconnect()
        except Exception as exc:
            raise classify_error(exc, stage="disconnect") from exc

    async def write(self, payload: bytes) -> bytes | None:
        client = self._client
        if client is None or not client.is_connected:
            raise NotConnectedError("BLE link is not open")
        try:
            await client.write_gatt_char(
                self._spec.char_uuid,
                payload,
                response=self._spec.write_with_response,
            )
            if not self._spec.read_after_write:
                return None
            data = await client.read_gatt_char(self._spec.char_uuid)
        except TimeoutError:
            raise
        except Exception as exc:
            raise classify_error(exc, stage="write") from exc
        return bytes(data) if data else None

    def on_push(self, callback: PushCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            self._subscribers = [c for c in self._subscribers if c is not callback]

        return _unsubscribe

    def _on_notification(self, _: Any, data: bytearray) -> None:
        payload = bytes(data)
        LOGGER.debug("Notification (%d bytes)", len(payload))
        for callback in list(self._subscribers):
            callback(payload)


async def _close_quietly(client: Any) -> None:
    try:
        await client.disconnect()
    except Exception as exc:
        LOGGER.debug("Cleanup disconnect failed: %s", exc)
