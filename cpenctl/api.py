"""Stable public API for building tooling on top of cpenctl.

This module is the supported integration surface for third-party callers
(GUI/TUI/services/scripts). Avoid importing from private/internal modules
unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

from collections.abc import Callable

from cpenctl.core.device_match import filter_targets
from cpenctl.core.errors import (
    CommandTimeoutError,
    ConnectFailureError,
    ConnectionTimeoutError,
    CpenctlError,
    DeviceNotFoundError,
    ErrorKind,
    HardwareDisabledError,
    HardwareUnavailableError,
    NotConnectedError,
    ProfileLoadError,
    ProfileValidationError,
    ScanFailureError,
    UnknownError,
)
from cpenctl.core.model import (
    CommandResponse,
    CommandResult,
    CommandTimeout,
    ConnectionState,
    DeviceDescriptor,
    DeviceInfo,
    DeviceProfile,
    SessionState,
)
from cpenctl.core.profile_loader import load_profile
from cpenctl.core.session import DeviceSession
from cpenctl.transports.base import HardwareAccess
from cpenctl.transports.ble_gatt import BLEGATTHardware

__all__ = [
    "CpenctlError",
    "ErrorKind",
    "CommandTimeoutError",
    "ConnectFailureError",
    "ConnectionTimeoutError",
    "DeviceNotFoundError",
    "HardwareDisabledError",
    "HardwareUnavailableError",
    "NotConnectedError",
    "ProfileLoadError",
    "ProfileValidationError",
    "ScanFailureError",
    "UnknownError",
    "CommandResponse",
    "CommandResult",
    "CommandTimeout",
    "ConnectionState",
    "DeviceDescriptor",
    "DeviceInfo",
    "DeviceProfile",
    "SessionState",
    "HardwareAccess",
    "BLEGATTHardware",
    "Client",
]


class Client:
    """Public client for a single companion-device session.

    A `Client` is the composition root: it loads the device profile, builds
    the hardware access layer (BLE by default), and owns exactly one
    `DeviceSession`. Create one per process and pass it to whatever needs it.
    """

    def __init__(
        self,
        *,
        hardware: HardwareAccess | None = None,
        profile: DeviceProfile | None = None,
    ) -> None:
        warnings: tuple[str, ...] = ()
        if profile is None:
            loaded = load_profile()
            profile = loaded.profile
            warnings = loaded.warnings
        self._load_warnings = warnings
        self._session = DeviceSession(
            hardware or BLEGATTHardware(profile.transport),
            profile=profile,
        )

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._load_warnings

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def device(self) -> DeviceDescriptor | None:
        return self._session.device

    def status_text(self) -> str:
        return self._session.status_text()

    def register_observers(
        self,
        *,
        on_state_change: Callable[[SessionState], None] | None = None,
        on_value_change: Callable[[str | None], None] | None = None,
        on_device_info_change: Callable[[DeviceInfo | None], None] | None = None,
    ) -> Callable[[], None]:
        return self._session.register_observers(
            on_state_change=on_state_change,
            on_value_change=on_value_change,
            on_device_info_change=on_device_info_change,
        )

    async def scan(self) -> list[str]:
        return await self._session.scan()

    async def find_targets(self) -> list[DeviceDescriptor]:
        return filter_targets(await self._session.scan())

    async def connect(self) -> DeviceDescriptor:
        return await self._session.connect()

    async def disconnect(self) -> None:
        await self._session.disconnect()

    async def get_value(self) -> str:
        return await self._session.get_value()

    async def get_id(self) -> str:
        return await self._session.get_id()

    async def send_command(self, command: str, timeout_s: float | None = None) -> CommandResult:
        return await self._session.send_command(command, timeout_s)

    async def recv(self, timeout_s: float | None = None) -> str:
        return await self._session.recv(timeout_s)

    async def close(self) -> None:
        await self._session.close()
