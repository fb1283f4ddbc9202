"""Session orchestration used by the public API and the CLI."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from cpenctl.core.broadcaster import StateBroadcaster
from cpenctl.core.cache import ValueCache
from cpenctl.core.commands import GET_ID, GET_TOTP, CommandTransport, set_time_command
from cpenctl.core.errors import CommandTimeoutError, ConnectionTimeoutError
from cpenctl.core.events import EventBridge
from cpenctl.core.lifecycle import ConnectionLifecycle
from cpenctl.core.model import (
    CommandResult,
    CommandTimeout,
    ConnectionState,
    DeviceDescriptor,
    DeviceInfo,
    DeviceProfile,
    ObserverRegistration,
    SessionState,
)
from cpenctl.core.profile_loader import load_profile
from cpenctl.transports.base import HardwareAccess

LOGGER = logging.getLogger(__name__)


class DeviceSession:
    """One exclusive session with a companion device.

    Builds and owns the lifecycle, transport, event bridge, caches, and
    broadcaster. ``get_value()`` and ``get_id()`` connect on demand; the
    combined discover+connect+fetch path is bounded by the profile's
    connect budget.
    """

    def __init__(
        self,
        hardware: HardwareAccess,
        *,
        profile: DeviceProfile | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.profile = profile or load_profile().profile
        timing = self.profile.timing
        self._wall_clock = wall_clock
        self._broadcaster = StateBroadcaster()
        self._cache = ValueCache(self._broadcaster, ttl_s=timing.value_ttl_s, clock=clock)
        self._lifecycle = ConnectionLifecycle(hardware, self._broadcaster, self._cache, timing=timing)
        self._transport = CommandTransport(hardware, self._lifecycle, timeout_s=timing.command_timeout_s)
        self._bridge = EventBridge(hardware, timeout_s=timing.recv_timeout_s)
        self._hardware = hardware
        self._drains: set[asyncio.Task[str]] = set()

    @property
    def state(self) -> SessionState:
        return self._lifecycle.state

    @property
    def device(self) -> DeviceDescriptor | None:
        return self._lifecycle.device

    @property
    def device_id(self) -> str | None:
        return self._cache.identity

    def register_observers(
        self,
        *,
        on_state_change: Callable[[SessionState], None] | None = None,
        on_value_change: Callable[[str | None], None] | None = None,
        on_device_info_change: Callable[[DeviceInfo | None], None] | None = None,
    ) -> Callable[[], None]:
        return self._broadcaster.register(
            ObserverRegistration(
                on_state_change=on_state_change,
                on_value_change=on_value_change,
                on_device_info_change=on_device_info_change,
            )
        )

    async def scan(self) -> list[str]:
        return await self._hardware.scan()

    async def connect(self) -> DeviceDescriptor:
        async with self._budget("connect"):
            return await self._lifecycle.connect()

    async def disconnect(self) -> None:
        LOGGER.info("Disconnecting session")
        await self._lifecycle.disconnect()

    async def get_value(self) -> str:
        cached = self._cache.peek()
        if cached is not None:
            return cached
        async with self._budget("value fetch"):
            return await self._cache.get_value(self._fetch_value)

    async def get_id(self) -> str:
        cached = self._cache.identity
        if cached is not None:
            return cached
        async with self._budget("identity fetch"):
            return await self._cache.get_identity(self._fetch_identity, self._publish_identity)

    async def send_command(self, command: str, timeout_s: float | None = None) -> CommandResult:
        self._stop_drains()
        return await self._transport.send_command(command, timeout_s)

    async def recv(self, timeout_s: float | None = None) -> str:
        return await self._bridge.recv(timeout_s)

    def status_text(self) -> str:
        state = self.state
        device = self.device
        if state.state is ConnectionState.CONNECTED and device is not None:
            return f"Connected to {device.name} ({device.address})"
        if state.state is ConnectionState.CONNECTING:
            return "Connecting..."
        if state.state is ConnectionState.SCANNING:
            return "Scanning for devices..."
        if state.state is ConnectionState.ERROR:
            return f"Error: {state.reason}"
        return "Not connected"

    async def close(self) -> None:
        self._stop_drains()
        if self._drains:
            await asyncio.gather(*self._drains, return_exceptions=True)
        await self.disconnect()

    @asynccontextmanager
    async def _budget(self, operation: str) -> AsyncIterator[None]:
        budget_s = self.profile.timing.connect_budget_s
        timeout = asyncio.timeout(budget_s)
        try:
            async with timeout:
                yield
        except TimeoutError as exc:
            if not timeout.expired():
                raise
            raise ConnectionTimeoutError(f"{operation} did not finish within {budget_s:g}s") from exc

    async def _fetch_value(self) -> str:
        self._stop_drains()
        await self._lifecycle.connect()

        sync = await self._transport.send_command(set_time_command(self._wall_clock()))
        if sync.timed_out:
            LOGGER.debug("Clock sync got no acknowledgement (tolerated)")

        result = await self._transport.send_command(GET_TOTP)
        if isinstance(result, CommandTimeout):
            raise CommandTimeoutError(f"Device did not answer '{GET_TOTP}' in time")
        self._start_drain()
        return result.payload

    async def _fetch_identity(self) -> str:
        self._stop_drains()
        await self._lifecycle.connect()
        result = await self._transport.send_command(GET_ID)
        if isinstance(result, CommandTimeout):
            raise CommandTimeoutError(f"Device did not answer '{GET_ID}' in time")
        return result.payload

    def _publish_identity(self, device_id: str) -> None:
        device = self._lifecycle.device
        if device is None:
            return
        self._broadcaster.device_info_changed(
            DeviceInfo(name=device.name, address=device.address, device_id=device_id)
        )

    def _start_drain(self) -> None:
        if not self.profile.drain_pushes:
            return
        task = asyncio.get_running_loop().create_task(self._drain())
        self._drains.add(task)
        task.add_done_callback(self._drains.discard)

    def _stop_drains(self) -> None:
        # Drains end before the next command so its reply is not logged as a push.
        for task in list(self._drains):
            task.cancel()

    async def _drain(self) -> str:
        data = await self._bridge.recv()
        if data:
            LOGGER.info("Device pushed after value fetch: %r", data)
        return data
