"""Connection state machine for the single device session."""

from __future__ import annotations

import asyncio
import logging

from cpenctl.core.broadcaster import StateBroadcaster
from cpenctl.core.cache import ValueCache
from cpenctl.core.device_match import filter_targets, select_target
from cpenctl.core.errors import (
    ConnectFailureError,
    ConnectionTimeoutError,
    CpenctlError,
    UnknownError,
)
from cpenctl.core.model import (
    ConnectionState,
    DeviceDescriptor,
    DeviceInfo,
    SessionState,
    TimingSpec,
)
from cpenctl.transports.base import HardwareAccess

LOGGER = logging.getLogger(__name__)


class ConnectionLifecycle:
    """Owns the connection state and is the only component that changes it.

    Transitions::

        DISCONNECTED -> SCANNING -> CONNECTING -> CONNECTED
        SCANNING/CONNECTING -> ERROR -> DISCONNECTED (acknowledge or retry)
        any -> DISCONNECTED (disconnect or link loss)
    """

    def __init__(
        self,
        hardware: HardwareAccess,
        broadcaster: StateBroadcaster,
        cache: ValueCache,
        *,
        timing: TimingSpec | None = None,
    ) -> None:
        self._hardware = hardware
        self._broadcaster = broadcaster
        self._cache = cache
        self._timing = timing or TimingSpec()
        self._state = SessionState(ConnectionState.DISCONNECTED)
        self._device: DeviceDescriptor | None = None
        self._attempt: asyncio.Task[DeviceDescriptor] | None = None
        self._aborted: set[asyncio.Task[DeviceDescriptor]] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def device(self) -> DeviceDescriptor | None:
        return self._device

    @property
    def is_connected(self) -> bool:
        return self._state.state is ConnectionState.CONNECTED

    @property
    def is_connecting(self) -> bool:
        return self._attempt is not None

    async def connect(self, target: DeviceDescriptor | None = None) -> DeviceDescriptor:
        """Connect to ``target`` or, when omitted, to the first discovered target.

        Returns the connected device. Calls made while an attempt is already
        running wait for that attempt instead of starting another one.
        """
        if self.is_connected and self._device is not None:
            LOGGER.debug("Already connected to %s, reusing link", self._device.address)
            return self._device

        if self._attempt is None:
            if self._state.state is ConnectionState.ERROR:
                self.acknowledge_error()
            self._attempt = asyncio.get_running_loop().create_task(self._establish(target))
            self._attempt.add_done_callback(self._clear_attempt)
        else:
            LOGGER.debug("Joining in-flight connection attempt")
        return await asyncio.shield(self._attempt)

    def acknowledge_error(self) -> None:
        if self._state.state is ConnectionState.ERROR:
            self._set_state(SessionState(ConnectionState.DISCONNECTED))

    async def disconnect(self) -> None:
        aborted = False
        if self._attempt is not None and not self._attempt.done():
            LOGGER.info("Aborting in-flight connection attempt")
            self._aborted.add(self._attempt)
            self._attempt.cancel()
            aborted = True

        # An aborted attempt may already hold a half-open link.
        if self._device is not None or aborted:
            try:
                await self._hardware.disconnect()
            except CpenctlError as exc:
                LOGGER.warning("Error while closing link (continuing cleanup): %s", exc)

        self._reset("disconnect requested")

    def handle_link_lost(self) -> None:
        if self._device is None:
            return
        LOGGER.warning("Link to %s lost", self._device.address)
        self._reset("link lost")

    async def _establish(self, target: DeviceDescriptor | None) -> DeviceDescriptor:
        budget = asyncio.timeout(self._timing.connect_budget_s)
        try:
            async with budget:
                if target is None:
                    self._set_state(SessionState(ConnectionState.SCANNING))
                    lines = await self._hardware.scan()
                    targets = filter_targets(lines)
                    LOGGER.info("Scan found %d device(s), %d target(s)", len(lines), len(targets))
                    target = select_target(targets)
                    if len(targets) > 1:
                        LOGGER.info(
                            "Multiple targets found, using first: %s (ignored: %s)",
                            target.raw,
                            ", ".join(t.raw for t in targets[1:]),
                        )

                self._set_state(SessionState(ConnectionState.CONNECTING))
                LOGGER.info("Connecting to %s (%s)", target.name, target.address)
                await self._hardware.connect(target.address, on_link_lost=self.handle_link_lost)
                if self._timing.connect_settle_s > 0:
                    await asyncio.sleep(self._timing.connect_settle_s)
        except asyncio.CancelledError:
            if asyncio.current_task() not in self._aborted:
                raise
            raise ConnectFailureError("Connection attempt aborted by disconnect") from None
        except TimeoutError as exc:
            if budget.expired():
                error: CpenctlError = ConnectionTimeoutError(
                    f"Connecting did not finish within {self._timing.connect_budget_s:g}s"
                )
            else:
                error = ConnectFailureError(f"Connect timed out: {exc}")
            self._fail(error)
            raise error from exc
        except CpenctlError as exc:
            self._fail(exc)
            raise
        except Exception as exc:
            error = UnknownError(f"Unexpected error while connecting: {exc}")
            self._fail(error)
            raise error from exc

        self._device = target
        self._set_state(SessionState(ConnectionState.CONNECTED))
        self._broadcaster.device_info_changed(DeviceInfo(name=target.name, address=target.address))
        LOGGER.info("Connected to %s (%s)", target.name, target.address)
        return target

    def _fail(self, error: CpenctlError) -> None:
        LOGGER.warning("Connection attempt failed: %s", error)
        self._set_state(SessionState(ConnectionState.ERROR, reason=str(error), error_kind=error.kind))

    def _reset(self, reason: str) -> None:
        LOGGER.debug("Resetting session state (%s)", reason)
        had_device = self._device is not None
        self._device = None
        self._cache.invalidate()
        if had_device:
            self._broadcaster.device_info_changed(None)
        self._set_state(SessionState(ConnectionState.DISCONNECTED), force=True)

    def _set_state(self, state: SessionState, *, force: bool = False) -> None:
        if state == self._state and not force:
            return
        self._state = state
        self._broadcaster.state_changed(state)

    def _clear_attempt(self, task: asyncio.Task[DeviceDescriptor]) -> None:
        if self._attempt is task:
            self._attempt = None
        self._aborted.discard(task)
        if not task.cancelled():
            task.exception()
