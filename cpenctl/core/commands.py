"""Command vocabulary and the serialized command/response transport."""

from __future__ import annotations

import asyncio
import logging
import time

from cpenctl.core.errors import NotConnectedError, UnknownError
from cpenctl.core.lifecycle import ConnectionLifecycle
from cpenctl.core.model import CommandResponse, CommandResult, CommandTimeout, PendingCommand
from cpenctl.transports.base import HardwareAccess

# Fixed strings agreed with the device firmware.
SET_TIME = "setTime"
GET_TOTP = "getTotp"
GET_ID = "getId"

DEFAULT_COMMAND_TIMEOUT_S = 0.5
LOGGER = logging.getLogger(__name__)


def set_time_command(now: float | None = None) -> str:
    timestamp = int(time.time() if now is None else now)
    return f"{SET_TIME}:{timestamp}"


def _decode(command: str, payload: bytes) -> str:
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise UnknownError(f"Response to '{command}' is not valid UTF-8: {exc}") from exc


class CommandTransport:
    """Sends one command at a time and waits a bounded time for its response.

    The response is whichever arrives first: the direct return value of the
    hardware write, or the first push received after the write was issued.
    A missed response is reported as ``CommandTimeout``, not raised.
    """

    def __init__(
        self,
        hardware: HardwareAccess,
        lifecycle: ConnectionLifecycle,
        *,
        timeout_s: float = DEFAULT_COMMAND_TIMEOUT_S,
    ) -> None:
        self._hardware = hardware
        self._lifecycle = lifecycle
        self._timeout_s = timeout_s
        self._lock = asyncio.Lock()
        self._pending: PendingCommand | None = None

    @property
    def pending(self) -> PendingCommand | None:
        return self._pending

    async def send_command(self, command: str, timeout_s: float | None = None) -> CommandResult:
        if not self._lifecycle.is_connected:
            raise NotConnectedError(f"Cannot send '{command}': no device connected")

        timeout_s = self._timeout_s if timeout_s is None else timeout_s
        async with self._lock:
            # The link may have dropped while waiting for the previous command.
            if not self._lifecycle.is_connected:
                raise NotConnectedError(f"Cannot send '{command}': no device connected")
            return await self._exchange(command, timeout_s)

    async def _exchange(self, command: str, timeout_s: float) -> CommandResult:
        loop = asyncio.get_running_loop()
        self._pending = PendingCommand(command=command, deadline=loop.time() + timeout_s)
        response: asyncio.Future[bytes] = loop.create_future()

        def _on_push(data: bytes) -> None:
            if not response.done():
                response.set_result(bytes(data))

        unsubscribe = self._hardware.on_push(_on_push)
        try:
            async with asyncio.timeout_at(self._pending.deadline):
                LOGGER.debug("Sending command %r", command)
                direct = await self._hardware.write(command.encode("utf-8"))
                if direct and not response.done():
                    response.set_result(bytes(direct))
                payload = await response
        except TimeoutError:
            LOGGER.info("No response to %r within %.0fms", command, timeout_s * 1000)
            return CommandTimeout(command=command, timeout_s=timeout_s)
        finally:
            unsubscribe()
            if not response.done():
                response.cancel()
            self._pending = None

        text = _decode(command, payload)
        LOGGER.debug("Response to %r: %r", command, text)
        return CommandResponse(command=command, payload=text)
