"""Bridge from the hardware push channel to a one-shot awaitable receive."""

from __future__ import annotations

import asyncio
import logging

from cpenctl.transports.base import HardwareAccess

NO_DATA = ""
DEFAULT_RECV_TIMEOUT_S = 2.0
LOGGER = logging.getLogger(__name__)


class EventBridge:
    def __init__(self, hardware: HardwareAccess, *, timeout_s: float = DEFAULT_RECV_TIMEOUT_S) -> None:
        self._hardware = hardware
        self._timeout_s = timeout_s

    async def recv(self, timeout_s: float | None = None) -> str:
        """Return the first pushed payload, or ``NO_DATA`` once ``timeout_s`` elapses."""
        timeout_s = self._timeout_s if timeout_s is None else timeout_s
        received: asyncio.Future[bytes] = asyncio.get_running_loop().create_future()

        def _on_push(data: bytes) -> None:
            if not received.done():
                received.set_result(bytes(data))

        unsubscribe = self._hardware.on_push(_on_push)
        try:
            async with asyncio.timeout(timeout_s):
                data = await received
        except TimeoutError:
            LOGGER.debug("recv() got nothing within %.0fms", timeout_s * 1000)
            return NO_DATA
        finally:
            unsubscribe()
            if not received.done():
                received.cancel()

        text = data.decode("utf-8", errors="replace")
        LOGGER.debug("recv() got %r", text)
        return text
