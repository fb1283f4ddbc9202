"""Hardware-access interface consumed by the session core."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

PushCallback = Callable[[bytes], None]
LinkLostCallback = Callable[[], None]


class HardwareAccess(Protocol):
    async def scan(self) -> list[str]:
        """Discover nearby devices as ``"name - address"`` lines, in discovery order."""

    async def connect(
        self,
        address: str,
        *,
        on_link_lost: LinkLostCallback | None = None,
    ) -> None:
        """Open the link to ``address`` and start delivering pushes."""

    async def disconnect(self) -> None:
        """Close the current link, if any."""

    async def write(self, payload: bytes) -> bytes | None:
        """Write a command and optionally return a direct response."""

    def on_push(self, callback: PushCallback) -> Callable[[], None]:
        """Subscribe to unsolicited device data; returns an unsubscribe callable."""
