"""Observer fan-out for session state, value, and device-info changes."""

from __future__ import annotations

import logging
from collections.abc import Callable

from cpenctl.core.model import DeviceInfo, ObserverRegistration, SessionState

LOGGER = logging.getLogger(__name__)


class StateBroadcaster:
    """Publishes session changes to registered observers, in registration order."""

    def __init__(self) -> None:
        self._registrations: list[ObserverRegistration] = []

    def register(self, registration: ObserverRegistration) -> Callable[[], None]:
        self._registrations.append(registration)

        def _unregister() -> None:
            self._registrations = [r for r in self._registrations if r is not registration]

        return _unregister

    def state_changed(self, state: SessionState) -> None:
        for registration in list(self._registrations):
            self._invoke(registration.on_state_change, state)

    def value_changed(self, value: str | None) -> None:
        for registration in list(self._registrations):
            self._invoke(registration.on_value_change, value)

    def device_info_changed(self, info: DeviceInfo | None) -> None:
        for registration in list(self._registrations):
            self._invoke(registration.on_device_info_change, info)

    @staticmethod
    def _invoke(callback: Callable[[object], None] | None, payload: object) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception:
            LOGGER.exception("Session observer %r raised", callback)
