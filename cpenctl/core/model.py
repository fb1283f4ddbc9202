"""Core data models used across the session components, loader, and CLI."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from cpenctl.core.errors import ErrorKind


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class SessionState:
    state: ConnectionState
    reason: str | None = None
    error_kind: ErrorKind | None = None


@dataclass(frozen=True)
class DeviceDescriptor:
    name: str
    address: str
    raw: str


@dataclass(frozen=True)
class DeviceInfo:
    name: str
    address: str
    device_id: str | None = None


@dataclass(frozen=True)
class PendingCommand:
    command: str
    deadline: float


@dataclass(frozen=True)
class CommandResponse:
    command: str
    payload: str

    @property
    def timed_out(self) -> bool:
        return False


@dataclass(frozen=True)
class CommandTimeout:
    command: str
    timeout_s: float

    @property
    def timed_out(self) -> bool:
        return True


CommandResult = CommandResponse | CommandTimeout


@dataclass(frozen=True)
class ValueCacheEntry:
    value: str
    fetched_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.fetched_at < self.ttl


@dataclass(frozen=True)
class ObserverRegistration:
    on_state_change: Callable[[SessionState], None] | None = None
    on_value_change: Callable[[str | None], None] | None = None
    on_device_info_change: Callable[[DeviceInfo | None], None] | None = None


@dataclass(frozen=True)
class TransportSpec:
    service_uuid: str
    char_uuid: str
    write_with_response: bool = False
    read_after_write: bool = False
    scan_timeout_s: float = 5.0
    connect_timeout_s: float = 10.0


@dataclass(frozen=True)
class TimingSpec:
    command_timeout_s: float = 0.5
    value_ttl_s: float = 30.0
    recv_timeout_s: float = 2.0
    connect_budget_s: float = 15.0
    connect_settle_s: float = 0.5


@dataclass(frozen=True)
class DeviceProfile:
    id: str
    name: str
    transport: TransportSpec
    timing: TimingSpec
    drain_pushes: bool = True
