"""Domain-specific errors for cpenctl."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    SCAN_FAILURE = "scan_failure"
    DEVICE_NOT_FOUND = "device_not_found"
    CONNECT_FAILURE = "connect_failure"
    COMMAND_TIMEOUT = "command_timeout"
    CONNECTION_TIMEOUT = "connection_timeout"
    HARDWARE_UNAVAILABLE = "hardware_unavailable"
    HARDWARE_DISABLED = "hardware_disabled"
    NOT_CONNECTED = "not_connected"
    PROFILE_INVALID = "profile_invalid"
    UNKNOWN = "unknown"


class CpenctlError(Exception):
    """Base error for cpenctl."""

    kind: ErrorKind = ErrorKind.UNKNOWN


class UnknownError(CpenctlError):
    """Raised for failures that do not fit any other category."""


class ProfileValidationError(CpenctlError):
    """Raised when a device profile does not conform to schema or semantics."""

    kind = ErrorKind.PROFILE_INVALID


class ProfileLoadError(CpenctlError):
    """Raised when reading a device profile fails."""

    kind = ErrorKind.PROFILE_INVALID


class ScanFailureError(CpenctlError):
    """Raised when Bluetooth discovery fails."""

    kind = ErrorKind.SCAN_FAILURE


class DeviceNotFoundError(CpenctlError):
    """Raised when no discovered device matches the target name rule."""

    kind = ErrorKind.DEVICE_NOT_FOUND


class ConnectFailureError(CpenctlError):
    """Raised when connecting to the selected device fails."""

    kind = ErrorKind.CONNECT_FAILURE


class ConnectionTimeoutError(CpenctlError):
    """Raised when discover+connect(+fetch) exceeds the session budget."""

    kind = ErrorKind.CONNECTION_TIMEOUT


class CommandTimeoutError(CpenctlError):
    """Raised when a command whose response is required times out."""

    kind = ErrorKind.COMMAND_TIMEOUT


class HardwareUnavailableError(CpenctlError):
    """Raised when no Bluetooth adapter is present."""

    kind = ErrorKind.HARDWARE_UNAVAILABLE


class HardwareDisabledError(CpenctlError):
    """Raised when the Bluetooth adapter is present but powered off."""

    kind = ErrorKind.HARDWARE_DISABLED


class NotConnectedError(CpenctlError):
    """Raised when a command is issued without an active connection."""

    kind = ErrorKind.NOT_CONNECTED
