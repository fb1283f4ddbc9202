"""Discovery-line parsing and target device matching."""

from __future__ import annotations

from collections.abc import Iterable

from cpenctl.core.errors import DeviceNotFoundError
from cpenctl.core.model import DeviceDescriptor

TARGET_NAME_PREFIX = "cpen"
_SEPARATOR = " - "


def parse_discovery_line(line: str) -> DeviceDescriptor:
    name, sep, address = line.partition(_SEPARATOR)
    if not sep:
        return DeviceDescriptor(name=line, address=line, raw=line)
    return DeviceDescriptor(name=name, address=address, raw=line)


def is_target(device: DeviceDescriptor) -> bool:
    return device.name[: len(TARGET_NAME_PREFIX)].lower() == TARGET_NAME_PREFIX


def filter_targets(raw_lines: Iterable[str] | None) -> list[DeviceDescriptor]:
    """Return the target devices among raw discovery lines, in scan order."""
    if not raw_lines:
        return []
    targets: list[DeviceDescriptor] = []
    for line in raw_lines:
        if not isinstance(line, str):
            continue
        device = parse_discovery_line(line)
        if is_target(device):
            targets.append(device)
    return targets


def select_target(targets: list[DeviceDescriptor]) -> DeviceDescriptor:
    """Pick the first target in scan order.

    Signal strength is not considered. When several devices advertise a
    matching name, the earliest discovered one wins.
    """
    if not targets:
        raise DeviceNotFoundError(
            f"No device found whose name starts with '{TARGET_NAME_PREFIX}' (case-insensitive)."
        )
    return targets[0]
