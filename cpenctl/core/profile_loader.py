"""Device profile loading and validation for YAML-based cpenctl profiles."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from cpenctl.core.errors import ProfileLoadError, ProfileValidationError
from cpenctl.core.model import DeviceProfile, TimingSpec, TransportSpec

_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_PACKAGED_PROFILE = "cpen.yaml"
_USER_PROFILE_NAMES = ("profile.yaml", "profile.yml")
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfile:
    profile: DeviceProfile
    source: str
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("cpenctl.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _profile_dir() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "cpenctl"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def _normalize_uuid(value: str, *, context: str) -> str:
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise ProfileValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    return normalized


def _ms_to_s(value: int | float) -> float:
    return float(value) / 1000.0


def _build_profile(doc: dict[str, Any], source: Path | Traversable) -> DeviceProfile:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    transport_doc = doc["transport"]
    defaults = TransportSpec(service_uuid="", char_uuid="")
    transport = TransportSpec(
        service_uuid=_normalize_uuid(
            transport_doc["service_uuid"],
            context=f"{doc['id']}.transport.service_uuid",
        ),
        char_uuid=_normalize_uuid(
            transport_doc["char_uuid"],
            context=f"{doc['id']}.transport.char_uuid",
        ),
        write_with_response=transport_doc.get("write_with_response", defaults.write_with_response),
        read_after_write=transport_doc.get("read_after_write", defaults.read_after_write),
        scan_timeout_s=_ms_to_s(transport_doc.get("scan_timeout_ms", defaults.scan_timeout_s * 1000)),
        connect_timeout_s=_ms_to_s(transport_doc.get("connect_timeout_ms", defaults.connect_timeout_s * 1000)),
    )

    timing_doc = doc.get("timing", {})
    default_timing = TimingSpec()
    timing = TimingSpec(
        command_timeout_s=_ms_to_s(timing_doc.get("command_timeout_ms", default_timing.command_timeout_s * 1000)),
        value_ttl_s=_ms_to_s(timing_doc.get("value_ttl_ms", default_timing.value_ttl_s * 1000)),
        recv_timeout_s=_ms_to_s(timing_doc.get("recv_timeout_ms", default_timing.recv_timeout_s * 1000)),
        connect_budget_s=_ms_to_s(timing_doc.get("connect_budget_ms", default_timing.connect_budget_s * 1000)),
        connect_settle_s=_ms_to_s(timing_doc.get("connect_settle_ms", default_timing.connect_settle_s * 1000)),
    )
    if timing.command_timeout_s >= timing.connect_budget_s:
        raise ProfileValidationError(
            f"{doc['id']}.timing.command_timeout_ms must be shorter than connect_budget_ms"
        )

    return DeviceProfile(
        id=doc["id"],
        name=doc["name"],
        transport=transport,
        timing=timing,
        drain_pushes=doc.get("drain_pushes", True),
    )


def _user_profile_path() -> Path | None:
    directory = _profile_dir()
    for name in _USER_PROFILE_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_profile() -> LoadedProfile:
    packaged = resources.files("cpenctl.profiles").joinpath(_PACKAGED_PROFILE)
    profile = _build_profile(_read_yaml(packaged), packaged)
    source = f"packaged:{_PACKAGED_PROFILE}"
    warnings: list[str] = []

    user_path = _user_profile_path()
    if user_path is not None:
        profile = _build_profile(_read_yaml(user_path), user_path)
        source = str(user_path)
        warning = f"User profile {user_path} overrides packaged profile"
        LOGGER.warning(warning)
        warnings.append(warning)

    return LoadedProfile(profile=profile, source=source, warnings=tuple(warnings))
