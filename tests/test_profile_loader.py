from __future__ import annotations

from pathlib import Path

import pytest

from cpenctl.core.errors import ErrorKind, ProfileValidationError
from cpenctl.core.profile_loader import load_profile


def _write_profile(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def config_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    return tmp_path / "cfg" / "cpenctl"


def test_load_packaged_profile(config_home: Path) -> None:
    loaded = load_profile()
    profile = loaded.profile
    assert profile.id == "cpen"
    assert profile.transport.service_uuid == "d816e4c6-1b99-4da7-bcd5-7c37cc2642c4"
    assert profile.transport.char_uuid == "d816e4c7-1b99-4da7-bcd5-7c37cc2642c4"
    assert profile.timing.command_timeout_s == 0.5
    assert profile.timing.value_ttl_s == 30.0
    assert profile.timing.recv_timeout_s == 2.0
    assert profile.timing.connect_budget_s == 15.0
    assert profile.transport.scan_timeout_s == 5.0
    assert profile.transport.connect_timeout_s == 10.0
    assert profile.transport.write_with_response is False
    assert profile.drain_pushes is True
    assert loaded.source == "packaged:cpen.yaml"
    assert loaded.warnings == ()


def test_user_profile_overrides_packaged(config_home: Path) -> None:
    _write_profile(
        config_home / "profile.yaml",
        """
id: bench_pen
name: Bench pen
transport:
  service_uuid: "D816E4C6-1B99-4DA7-BCD5-7C37CC2642C4"
  char_uuid: "2a19"
  write_with_response: true
  scan_timeout_ms: 2500
timing:
  command_timeout_ms: 800
drain_pushes: false
""",
    )

    loaded = load_profile()
    profile = loaded.profile
    assert profile.name == "Bench pen"
    assert profile.transport.service_uuid == "d816e4c6-1b99-4da7-bcd5-7c37cc2642c4"
    assert profile.transport.char_uuid == "2a19"
    assert profile.transport.write_with_response is True
    assert profile.timing.command_timeout_s == 0.8
    assert profile.timing.value_ttl_s == 30.0
    assert profile.transport.scan_timeout_s == 2.5
    assert profile.transport.connect_timeout_s == 10.0
    assert profile.drain_pushes is False
    assert loaded.source.endswith("profile.yaml")
    assert any("overrides" in warning for warning in loaded.warnings)


def test_invalid_uuid_rejected(config_home: Path) -> None:
    _write_profile(
        config_home / "profile.yaml",
        """
id: bad_uuid
name: Bad UUID
transport:
  service_uuid: "not-a-uuid"
  char_uuid: "2a19"
""",
    )

    with pytest.raises(ProfileValidationError) as exc:
        load_profile()
    assert exc.value.kind is ErrorKind.PROFILE_INVALID


def test_missing_required_keys_rejected(config_home: Path) -> None:
    _write_profile(
        config_home / "profile.yml",
        """
id: missing
name: Missing transport
""",
    )

    with pytest.raises(ProfileValidationError):
        load_profile()


def test_unknown_keys_rejected(config_home: Path) -> None:
    _write_profile(
        config_home / "profile.yaml",
        """
id: extra
name: Extra
transport:
  service_uuid: "2a19"
  char_uuid: "2a1a"
  channel: 15
""",
    )

    with pytest.raises(ProfileValidationError):
        load_profile()


def test_duplicate_yaml_keys_rejected(config_home: Path) -> None:
    _write_profile(
        config_home / "profile.yaml",
        """
id: dup
name: Duplicate
transport:
  service_uuid: "2a19"
  char_uuid: "2a1a"
  char_uuid: "2a1b"
""",
    )

    with pytest.raises(ProfileValidationError):
        load_profile()


def test_command_timeout_must_fit_in_connect_budget(config_home: Path) -> None:
    _write_profile(
        config_home / "profile.yaml",
        """
id: slow
name: Slow
transport:
  service_uuid: "2a19"
  char_uuid: "2a1a"
timing:
  command_timeout_ms: 20000
  connect_budget_ms: 15000
""",
    )

    with pytest.raises(ProfileValidationError):
        load_profile()


def test_non_mapping_document_rejected(config_home: Path) -> None:
    _write_profile(config_home / "profile.yaml", "- just\n- a list\n")

    with pytest.raises(ProfileValidationError):
        load_profile()


def test_transport_timeouts_in_seconds_rejected(config_home: Path) -> None:
    _write_profile(
        config_home / "profile.yaml",
        """
id: seconds
name: Seconds
transport:
  service_uuid: "2a19"
  char_uuid: "2a1a"
  scan_timeout_s: 5.0
""",
    )

    with pytest.raises(ProfileValidationError):
        load_profile()
