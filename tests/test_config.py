"""Tests for settings layers and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from fanssh.config import Settings, load_config, merge_settings, settings_from_env
from fanssh.errors import ConfigError


def test_defaults():
    settings = merge_settings()
    assert settings == Settings()
    assert settings.effective_order == "host"
    assert settings.probe_command == ["ping", "-c", "1", "-W", "1", "{}"]


def test_later_layers_win_and_none_is_ignored():
    settings = merge_settings(
        {"user": "file", "timeout": 5},
        {"user": "env"},
        {"user": None, "timeout": "7.5"},
    )
    assert settings.user == "env"
    assert settings.timeout == 7.5


def test_env_layer():
    env = {"FANSSH_USER": "ops", "FANSSH_TIMEOUT": "30", "FANSSH_GROUPS": "~/groups", "OTHER": "x"}
    layer = settings_from_env(env)
    assert layer == {"user": "ops", "timeout": "30", "groups_file": "~/groups"}
    settings = merge_settings(layer)
    assert settings.groups_file == Path("~/groups").expanduser()
    assert settings.timeout == 30.0


def test_empty_env_values_are_skipped():
    assert settings_from_env({"FANSSH_USER": ""}) == {}


def test_load_yaml(tmp_path: Path):
    path = tmp_path / "fanssh.yaml"
    path.write_text("user: deploy\nstrict-host-keys: false\nprobe_command: ping -c 2 {}\n")
    layer = load_config(path)
    settings = merge_settings(layer)
    assert settings.user == "deploy"
    assert settings.strict_host_keys is False
    assert settings.probe_command == ["ping", "-c", "2", "{}"]


def test_load_empty_yaml(tmp_path: Path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == {}


def test_load_missing_yaml(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_load_invalid_yaml(tmp_path: Path):
    path = tmp_path / "bad.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ConfigError):
        load_config(path)
    path.write_text("user: [unclosed\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_unknown_setting():
    with pytest.raises(ConfigError, match="colour"):
        merge_settings({"colour": True})


def test_bad_value():
    with pytest.raises(ConfigError):
        merge_settings({"timeout": "soon"})


@pytest.mark.parametrize(
    "layer",
    [
        {"no_wait": True, "order": "host"},
        {"no_wait": True, "preserve_order": True},
        {"show_exit_code": "sometimes"},
        {"order": "random"},
        {"timeout": -1},
        {"random_count": 0},
        {"probe_command": []},
    ],
)
def test_validation_errors(layer):
    with pytest.raises(ConfigError):
        merge_settings(layer)


def test_no_wait_defaults_to_completion_order():
    assert merge_settings({"no_wait": True}).effective_order == "completion"


def test_random_count_forces_dedup():
    settings = merge_settings({"dedup": False, "random_count": 3})
    assert settings.dedup is True
