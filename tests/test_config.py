"""Tests for the configuration module."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest

from termpilot.config import get_config, load_config, reset_config
from termpilot.config.loader import deep_merge, dict_to_config, env_overrides
from termpilot.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from termpilot.config.schema import LoggingConfig, SandboxConfig, ServerConfig
from termpilot.logging import TRACE, VERBOSE, resolve_level


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep the real user config and TERMPILOT_* variables out of these tests."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for name in list(os.environ):
        if name.startswith("TERMPILOT_"):
            monkeypatch.delenv(name)
    reset_config()
    yield
    reset_config()


class TestDeepMerge:
    """Test the deep merge algorithm."""

    def test_simple_override(self) -> None:
        result = deep_merge({"a": 1, "b": 2}, {"b": 3, "c": 4})
        assert result == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self) -> None:
        base = {"sandbox": {"enabled": False, "allow_write": ["/tmp"]}}
        result = deep_merge(base, {"sandbox": {"enabled": True}})
        assert result["sandbox"] == {"enabled": True, "allow_write": ["/tmp"]}

    def test_none_does_not_override(self) -> None:
        assert deep_merge({"a": 1}, {"a": None}) == {"a": 1}

    def test_list_replaced_not_merged(self) -> None:
        result = deep_merge({"items": [1, 2, 3]}, {"items": [4, 5]})
        assert result["items"] == [4, 5]

    def test_base_not_mutated(self) -> None:
        base = {"a": {"b": 1}}
        deep_merge(base, {"a": {"b": 2}})
        assert base == {"a": {"b": 1}}


class TestConfigPaths:
    """Test platform-aware path resolution."""

    def test_unix_system_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "linux")
        assert get_system_config_path() == Path("/etc/termpilot/config.yaml")

    def test_windows_system_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "win32")
        monkeypatch.setenv("PROGRAMDATA", "C:\\ProgramData")
        path = get_system_config_path()
        assert path is not None
        assert "termpilot" in str(path)

    def test_unix_user_path_xdg(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "linux")
        monkeypatch.setenv("XDG_CONFIG_HOME", "/home/test/.config-custom")
        path = get_user_config_path()
        assert path == Path("/home/test/.config-custom/termpilot/config.yaml")

    def test_project_config_path(self) -> None:
        path = get_project_config_path("/home/user/myproject")
        assert path == Path("/home/user/myproject/.termpilot/config.yaml")

    def test_get_config_paths_order(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "linux")
        paths = get_config_paths("/proj")
        assert paths[0] == Path("/etc/termpilot/config.yaml")
        assert paths[-1] == Path("/proj/.termpilot/config.yaml")
        assert len(paths) == 3


class TestEnvOverrides:
    """TERMPILOT_* variables -> nested config dict."""

    def test_int_bool_and_list(self) -> None:
        result = env_overrides(
            {
                "TERMPILOT_MAX_SESSIONS": "3",
                "TERMPILOT_REDACT_SECRETS": "true",
                "TERMPILOT_ALLOWED_COMMANDS": "bash, python3 ,,node",
            }
        )
        assert result == {
            "max_sessions": 3,
            "redact_secrets": True,
            "allowed_commands": ["bash", "python3", "node"],
        }

    def test_nested_keys(self) -> None:
        result = env_overrides(
            {"TERMPILOT_SANDBOX": "1", "TERMPILOT_SANDBOX_ALLOW_NETWORK": "example.com"}
        )
        assert result == {"sandbox": {"enabled": True, "allow_network": ["example.com"]}}

    def test_invalid_int_is_ignored(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="termpilot.config"):
            result = env_overrides({"TERMPILOT_MAX_SESSIONS": "lots"})
        assert result == {}
        assert "TERMPILOT_MAX_SESSIONS" in caplog.text

    def test_invalid_bool_is_ignored(self) -> None:
        assert env_overrides({"TERMPILOT_DANGER_DETECTION": "maybe"}) == {}

    def test_false_values(self) -> None:
        result = env_overrides({"TERMPILOT_DANGER_DETECTION": "off"})
        assert result == {"danger_detection": False}

    def test_unrelated_variables_ignored(self) -> None:
        assert env_overrides({"HOME": "/root", "TERMPILOT_UNKNOWN": "x"}) == {}


class TestDictToConfig:
    def test_empty_dict_gives_defaults(self) -> None:
        config = dict_to_config({})
        assert config == ServerConfig()
        assert config.max_sessions == 10
        assert config.default_timeout_ms == 5000
        assert config.idle_timeout_ms == 1_800_000
        assert config.danger_detection is True
        assert config.sandbox.allow_write == ["/tmp"]

    def test_unknown_keys_ignored(self) -> None:
        config = dict_to_config({"max_output": 500, "plugins": {"x": 1}})
        assert config == ServerConfig(max_output=500)

    def test_terminal_section(self) -> None:
        config = dict_to_config({"terminal": {"cols": 200, "rows": 60}})
        assert (config.terminal.cols, config.terminal.rows) == (200, 60)

    def test_network_unrestricted(self) -> None:
        assert SandboxConfig().network_unrestricted
        assert not SandboxConfig(allow_network=["example.com"]).network_unrestricted


class TestLoadConfig:
    """Layered loading: YAML files, then .env, then the environment."""

    def test_project_yaml(self, tmp_path: Path) -> None:
        project = tmp_path / "proj"
        (project / ".termpilot").mkdir(parents=True)
        (project / ".termpilot" / "config.yaml").write_text(
            "max_sessions: 4\nallowed_paths: [/srv]\nterminal:\n  settle_ms: 150\n"
        )
        config = load_config(root=str(project), env_file=tmp_path / "missing.env")
        assert config.max_sessions == 4
        assert config.allowed_paths == ["/srv"]
        assert config.terminal.settle_ms == 150
        assert config.terminal.poll_interval_ms == 50

    def test_env_beats_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        project = tmp_path / "proj"
        (project / ".termpilot").mkdir(parents=True)
        (project / ".termpilot" / "config.yaml").write_text("max_sessions: 4\n")
        monkeypatch.setenv("TERMPILOT_MAX_SESSIONS", "7")
        config = load_config(root=str(project), env_file=tmp_path / "missing.env")
        assert config.max_sessions == 7

    def test_dotenv_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("TERMPILOT_MAX_OUTPUT=1234\nTERMPILOT_LOG_INPUTS=yes\n")
        config = load_config(root=str(tmp_path), env_file=env_file)
        assert config.max_output == 1234
        assert config.log_inputs is True

    def test_process_env_beats_dotenv(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("TERMPILOT_MAX_OUTPUT=1234\n")
        monkeypatch.setenv("TERMPILOT_MAX_OUTPUT", "999")
        config = load_config(root=str(tmp_path), env_file=env_file)
        assert config.max_output == 999

    def test_invalid_yaml_ignored(self, tmp_path: Path) -> None:
        (tmp_path / ".termpilot").mkdir()
        (tmp_path / ".termpilot" / "config.yaml").write_text("max_sessions: [unclosed\n")
        config = load_config(root=str(tmp_path), env_file=tmp_path / "missing.env")
        assert config.max_sessions == 10

    def test_get_config_caches(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        first = get_config()
        assert get_config() is first
        reset_config()
        assert get_config() is not first


class TestResolveLevel:
    def test_verbose_wins(self) -> None:
        assert resolve_level(LoggingConfig(level="ERROR", verbose=4)) == TRACE
        assert resolve_level(LoggingConfig(verbose=3)) == VERBOSE

    def test_level_name(self) -> None:
        assert resolve_level(LoggingConfig(level="warning")) == logging.WARNING

    def test_default_info(self) -> None:
        assert resolve_level(None) == logging.INFO
