"""Configuration file loading and caching.

Handles:
- YAML file parsing (system -> user -> project)
- Environment variable overrides, with optional .env file support
- Deep merging of the layers
- Conversion from dict to the typed ServerConfig dataclass
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from termpilot.config.paths import get_config_paths
from termpilot.config.schema import (
    LoggingConfig,
    SandboxConfig,
    ServerConfig,
    TerminalConfig,
)

_log = logging.getLogger("termpilot.config")

ENV_PREFIX = "TERMPILOT_"
DOTENV_FILE = ".env"

_cached_config: ServerConfig | None = None

# env var suffix -> (dotted config key, value type)
_ENV_TABLE: dict[str, tuple[str, str]] = {
    "MAX_SESSIONS": ("max_sessions", "int"),
    "MAX_OUTPUT": ("max_output", "int"),
    "DEFAULT_TIMEOUT": ("default_timeout_ms", "int"),
    "BLOCKED_COMMANDS": ("blocked_commands", "list"),
    "ALLOWED_COMMANDS": ("allowed_commands", "list"),
    "ALLOWED_PATHS": ("allowed_paths", "list"),
    "REDACT_SECRETS": ("redact_secrets", "bool"),
    "LOG_INPUTS": ("log_inputs", "bool"),
    "IDLE_TIMEOUT": ("idle_timeout_ms", "int"),
    "DANGER_DETECTION": ("danger_detection", "bool"),
    "AUDIT_LOG": ("audit_log", "str"),
    "SANDBOX": ("sandbox.enabled", "bool"),
    "SANDBOX_ALLOW_WRITE": ("sandbox.allow_write", "list"),
    "SANDBOX_ALLOW_NETWORK": ("sandbox.allow_network", "list"),
    "STARTUP_DELAY": ("terminal.startup_delay_ms", "int"),
    "LOG": ("logging.file", "str"),
    "LOG_LEVEL": ("logging.level", "str"),
    "VERBOSE": ("logging.verbose", "int"),
}

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``.

    Nested dicts merge recursively, lists are replaced wholesale and None
    never overrides an existing value.
    """
    result = base.copy()
    for key, value in override.items():
        if value is None:
            continue
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value
    return result


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def _parse_env_value(name: str, raw: str, kind: str) -> Any:
    if kind == "list":
        return [item.strip() for item in raw.split(",") if item.strip()]
    if kind == "bool":
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        _log.warning("Ignoring %s=%r: expected true/false", name, raw)
        return None
    if kind == "int":
        try:
            return int(raw.strip())
        except ValueError:
            _log.warning("Ignoring %s=%r: expected an integer", name, raw)
            return None
    return raw or None


def env_overrides(environ: Mapping[str, str | None]) -> dict[str, Any]:
    """Build a nested config dict from TERMPILOT_* variables."""
    overrides: dict[str, Any] = {}
    for suffix, (key, kind) in _ENV_TABLE.items():
        name = ENV_PREFIX + suffix
        raw = environ.get(name)
        if raw is None:
            continue
        value = _parse_env_value(name, raw, kind)
        if value is None:
            continue
        target = overrides
        *parents, leaf = key.split(".")
        for parent in parents:
            target = target.setdefault(parent, {})
        target[leaf] = value
    return overrides


def collect_environment(env_file: Path | None = None) -> dict[str, str | None]:
    """Combine .env file values with the process environment.

    Real environment variables take precedence over the .env file.
    """
    path = env_file if env_file is not None else Path(DOTENV_FILE)
    values: dict[str, str | None] = {}
    if path.exists():
        values.update(dotenv_values(path))
    values.update(os.environ)
    return values


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None and str(v)]


def dict_to_config(data: dict[str, Any]) -> ServerConfig:
    """Convert merged dict to typed ServerConfig dataclass."""
    defaults = ServerConfig()

    sandbox_data = data.get("sandbox") or {}
    sandbox_defaults = SandboxConfig()
    sandbox = SandboxConfig(
        enabled=bool(sandbox_data.get("enabled", sandbox_defaults.enabled)),
        allow_write=_str_list(sandbox_data.get("allow_write")) or sandbox_defaults.allow_write,
        allow_network=_str_list(sandbox_data.get("allow_network")) or sandbox_defaults.allow_network,
    )

    term_data = data.get("terminal") or {}
    term_defaults = TerminalConfig()
    terminal = TerminalConfig(
        startup_delay_ms=int(term_data.get("startup_delay_ms", term_defaults.startup_delay_ms)),
        settle_ms=int(term_data.get("settle_ms", term_defaults.settle_ms)),
        poll_interval_ms=int(term_data.get("poll_interval_ms", term_defaults.poll_interval_ms)),
        scrollback=int(term_data.get("scrollback", term_defaults.scrollback)),
        cols=int(term_data.get("cols", term_defaults.cols)),
        rows=int(term_data.get("rows", term_defaults.rows)),
    )

    log_data = data.get("logging") or {}
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    return ServerConfig(
        max_sessions=int(data.get("max_sessions", defaults.max_sessions)),
        max_output=int(data.get("max_output", defaults.max_output)),
        default_timeout_ms=int(data.get("default_timeout_ms", defaults.default_timeout_ms)),
        blocked_commands=_str_list(data.get("blocked_commands")),
        allowed_commands=_str_list(data.get("allowed_commands")),
        allowed_paths=_str_list(data.get("allowed_paths")),
        redact_secrets=bool(data.get("redact_secrets", defaults.redact_secrets)),
        log_inputs=bool(data.get("log_inputs", defaults.log_inputs)),
        idle_timeout_ms=int(data.get("idle_timeout_ms", defaults.idle_timeout_ms)),
        danger_detection=bool(data.get("danger_detection", defaults.danger_detection)),
        audit_log=data.get("audit_log") or None,
        sandbox=sandbox,
        terminal=terminal,
        logging=logging_config,
    )


def load_config(
    root: str | None = None,
    reload: bool = False,
    env_file: Path | None = None,
) -> ServerConfig:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Process environment (TERMPILOT_*)
    2. .env file in the working directory
    3. Project config ($root/.termpilot/config.yaml)
    4. User config
    5. System config

    Args:
        root: Project directory for project-level config.
        reload: Force reload even if cached.
        env_file: Alternate .env file location.
    """
    global _cached_config

    if _cached_config is not None and not reload and root is None and env_file is None:
        return _cached_config

    merged: dict[str, Any] = {}
    for path in get_config_paths(root):
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            merged = deep_merge(merged, config_data)

    env_config = env_overrides(collect_environment(env_file))
    if env_config:
        merged = deep_merge(merged, env_config)

    config = dict_to_config(merged)

    if root is None and env_file is None:
        _cached_config = config

    return config


def get_config() -> ServerConfig:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Reset cached config. Useful for testing or forcing a reload."""
    global _cached_config
    _cached_config = None
