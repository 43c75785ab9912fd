"""Configuration management for termpilot.

Provides hierarchical YAML-based configuration with:
- System-level config (/etc/termpilot/ or %PROGRAMDATA%)
- User-level config (~/.config/termpilot/ or ~/.termpilot/)
- Project-level config ($root/.termpilot/)
- .env file and TERMPILOT_* environment variables (highest priority)

Example usage:
    from termpilot.config import load_config

    config = load_config()
    print(config.max_sessions, config.sandbox.enabled)
"""

from termpilot.config.loader import (
    deep_merge,
    env_overrides,
    get_config,
    load_config,
    reset_config,
)
from termpilot.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from termpilot.config.schema import (
    LoggingConfig,
    SandboxConfig,
    ServerConfig,
    TerminalConfig,
)

__all__ = [
    # Main API
    "ServerConfig",
    "load_config",
    "get_config",
    "reset_config",
    "deep_merge",
    "env_overrides",
    # Schema types
    "LoggingConfig",
    "SandboxConfig",
    "TerminalConfig",
    # Path utilities
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
]
