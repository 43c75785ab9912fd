"""Platform-aware configuration path resolution.

Config file locations:
- System: /etc/termpilot/ (Unix) or %PROGRAMDATA%\\termpilot (Windows)
- User: $XDG_CONFIG_HOME/termpilot/, ~/.config/termpilot/ or ~/.termpilot/
- Project: $root/.termpilot/
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

CONFIG_FILENAME = "config.yaml"
APP_NAME = "termpilot"
SHORT_NAME = ".termpilot"


def get_system_config_path() -> Path | None:
    """Get system-level config path (the file may not exist)."""
    if sys.platform == "win32":
        program_data = os.environ.get("PROGRAMDATA")
        if program_data:
            return Path(program_data) / APP_NAME / CONFIG_FILENAME
        return None
    return Path("/etc") / APP_NAME / CONFIG_FILENAME


def get_user_config_path() -> Path | None:
    """Get user-level config path (the file may not exist)."""
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data) / APP_NAME / CONFIG_FILENAME
        return None

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / APP_NAME / CONFIG_FILENAME

    home = Path.home()
    if (home / ".config").exists():
        return home / ".config" / APP_NAME / CONFIG_FILENAME
    return home / SHORT_NAME / CONFIG_FILENAME


def get_project_config_path(root: str) -> Path:
    return Path(root) / SHORT_NAME / CONFIG_FILENAME


def get_config_paths(root: str | None = None) -> list[Path]:
    """Get all config paths in priority order (lowest to highest).

    Args:
        root: Optional project directory for project-level config.

    Returns:
        List of config paths in order: system, user, project.
        Later paths override earlier ones when merging.
    """
    paths: list[Path] = []

    system_path = get_system_config_path()
    if system_path:
        paths.append(system_path)

    user_path = get_user_config_path()
    if user_path:
        paths.append(user_path)

    if root:
        paths.append(get_project_config_path(root))

    return paths
