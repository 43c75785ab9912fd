"""Session management for termpilot."""

from termpilot.session.manager import (
    Session,
    SessionInfo,
    SessionManager,
    normalize_path,
    path_within,
)

__all__ = [
    "Session",
    "SessionInfo",
    "SessionManager",
    "normalize_path",
    "path_within",
]
