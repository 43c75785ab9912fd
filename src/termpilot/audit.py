"""Structured audit log for security-relevant events.

Every entry is one JSON object, emitted on the ``termpilot.audit`` logger and,
when a destination file is configured, appended to it as a JSON line:

    {"ts": "2026-02-15T...", "event": "command", "session": "ab12cd34", "detail": {...}}

The file is appended under a FileLock so several server processes can share
one audit destination.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from filelock import FileLock, Timeout

from termpilot.logging import get_logger

log = get_logger("audit")


class AuditEvent(str, Enum):
    SERVER_START = "server_start"
    SERVER_STOP = "server_stop"
    SESSION_CREATE = "session_create"
    SESSION_CLOSE = "session_close"
    SESSION_IDLE_TIMEOUT = "session_idle_timeout"
    COMMAND = "command"
    COMMAND_BLOCKED_DANGER = "command_blocked_danger"
    COMMAND_CONFIRMED_DANGER = "command_confirmed_danger"
    COMMAND_BLOCKED_PATH = "command_blocked_path"
    CONTROL = "control"
    READ_OUTPUT = "read_output"
    LIST_SESSIONS = "list_sessions"
    SANDBOX_INIT = "sandbox_init"
    SANDBOX_FAIL = "sandbox_fail"


@dataclass(frozen=True)
class AuditEntry:
    ts: str
    event: AuditEvent
    session: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"ts": self.ts, "event": self.event.value}
        if self.session:
            data["session"] = self.session
        if self.detail:
            data["detail"] = self.detail
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class AuditLogger:
    """Append-only sink for AuditEntry records."""

    def __init__(self, path: str | Path | None = None, lock_timeout: float = 5.0) -> None:
        self._path = Path(path).expanduser() if path else None
        self._lock_timeout = lock_timeout
        self.entries_written = 0

    @property
    def path(self) -> Path | None:
        return self._path

    def record(
        self,
        event: AuditEvent | str,
        session: str | None = None,
        **detail: Any,
    ) -> AuditEntry:
        """Write one entry. File failures are logged, never raised."""
        entry = AuditEntry(
            ts=datetime.now(timezone.utc).isoformat(),
            event=AuditEvent(event),
            session=session,
            detail={k: v for k, v in detail.items() if v is not None},
        )
        line = entry.to_json()
        log.info("[audit] %s", line)

        if self._path is not None:
            try:
                self._append(line)
            except (OSError, Timeout) as e:
                log.warning("Failed to write audit log %s: %s", self._path, e)
        self.entries_written += 1
        return entry

    def _append(self, line: str) -> None:
        assert self._path is not None
        self._path.parent.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(self._path) + ".lock", timeout=self._lock_timeout)
        with lock:
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(line + "\n")


_audit_logger = AuditLogger()


def configure_audit(path: str | Path | None = None) -> AuditLogger:
    """Point the process-wide audit logger at a file. Call once at startup."""
    global _audit_logger
    _audit_logger = AuditLogger(path)
    return _audit_logger


def get_audit_logger() -> AuditLogger:
    return _audit_logger


def audit(event: AuditEvent | str, session: str | None = None, **detail: Any) -> AuditEntry:
    return _audit_logger.record(event, session, **detail)
