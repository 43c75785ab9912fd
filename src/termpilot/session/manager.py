"""Session table, lifecycle, and policy enforcement.

The SessionManager is the only owner of Terminals. Capacity, command and path
policy are checked before anything is spawned, and every removal path (close,
idle eviction, shutdown) disposes the Terminal and drops the table entry
together.
"""

from __future__ import annotations

import asyncio
import os
import posixpath
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from termpilot.audit import AuditEvent, AuditLogger, get_audit_logger
from termpilot.config.schema import ServerConfig, TerminalConfig
from termpilot.errors import (
    CapacityError,
    PathPolicyError,
    PolicyError,
    SessionNotFoundError,
)
from termpilot.logging import get_logger
from termpilot.sandbox import NullSandbox, SandboxAdapter
from termpilot.terminal import Terminal, TerminalMode, TerminalOptions, create_terminal

log = get_logger("session")

TerminalFactory = Callable[
    [TerminalOptions, SandboxAdapter | None, TerminalConfig], Awaitable[Terminal]
]


def normalize_path(path: str, base: str | None = None) -> str:
    """Absolute, normalized, ``~``-expanded path. Purely lexical."""
    path = os.path.expanduser(path)
    if not os.path.isabs(path):
        path = os.path.join(base or os.getcwd(), path)
    return posixpath.normpath(path)


def path_within(path: str, root: str) -> bool:
    path, root = normalize_path(path), normalize_path(root)
    if root == "/":
        return True
    return path == root or path.startswith(root + "/")


@dataclass
class Session:
    """One interactive process and the metadata the pipeline needs about it."""

    id: str
    name: str
    command: str
    args: list[str]
    cwd: str
    terminal: Terminal
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_activity: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_alive: bool = True
    pending_dangerous: set[str] = field(default_factory=set)

    @property
    def pid(self) -> int:
        return self.terminal.pid

    @property
    def mode(self) -> TerminalMode:
        return self.terminal.mode

    def __repr__(self) -> str:
        state = "alive" if self.is_alive else "dead"
        return f"<Session {self.id} {self.name!r} pid={self.pid} {self.mode.value} {state}>"


@dataclass
class SessionInfo:
    session_id: str
    name: str
    command: str
    pid: int
    is_alive: bool
    created_at: datetime
    mode: TerminalMode

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "name": self.name,
            "command": self.command,
            "pid": self.pid,
            "is_alive": self.is_alive,
            "created_at": self.created_at.isoformat(),
            "mode": self.mode.value,
        }


class SessionManager:
    """Authority over which sessions exist.

    Responsibilities:
    - Enforce capacity and command/path policy before spawning
    - Assign ids and own the session table
    - Evict sessions that sit idle past the configured timeout
    """

    def __init__(
        self,
        config: ServerConfig,
        sandbox: SandboxAdapter | None = None,
        audit_logger: AuditLogger | None = None,
        terminal_factory: TerminalFactory = create_terminal,
    ) -> None:
        self.config = config
        self._sandbox = sandbox or NullSandbox()
        self._audit = audit_logger or get_audit_logger()
        self._terminal_factory = terminal_factory

        self._sessions: dict[str, Session] = {}
        self._idle_timers: dict[str, asyncio.TimerHandle] = {}
        # Creates that passed the capacity check but are still spawning
        self._reserved = 0

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    # -- policy --------------------------------------------------------------

    def check_command(self, command: str) -> None:
        """Raise PolicyError if the executable's basename may not run."""
        base = os.path.basename(command) or command
        allowed = self.config.allowed_commands
        if allowed and base not in allowed:
            raise PolicyError(
                f'Command "{base}" is not in the allowed list: {", ".join(allowed)}'
            )
        if base in self.config.blocked_commands:
            raise PolicyError(f'Command "{base}" is blocked by configuration')

    def is_path_allowed(self, path: str) -> bool:
        roots = self.config.allowed_paths
        if not roots:
            return True
        return any(path_within(path, root) for root in roots)

    # -- lifecycle -----------------------------------------------------------

    async def create_session(self, options: TerminalOptions, name: str | None = None) -> Session:
        limit = self.config.max_sessions
        if len(self._sessions) + self._reserved >= limit:
            raise CapacityError(
                f"Maximum sessions ({limit}) reached. Close an existing session first."
            )

        self.check_command(options.command)

        cwd = normalize_path(options.cwd) if options.cwd else os.getcwd()
        if not self.is_path_allowed(cwd):
            raise PathPolicyError(
                f'Working directory "{cwd}" is not in the allowed paths: '
                f'{", ".join(self.config.allowed_paths)}'
            )
        options.cwd = cwd

        self._reserved += 1
        try:
            terminal = await self._terminal_factory(options, self._sandbox, self.config.terminal)
        finally:
            self._reserved -= 1

        session_id = self._new_id()
        session = Session(
            id=session_id,
            name=name or f"{options.command}-{session_id}",
            command=options.command,
            args=list(options.args),
            cwd=cwd,
            terminal=terminal,
        )
        self._sessions[session_id] = session
        self._arm_idle_timer(session_id)

        log.info(
            "Created session %s (%s, pid %d, %s mode)",
            session_id, session.name, session.pid, session.mode.value,
        )
        return session

    def _new_id(self) -> str:
        while True:
            session_id = uuid.uuid4().hex[:8]
            if session_id not in self._sessions:
                return session_id

    def get_session(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.is_alive = session.terminal.is_alive
        return session

    def list_sessions(self) -> list[SessionInfo]:
        return [
            SessionInfo(
                session_id=s.id,
                name=s.name,
                command=s.command,
                pid=s.pid,
                is_alive=s.terminal.is_alive,
                created_at=s.created_at,
                mode=s.mode,
            )
            for s in self._sessions.values()
        ]

    def close_session(self, session_id: str, sig: str | int | None = None) -> Session:
        """Kill, dispose and forget a session. Raises SessionNotFoundError."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        self._cancel_idle_timer(session_id)
        try:
            session.terminal.kill(sig)
        finally:
            session.terminal.dispose()
            session.is_alive = False
        log.info("Closed session %s (%s)", session_id, session.name)
        return session

    def close_all(self) -> int:
        """Close every session, logging individual failures. Returns count closed."""
        closed = 0
        for session_id in list(self._sessions):
            try:
                self.close_session(session_id)
                closed += 1
            except Exception as e:
                log.warning("Failed to close session %s during shutdown: %s", session_id, e)
        return closed

    def touch_session(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.last_activity = datetime.now(timezone.utc)
        self._arm_idle_timer(session_id)

    # -- idle eviction ---------------------------------------------------------

    def _arm_idle_timer(self, session_id: str) -> None:
        timeout_ms = self.config.idle_timeout_ms
        if timeout_ms <= 0:
            return
        self._cancel_idle_timer(session_id)
        loop = asyncio.get_running_loop()
        self._idle_timers[session_id] = loop.call_later(
            timeout_ms / 1000, self._on_idle_timeout, session_id
        )

    def _cancel_idle_timer(self, session_id: str) -> None:
        timer = self._idle_timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()

    def _on_idle_timeout(self, session_id: str) -> None:
        self._idle_timers.pop(session_id, None)
        session = self._sessions.get(session_id)
        if session is None:
            return
        log.info("Session %s (%s) closed due to idle timeout", session_id, session.name)
        self._audit.record(
            AuditEvent.SESSION_IDLE_TIMEOUT,
            session_id,
            idle_timeout_ms=self.config.idle_timeout_ms,
        )
        try:
            self.close_session(session_id)
        except Exception as e:
            log.warning("Idle close of session %s failed: %s", session_id, e)
