"""Caller-facing operations over the session table.

Every input headed for a session passes through the same gates, in order:
liveness, danger classification (with single-use pre-confirmation), path
policy, then write/wait, sanitize and optional secret redaction.
"""

from __future__ import annotations

import asyncio
import re
import signal
from dataclasses import asdict, dataclass
from typing import Any

from termpilot.audit import AuditEvent, AuditLogger, get_audit_logger
from termpilot.config.schema import ServerConfig
from termpilot.errors import (
    DangerousCommandError,
    NotDangerousError,
    PathPolicyError,
    SessionNotAliveError,
    UnknownControlKeyError,
    ValidationError,
)
from termpilot.logging import get_logger
from termpilot.safety import DangerDetector, SecretRedactor, sanitize
from termpilot.session import Session, SessionInfo, SessionManager, normalize_path
from termpilot.terminal import TerminalMode, TerminalOptions, resolve_signal

log = get_logger("pipeline")

MIN_TIMEOUT_MS = 100
MAX_TIMEOUT_MS = 60_000
MIN_OUTPUT_CHARS = 100
COLS_RANGE = (40, 300)
ROWS_RANGE = (10, 100)
MIN_JUSTIFICATION = 10
CONTROL_WAIT_MS = 500
DEFAULT_CLOSE_SIGNAL = signal.SIGTERM

TIMEOUT_WARNING = (
    "Command may still be running. Use read_output to check for more output, "
    "or send_control to send ctrl+c."
)

CONTROL_KEYS: dict[str, str] = {
    "ctrl+a": "\x01",
    "ctrl+b": "\x02",
    "ctrl+c": "\x03",
    "ctrl+d": "\x04",
    "ctrl+e": "\x05",
    "ctrl+f": "\x06",
    "ctrl+k": "\x0b",
    "ctrl+l": "\x0c",
    "ctrl+n": "\x0e",
    "ctrl+p": "\x10",
    "ctrl+r": "\x12",
    "ctrl+u": "\x15",
    "ctrl+w": "\x17",
    "ctrl+z": "\x1a",
    "ctrl+\\": "\x1c",
    "ctrl+]": "\x1d",
    "enter": "\r",
    "tab": "\t",
    "escape": "\x1b",
    "up": "\x1b[A",
    "down": "\x1b[B",
    "right": "\x1b[C",
    "left": "\x1b[D",
    "home": "\x1b[H",
    "end": "\x1b[F",
    "backspace": "\x7f",
    "delete": "\x1b[3~",
}

# Pipes have no line discipline, so these become signals to the process tree
PIPE_SIGNAL_KEYS: dict[str, signal.Signals] = {
    "ctrl+c": signal.SIGINT,
    "ctrl+\\": signal.SIGQUIT,
    "ctrl+z": signal.SIGTSTP,
}

_ABS_PATH = re.compile(r"""(?:^|\s|=|["'])(/[^\s"';|&<>/=][^\s"';|&<>]*)""")
_CD_TARGET = re.compile(r"""\bcd\s+([^\s;&|]+)""")


def scan_paths(text: str, base: str) -> list[str]:
    """Absolute paths and ``cd`` targets referenced by ``text``, normalized.

    Relative ``cd`` targets resolve against ``base``. ``cd -`` is skipped
    since its target is not visible in the input.
    """
    found: list[str] = []
    for match in _ABS_PATH.finditer(text):
        found.append(normalize_path(match.group(1)))
    for match in _CD_TARGET.finditer(text):
        target = match.group(1).strip("\"'")
        if not target or target == "-":
            continue
        found.append(normalize_path(target, base))
    return list(dict.fromkeys(found))


@dataclass
class CreateSessionResult:
    session_id: str
    name: str
    pid: int
    mode: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CommandResult:
    output: str
    is_complete: bool
    is_alive: bool
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.warning is None:
            del data["warning"]
        return data


@dataclass
class ReadResult:
    output: str
    is_alive: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CloseResult:
    success: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ControlResult:
    output: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _check_range(name: str, value: int, low: int, high: int | None = None) -> None:
    if value < low or (high is not None and value > high):
        bound = f"between {low} and {high}" if high is not None else f"at least {low}"
        raise ValidationError(f"{name} must be {bound}, got {value}")


class CommandPipeline:
    """The seven session operations exposed to callers.

    Callers are expected to serialize operations per session. Overlapping
    sends on one session race on the since-last-write buffer.
    """

    def __init__(
        self,
        manager: SessionManager,
        config: ServerConfig | None = None,
        audit_logger: AuditLogger | None = None,
        danger: DangerDetector | None = None,
        redactor: SecretRedactor | None = None,
    ) -> None:
        self.manager = manager
        self.config = config or manager.config
        self._audit = audit_logger or get_audit_logger()
        self.danger = danger or DangerDetector()
        self.redactor = redactor or SecretRedactor()

    # -- helpers -------------------------------------------------------------

    def _live_session(self, session_id: str) -> Session:
        session = self.manager.get_session(session_id)
        if not session.is_alive:
            raise SessionNotAliveError(session_id)
        return session

    def _clean(self, output: str, command: str | None = None, max_chars: int | None = None) -> str:
        text = sanitize(output, command=command, max_chars=max_chars or self.config.max_output)
        if self.config.redact_secrets:
            text = self.redactor.redact(text)
        return text

    def _log_input(self, operation: str, session_id: str, text: str) -> None:
        if self.config.log_inputs:
            log.info("%s [%s]: %s", operation, session_id, text)

    def _check_danger(self, session: Session, text: str) -> None:
        if not self.config.danger_detection:
            return
        reason = self.danger.detect(text)
        if reason is None:
            return

        key = text.strip()
        if key in session.pending_dangerous:
            session.pending_dangerous.discard(key)
            return

        reasons = self.danger.detect_all(text)
        self._audit.record(
            AuditEvent.COMMAND_BLOCKED_DANGER, session.id, input=text, reasons=reasons
        )
        raise DangerousCommandError(input=text, reason=reason, reasons=reasons)

    def _check_paths(self, session: Session, text: str) -> None:
        if not self.config.allowed_paths:
            return
        for path in scan_paths(text, session.cwd):
            if not self.manager.is_path_allowed(path):
                self._audit.record(
                    AuditEvent.COMMAND_BLOCKED_PATH, session.id, input=text, path=path
                )
                raise PathPolicyError(
                    f'Path "{path}" is not in the allowed paths: '
                    f'{", ".join(self.config.allowed_paths)}'
                )

    async def _execute(
        self,
        session_id: str,
        text: str,
        timeout_ms: int,
        max_output_chars: int | None,
    ) -> CommandResult:
        session = self._live_session(session_id)
        self._check_danger(session, text)
        self._check_paths(session, text)

        self.manager.touch_session(session_id)
        session.terminal.write(text + "\n")
        waited = await session.terminal.wait_for_output(timeout_ms)

        result = CommandResult(
            output=self._clean(waited.output, command=text, max_chars=max_output_chars),
            is_complete=waited.complete,
            is_alive=session.terminal.is_alive,
        )
        if not waited.complete:
            result.warning = TIMEOUT_WARNING

        self._audit.record(
            AuditEvent.COMMAND,
            session_id,
            input=text,
            is_complete=waited.complete,
            elapsed_ms=round(waited.elapsed_ms),
        )
        return result

    # -- operations ------------------------------------------------------------

    async def create_session(
        self,
        command: str,
        args: list[str] | None = None,
        name: str | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        cols: int | None = None,
        rows: int | None = None,
    ) -> CreateSessionResult:
        cols = self.config.terminal.cols if cols is None else cols
        rows = self.config.terminal.rows if rows is None else rows
        _check_range("cols", cols, *COLS_RANGE)
        _check_range("rows", rows, *ROWS_RANGE)

        options = TerminalOptions(
            command=command,
            args=list(args or []),
            cwd=cwd,
            env=dict(env or {}),
            cols=cols,
            rows=rows,
        )
        session = await self.manager.create_session(options, name=name)
        self._audit.record(
            AuditEvent.SESSION_CREATE,
            session.id,
            name=session.name,
            command=command,
            args=session.args,
            cwd=session.cwd,
            pid=session.pid,
            mode=session.mode.value,
        )
        return CreateSessionResult(
            session_id=session.id,
            name=session.name,
            pid=session.pid,
            mode=session.mode.value,
        )

    async def send_command(
        self,
        session_id: str,
        input: str,
        timeout_ms: int | None = None,
        max_output_chars: int | None = None,
    ) -> CommandResult:
        timeout_ms = self.config.default_timeout_ms if timeout_ms is None else timeout_ms
        _check_range("timeout_ms", timeout_ms, MIN_TIMEOUT_MS, MAX_TIMEOUT_MS)
        if max_output_chars is not None:
            _check_range("max_output_chars", max_output_chars, MIN_OUTPUT_CHARS)

        self._log_input("send_command", session_id, input)
        return await self._execute(session_id, input, timeout_ms, max_output_chars)

    async def read_output(self, session_id: str, full_screen: bool = False) -> ReadResult:
        session = self.manager.get_session(session_id)
        output = self._clean(session.terminal.read_screen(full_screen))
        self._audit.record(AuditEvent.READ_OUTPUT, session_id, full_screen=full_screen)
        return ReadResult(output=output, is_alive=session.terminal.is_alive)

    async def list_sessions(self) -> list[SessionInfo]:
        sessions = self.manager.list_sessions()
        self._audit.record(AuditEvent.LIST_SESSIONS, count=len(sessions))
        return sessions

    async def close_session(self, session_id: str, signal: str | None = "SIGTERM") -> CloseResult:
        try:
            sig = resolve_signal(signal, DEFAULT_CLOSE_SIGNAL)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        self.manager.close_session(session_id, sig)
        self._audit.record(AuditEvent.SESSION_CLOSE, session_id, signal=sig.name)
        return CloseResult(success=True)

    async def send_control(self, session_id: str, control: str) -> ControlResult:
        self._log_input("send_control", session_id, control)
        session = self._live_session(session_id)

        key = control.strip().lower()
        sequence = CONTROL_KEYS.get(key)
        if sequence is None:
            raise UnknownControlKeyError(control, list(CONTROL_KEYS))

        self._audit.record(AuditEvent.CONTROL, session_id, control=key)
        self.manager.touch_session(session_id)

        terminal = session.terminal
        if terminal.mode is TerminalMode.PIPE and key == "ctrl+d":
            terminal.send_eof()
        elif terminal.mode is TerminalMode.PIPE and key in PIPE_SIGNAL_KEYS:
            terminal.signal_tree(PIPE_SIGNAL_KEYS[key])
        else:
            terminal.write(sequence)

        await asyncio.sleep(CONTROL_WAIT_MS / 1000)
        return ControlResult(output=self._clean(terminal.read_screen()))

    async def confirm_dangerous_command(
        self,
        session_id: str,
        input: str,
        justification: str,
    ) -> CommandResult:
        if len(justification.strip()) < MIN_JUSTIFICATION:
            raise ValidationError(
                f"justification must be at least {MIN_JUSTIFICATION} characters"
            )
        self._log_input(
            "confirm_dangerous_command", session_id, f"{input} | justification: {justification}"
        )
        session = self._live_session(session_id)

        reason = self.danger.detect(input)
        if reason is None and self.config.danger_detection:
            raise NotDangerousError()

        self._audit.record(
            AuditEvent.COMMAND_CONFIRMED_DANGER,
            session_id,
            input=input,
            reason=reason,
            justification=justification,
        )
        if self.config.danger_detection:
            session.pending_dangerous.add(input.strip())

        timeout_ms = self.config.default_timeout_ms * 2
        return await self._execute(session_id, input, timeout_ms, None)

