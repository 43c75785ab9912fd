"""Terminal result and option dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TerminalMode(str, Enum):
    """Execution substrate, fixed for a session's lifetime."""

    PTY = "pty"
    PIPE = "pipe"


@dataclass
class TerminalOptions:
    """Spawn request for one interactive process.

    Attributes:
        command: Executable to run (e.g., "bash", "python3", "/usr/bin/psql").
        args: Argument list passed to the executable.
        cwd: Working directory; None means the server's cwd.
        env: Overlay applied on top of the server environment.
        cols: Terminal width (pty mode only).
        rows: Terminal height (pty mode only).
    """

    command: str
    args: list[str] = field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    cols: int = 120
    rows: int = 40

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]


@dataclass
class WaitResult:
    """Outcome of waiting for a command to settle.

    Attributes:
        output: Screen snapshot at the moment the wait ended.
        complete: False only when the deadline passed first; the command may
            still be running.
        elapsed_ms: Time spent waiting.
    """

    output: str
    complete: bool
    elapsed_ms: float = 0.0

    def __repr__(self) -> str:
        state = "complete" if self.complete else "pending"
        lines = self.output.count("\n") + 1 if self.output else 0
        return f"<WaitResult {state}, {lines} lines>"
