"""Terminal protocol shared by the pty and pipe substrates."""

from __future__ import annotations

import re
import signal
from typing import Protocol

from termpilot.terminal.result import TerminalMode, WaitResult


class Terminal(Protocol):
    """Mode-independent contract for one interactive child process.

    Implementations:
    - PtyTerminal: real pseudo-terminal rendered through a terminal emulator
    - PipeTerminal: plain stdin/stdout pipes, raw bytes kept verbatim
    """

    @property
    def mode(self) -> TerminalMode: ...

    @property
    def pid(self) -> int: ...

    @property
    def is_alive(self) -> bool: ...

    @property
    def prompt_pattern(self) -> re.Pattern[str] | None: ...

    def write(self, text: str) -> None:
        """Send text to the child. Raises SessionNotAliveError once dead."""
        ...

    def read_screen(self, full_history: bool = False) -> str:
        """Best-effort snapshot of the output. Never blocks."""
        ...

    async def wait_for_output(self, timeout_ms: int) -> WaitResult:
        """Wait until the last write has settled or the deadline passes."""
        ...

    def resize(self, cols: int, rows: int) -> None: ...

    def send_eof(self) -> None: ...

    def signal_tree(self, sig: signal.Signals) -> int:
        """Deliver a signal to the child's descendants and the child itself."""
        ...

    def kill(self, sig: signal.Signals | str | int | None = None) -> None: ...

    def dispose(self) -> None: ...
