"""Shared test utilities for termpilot tests."""

from __future__ import annotations

import asyncio
import json
import re
import signal
from collections.abc import Callable
from functools import partial
from pathlib import Path
from typing import Any

from termpilot.config.schema import TerminalConfig
from termpilot.terminal import BaseTerminal, TerminalMode, TerminalOptions, create_terminal

# Short grace periods keep the process-backed tests quick
FAST_TERMINAL = TerminalConfig(startup_delay_ms=400, settle_ms=200, poll_interval_ms=25)


def echo_responder(text: str) -> str:
    """Echo the line back, print a marker, then a shell-style prompt."""
    line = text.rstrip("\n")
    return f"{line}\nout:{line}\n$ "


class FakeTerminal(BaseTerminal):
    """In-memory terminal whose child "replies" through a responder function.

    Replies are fed on the next loop iteration so that they arrive after
    wait_for_output has started, just like real process output.
    """

    def __init__(
        self,
        options: TerminalOptions,
        responder: Callable[[str], str | None] = echo_responder,
        mode: TerminalMode = TerminalMode.PIPE,
    ) -> None:
        super().__init__(options, settle_ms=50, poll_interval_ms=10)
        self.mode = mode
        self.responder = responder
        self._pid = 4242
        self._alive = True
        self._prompt_pattern = re.compile(r"\$\s*$")
        self.writes: list[str] = []
        self.signals: list[signal.Signals] = []
        self.killed_with: Any = None
        self.eof_sent = False
        self.disposed = False

    def _transmit(self, data: bytes) -> None:
        text = data.decode()
        self.writes.append(text)
        reply = self.responder(text)
        if reply:
            asyncio.get_running_loop().call_soon(self._feed, reply.encode())

    def read_screen(self, full_history: bool = False) -> str:
        return self._raw_history() if full_history else self._since_write

    def resize(self, cols: int, rows: int) -> None:
        self.options.cols, self.options.rows = cols, rows

    def send_eof(self) -> None:
        self.eof_sent = True

    def signal_tree(self, sig: signal.Signals) -> int:
        self.signals.append(sig)
        return 1

    def kill(self, sig=None) -> None:
        self.killed_with = sig
        self._mark_exited(-1)

    def dispose(self) -> None:
        self.disposed = True
        self._mark_exited()


def fake_factory(
    responder: Callable[[str], str | None] = echo_responder,
    mode: TerminalMode = TerminalMode.PIPE,
    created: list[FakeTerminal] | None = None,
):
    """Terminal factory for SessionManager that never spawns a process."""

    async def factory(options, sandbox, config) -> FakeTerminal:
        terminal = FakeTerminal(options, responder=responder, mode=mode)
        if created is not None:
            created.append(terminal)
        return terminal

    return factory


# Real processes on pipes, independent of pty availability
pipe_factory = partial(create_terminal, force_pipe=True)


def read_audit(path: Path) -> list[dict[str, Any]]:
    """Parse a JSON-lines audit file."""
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]
