"""Pseudo-terminal substrate.

The child runs on a real pty (ptyprocess), so it behaves exactly as it would
for a human: line editing, colour, full-screen programs. Its output is fed into
a pyte HistoryScreen and reads return the rendered screen rather than raw
escape sequences.
"""

from __future__ import annotations

import asyncio
import os
import signal

import pyte
from ptyprocess import PtyProcess, PtyProcessError

from termpilot.logging import get_logger
from termpilot.terminal.base import BaseTerminal, resolve_signal
from termpilot.terminal.result import TerminalMode, TerminalOptions

log = get_logger("terminal.pty")

_READ_SIZE = 65536


def _render_history_line(line: dict, columns: int) -> str:
    return "".join(line[x].data for x in range(columns)).rstrip()


class PtyTerminal(BaseTerminal):
    """Interactive process attached to a pseudo-terminal."""

    mode = TerminalMode.PTY

    def __init__(self, options: TerminalOptions, **kwargs) -> None:
        super().__init__(options, **kwargs)
        self._screen = pyte.HistoryScreen(
            options.cols, options.rows, history=self._history.maxlen or 1000
        )
        self._stream = pyte.ByteStream(self._screen)
        self._process: PtyProcess | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._reading = False

    def spawn(self) -> None:
        """Start the child. Must be called from inside the running event loop."""
        env = {**os.environ, **self.options.env, "TERM": "xterm-256color"}
        self._process = PtyProcess.spawn(
            self.options.argv,
            cwd=self.options.cwd,
            env=env,
            dimensions=(self.options.rows, self.options.cols),
        )
        self._pid = self._process.pid
        self._alive = True

        self._loop = asyncio.get_running_loop()
        self._loop.add_reader(self._process.fd, self._on_readable)
        self._reading = True
        log.debug("Spawned %s on pty (pid %d)", self.options.command, self._pid)

    def _on_readable(self) -> None:
        assert self._process is not None
        try:
            data = os.read(self._process.fd, _READ_SIZE)
        except OSError:
            # EIO once the child side of the pty closes
            data = b""
        if not data:
            self._on_eof()
            return
        self._feed(data)

    def _on_eof(self) -> None:
        self._stop_reading()
        exit_code = None
        if self._process is not None:
            try:
                if not self._process.isalive():
                    exit_code = self._process.exitstatus
                    if exit_code is None and self._process.signalstatus is not None:
                        exit_code = -self._process.signalstatus
            except PtyProcessError:
                pass
        self._mark_exited(exit_code)

    def _stop_reading(self) -> None:
        if self._reading and self._loop is not None and self._process is not None:
            self._loop.remove_reader(self._process.fd)
        self._reading = False

    def _render(self, data: bytes) -> None:
        self._stream.feed(data)

    def _transmit(self, data: bytes) -> None:
        assert self._process is not None
        self._process.write(data)

    def read_screen(self, full_history: bool = False) -> str:
        lines = [line.rstrip() for line in self._screen.display]
        if full_history:
            columns = self._screen.columns
            history = [_render_history_line(line, columns) for line in self._screen.history.top]
            lines = history + lines
        while lines and not lines[-1]:
            lines.pop()
        return "\n".join(lines)

    def resize(self, cols: int, rows: int) -> None:
        if self._process is None or not self._alive:
            return
        self._process.setwinsize(rows, cols)
        self._screen.resize(rows, cols)
        self.options.cols, self.options.rows = cols, rows

    def send_eof(self) -> None:
        self.write("\x04")

    def kill(self, sig: signal.Signals | str | int | None = None) -> None:
        sig = resolve_signal(sig, signal.SIGHUP)
        if self._process is None or not self._alive:
            return
        try:
            self._process.kill(sig)
        except (ProcessLookupError, PtyProcessError):
            pass
        self._mark_exited()

    def dispose(self) -> None:
        self._stop_reading()
        if self._process is None:
            return
        if self._alive:
            try:
                self._process.kill(signal.SIGKILL)
            except (ProcessLookupError, PtyProcessError):
                pass
            self._mark_exited()
        try:
            self._process.close(force=True)
        except (OSError, PtyProcessError) as e:
            log.debug("Error closing pty for %d: %s", self._pid, e)
