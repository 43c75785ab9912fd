"""Pipe substrate for hosts where a pseudo-terminal cannot be allocated.

The child reads stdin and writes stdout/stderr (merged) through plain pipes.
Most REPLs turn off prompts and line buffering when stdin is not a tty, so
well-known interpreters get their "force interactive" flag injected and
Python gets PYTHONUNBUFFERED. The child leads its own process group so kills
reach everything it started.
"""

from __future__ import annotations

import asyncio
import os
import signal
from typing import TYPE_CHECKING

from termpilot.errors import SessionNotAliveError
from termpilot.logging import get_logger
from termpilot.safety.sanitizer import strip_ansi
from termpilot.terminal.base import BaseTerminal, resolve_signal
from termpilot.terminal.process_tree import signal_process_group
from termpilot.terminal.result import TerminalMode, TerminalOptions

if TYPE_CHECKING:
    from termpilot.sandbox import SandboxAdapter

log = get_logger("terminal.pipe")

_READ_SIZE = 4096
_DRAIN_AFTER_EXIT = 0.5

# Executable basename prefix -> flags that force interactive behaviour on pipes
INTERACTIVE_FLAGS: dict[str, list[str]] = {
    "python": ["-i", "-u"],
    "node": ["-i"],
    "bash": ["-i"],
    "sh": ["-i"],
    "zsh": ["-i"],
    "dash": ["-i"],
    "ksh": ["-i"],
}

SHELLS = frozenset({"bash", "sh", "zsh", "dash", "ksh"})

# Long flags that turn an interpreter into a one-shot runner
ONE_SHOT_FLAGS = frozenset({"--command", "--eval", "--print"})

# Short option letters that do the same, alone or bundled (``-c``, ``-lc``, ``-ec``)
ONE_SHOT_LETTERS: dict[str, str] = {"python": "cm", "node": "cep"}

# Long shell options that consume the following argument
_SHELL_LONG_WITH_VALUE = frozenset({"--rcfile", "--init-file"})


def _family(command: str) -> str | None:
    name = os.path.basename(command)
    if name in INTERACTIVE_FLAGS:
        return name
    # python3, python3.12, ...
    if name.startswith("python"):
        return "python"
    return None


def _is_one_shot(arg: str, family: str) -> bool:
    if arg in ONE_SHOT_FLAGS:
        return True
    if not arg.startswith("-") or not arg[1:].isalpha():
        return False
    letters = ONE_SHOT_LETTERS.get(family, "c")
    return any(letter in arg[1:] for letter in letters)


def _leading_long_options(args: list[str]) -> int:
    """Count of leading ``--long`` shell options, values included."""
    index = 0
    while index < len(args) and args[index].startswith("--") and args[index] != "--":
        index += 2 if args[index] in _SHELL_LONG_WITH_VALUE else 1
    return min(index, len(args))


def interactive_argv(command: str, args: list[str]) -> list[str]:
    """Build argv with interactive flags injected where the interpreter needs them.

    Shells only accept long options before single-letter ones, so for them the
    flags go after any leading ``--norc``/``--rcfile FILE`` style options.
    """
    family = _family(command)
    if family is None or any(_is_one_shot(arg, family) for arg in args):
        return [command, *args]
    extra = [flag for flag in INTERACTIVE_FLAGS[family] if flag not in args]
    split = _leading_long_options(args) if family in SHELLS else 0
    return [command, *args[:split], *extra, *args[split:]]


class PipeTerminal(BaseTerminal):
    """Interactive process attached to stdin/stdout pipes."""

    mode = TerminalMode.PIPE

    def __init__(
        self,
        options: TerminalOptions,
        sandbox: SandboxAdapter | None = None,
        **kwargs,
    ) -> None:
        super().__init__(options, **kwargs)
        self._sandbox = sandbox
        self._process: asyncio.subprocess.Process | None = None
        self._reader_task: asyncio.Task | None = None
        self._exit_task: asyncio.Task | None = None

    async def spawn(self) -> None:
        argv = interactive_argv(self.options.command, self.options.args)
        if self._sandbox is not None and self._sandbox.active:
            argv = self._sandbox.wrap(argv)

        env = {**os.environ, "TERM": "dumb", **self.options.env, "PYTHONUNBUFFERED": "1"}
        self._process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=self.options.cwd,
            env=env,
            start_new_session=True,
        )
        self._pid = self._process.pid
        self._alive = True

        self._reader_task = asyncio.create_task(self._read_loop())
        self._exit_task = asyncio.create_task(self._watch_exit())
        log.debug("Spawned %s on pipes (pid %d): %s", self.options.command, self._pid, argv)

    async def _read_loop(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        stdout = self._process.stdout
        while True:
            try:
                chunk = await stdout.read(_READ_SIZE)
            except (ConnectionResetError, OSError) as e:
                log.debug("Read error on pid %d: %s", self._pid, e)
                break
            if not chunk:
                break
            self._feed(chunk)

    async def _watch_exit(self) -> None:
        assert self._process is not None
        exit_code = await self._process.wait()
        # Let the reader pick up whatever the child wrote before it died
        if self._reader_task is not None and not self._reader_task.done():
            await asyncio.wait({self._reader_task}, timeout=_DRAIN_AFTER_EXIT)
        self._mark_exited(exit_code)

    async def wait_closed(self) -> None:
        """Wait until the child has been reaped."""
        if self._exit_task is not None:
            await self._exit_task

    def _transmit(self, data: bytes) -> None:
        assert self._process is not None
        stdin = self._process.stdin
        if stdin is None or stdin.is_closing():
            raise SessionNotAliveError()
        stdin.write(data)

    def read_screen(self, full_history: bool = False) -> str:
        raw = self._raw_history() if full_history else self._since_write
        return strip_ansi(raw).rstrip()

    def resize(self, cols: int, rows: int) -> None:
        log.debug("Resize ignored in pipe mode (pid %d)", self._pid)

    def send_eof(self) -> None:
        if self._process is not None and self._process.stdin is not None:
            self._process.stdin.close()

    def kill(self, sig: signal.Signals | str | int | None = None) -> None:
        sig = resolve_signal(sig, signal.SIGTERM)
        if self._process is None or not self._alive:
            return
        signal_process_group(self._pid, sig)
        self._mark_exited()

    def dispose(self) -> None:
        if self._process is None:
            return
        if self._alive:
            signal_process_group(self._pid, signal.SIGKILL)
            self._mark_exited()
        if self._process.stdin is not None:
            self._process.stdin.close()
        if self._reader_task is not None:
            self._reader_task.cancel()
