"""Shared terminal state and the completion-detection algorithm.

Both substrates feed raw child output through ``_feed``; everything that does
not depend on how bytes reach us (liveness, the since-last-write buffer,
scrollback, prompt inference and ``wait_for_output``) lives here.
"""

from __future__ import annotations

import asyncio
import codecs
import re
import signal
import time
from abc import ABC, abstractmethod
from collections import deque

from termpilot.errors import SessionNotAliveError
from termpilot.logging import get_logger
from termpilot.terminal.process_tree import signal_process_tree
from termpilot.terminal.prompt import detect_prompt_pattern, ends_with_prompt
from termpilot.terminal.result import TerminalMode, TerminalOptions, WaitResult

log = get_logger("terminal")

# Cap on the since-last-write buffer; older text is still in scrollback.
_SINCE_WRITE_LIMIT = 1_000_000


def resolve_signal(value: signal.Signals | str | int | None, default: signal.Signals) -> signal.Signals:
    """Parse "SIGTERM", "term", 15 or a Signals member. Raises ValueError."""
    if value is None:
        return default
    if isinstance(value, signal.Signals):
        return value
    if isinstance(value, int):
        return signal.Signals(value)

    name = value.strip().upper()
    if name.isdigit():
        return signal.Signals(int(name))
    if not name.startswith("SIG"):
        name = "SIG" + name
    try:
        return signal.Signals[name]
    except KeyError:
        raise ValueError(f"Unknown signal: {value}") from None


class BaseTerminal(ABC):
    """Common machinery for PtyTerminal and PipeTerminal."""

    mode: TerminalMode

    def __init__(
        self,
        options: TerminalOptions,
        *,
        settle_ms: int = 300,
        poll_interval_ms: int = 50,
        scrollback: int = 1000,
    ) -> None:
        self.options = options
        self.exit_code: int | None = None
        self._settle = settle_ms / 1000
        self._poll = poll_interval_ms / 1000
        self._pid = 0
        self._alive = False
        self._prompt_pattern: re.Pattern[str] | None = None

        self._since_write = ""
        self._bytes_received = 0
        self._last_output = time.monotonic()
        self._history: deque[str] = deque(maxlen=scrollback)
        self._partial_line = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def __repr__(self) -> str:
        state = "alive" if self._alive else f"exited({self.exit_code})"
        return f"<{type(self).__name__} {self.options.command} pid={self._pid} {state}>"

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def is_alive(self) -> bool:
        return self._alive

    @property
    def prompt_pattern(self) -> re.Pattern[str] | None:
        return self._prompt_pattern

    # -- output ingestion --------------------------------------------------

    def _feed(self, data: bytes) -> None:
        """Record one chunk of child output."""
        if not data:
            return
        text = self._decoder.decode(data)
        self._bytes_received += len(data)
        self._last_output = time.monotonic()

        self._since_write += text
        if len(self._since_write) > _SINCE_WRITE_LIMIT:
            self._since_write = self._since_write[-_SINCE_WRITE_LIMIT:]

        lines = (self._partial_line + text).split("\n")
        self._partial_line = lines.pop()
        self._history.extend(lines)

        self._render(data)

    def _render(self, data: bytes) -> None:
        """Hook for substrates that interpret the byte stream (pty)."""

    def _raw_history(self) -> str:
        return "\n".join([*self._history, self._partial_line])

    def _mark_exited(self, exit_code: int | None = None) -> None:
        if exit_code is not None:
            self.exit_code = exit_code
        if not self._alive:
            return
        self._alive = False
        log.debug("Process %d (%s) exited: %s", self._pid, self.options.command, exit_code)

    # -- input ---------------------------------------------------------------

    def write(self, text: str) -> None:
        if not self._alive:
            raise SessionNotAliveError()
        self._since_write = ""
        self._transmit(text.encode("utf-8"))

    @abstractmethod
    def _transmit(self, data: bytes) -> None: ...

    # -- prompt handling -----------------------------------------------------

    def infer_prompt(self) -> re.Pattern[str] | None:
        """Set the prompt pattern from the current screen. Only the first call counts."""
        if self._prompt_pattern is None:
            self._prompt_pattern = detect_prompt_pattern(self.read_screen())
            if self._prompt_pattern is not None:
                log.debug("Prompt for %s: %r", self.options.command, self._prompt_pattern.pattern)
        return self._prompt_pattern

    async def start(self, startup_delay_ms: int) -> None:
        """Give the child time to print its banner, then infer the prompt."""
        await asyncio.sleep(startup_delay_ms / 1000)
        self.infer_prompt()

    # -- completion detection --------------------------------------------------

    async def wait_for_output(self, timeout_ms: int) -> WaitResult:
        """Wait for the output of the last write to settle.

        Checked every poll interval, in order:
        1. Process exited: complete.
        2. Deadline passed: incomplete.
        3. Output quiet for the settle period (and something arrived since the
           wait began): complete if the screen ends with the prompt, otherwise
           allow one extra settle period, then complete.
        """
        start = time.monotonic()
        deadline = start + timeout_ms / 1000
        bytes_at_start = self._bytes_received
        grace_used = False

        def result(complete: bool) -> WaitResult:
            elapsed = (time.monotonic() - start) * 1000
            return WaitResult(self.read_screen(), complete, elapsed)

        while True:
            await asyncio.sleep(min(self._poll, max(0.0, deadline - time.monotonic())))
            now = time.monotonic()

            if not self._alive:
                return result(True)
            if now >= deadline:
                return result(False)

            quiet = now - self._last_output
            if quiet < self._settle or self._bytes_received == bytes_at_start:
                continue

            if ends_with_prompt(self.read_screen(), self._prompt_pattern):
                return result(True)
            if grace_used:
                return result(True)

            grace_used = True
            await asyncio.sleep(min(self._settle, max(0.0, deadline - time.monotonic())))

    # -- signals -----------------------------------------------------------

    def signal_tree(self, sig: signal.Signals) -> int:
        if not self._alive:
            return 0
        log.debug("Sending %s to tree of %d", sig.name, self._pid)
        return signal_process_tree(self._pid, sig)

    # -- substrate specific --------------------------------------------------

    @abstractmethod
    def read_screen(self, full_history: bool = False) -> str: ...

    @abstractmethod
    def resize(self, cols: int, rows: int) -> None: ...

    @abstractmethod
    def send_eof(self) -> None: ...

    @abstractmethod
    def kill(self, sig: signal.Signals | str | int | None = None) -> None: ...

    @abstractmethod
    def dispose(self) -> None: ...
