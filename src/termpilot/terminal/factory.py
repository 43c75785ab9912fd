"""Terminal construction with pty-first, pipe-fallback semantics."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ptyprocess import PtyProcessError

from termpilot.config.schema import TerminalConfig
from termpilot.errors import SpawnError
from termpilot.logging import get_logger
from termpilot.terminal.base import BaseTerminal
from termpilot.terminal.pipe_terminal import PipeTerminal
from termpilot.terminal.pty_terminal import PtyTerminal
from termpilot.terminal.result import TerminalOptions

if TYPE_CHECKING:
    from termpilot.sandbox import SandboxAdapter

log = get_logger("terminal")


async def create_terminal(
    options: TerminalOptions,
    sandbox: SandboxAdapter | None = None,
    config: TerminalConfig | None = None,
    *,
    force_pipe: bool = False,
) -> BaseTerminal:
    """Spawn ``options`` and wait out the startup grace period.

    A pseudo-terminal is tried first. When it cannot be allocated, or when an
    active sandbox must wrap the command, the process runs on pipes instead.

    Raises:
        SpawnError: Neither substrate could start the process.
    """
    config = config or TerminalConfig()
    tuning = {
        "settle_ms": config.settle_ms,
        "poll_interval_ms": config.poll_interval_ms,
        "scrollback": config.scrollback,
    }
    sandboxed = sandbox is not None and sandbox.active

    terminal: BaseTerminal | None = None
    if not force_pipe and not sandboxed:
        pty = PtyTerminal(options, **tuning)
        try:
            pty.spawn()
            terminal = pty
        except (OSError, PtyProcessError) as e:
            log.warning("pty spawn failed for %s (%s), falling back to pipe mode", options.command, e)
            pty.dispose()

    if terminal is None:
        pipe = PipeTerminal(options, sandbox=sandbox, **tuning)
        try:
            await pipe.spawn()
        except OSError as e:
            raise SpawnError(options.command, e) from e
        terminal = pipe

    await terminal.start(config.startup_delay_ms)
    return terminal
