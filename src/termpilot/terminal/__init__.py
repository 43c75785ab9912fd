"""Terminal substrates for interactive processes.

A Terminal owns one child process and answers three questions about it: what
is on the screen, is it still alive, and has the last command finished.
"""

from termpilot.terminal.base import BaseTerminal, resolve_signal
from termpilot.terminal.factory import create_terminal
from termpilot.terminal.pipe_terminal import PipeTerminal, interactive_argv
from termpilot.terminal.prompt import detect_prompt_pattern, ends_with_prompt
from termpilot.terminal.protocol import Terminal
from termpilot.terminal.pty_terminal import PtyTerminal
from termpilot.terminal.result import TerminalMode, TerminalOptions, WaitResult

__all__ = [
    "BaseTerminal",
    "PipeTerminal",
    "PtyTerminal",
    "Terminal",
    "TerminalMode",
    "TerminalOptions",
    "WaitResult",
    "create_terminal",
    "detect_prompt_pattern",
    "ends_with_prompt",
    "interactive_argv",
    "resolve_signal",
]
