"""Output sanitizer: cleans terminal output before it is handed to a caller.

Pty sessions are rendered through a terminal emulator, so most control
sequences are already resolved; pipe sessions keep raw bytes, and this module
does the final cleanup for both.
"""

from __future__ import annotations

import re

_CSI_RE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]")
_OSC_RE = re.compile(r"\x1b\][^\x07]*\x07")
_CHARSET_RE = re.compile(r"\x1b[()][0-9A-Za-z]")
_ESC_RE = re.compile(r"\x1b")


def strip_ansi(text: str) -> str:
    """Remove CSI, OSC and charset-selection sequences plus lone escapes."""
    text = _CSI_RE.sub("", text)
    text = _OSC_RE.sub("", text)
    text = _CHARSET_RE.sub("", text)
    return _ESC_RE.sub("", text)


def resolve_carriage_returns(text: str) -> str:
    """Keep only the last overwrite of each line, as a terminal would show it."""
    lines = text.replace("\r\n", "\n").split("\n")
    resolved = []
    for line in lines:
        if "\r" in line:
            segments = [s for s in line.split("\r") if s]
            line = segments[-1] if segments else ""
        resolved.append(line)
    return "\n".join(resolved)


def clean_whitespace(text: str) -> str:
    """Strip trailing whitespace per line and collapse blank runs to one line."""
    result: list[str] = []
    blank_run = 0
    for line in text.split("\n"):
        line = line.rstrip()
        if line == "":
            blank_run += 1
            if blank_run > 1:
                continue
        else:
            blank_run = 0
        result.append(line)
    return "\n".join(result)


def strip_command_echo(output: str, command: str) -> str:
    """Drop the echoed command from the first line of output.

    Handles both a bare echo (``ls -la``) and a prompt-prefixed one
    (``>>> print('hi')``).
    """
    trimmed = command.strip()
    if not trimmed:
        return output
    first, sep, rest = output.partition("\n")
    if first.strip() == trimmed or first.rstrip().endswith(trimmed):
        return rest
    return output


def truncate_output(output: str, max_chars: int) -> str:
    """Cut output to ``max_chars``, preferring a newline near the limit."""
    if len(output) <= max_chars:
        return output
    truncated = output[:max_chars]
    last_newline = truncated.rfind("\n")
    break_point = last_newline if last_newline > max_chars * 0.8 else max_chars
    return f"{truncated[:break_point]}\n\n... [output truncated at {break_point} chars]"


def sanitize(
    output: str,
    command: str | None = None,
    max_chars: int | None = None,
) -> str:
    """Full pipeline: strip ANSI, strip echo, clean whitespace, truncate."""
    result = resolve_carriage_returns(strip_ansi(output))
    if command:
        result = strip_command_echo(result, command)
    result = clean_whitespace(result)
    if max_chars:
        result = truncate_output(result, max_chars)
    return result.strip("\n")
