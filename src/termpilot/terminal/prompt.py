"""Prompt inference for interactive sessions.

After startup, the last non-empty line of the screen is compared against a
table of well-known prompt shapes. The winning line itself (escaped, anchored
at end of line) becomes the session's prompt pattern, and its reappearance at
the bottom of the screen marks a command as finished.
"""

from __future__ import annotations

import re

KNOWN_PROMPTS: tuple[re.Pattern[str], ...] = (
    re.compile(r"[$#%>]\s*$"),  # bash/zsh/sh
    re.compile(r"^>{3}\s*$"),  # python
    re.compile(r"^>\s*$"),  # node
    re.compile(r"^(irb\(.*\):\d+:\d+>|>>)\s*$"),  # irb
    re.compile(r"^\d+\.\d+\.\d+\s*:?\d*\s*>\s*$"),  # rails console
    re.compile(r"^[a-zA-Z_][a-zA-Z0-9_-]*[=#]>\s*$"),  # psql
    re.compile(r"^mysql>\s*$"),
    re.compile(r"^sqlite>\s*$"),
    re.compile(r"^\d+\.\d+\.\d+\.\d+:\d+>\s*$"),  # redis-cli
    re.compile(r"^[a-zA-Z_][\w.-]*>\s*$"),  # generic "name>"
)

_HEURISTIC_MAX_LEN = 60
_HEURISTIC_TAIL = re.compile(r"[$#%>:]\s*$")
_TAIL_LINES = 3


def _last_non_empty_line(text: str) -> str:
    for line in reversed(text.split("\n")):
        stripped = line.strip()
        if stripped:
            return stripped
    return ""


def detect_prompt_pattern(startup_output: str) -> re.Pattern[str] | None:
    """Infer a prompt pattern from the startup banner, or None."""
    last_line = _last_non_empty_line(startup_output)
    if not last_line:
        return None

    if any(p.search(last_line) for p in KNOWN_PROMPTS):
        return re.compile(re.escape(last_line) + r"\s*$")

    # Short line ending in a prompt-ish character
    if len(last_line) < _HEURISTIC_MAX_LEN and _HEURISTIC_TAIL.search(last_line):
        return re.compile(re.escape(last_line) + r"\s*$")

    return None


def ends_with_prompt(output: str, prompt_pattern: re.Pattern[str] | None) -> bool:
    """True if the last non-blank line among the final few matches the prompt."""
    if prompt_pattern is None:
        return False

    lines = output.split("\n")
    for line in reversed(lines[-_TAIL_LINES:]):
        stripped = line.strip()
        if stripped:
            return prompt_pattern.search(stripped) is not None
    return False
