"""Dangerous command pattern detection.

Matching is purely textual over the literal input. It is a heuristic safety
net that gates execution behind an explicit confirmation, not a parser of
shell semantics.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class DangerRule:
    pattern: re.Pattern[str]
    reason: str


def _rule(pattern: str, reason: str, flags: int = 0) -> DangerRule:
    return DangerRule(re.compile(pattern, flags), reason)


# Order matters: detect_danger() reports the first match.
DANGER_RULES: tuple[DangerRule, ...] = (
    # Destructive file operations
    _rule(r"\brm\s+(-[a-zA-Z]*f[a-zA-Z]*\s+|.*-[a-zA-Z]*r[a-zA-Z]*f)", "Recursive force delete (rm -rf)"),
    _rule(r"\brm\s+-[a-zA-Z]*r[a-zA-Z]*\s+/(?!\S*tmp\b)", "Recursive delete from root"),
    _rule(r"\bmkfs\b", "Filesystem format"),
    _rule(r"\bdd\s+.*of=/dev/", "Direct device write (dd)"),
    _rule(r">\s*/dev/sd[a-z]", "Direct write to disk device"),
    # SQL
    _rule(r"\bDROP\s+(TABLE|DATABASE|SCHEMA)\b", "SQL DROP operation", re.IGNORECASE),
    _rule(r"\bTRUNCATE\s+TABLE\b", "SQL TRUNCATE TABLE", re.IGNORECASE),
    _rule(r"\bDELETE\s+FROM\s+\S+\s*(;|$)", "SQL DELETE without WHERE clause", re.IGNORECASE),
    # Remote content piped to a shell
    _rule(r"\bcurl\b.*\|\s*(ba)?sh\b", "Pipe remote content to shell (curl|sh)"),
    _rule(r"\bwget\b.*\|\s*(ba)?sh\b", "Pipe remote content to shell (wget|sh)"),
    _rule(r"\bcurl\b.*\|\s*sudo\b", "Pipe remote content to sudo"),
    # Permissions and ownership
    _rule(r"\bchmod\s+(-[a-zA-Z]*\s+)?[0-7]*777\b", "chmod 777 (world-writable)"),
    _rule(r"\bchown\s+-R\s+.*\s+/(?!tmp\b|home\b)", "Recursive chown from root"),
    # Services and processes
    _rule(r"\bsystemctl\s+(stop|disable|mask)\b", "Stopping/disabling system service"),
    _rule(r"\bkillall\b", "Kill all processes by name"),
    _rule(r"\bkill\s+-9\b", "Force kill (SIGKILL)"),
    # Partitions
    _rule(r"\bfdisk\b", "Disk partition modification"),
    _rule(r"\bparted\b", "Disk partition modification"),
    # Shell tricks and system config
    _rule(r":\(\)\s*\{[^}]*:\s*\|\s*:.*\}", "Fork bomb"),
    _rule(r">\s*/etc/", "Overwriting system config"),
    _rule(r"\bsudo\s+rm\b", "Privileged delete"),
)


class DangerDetector:
    """Classifies input strings against an ordered rule table."""

    def __init__(self, rules: Iterable[DangerRule] = DANGER_RULES) -> None:
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[DangerRule, ...]:
        return self._rules

    def detect(self, text: str) -> str | None:
        """Return the first matching reason, or None if the input looks safe."""
        for rule in self._rules:
            if rule.pattern.search(text):
                return rule.reason
        return None

    def detect_all(self, text: str) -> list[str]:
        """Return every matching reason, in table order."""
        return [rule.reason for rule in self._rules if rule.pattern.search(text)]


_default_detector = DangerDetector()


def detect_danger(text: str) -> str | None:
    return _default_detector.detect(text)
