"""Secret redaction for session output.

Each rule is applied independently, so a value matching two rules is
replaced by whichever rule reaches it first. Markers of the form
``[REDACTED:LABEL]`` never match any rule, which keeps redaction idempotent.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class SecretRule:
    pattern: re.Pattern[str]
    label: str


def _rule(pattern: str, label: str, flags: int = 0) -> SecretRule:
    return SecretRule(re.compile(pattern, flags), label)


SECRET_RULES: tuple[SecretRule, ...] = (
    # AWS
    _rule(r"\b(AKIA[0-9A-Z]{16})\b", "AWS_ACCESS_KEY"),
    _rule(r"\b([0-9a-zA-Z/+]{40})\b", "POSSIBLE_AWS_SECRET"),
    # GitHub
    _rule(r"\b(ghp_[0-9a-zA-Z]{36,})\b", "GITHUB_PAT"),
    _rule(r"\b(gho_[0-9a-zA-Z]{36,})\b", "GITHUB_OAUTH"),
    _rule(r"\b(ghs_[0-9a-zA-Z]{36,})\b", "GITHUB_APP"),
    # Generic API keys
    _rule(r"\b(sk-[0-9a-zA-Z]{20,})\b", "API_KEY"),
    _rule(r"\b(api[_-]?key\s*[:=]\s*['\"]?)([0-9a-zA-Z_\-]{20,})", "API_KEY", re.IGNORECASE),
    # Private keys
    _rule(r"-----BEGIN (RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----", "PRIVATE_KEY"),
    # Generic tokens
    _rule(r"\b(token\s*[:=]\s*['\"]?)([0-9a-zA-Z_\-]{20,})", "TOKEN", re.IGNORECASE),
    # Connection strings with passwords
    _rule(r"://[^:/\s]+:([^@\s]{8,})@", "PASSWORD_IN_URL"),
)


class SecretRedactor:
    """Scrubs credential-shaped substrings from text."""

    def __init__(self, rules: Iterable[SecretRule] = SECRET_RULES) -> None:
        self._rules = tuple(rules)

    def redact(self, text: str) -> str:
        for rule in self._rules:
            text = rule.pattern.sub(f"[REDACTED:{rule.label}]", text)
        return text

    def find(self, text: str) -> list[str]:
        """Labels of every rule that matches, for diagnostics."""
        return [rule.label for rule in self._rules if rule.pattern.search(text)]


_default_redactor = SecretRedactor()


def redact_secrets(text: str) -> str:
    return _default_redactor.redact(text)
