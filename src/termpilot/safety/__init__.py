"""Safety gates applied to everything entering or leaving a session."""

from termpilot.safety.danger import (
    DANGER_RULES,
    DangerDetector,
    DangerRule,
    detect_danger,
)
from termpilot.safety.sanitizer import (
    clean_whitespace,
    resolve_carriage_returns,
    sanitize,
    strip_ansi,
    strip_command_echo,
    truncate_output,
)
from termpilot.safety.secrets import SECRET_RULES, SecretRedactor, SecretRule, redact_secrets

__all__ = [
    "DANGER_RULES",
    "DangerDetector",
    "DangerRule",
    "detect_danger",
    "SECRET_RULES",
    "SecretRedactor",
    "SecretRule",
    "redact_secrets",
    "sanitize",
    "strip_ansi",
    "clean_whitespace",
    "resolve_carriage_returns",
    "strip_command_echo",
    "truncate_output",
]
