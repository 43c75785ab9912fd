"""Configuration schema dataclasses for termpilot.

Defines the structure of configuration at all levels (system, user, project,
environment). Every field has a default so partial configs merge cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level when set
    file: str | None = None  # Log file path


@dataclass
class SandboxConfig:
    """OS-level sandbox wrapping for pipe-mode sessions.

    Example config.yaml:
        sandbox:
          enabled: true
          allow_write: ["/tmp", "/home/me/scratch"]
          allow_network: ["*"]
    """

    enabled: bool = False
    allow_write: list[str] = field(default_factory=lambda: ["/tmp"])
    allow_network: list[str] = field(default_factory=lambda: ["*"])  # "*" = unrestricted

    @property
    def network_unrestricted(self) -> bool:
        return bool(self.allow_network) and self.allow_network[0] == "*"


@dataclass
class TerminalConfig:
    """Timing and buffer knobs for the terminal layer."""

    startup_delay_ms: int = 1000  # Grace period before prompt inference
    settle_ms: int = 300  # Quiet period that counts as "output settled"
    poll_interval_ms: int = 50
    scrollback: int = 1000  # Lines kept for full-history reads
    cols: int = 120
    rows: int = 40


@dataclass
class ServerConfig:
    """Root configuration object.

    Aggregates session policy, safety switches and the ambient sections.
    """

    max_sessions: int = 10
    max_output: int = 20000  # Characters returned per call
    default_timeout_ms: int = 5000
    blocked_commands: list[str] = field(default_factory=list)
    allowed_commands: list[str] = field(default_factory=list)  # Non-empty = exclusive
    allowed_paths: list[str] = field(default_factory=list)  # Empty = unrestricted
    redact_secrets: bool = False
    log_inputs: bool = False
    idle_timeout_ms: int = 1_800_000  # 0 disables idle eviction
    danger_detection: bool = True
    audit_log: str | None = None
    sandbox: SandboxConfig = field(default_factory=SandboxConfig)
    terminal: TerminalConfig = field(default_factory=TerminalConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
