"""Error taxonomy for termpilot.

Every caller-facing failure raised by the engine is a TermPilotError subclass.
The ``kind`` attribute names the condition so the front end can report a
structured failure without inspecting message text.
"""

from __future__ import annotations

from dataclasses import dataclass


class TermPilotError(Exception):
    """Base class for all request-level failures."""

    kind = "error"


class CapacityError(TermPilotError):
    """Session limit reached."""

    kind = "capacity"


class PolicyError(TermPilotError):
    """Command blocked or not in the allowed list."""

    kind = "policy"


class PathPolicyError(PolicyError):
    """A working directory or path reference falls outside the allowed roots."""

    kind = "path_policy"


class NotFoundError(TermPilotError):
    kind = "not_found"


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f'Session "{session_id}" not found')
        self.session_id = session_id


class UnknownControlKeyError(NotFoundError):
    def __init__(self, control: str, supported: list[str]) -> None:
        super().__init__(
            f'Unknown control key "{control}". Supported: {", ".join(supported)}'
        )
        self.control = control


class SessionNotAliveError(TermPilotError):
    """Write attempted on a session whose process has exited."""

    kind = "not_alive"

    def __init__(self, session_id: str | None = None) -> None:
        if session_id:
            super().__init__(f'Session "{session_id}" is not alive')
        else:
            super().__init__("Session is not alive")
        self.session_id = session_id


class SafetyError(TermPilotError):
    kind = "safety"


@dataclass
class DangerousCommandError(SafetyError):
    """Raised when input matches a danger rule and was not pre-confirmed.

    Carries the first matching reason plus every reason that matched, so
    callers and the audit trail can show the full picture.
    """

    input: str
    reason: str
    reasons: list[str]

    def __str__(self) -> str:
        return (
            f"Dangerous command detected: {self.reason}. "
            "Use the confirm_dangerous_command tool first with a justification."
        )


class NotDangerousError(SafetyError):
    def __init__(self) -> None:
        super().__init__(
            "This command does not appear to be dangerous. Use send_command instead."
        )


class SpawnError(TermPilotError):
    """The process could not be started in either pty or pipe mode."""

    kind = "spawn"

    def __init__(self, command: str, cause: BaseException | str) -> None:
        super().__init__(f'Failed to spawn "{command}": {cause}')
        self.command = command
        self.cause = cause


class ValidationError(TermPilotError):
    """An argument is out of its accepted range."""

    kind = "validation"
