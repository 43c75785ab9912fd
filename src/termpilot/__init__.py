"""termpilot: interactive terminal sessions for agents.

Spawns shells, REPLs and other interactive programs on a pseudo-terminal (or
plain pipes where no pty is available), detects when each command has
finished, and returns clean text behind danger, path and secret gates.
"""

__version__ = "0.1.0"

from termpilot.errors import TermPilotError
from termpilot.pipeline import CommandPipeline
from termpilot.session import SessionManager

__all__ = [
    "__version__",
    "CommandPipeline",
    "SessionManager",
    "TermPilotError",
]
