"""MCP front end: exposes the command pipeline as seven tools over stdio."""

import json
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from termpilot.errors import TermPilotError
from termpilot.logging import get_logger
from termpilot.pipeline import CONTROL_KEYS, CommandPipeline

log = get_logger("server")

INSTRUCTIONS = """
# termpilot

Interactive terminal sessions (shells, REPLs, database clients, SSH) for
agents. Create a session, send input line by line, and read clean text back.

- send_command appends the newline for you and waits for the output to settle.
- If a command is still running when the timeout passes, poll with read_output
  or interrupt with send_control("ctrl+c").
- Commands flagged as dangerous must go through confirm_dangerous_command.
"""


def _encode(payload: Any) -> str:
    return json.dumps(payload, indent=2)


def build_server(pipeline: CommandPipeline, name: str = "termpilot") -> FastMCP:
    """Register the session tools on a new FastMCP instance."""
    mcp = FastMCP(name, instructions=INSTRUCTIONS)

    async def _call(operation: str, coro) -> str:
        try:
            result = await coro
        except TermPilotError as e:
            log.info("%s failed (%s): %s", operation, e.kind, e)
            raise ToolError(f"Error: {e}") from e
        if isinstance(result, list):
            return _encode({"sessions": [item.to_dict() for item in result]})
        return _encode(result.to_dict())

    @mcp.tool()
    async def create_session(
        command: str = Field(description='Executable to run, e.g. "bash", "python3", "psql"'),
        args: list[str] | None = Field(default=None, description="Arguments for the command"),
        name: str | None = Field(default=None, description="Display name for the session"),
        cwd: str | None = Field(default=None, description="Working directory"),
        env: dict[str, str] | None = Field(
            default=None, description="Extra environment variables"
        ),
        cols: int | None = Field(default=None, description="Terminal width (40-300, default 120)"),
        rows: int | None = Field(default=None, description="Terminal height (10-100, default 40)"),
    ) -> str:
        """Spawn an interactive terminal session (REPL, shell, database client, SSH, etc.).

        Returns a session_id for subsequent commands.
        """
        return await _call(
            "create_session",
            pipeline.create_session(command, args, name, cwd, env, cols, rows),
        )

    @mcp.tool()
    async def send_command(
        session_id: str = Field(description="The session ID to send input to"),
        input: str = Field(description="The command/input to send (newline appended)"),
        timeout_ms: int | None = Field(
            default=None, description="Max time to wait for output in ms (100-60000)"
        ),
        max_output_chars: int | None = Field(
            default=None, description="Override max output characters for this call"
        ),
    ) -> str:
        """Send a command to a session and wait for its output.

        Returns clean text (no ANSI codes). Dangerous commands are rejected
        until confirmed with confirm_dangerous_command.
        """
        return await _call(
            "send_command",
            pipeline.send_command(session_id, input, timeout_ms, max_output_chars),
        )

    @mcp.tool()
    async def read_output(
        session_id: str = Field(description="The session ID"),
        full_screen: bool = Field(
            default=False, description="Return the full scrollback instead of recent output"
        ),
    ) -> str:
        """Read the current screen of a session without sending input."""
        return await _call("read_output", pipeline.read_output(session_id, full_screen))

    @mcp.tool()
    async def list_sessions() -> str:
        """List all active terminal sessions."""
        return await _call("list_sessions", pipeline.list_sessions())

    @mcp.tool()
    async def close_session(
        session_id: str = Field(description="The session ID"),
        signal: str = Field(default="SIGTERM", description="Signal to send (e.g. SIGTERM, SIGKILL)"),
    ) -> str:
        """Close a terminal session and kill its process."""
        return await _call("close_session", pipeline.close_session(session_id, signal))

    @mcp.tool()
    async def send_control(
        session_id: str = Field(description="The session ID"),
        control: str = Field(
            description=f"Control sequence to send. Supported: {', '.join(CONTROL_KEYS)}"
        ),
    ) -> str:
        """Send a control key (ctrl+c, ctrl+d, arrows, tab, ...) to a session."""
        return await _call("send_control", pipeline.send_control(session_id, control))

    @mcp.tool()
    async def confirm_dangerous_command(
        session_id: str = Field(description="The session ID"),
        input: str = Field(description="The exact dangerous command to confirm and execute"),
        justification: str = Field(
            description="Why this dangerous command is necessary (min 10 chars)"
        ),
    ) -> str:
        """Execute a command that send_command flagged as dangerous.

        Requires a justification. The confirmation covers exactly one run of
        exactly this input.
        """
        return await _call(
            "confirm_dangerous_command",
            pipeline.confirm_dangerous_command(session_id, input, justification),
        )

    return mcp
