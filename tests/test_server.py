"""Tests for the MCP tool surface."""

from __future__ import annotations

import json

import pytest
from mcp.server.fastmcp.exceptions import ToolError

from termpilot.pipeline import CommandPipeline
from termpilot.server import build_server
from termpilot.session import SessionManager
from tests.utils import fake_factory

TOOL_NAMES = {
    "create_session",
    "send_command",
    "read_output",
    "list_sessions",
    "close_session",
    "send_control",
    "confirm_dangerous_command",
}


def make_server(config, audit_logger):
    manager = SessionManager(config, audit_logger=audit_logger, terminal_factory=fake_factory())
    return build_server(CommandPipeline(manager, audit_logger=audit_logger))


def result_text(result) -> str:
    # Newer SDKs return (content, structured_output)
    content = result[0] if isinstance(result, tuple) else result
    return content[0].text


class TestToolSurface:
    @pytest.mark.asyncio
    async def test_tools_registered(self, server_config, audit_logger):
        server = make_server(server_config, audit_logger)
        tools = await server.list_tools()
        assert {tool.name for tool in tools} == TOOL_NAMES

    @pytest.mark.asyncio
    async def test_schema_describes_arguments(self, server_config, audit_logger):
        server = make_server(server_config, audit_logger)
        tools = {tool.name: tool for tool in await server.list_tools()}

        schema = tools["send_command"].inputSchema
        assert set(schema["required"]) == {"session_id", "input"}
        assert "newline appended" in schema["properties"]["input"]["description"]
        assert "ctrl+c" in tools["send_control"].inputSchema["properties"]["control"]["description"]


class TestToolCalls:
    @pytest.mark.asyncio
    async def test_create_send_list_close(self, server_config, audit_logger, tmp_path):
        server = make_server(server_config, audit_logger)

        created = json.loads(
            result_text(await server.call_tool("create_session", {"command": "bash", "cwd": str(tmp_path)}))
        )
        session_id = created["session_id"]
        assert created["mode"] == "pipe"

        sent = json.loads(
            result_text(
                await server.call_tool("send_command", {"session_id": session_id, "input": "echo hi"})
            )
        )
        assert sent == {"output": "out:echo hi\n$", "is_complete": True, "is_alive": True}

        listed = json.loads(result_text(await server.call_tool("list_sessions", {})))
        assert [s["session_id"] for s in listed["sessions"]] == [session_id]

        closed = json.loads(
            result_text(await server.call_tool("close_session", {"session_id": session_id}))
        )
        assert closed == {"success": True}

    @pytest.mark.asyncio
    async def test_unknown_session_is_tool_error(self, server_config, audit_logger):
        server = make_server(server_config, audit_logger)
        with pytest.raises(ToolError, match='Session "missing" not found'):
            await server.call_tool("read_output", {"session_id": "missing"})

    @pytest.mark.asyncio
    async def test_dangerous_command_is_tool_error(self, server_config, audit_logger, tmp_path):
        server = make_server(server_config, audit_logger)
        created = json.loads(
            result_text(await server.call_tool("create_session", {"command": "bash", "cwd": str(tmp_path)}))
        )
        with pytest.raises(ToolError, match="confirm_dangerous_command"):
            await server.call_tool(
                "send_command", {"session_id": created["session_id"], "input": "rm -rf build"}
            )
