"""Entry point for running termpilot as an MCP server.

Usage:
    python -m termpilot
    termpilot

The server speaks MCP over stdin/stdout. Logs go to stderr or to the file
named by TERMPILOT_LOG / ``logging.file``.
"""

from __future__ import annotations

import asyncio
import platform
import sys

from termpilot import __version__
from termpilot.audit import AuditEvent, audit, configure_audit
from termpilot.config.schema import ServerConfig
from termpilot.logging import get_logger, setup_logging

log = get_logger()


def _log_policy(config: ServerConfig) -> None:
    log.info(
        "Config: max_sessions=%d, max_output=%d, default_timeout=%dms, idle_timeout=%dms",
        config.max_sessions,
        config.max_output,
        config.default_timeout_ms,
        config.idle_timeout_ms,
    )
    if config.danger_detection:
        log.info("Dangerous command detection: ENABLED")
    if config.redact_secrets:
        log.info("Secret redaction: ENABLED")
    if config.blocked_commands:
        log.info("Blocked commands: %s", ", ".join(config.blocked_commands))
    if config.allowed_commands:
        log.info("Allowed commands: %s", ", ".join(config.allowed_commands))
    if config.allowed_paths:
        log.info("Allowed paths: %s", ", ".join(config.allowed_paths))
    if config.audit_log:
        log.info("Audit log: %s", config.audit_log)


async def _serve(config: ServerConfig) -> None:
    from termpilot.pipeline import CommandPipeline
    from termpilot.sandbox import init_sandbox
    from termpilot.server import build_server
    from termpilot.session import SessionManager

    sandbox = init_sandbox(config)
    manager = SessionManager(config, sandbox=sandbox)
    server = build_server(CommandPipeline(manager, config))

    audit(
        AuditEvent.SERVER_START,
        version=__version__,
        max_sessions=config.max_sessions,
        danger_detection=config.danger_detection,
        redact_secrets=config.redact_secrets,
        allowed_commands=config.allowed_commands or None,
        blocked_commands=config.blocked_commands or None,
        allowed_paths=config.allowed_paths or None,
        sandbox=sandbox.name,
    )
    log.info("Ready to accept MCP requests")

    try:
        await server.run_stdio_async()
    except (BrokenPipeError, ConnectionResetError):
        log.info("Pipe closed, shutting down...")
    finally:
        audit(AuditEvent.SERVER_STOP, sessions=manager.session_count)
        closed = manager.close_all()
        if closed:
            log.info("Closed %d session(s) on shutdown", closed)
        sandbox.reset()


def main() -> None:
    """Run the termpilot MCP server."""
    from termpilot.config import load_config

    # Load config before logging so we can use config.logging settings
    config = load_config()
    setup_logging(config.logging)
    configure_audit(config.audit_log)

    log.info("Starting termpilot %s", __version__)
    log.info(
        "Python %s | %s %s", platform.python_version(), sys.platform, platform.machine()
    )
    _log_policy(config)

    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        pass
    finally:
        log.info("Exiting...")


if __name__ == "__main__":
    main()
