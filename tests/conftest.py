"""Root pytest configuration for all tests."""

from __future__ import annotations

import pytest

from termpilot.audit import AuditLogger
from termpilot.config.schema import ServerConfig
from tests.utils import FAST_TERMINAL

pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(scope="session")
def anyio_backend():
    """Set anyio backend to asyncio."""
    return "asyncio"


@pytest.fixture
def server_config() -> ServerConfig:
    """Defaults with idle eviction off and fast terminal timings."""
    return ServerConfig(idle_timeout_ms=0, terminal=FAST_TERMINAL)


@pytest.fixture
def audit_path(tmp_path):
    return tmp_path / "audit.jsonl"


@pytest.fixture
def audit_logger(audit_path) -> AuditLogger:
    return AuditLogger(audit_path)
