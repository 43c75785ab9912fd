"""Optional OS-level confinement for pipe-mode sessions.

When enabled, spawned argv is rewritten to run under bubblewrap (Linux) or
sandbox-exec (macOS): the filesystem is read-only except for the configured
write roots, and networking is cut off unless the allowlist is ``*``. Neither
tool can filter by domain, so any allowlist other than ``*`` means no network.

Initialization never fails the server. If the platform tool is missing or
cannot create its namespaces, the server runs unconfined and says so.
"""

from __future__ import annotations

import shutil
import subprocess
import sys
from pathlib import Path
from typing import Protocol

from termpilot.audit import AuditEvent, audit
from termpilot.config.schema import SandboxConfig, ServerConfig
from termpilot.logging import get_logger

log = get_logger("sandbox")

_PROBE_TIMEOUT = 5


class SandboxUnavailable(RuntimeError):
    """The platform sandbox tool is missing or unusable."""


class SandboxAdapter(Protocol):
    name: str

    @property
    def active(self) -> bool: ...

    def wrap(self, argv: list[str]) -> list[str]:
        """Return argv rewritten to run inside the sandbox."""
        ...

    def reset(self) -> None: ...


class NullSandbox:
    """Passthrough used when sandboxing is disabled or unavailable."""

    name = "none"

    @property
    def active(self) -> bool:
        return False

    def wrap(self, argv: list[str]) -> list[str]:
        return list(argv)

    def reset(self) -> None:
        pass


def _write_roots(config: SandboxConfig) -> list[str]:
    roots = []
    for raw in config.allow_write or ["/tmp"]:
        path = Path(raw).expanduser()
        if path.exists():
            roots.append(str(path.resolve()))
        else:
            log.warning("Sandbox write path %s does not exist, skipping", path)
    return roots


class BubblewrapSandbox:
    """Linux confinement via bwrap."""

    name = "bubblewrap"

    def __init__(self, config: SandboxConfig, executable: str = "bwrap") -> None:
        self.config = config
        self.executable = executable
        self.write_roots = _write_roots(config)
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def prefix(self) -> list[str]:
        args = [self.executable, "--die-with-parent", "--ro-bind", "/", "/"]
        for root in self.write_roots:
            args.extend(["--bind", root, root])
        args.extend(["--dev", "/dev", "--proc", "/proc"])
        if not self.config.network_unrestricted:
            args.append("--unshare-net")
        return args

    def wrap(self, argv: list[str]) -> list[str]:
        if not self._active:
            return list(argv)
        return [*self.prefix(), "--", *argv]

    def probe(self) -> None:
        """Run a trivial command under the sandbox. Raises SandboxUnavailable."""
        if shutil.which(self.executable) is None:
            raise SandboxUnavailable(f"{self.executable} not found on PATH")
        try:
            proc = subprocess.run(
                self.wrap(["/bin/sh", "-c", "true"]),
                capture_output=True,
                timeout=_PROBE_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise SandboxUnavailable(str(e)) from e
        if proc.returncode != 0:
            stderr = proc.stderr.decode(errors="replace").strip()
            raise SandboxUnavailable(f"bwrap probe failed: {stderr or proc.returncode}")

    def reset(self) -> None:
        self._active = False


def _escape_seatbelt_path(path: str) -> str:
    return path.replace("\\", "\\\\").replace('"', '\\"')


class SeatbeltSandbox:
    """macOS confinement via sandbox-exec."""

    name = "seatbelt"

    def __init__(self, config: SandboxConfig, executable: str = "/usr/bin/sandbox-exec") -> None:
        self.config = config
        self.executable = executable
        self.write_roots = _write_roots(config)
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def profile(self) -> str:
        lines = [
            "(version 1)",
            "(allow default)",
            '(deny file-write* (subpath "/"))',
            '(allow file-write* (subpath "/dev") (subpath "/private/tmp") (subpath "/private/var/folders"))',
        ]
        if self.write_roots:
            clause = " ".join(f'(subpath "{_escape_seatbelt_path(r)}")' for r in self.write_roots)
            lines.append(f"(allow file-write* {clause})")
        if not self.config.network_unrestricted:
            lines.append("(deny network*)")
        return "\n".join(lines)

    def wrap(self, argv: list[str]) -> list[str]:
        if not self._active:
            return list(argv)
        return [self.executable, "-p", self.profile(), *argv]

    def probe(self) -> None:
        if not Path(self.executable).exists():
            raise SandboxUnavailable("sandbox-exec not available on this system")

    def reset(self) -> None:
        self._active = False


def init_sandbox(config: ServerConfig, platform: str | None = None) -> SandboxAdapter:
    """Build the sandbox for this host, or a NullSandbox.

    Disabled, unsupported and failed setups all return NullSandbox. Failures
    are audited as ``sandbox_fail``; success as ``sandbox_init``.
    """
    settings = config.sandbox
    if not settings.enabled:
        return NullSandbox()

    platform = platform or sys.platform
    sandbox: BubblewrapSandbox | SeatbeltSandbox
    try:
        if platform.startswith("linux"):
            sandbox = BubblewrapSandbox(settings)
        elif platform == "darwin":
            sandbox = SeatbeltSandbox(settings)
        else:
            raise SandboxUnavailable(f"platform {platform} not supported")
        sandbox.probe()
    except SandboxUnavailable as e:
        audit(AuditEvent.SANDBOX_FAIL, error=str(e))
        log.warning("Sandbox: failed to initialize (%s). Sandbox disabled.", e)
        return NullSandbox()

    audit(
        AuditEvent.SANDBOX_INIT,
        backend=sandbox.name,
        allow_write=sandbox.write_roots,
        network=settings.allow_network,
    )
    log.info(
        "Sandbox: ENABLED via %s (write: %s, network: %s)",
        sandbox.name,
        ", ".join(sandbox.write_roots),
        ", ".join(settings.allow_network),
    )
    return sandbox
