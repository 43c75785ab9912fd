"""Process-tree signal delivery.

Shells fork children that do not share the shell's own signal handling, so
interrupts are delivered to every descendant, deepest first, and then to the
root. Descendants that exit mid-walk are expected and skipped.
"""

from __future__ import annotations

import os
import signal

import psutil

from termpilot.logging import get_logger

log = get_logger("terminal.tree")


def descendant_pids(pid: int) -> list[int]:
    """All descendant pids of ``pid`` (children, grandchildren, ...)."""
    try:
        children = psutil.Process(pid).children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return []
    return [child.pid for child in children]


def signal_process_tree(pid: int, sig: signal.Signals) -> int:
    """Signal descendants deepest-first, then ``pid``. Returns deliveries made."""
    delivered = 0
    for child_pid in reversed(descendant_pids(pid)):
        try:
            os.kill(child_pid, sig)
            delivered += 1
        except (ProcessLookupError, PermissionError):
            log.debug("Descendant %d gone before %s", child_pid, sig.name)

    try:
        os.kill(pid, sig)
        delivered += 1
    except (ProcessLookupError, PermissionError):
        log.debug("Process %d gone before %s", pid, sig.name)
    return delivered


def signal_process_group(pid: int, sig: signal.Signals) -> bool:
    """Signal the process group led by ``pid``, falling back to the pid alone."""
    try:
        os.killpg(os.getpgid(pid), sig)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        try:
            os.kill(pid, sig)
            return True
        except ProcessLookupError:
            return False
