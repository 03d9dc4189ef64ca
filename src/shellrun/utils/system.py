"""System utility checks."""

from __future__ import annotations

import os
import signal
from pathlib import Path

SHELL_CANDIDATES = ("/bin/bash", "/bin/zsh", "/bin/sh")


def find_shell() -> str:
    """Return the first available shell interpreter, falling back to /bin/sh."""
    for candidate in SHELL_CANDIDATES:
        if Path(candidate).exists():
            return candidate
    return "/bin/sh"


def check_working_dir(path: str) -> tuple[bool, str]:
    """Validate a working directory path."""
    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        return False, f"Directory not found: {resolved}"
    if not resolved.is_dir():
        return False, f"Not a directory: {resolved}"
    return True, str(resolved)


def kill_process_group(pid: int) -> None:
    """SIGKILL a process and everything it spawned.

    Processes are started in their own session, so the group id equals the
    leader's pid. The group is signalled by that id even after the leader has
    been reaped, so backgrounded children holding the output pipes die too.
    """
    try:
        os.killpg(pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
