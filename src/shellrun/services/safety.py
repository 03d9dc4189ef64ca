"""Command denylist checker.

Plain pattern matching over the lowercased command text. This catches the
obvious destructive one-liners and nothing more; it is not a sandbox.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from shellrun.errors import UnsafeCommandError

logger = logging.getLogger(__name__)

BLACKLIST_PATTERNS: list[tuple[str, str]] = [
    (r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}", "Fork bomb detected"),
    (r"\brm\s+(-[a-z]+\s+)*-[a-z]*(rf|fr)[a-z]*\s+(/|~|\.|\*)", "Recursive delete of root, home or working tree"),
    (r"\bmkfs\b", "Filesystem format blocked"),
    (r"\bdd\s+if=/dev/(zero|random|urandom)\b", "Raw disk write blocked"),
    (r">\s*/dev/(sd|hd|vd|nvme)", "Raw device write blocked"),
    (r"\bof=/dev/(sd|hd|vd|nvme)", "Raw device write blocked"),
]


class BlacklistChecker:
    """Regex-based command blacklist checker."""

    def __init__(self, extra_patterns: Iterable[str] = ()) -> None:
        self._patterns: list[tuple[re.Pattern[str], str]] = []
        for pattern, reason in BLACKLIST_PATTERNS:
            self._patterns.append((re.compile(pattern), reason))
        for pattern in extra_patterns:
            try:
                self._patterns.append((re.compile(pattern, re.IGNORECASE), f"Matched blocked pattern {pattern!r}"))
            except re.error:
                logger.error("Invalid blacklist pattern: %s", pattern)

    def check(self, command: str) -> tuple[bool, str]:
        """Check if a command is blacklisted. Returns (blocked, reason)."""
        lowered = command.lower()
        for compiled, reason in self._patterns:
            if compiled.search(lowered):
                logger.warning("Blacklisted command: %s (reason: %s)", command, reason)
                return True, reason
        return False, ""

    def ensure_safe(self, command: str) -> None:
        """Raise UnsafeCommandError if the command is blacklisted."""
        blocked, reason = self.check(command)
        if blocked:
            raise UnsafeCommandError(command, reason)

