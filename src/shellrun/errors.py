"""Exception types raised by the execution engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shellrun.models import ExecutionResult


class ExecutionError(RuntimeError):
    """Base class for everything that prevents a command from running to completion."""


class PreconditionError(ExecutionError, ValueError):
    """The request was rejected before any process was started."""


class EmptyCommandError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("empty command")


class WorkingDirectoryNotFoundError(PreconditionError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"working directory does not exist: {path}")


class UnsafeCommandError(PreconditionError):
    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"command contains potentially unsafe operations ({reason}): {command}")


class CommandStartError(ExecutionError):
    """The OS could not launch the process."""

    def __init__(self, command: str, cause: OSError) -> None:
        self.command = command
        super().__init__(f"failed to start command {command!r}: {cause}")


class CommandTimeoutError(ExecutionError):
    """The execution deadline elapsed and the process was killed.

    ``result`` holds the output captured before the kill when the command
    was run with streaming capture, and is ``None`` for buffered runs.
    """

    def __init__(self, timeout: float, result: ExecutionResult | None = None) -> None:
        self.timeout = timeout
        self.result = result
        super().__init__(f"command timed out after {timeout:g}s")


class JobStateError(RuntimeError):
    """A job was asked to move backwards through its lifecycle."""
