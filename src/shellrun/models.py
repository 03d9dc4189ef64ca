"""Data models for shellrun."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from shellrun.errors import JobStateError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ExecutionResult:
    """Result of one completed command execution."""

    command: str
    args: str = ""
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    start_time: datetime = field(default_factory=utcnow)
    end_time: datetime = field(default_factory=utcnow)

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def command_line(self) -> str:
        return f"{self.command} {self.args}" if self.args else self.command

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape used by transports."""
        seconds = self.duration.total_seconds()
        return {
            "command": self.command,
            "args": self.args,
            "exitCode": self.exit_code,
            "output": self.stdout,
            "error": self.stderr,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "duration": f"{seconds:.3f}s",
            "durationMs": int(seconds * 1000),
        }


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMEOUT)


_STAGE = {
    JobStatus.PENDING: 0,
    JobStatus.RUNNING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
    JobStatus.TIMEOUT: 2,
}


@dataclass(frozen=True)
class JobSnapshot:
    """Point-in-time copy of a background job, safe to hand to callers."""

    id: str
    command: str
    repo_path: str
    status: JobStatus
    start_time: datetime
    end_time: datetime | None = None
    result: ExecutionResult | None = None
    error: str = ""
    current_output: str = ""
    current_error: str = ""

    @property
    def done(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "command": self.command,
            "repoPath": self.repo_path,
            "status": self.status.value,
            "startTime": self.start_time.isoformat(),
            "currentOutput": self.current_output,
            "currentError": self.current_error,
        }
        if self.end_time is not None:
            data["endTime"] = self.end_time.isoformat()
        if self.result is not None:
            data["result"] = self.result.to_dict()
        if self.error:
            data["error"] = self.error
        return data


@dataclass(eq=False)
class BackgroundJob:
    """A command tracked by the job registry.

    Every read and write of the mutable fields goes through ``_lock`` so that
    status pollers on other threads see a consistent view while the stream
    readers keep appending output.
    """

    id: str
    command: str
    repo_path: str
    status: JobStatus = JobStatus.PENDING
    start_time: datetime = field(default_factory=utcnow)
    end_time: datetime | None = None
    result: ExecutionResult | None = None
    error: str = ""
    _stdout: list[str] = field(default_factory=list, init=False, repr=False)
    _stderr: list[str] = field(default_factory=list, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def append_output(self, text: str) -> None:
        with self._lock:
            self._stdout.append(text)

    def append_error(self, text: str) -> None:
        with self._lock:
            self._stderr.append(text)

    def mark_running(self) -> None:
        with self._lock:
            self._advance(JobStatus.RUNNING)

    def finish(
        self,
        status: JobStatus,
        *,
        result: ExecutionResult | None = None,
        error: str = "",
        end_time: datetime | None = None,
    ) -> None:
        """Move the job into a terminal state.

        Exactly one of ``result`` and ``error`` must be given.
        """
        if not status.is_terminal:
            raise JobStateError(f"{status.value} is not a terminal status")
        if (result is None) == (not error):
            raise ValueError("exactly one of result or error must be set")
        with self._lock:
            self._advance(status)
            self.end_time = end_time or utcnow()
            self.result = result
            self.error = error

    def finished_before(self, cutoff: datetime) -> bool:
        with self._lock:
            return self.status.is_terminal and self.end_time is not None and self.end_time < cutoff

    def snapshot(self) -> JobSnapshot:
        with self._lock:
            return JobSnapshot(
                id=self.id,
                command=self.command,
                repo_path=self.repo_path,
                status=self.status,
                start_time=self.start_time,
                end_time=self.end_time,
                result=self.result,
                error=self.error,
                current_output="".join(self._stdout),
                current_error="".join(self._stderr),
            )

    def _advance(self, status: JobStatus) -> None:
        # Caller holds _lock.
        if self.status.is_terminal or _STAGE[status] <= _STAGE[self.status]:
            raise JobStateError(f"job {self.id}: cannot move from {self.status.value} to {status.value}")
        self.status = status
