"""Terminal formatting helpers for results and job snapshots."""

from __future__ import annotations

from datetime import timedelta

from rich.table import Table
from rich.text import Text

from shellrun.models import ExecutionResult, JobSnapshot, JobStatus

STATUS_STYLES: dict[JobStatus, str] = {
    JobStatus.PENDING: "dim",
    JobStatus.RUNNING: "cyan",
    JobStatus.COMPLETED: "green",
    JobStatus.FAILED: "red",
    JobStatus.TIMEOUT: "yellow",
}


def format_duration(duration: timedelta) -> str:
    """Format a duration to a human-readable string."""
    ms = int(duration.total_seconds() * 1000)
    if ms < 1000:
        return f"{ms}ms"
    elif ms < 60000:
        return f"{ms / 1000:.1f}s"
    else:
        minutes = ms // 60000
        seconds = (ms % 60000) // 1000
        return f"{minutes}m {seconds}s"


def tail(text: str, lines: int = 1) -> str:
    """Return the last non-empty lines of ``text``."""
    kept = [line for line in text.splitlines() if line.strip()]
    return "\n".join(kept[-lines:])


def format_result_header(result: ExecutionResult, command: str) -> str:
    """One-line summary of an execution result."""
    icon = "OK" if result.ok else f"ERR({result.exit_code})"
    return f"$ {command} [{icon}] {format_duration(result.duration)}"


def format_job_output(snapshot: JobSnapshot) -> str:
    """Full output of a job, with the terminal error appended when there is one."""
    output = f"{snapshot.current_output}{snapshot.current_error}" or "(no output)"
    if snapshot.error:
        output = f"{output.rstrip()}\nError: {snapshot.error}"
    return output


def jobs_table(snapshots: list[JobSnapshot]) -> Table:
    """Render job snapshots as a rich table."""
    table = Table(title="Background jobs")
    table.add_column("ID", style="dim")
    table.add_column("Command")
    table.add_column("Status")
    table.add_column("Elapsed", justify="right")
    table.add_column("Last output")

    for snap in snapshots:
        elapsed = (snap.end_time - snap.start_time) if snap.end_time else None
        table.add_row(
            snap.id,
            Text(snap.command),
            Text(snap.status.value, style=STATUS_STYLES[snap.status]),
            format_duration(elapsed) if elapsed is not None else "-",
            Text(tail(snap.current_output or snap.current_error)),
        )
    return table
