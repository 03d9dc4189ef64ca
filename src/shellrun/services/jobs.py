"""Background job registry.

Jobs are asyncio tasks running on the loop that called :meth:`JobRegistry.submit`.
The job map sits behind ``JobRegistry._lock`` and each job's mutable fields
behind the job's own lock, so :meth:`get_status` and :meth:`cleanup` may be
called from any thread. Lock order is always registry, then job; the registry
lock is never taken while a job lock is held.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from datetime import datetime, timedelta

from shellrun.config import AppConfig
from shellrun.errors import (
    CommandTimeoutError,
    EmptyCommandError,
    ExecutionError,
    WorkingDirectoryNotFoundError,
)
from shellrun.models import BackgroundJob, ExecutionResult, JobSnapshot, JobStatus, utcnow
from shellrun.services.runner import ProcessRunner
from shellrun.utils.system import check_working_dir

logger = logging.getLogger(__name__)


def new_job_id() -> str:
    return f"{utcnow():%Y%m%d%H%M%S}-{uuid.uuid4().hex[:12]}"


class JobRegistry:
    """In-memory registry of background command executions."""

    def __init__(self, runner: ProcessRunner, config: AppConfig) -> None:
        self.runner = runner
        self.timeout = config.jobs.timeout
        self.retention = timedelta(seconds=config.jobs.retention)
        self.cleanup_interval = config.jobs.cleanup_interval
        self._jobs: dict[str, BackgroundJob] = {}
        self._lock = threading.Lock()
        self._tasks: set[asyncio.Task[None]] = set()
        self._cleanup_task: asyncio.Task[None] | None = None

    # --- Lifecycle ---

    def start(self) -> None:
        """Start the periodic cleanup task on the running loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def close(self) -> None:
        """Stop periodic cleanup and cancel jobs that are still running."""
        pending = list(self._tasks)
        if self._cleanup_task is not None:
            pending.append(self._cleanup_task)
            self._cleanup_task = None
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        # Tasks cancelled before their first step never ran _execute.
        with self._lock:
            jobs = list(self._jobs.values())
        for job in jobs:
            if not job.snapshot().done:
                job.finish(JobStatus.FAILED, error="cancelled before completion")
                logger.info("Background command [%s] cancelled before it started", job.id)

    async def _cleanup_loop(self) -> None:
        while True:
            self.cleanup(self.retention)
            await asyncio.sleep(self.cleanup_interval)

    # --- Operations ---

    def submit(self, command: str, repo_path: str) -> str:
        """Register a job and start it in the background. Returns the job id.

        Empty, denylisted and directory-less requests are rejected here with a
        PreconditionError; no job is created for them.
        """
        if not command.strip():
            raise EmptyCommandError()
        self.runner.checker.ensure_safe(command)
        if not repo_path or not check_working_dir(repo_path)[0]:
            raise WorkingDirectoryNotFoundError(repo_path)

        job = BackgroundJob(id=new_job_id(), command=command, repo_path=repo_path)
        with self._lock:
            self._jobs[job.id] = job

        task = asyncio.get_running_loop().create_task(self._execute(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Submitted background command [%s]: %s in %s", job.id, command, repo_path)
        return job.id

    def get_status(self, job_id: str) -> JobSnapshot | None:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            return None
        return job.snapshot()

    def list_jobs(self) -> list[JobSnapshot]:
        with self._lock:
            jobs = list(self._jobs.values())
        return sorted((job.snapshot() for job in jobs), key=lambda s: s.start_time)

    async def wait(self, job_id: str, poll_interval: float = 0.1) -> JobSnapshot:
        """Poll until the job is terminal and return its final snapshot."""
        while True:
            snapshot = self.get_status(job_id)
            if snapshot is None:
                raise KeyError(job_id)
            if snapshot.done:
                return snapshot
            await asyncio.sleep(poll_interval)

    def cleanup(self, older_than: timedelta | None = None, now: datetime | None = None) -> int:
        """Drop terminal jobs that finished more than ``older_than`` ago."""
        cutoff = (now or utcnow()) - (self.retention if older_than is None else older_than)
        removed = 0
        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if job.finished_before(cutoff):
                    del self._jobs[job_id]
                    removed += 1
                    logger.info("Cleaned up background command [%s]", job_id)
        return removed

    # --- Execution ---

    async def _execute(self, job: BackgroundJob) -> None:
        logger.info("Starting background command [%s]: %s in %s", job.id, job.command, job.repo_path)
        job.mark_running()

        def on_stdout(line: str) -> None:
            job.append_output(line)
            logger.debug("Command [%s] stdout: %s", job.id, line.rstrip())

        def on_stderr(line: str) -> None:
            job.append_error(line)
            logger.debug("Command [%s] stderr: %s", job.id, line.rstrip())

        result: ExecutionResult | None = None
        error: Exception | None = None
        try:
            result = await self.runner.run_streaming(
                job.command,
                cwd=job.repo_path,
                timeout=self.timeout,
                on_stdout=on_stdout,
                on_stderr=on_stderr,
            )
        except ExecutionError as e:
            error = e
        except asyncio.CancelledError:
            job.finish(JobStatus.FAILED, error="cancelled before completion")
            raise
        except Exception as e:
            logger.exception("Background command [%s] execution error", job.id)
            error = e

        with self._lock:
            tracked = self._jobs.get(job.id) is job
        if not tracked:
            logger.info("Background command [%s] no longer exists in registry, discarding results", job.id)
            return

        if isinstance(error, CommandTimeoutError):
            job.finish(JobStatus.TIMEOUT, error=str(error))
            logger.warning("Background command [%s] timed out", job.id)
        elif error is not None:
            job.finish(JobStatus.FAILED, error=str(error) or type(error).__name__)
            logger.error("Background command [%s] failed: %s", job.id, error)
        elif result is not None and result.ok:
            job.finish(JobStatus.COMPLETED, result=result, end_time=result.end_time)
            logger.info("Background command [%s] completed successfully", job.id)
        elif result is not None:
            job.finish(JobStatus.FAILED, result=result, end_time=result.end_time)
            logger.info("Background command [%s] completed with non-zero exit code: %d", job.id, result.exit_code)
