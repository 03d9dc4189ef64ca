"""Tests for data models."""

from __future__ import annotations

from datetime import timedelta

import pytest

from shellrun.errors import JobStateError
from shellrun.models import BackgroundJob, ExecutionResult, JobStatus, utcnow


def make_result(**overrides):
    start = utcnow()
    values = dict(command="echo", args="hi", stdout="hi\n", start_time=start, end_time=start + timedelta(seconds=2))
    values.update(overrides)
    return ExecutionResult(**values)


class TestExecutionResult:
    def test_duration(self):
        result = make_result()
        assert result.duration == timedelta(seconds=2)

    def test_ok(self):
        assert make_result().ok
        assert not make_result(exit_code=1).ok

    def test_command_line(self):
        assert make_result().command_line == "echo hi"
        assert make_result(args="").command_line == "echo"

    def test_to_dict(self):
        data = make_result(stderr="warn", exit_code=3).to_dict()
        assert data["command"] == "echo"
        assert data["args"] == "hi"
        assert data["exitCode"] == 3
        assert data["output"] == "hi\n"
        assert data["error"] == "warn"
        assert data["duration"] == "2.000s"
        assert data["durationMs"] == 2000


class TestJobStatus:
    def test_terminal_states(self):
        assert {s for s in JobStatus if s.is_terminal} == {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMEOUT}


class TestBackgroundJob:
    def setup_method(self):
        self.job = BackgroundJob(id="job-1", command="echo hi", repo_path="/tmp")

    def test_starts_pending(self):
        snapshot = self.job.snapshot()
        assert snapshot.status == JobStatus.PENDING
        assert snapshot.result is None
        assert snapshot.error == ""
        assert snapshot.end_time is None

    def test_accumulators_grow(self):
        self.job.append_output("a\n")
        self.job.append_output("b\n")
        self.job.append_error("warn\n")
        snapshot = self.job.snapshot()
        assert snapshot.current_output == "a\nb\n"
        assert snapshot.current_error == "warn\n"

    def test_finish_sets_result(self):
        self.job.mark_running()
        result = make_result()
        self.job.finish(JobStatus.COMPLETED, result=result, end_time=result.end_time)
        snapshot = self.job.snapshot()
        assert snapshot.status == JobStatus.COMPLETED
        assert snapshot.result is result
        assert snapshot.end_time == result.end_time
        assert snapshot.done

    def test_cannot_leave_terminal_state(self):
        self.job.mark_running()
        self.job.finish(JobStatus.TIMEOUT, error="timed out")
        with pytest.raises(JobStateError):
            self.job.mark_running()
        with pytest.raises(JobStateError):
            self.job.finish(JobStatus.COMPLETED, result=make_result())
        assert self.job.snapshot().status == JobStatus.TIMEOUT

    def test_cannot_run_twice(self):
        self.job.mark_running()
        with pytest.raises(JobStateError):
            self.job.mark_running()

    def test_finish_requires_terminal_status(self):
        with pytest.raises(JobStateError):
            self.job.finish(JobStatus.RUNNING, error="nope")

    def test_finish_requires_exactly_one_outcome(self):
        self.job.mark_running()
        with pytest.raises(ValueError):
            self.job.finish(JobStatus.FAILED)
        with pytest.raises(ValueError):
            self.job.finish(JobStatus.FAILED, result=make_result(), error="both")
        assert self.job.snapshot().status == JobStatus.RUNNING

    def test_finished_before(self):
        self.job.mark_running()
        cutoff = utcnow()
        assert not self.job.finished_before(cutoff + timedelta(hours=1))
        self.job.finish(JobStatus.FAILED, error="boom", end_time=cutoff)
        assert self.job.finished_before(cutoff + timedelta(seconds=1))
        assert not self.job.finished_before(cutoff)

    def test_snapshot_to_dict(self):
        self.job.append_output("hi\n")
        data = self.job.snapshot().to_dict()
        assert data["id"] == "job-1"
        assert data["status"] == "pending"
        assert data["repoPath"] == "/tmp"
        assert data["currentOutput"] == "hi\n"
        assert "result" not in data
        assert "endTime" not in data
