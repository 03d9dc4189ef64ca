"""Shared test fixtures."""

from __future__ import annotations

import pytest

from shellrun.config import AppConfig, ExecutorConfig, JobsConfig, LoggingConfig, SafetyConfig
from shellrun.services.jobs import JobRegistry
from shellrun.services.runner import ProcessRunner


@pytest.fixture
def app_config(tmp_path):
    """Create a test configuration."""
    return AppConfig(
        executor=ExecutorConfig(shell="/bin/sh", timeout=10),
        jobs=JobsConfig(timeout=10, retention=3600, cleanup_interval=600, poll_interval=0.05),
        safety=SafetyConfig(),
        logging=LoggingConfig(level="DEBUG", file=str(tmp_path / "test.log")),
    )


@pytest.fixture
def workdir(tmp_path):
    path = tmp_path / "repo"
    path.mkdir()
    return path


@pytest.fixture
def runner(app_config):
    return ProcessRunner(app_config)


@pytest.fixture
def registry(runner, app_config):
    return JobRegistry(runner, app_config)
