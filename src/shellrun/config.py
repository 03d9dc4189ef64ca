"""Configuration management using TOML + environment variables."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

import tomli_w

from shellrun.utils.system import find_shell

CONFIG_DIR = Path.home() / ".shellrun"
CONFIG_FILE = CONFIG_DIR / "config.toml"

DEFAULT_RUN_TIMEOUT = 300.0
DEFAULT_JOB_TIMEOUT = 600.0


@dataclass
class ExecutorConfig:
    shell: str = field(default_factory=find_shell)
    timeout: float = DEFAULT_RUN_TIMEOUT
    stream_limit: int = 1024 * 1024


@dataclass
class JobsConfig:
    timeout: float = DEFAULT_JOB_TIMEOUT
    retention: float = 3600.0
    cleanup_interval: float = 600.0
    poll_interval: float = 0.5


@dataclass
class SafetyConfig:
    extra_patterns: list[str] = field(default_factory=list)


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    file: str = ""


@dataclass
class AppConfig:
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    jobs: JobsConfig = field(default_factory=JobsConfig)
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def ensure_config_dir() -> None:
    """Create config directory with secure permissions."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    os.chmod(CONFIG_DIR, 0o700)


def load_config() -> AppConfig:
    """Load configuration from TOML file with env var overrides."""
    config = AppConfig()

    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, "rb") as f:
            data = tomllib.load(f)

        executor = data.get("executor", {})
        config.executor.shell = executor.get("shell", config.executor.shell)
        config.executor.timeout = executor.get("timeout", config.executor.timeout)
        config.executor.stream_limit = executor.get("stream_limit", config.executor.stream_limit)

        jobs = data.get("jobs", {})
        config.jobs.timeout = jobs.get("timeout", config.jobs.timeout)
        config.jobs.retention = jobs.get("retention", config.jobs.retention)
        config.jobs.cleanup_interval = jobs.get("cleanup_interval", config.jobs.cleanup_interval)
        config.jobs.poll_interval = jobs.get("poll_interval", config.jobs.poll_interval)

        safety = data.get("safety", {})
        config.safety.extra_patterns = safety.get("extra_patterns", [])

        logging_cfg = data.get("logging", {})
        config.logging.level = logging_cfg.get("level", config.logging.level)
        config.logging.file = logging_cfg.get("file", config.logging.file)

    # Environment variable overrides
    if env_shell := os.environ.get("SHELLRUN_SHELL"):
        config.executor.shell = env_shell
    if env_timeout := os.environ.get("SHELLRUN_TIMEOUT"):
        config.executor.timeout = float(env_timeout)
    if env_job_timeout := os.environ.get("SHELLRUN_JOB_TIMEOUT"):
        config.jobs.timeout = float(env_job_timeout)
    if env_retention := os.environ.get("SHELLRUN_JOB_RETENTION"):
        config.jobs.retention = float(env_retention)
    if env_interval := os.environ.get("SHELLRUN_CLEANUP_INTERVAL"):
        config.jobs.cleanup_interval = float(env_interval)
    if env_log_level := os.environ.get("SHELLRUN_LOG_LEVEL"):
        config.logging.level = env_log_level
    if env_log_file := os.environ.get("SHELLRUN_LOG_FILE"):
        config.logging.file = env_log_file

    return config


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML file."""
    ensure_config_dir()

    data = {
        "executor": {
            "shell": config.executor.shell,
            "timeout": config.executor.timeout,
            "stream_limit": config.executor.stream_limit,
        },
        "jobs": {
            "timeout": config.jobs.timeout,
            "retention": config.jobs.retention,
            "cleanup_interval": config.jobs.cleanup_interval,
            "poll_interval": config.jobs.poll_interval,
        },
        "safety": {
            "extra_patterns": config.safety.extra_patterns,
        },
        "logging": {
            "level": config.logging.level,
            "file": config.logging.file,
        },
    }

    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(data, f)

    os.chmod(CONFIG_FILE, 0o600)

