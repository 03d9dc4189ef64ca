"""CLI entry point using typer."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.table import Table

from shellrun import __version__
from shellrun.config import (
    CONFIG_FILE,
    AppConfig,
    load_config,
    save_config,
)
from shellrun.errors import CommandStartError, CommandTimeoutError, ExecutionError, PreconditionError
from shellrun.models import ExecutionResult, JobSnapshot, JobStatus
from shellrun.services.classifier import clean_command, is_complex_command, parse_command_string
from shellrun.services.jobs import JobRegistry
from shellrun.services.runner import ProcessRunner
from shellrun.services.safety import BlacklistChecker
from shellrun.utils.formatting import format_job_output, format_result_header, jobs_table

app = typer.Typer(
    name="shellrun",
    help="Run commands synchronously or as tracked background jobs.",
    add_completion=False,
)
console = Console()

EXIT_PRECONDITION = 2
EXIT_TIMEOUT = 124
EXIT_START_FAILED = 126


def setup_logging(config: AppConfig, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.logging.level.upper(), logging.WARNING)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.logging.file:
        log_path = Path(config.logging.file).expanduser().resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(log_path)))
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def _report_error(error: ExecutionError) -> int:
    """Print an engine error with a remedy hint and return the exit code to use."""
    message = escape(str(error))
    if isinstance(error, PreconditionError):
        console.print(f"[red]Rejected:[/red] {message}")
        return EXIT_PRECONDITION
    if isinstance(error, CommandTimeoutError):
        console.print(f"[yellow]Timed out:[/yellow] {message}")
        console.print("Increase the timeout with --timeout if the command needs more time.")
        return EXIT_TIMEOUT
    if isinstance(error, CommandStartError):
        console.print(f"[red]Could not run:[/red] {message}")
        console.print("Check that the program is installed and executable.")
        return EXIT_START_FAILED
    console.print(f"[red]Error:[/red] {message}")
    return 1


def _print_result(result: ExecutionResult, command: str) -> None:
    style = "green" if result.ok else "red"
    console.print(f"[{style}]{escape(format_result_header(result, command))}[/{style}]")
    if result.stdout:
        console.print(result.stdout, end="", markup=False, highlight=False)
    if result.stderr:
        console.print(result.stderr, end="", markup=False, highlight=False, style="red")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Run commands synchronously or as tracked background jobs."""
    setup_logging(load_config(), verbose)


@app.command("run")
def run_command(
    command: str = typer.Argument(..., help="Command line to execute"),
    cwd: str = typer.Option(None, "--cwd", "-C", help="Working directory"),
    timeout: float = typer.Option(None, "--timeout", "-t", help="Timeout in seconds"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """Run a command and wait for it to finish."""
    runner = ProcessRunner(load_config())
    try:
        result = asyncio.run(runner.run(command, cwd=cwd, timeout=timeout))
    except ExecutionError as e:
        raise typer.Exit(_report_error(e))

    if as_json:
        console.print_json(data=result.to_dict())
    else:
        _print_result(result, command)

    if not result.ok:
        if not as_json:
            console.print("The command ran but failed; fix the command or its inputs.")
        raise typer.Exit(result.exit_code if result.exit_code > 0 else 1)


async def _run_jobs(
    commands: list[str],
    cwd: str,
    config: AppConfig,
    timeout: float | None,
) -> list[JobSnapshot]:
    registry = JobRegistry(ProcessRunner(config), config)
    if timeout is not None:
        registry.timeout = timeout
    registry.start()
    try:
        job_ids = [registry.submit(command, cwd) for command in commands]
        snapshots: list[JobSnapshot] = []
        with Live(jobs_table(registry.list_jobs()), console=console, refresh_per_second=4) as live:
            while True:
                snapshots = [s for s in map(registry.get_status, job_ids) if s is not None]
                live.update(jobs_table(snapshots))
                if all(s.done for s in snapshots):
                    break
                await asyncio.sleep(config.jobs.poll_interval)
        return snapshots
    finally:
        await registry.close()


@app.command()
def submit(
    commands: list[str] = typer.Argument(..., help="Commands to run as background jobs"),
    cwd: str = typer.Option(None, "--cwd", "-C", help="Working directory"),
    timeout: float = typer.Option(None, "--timeout", "-t", help="Per-job timeout in seconds"),
) -> None:
    """Run commands as concurrent background jobs and follow their progress."""
    config = load_config()
    try:
        snapshots = asyncio.run(_run_jobs(commands, cwd or os.getcwd(), config, timeout))
    except ExecutionError as e:
        raise typer.Exit(_report_error(e))

    for snap in snapshots:
        console.rule(f"{escape(snap.command)} ({snap.status.value})")
        console.print(format_job_output(snap), markup=False, highlight=False)

    if any(snap.status != JobStatus.COMPLETED for snap in snapshots):
        raise typer.Exit(1)


@app.command()
def steps(
    commands: list[str] = typer.Argument(..., help="Commands to run in order"),
    cwd: str = typer.Option(None, "--cwd", "-C", help="Working directory"),
    keep_going: bool = typer.Option(False, "--keep-going", "-k", help="Continue after a failing step"),
) -> None:
    """Run commands one after another, stopping at the first failure."""
    runner = ProcessRunner(load_config())
    try:
        results = asyncio.run(runner.run_many(commands, cwd=cwd, stop_on_error=not keep_going))
    except ExecutionError as e:
        raise typer.Exit(_report_error(e))

    for result in results:
        _print_result(result, result.command_line)

    if any(not result.ok for result in results):
        raise typer.Exit(1)


@app.command()
def check(
    command: str = typer.Argument(..., help="Command line to inspect"),
) -> None:
    """Show whether a command would be accepted and how it would be launched."""
    cfg = load_config()
    blocked, reason = BlacklistChecker(cfg.safety.extra_patterns).check(command)
    if blocked:
        console.print(f"[red]Blocked:[/red] {escape(reason)}")
        raise typer.Exit(1)

    cleaned = clean_command(command)
    if not cleaned:
        console.print("[red]Rejected:[/red] empty command")
        raise typer.Exit(EXIT_PRECONDITION)

    program, argv = parse_command_string(cleaned, cfg.executor.shell)
    kind = "complex (shell)" if is_complex_command(cleaned) else "simple"
    console.print(f"[green]Allowed[/green] - {kind}")
    console.print(f"Program: {escape(program)}")
    console.print(f"Args: {escape(shlex.join(argv))}")


@app.command()
def config(
    key: str = typer.Argument(None, help="Config key (e.g., jobs.timeout)"),
    value: str = typer.Argument(None, help="New value"),
) -> None:
    """View or modify configuration."""
    cfg = load_config()
    section_map = {"executor": cfg.executor, "jobs": cfg.jobs, "safety": cfg.safety, "logging": cfg.logging}

    if key is None:
        # Show all config
        table = Table(title=f"Configuration ({CONFIG_FILE})")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for section, obj in section_map.items():
            for attr, current in vars(obj).items():
                table.add_row(f"{section}.{attr}", escape(str(current)))
        console.print(table)
        return

    if value is None:
        console.print("[red]Usage: shellrun config <key> <value>[/red]")
        raise typer.Exit(1)

    parts = key.split(".")
    if len(parts) != 2:
        console.print("[red]Key format: section.key (e.g., jobs.timeout)[/red]")
        raise typer.Exit(1)

    section, attr = parts
    if section not in section_map:
        console.print(f"[red]Unknown section: {section}[/red]")
        raise typer.Exit(1)

    obj = section_map[section]
    if not hasattr(obj, attr):
        console.print(f"[red]Unknown key: {key}[/red]")
        raise typer.Exit(1)

    # Type coercion
    current = getattr(obj, attr)
    try:
        if isinstance(current, int):
            typed_value = int(value)
        elif isinstance(current, float):
            typed_value = float(value)
        elif isinstance(current, list):
            typed_value = [v.strip() for v in value.split(",") if v.strip()]
        else:
            typed_value = value
    except ValueError:
        console.print(f"[red]Invalid value type for {key}[/red]")
        raise typer.Exit(1)

    setattr(obj, attr, typed_value)
    save_config(cfg)
    console.print(f"[green]{key} = {escape(str(typed_value))}[/green]")


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"shellrun v{__version__}")
    console.print(f"Python: {sys.version.split()[0]}")
    console.print(f"Shell: {load_config().executor.shell}")
    console.print(f"Config: {CONFIG_FILE}")


if __name__ == "__main__":
    app()
