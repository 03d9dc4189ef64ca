"""Process runner: buffered and streaming command execution."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence

from shellrun.config import AppConfig
from shellrun.errors import (
    CommandStartError,
    CommandTimeoutError,
    EmptyCommandError,
    ExecutionError,
    WorkingDirectoryNotFoundError,
)
from shellrun.models import ExecutionResult, utcnow
from shellrun.services.classifier import clean_command, parse_command_string
from shellrun.services.safety import BlacklistChecker
from shellrun.utils.system import check_working_dir, kill_process_group

logger = logging.getLogger(__name__)

LineSink = Callable[[str], None]


def _normalize_exit_code(returncode: int | None) -> int:
    # Negative return codes mean death by signal; no usable exit status.
    if returncode is None or returncode < 0:
        return -1
    return returncode


def _preview(text: str, limit: int = 100) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class ProcessRunner:
    """Start OS processes with a safety check, working directory and deadline."""

    def __init__(self, config: AppConfig, checker: BlacklistChecker | None = None) -> None:
        self.config = config
        self.checker = checker or BlacklistChecker(config.safety.extra_patterns)

    def resolve(self, command: str, args: Sequence[str] | None = None) -> tuple[str, list[str]]:
        """Apply the denylist and turn a request into (program, argv).

        With explicit ``args`` the command is taken as the program name.
        Otherwise the command string is classified and split.
        """
        if args is not None:
            program = clean_command(command)
            if not program:
                raise EmptyCommandError()
            self.checker.ensure_safe(" ".join([program, *args]))
            return program, list(args)
        self.checker.ensure_safe(command)
        return parse_command_string(command, self.config.executor.shell)

    def _resolve_timeout(self, timeout: float | None) -> float:
        return self.config.executor.timeout if timeout is None else timeout

    @staticmethod
    def _check_cwd(cwd: str | None) -> str | None:
        if not cwd:
            return None
        valid, resolved = check_working_dir(cwd)
        if not valid:
            raise WorkingDirectoryNotFoundError(cwd)
        return resolved

    async def _spawn(self, program: str, argv: list[str], cwd: str | None) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                program,
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                start_new_session=True,
                limit=self.config.executor.stream_limit,
            )
        except OSError as e:
            logger.error("Failed to start command %s: %s", program, e)
            raise CommandStartError(program, e) from e

    async def run(
        self,
        command: str,
        args: Sequence[str] | None = None,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> ExecutionResult:
        """Run a command to completion with fully buffered output.

        A non-zero exit status is returned as a normal result. Raises a
        PreconditionError subclass before anything starts, CommandStartError
        when the OS cannot launch the program and CommandTimeoutError (with no
        result) when the deadline passes.
        """
        program, argv = self.resolve(command, args)
        work_dir = self._check_cwd(cwd)
        deadline = self._resolve_timeout(timeout)

        logger.info("Executing command: %s %s in directory: %s", program, " ".join(argv), work_dir)
        start = utcnow()
        proc = await self._spawn(program, argv, work_dir)
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=deadline)
        except asyncio.TimeoutError:
            kill_process_group(proc.pid)
            await proc.communicate()
            logger.warning("Command timed out after %ss: %s", deadline, program)
            raise CommandTimeoutError(deadline) from None
        except BaseException:
            kill_process_group(proc.pid)
            raise
        end = utcnow()

        result = ExecutionResult(
            command=program,
            args=" ".join(argv),
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
            exit_code=_normalize_exit_code(proc.returncode),
            start_time=start,
            end_time=end,
        )
        self._log_result(result)
        return result

    async def run_streaming(
        self,
        command: str,
        args: Sequence[str] | None = None,
        cwd: str | None = None,
        timeout: float | None = None,
        on_stdout: LineSink | None = None,
        on_stderr: LineSink | None = None,
    ) -> ExecutionResult:
        """Run a command, delivering each output line to a sink as it appears.

        Every line reaches its sink with a trailing newline, in the order the
        stream produced it. On timeout the process group is killed, whatever
        the pipes still hold is drained, and CommandTimeoutError is raised with
        the partial result attached.
        """
        program, argv = self.resolve(command, args)
        work_dir = self._check_cwd(cwd)
        deadline = self._resolve_timeout(timeout)

        logger.info("Executing command with streaming: %s %s in directory: %s", program, " ".join(argv), work_dir)
        start = utcnow()
        proc = await self._spawn(program, argv, work_dir)

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        assert proc.stdout is not None and proc.stderr is not None
        readers = asyncio.gather(
            _pump(proc.stdout, stdout_lines, on_stdout),
            _pump(proc.stderr, stderr_lines, on_stderr),
        )

        loop = asyncio.get_running_loop()
        expires = loop.time() + deadline
        timed_out = False
        try:
            # Drain both pipes before waiting on exit so nothing buffered is lost.
            await asyncio.wait_for(asyncio.shield(readers), timeout=deadline)
            remaining = max(expires - loop.time(), 0)
            await asyncio.wait_for(proc.wait(), timeout=remaining)
        except asyncio.TimeoutError:
            timed_out = True
            kill_process_group(proc.pid)
            await readers
            await proc.wait()
        except BaseException:
            kill_process_group(proc.pid)
            readers.cancel()
            raise
        end = utcnow()

        result = ExecutionResult(
            command=program,
            args=" ".join(argv),
            stdout="".join(stdout_lines),
            stderr="".join(stderr_lines),
            exit_code=_normalize_exit_code(proc.returncode),
            start_time=start,
            end_time=end,
        )
        if timed_out:
            logger.warning("Command timed out after %ss: %s", deadline, program)
            raise CommandTimeoutError(deadline, result)
        self._log_result(result)
        return result

    async def run_many(
        self,
        commands: Sequence[str],
        cwd: str | None = None,
        stop_on_error: bool = True,
        timeout: float | None = None,
    ) -> list[ExecutionResult]:
        """Run commands one after another in the same directory.

        With ``stop_on_error`` the first error is re-raised and the first
        non-zero exit ends the sequence. Otherwise a command that cannot run
        is recorded as a result with exit code -1 and the error text as stderr.
        """
        logger.info("Executing %d commands in directory: %s", len(commands), cwd)
        results: list[ExecutionResult] = []
        for i, command in enumerate(commands, start=1):
            if not command.strip():
                logger.info("Skipping empty command %d/%d", i, len(commands))
                continue
            try:
                result = await self.run(command, cwd=cwd, timeout=timeout)
            except ExecutionError as e:
                logger.warning("Command %d/%d failed: %s", i, len(commands), e)
                if stop_on_error:
                    raise
                now = utcnow()
                results.append(ExecutionResult(command=command, stderr=str(e), exit_code=-1, start_time=now, end_time=now))
                continue

            results.append(result)
            if not result.ok and stop_on_error:
                logger.info("Stopping after failure of command %d/%d", i, len(commands))
                break

        logger.info("Completed %d/%d commands", len(results), len(commands))
        return results

    @staticmethod
    def _log_result(result: ExecutionResult) -> None:
        if result.ok:
            logger.info("Command executed successfully: %s", result.command_line)
        else:
            logger.info("Command exited with code %d: %s", result.exit_code, result.command_line)
        if result.stdout:
            logger.debug("Command output: %s", _preview(result.stdout))
        if result.stderr:
            logger.debug("Command error: %s", _preview(result.stderr))


async def _pump(stream: asyncio.StreamReader, lines: list[str], sink: LineSink | None) -> None:
    """Read a stream line by line into ``lines``, forwarding each to ``sink``.

    Lines longer than the stream limit are dropped whole.
    """
    skipping = False
    while True:
        try:
            raw = await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            raw = e.partial
        except asyncio.LimitOverrunError as e:
            if not skipping:
                logger.warning("Discarded output line longer than the stream limit")
            await stream.readexactly(e.consumed)
            skipping = True
            continue
        if not raw:
            break
        if skipping:
            skipping = not raw.endswith(b"\n")
            continue
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n") + "\n"
        lines.append(line)
        if sink is not None:
            sink(line)
