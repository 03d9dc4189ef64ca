"""Decide how a raw command string should be launched."""

from __future__ import annotations

import shlex

from shellrun.errors import EmptyCommandError

SHELL_OPERATORS = ("|", ">", "<", "&&", ";")


def clean_command(command: str) -> str:
    """Strip whitespace and markdown backticks wrapped around a command."""
    return command.strip().strip("`").strip()


def is_complex_command(command: str) -> bool:
    """True when the command needs a shell: pipes, redirection, && or ;."""
    return any(op in command for op in SHELL_OPERATORS)


def parse_command_string(command: str, shell: str = "/bin/sh") -> tuple[str, list[str]]:
    """Split a command string into a program and its arguments.

    Complex commands are handed to ``shell -c``. Simple ones are split with
    POSIX quoting rules; unbalanced quotes also go to the shell so that it
    reports the syntax error itself.
    """
    command = clean_command(command)
    if not command:
        raise EmptyCommandError()

    if is_complex_command(command):
        return shell, ["-c", command]

    try:
        parts = shlex.split(command)
    except ValueError:
        return shell, ["-c", command]
    if not parts:
        raise EmptyCommandError()
    return parts[0], parts[1:]
