"""Tests for command classification."""

from __future__ import annotations

import pytest

from shellrun.errors import EmptyCommandError
from shellrun.services.classifier import clean_command, is_complex_command, parse_command_string


class TestIsComplexCommand:
    @pytest.mark.parametrize("command", ["ls | wc -l", "echo hi > out.txt", "sort < in.txt", "make && make install", "cd src; ls"])
    def test_shell_operators(self, command):
        assert is_complex_command(command)

    @pytest.mark.parametrize("command", ["ls -la", "git status", "npm run build", "python -m pytest"])
    def test_simple(self, command):
        assert not is_complex_command(command)


class TestParseCommandString:
    def test_simple_split(self):
        assert parse_command_string("git commit -m msg") == ("git", ["commit", "-m", "msg"])

    def test_single_word(self):
        assert parse_command_string("ls") == ("ls", [])

    def test_quoted_argument_kept_together(self):
        assert parse_command_string('echo "hello world"') == ("echo", ["hello world"])

    def test_complex_goes_to_shell(self):
        assert parse_command_string("ls | wc -l", shell="/bin/bash") == ("/bin/bash", ["-c", "ls | wc -l"])

    def test_unbalanced_quote_goes_to_shell(self):
        assert parse_command_string("echo 'oops", shell="/bin/sh") == ("/bin/sh", ["-c", "echo 'oops"])

    def test_backticks_stripped(self):
        assert parse_command_string("`npm install`") == ("npm", ["install"])

    def test_empty_raises(self):
        with pytest.raises(EmptyCommandError):
            parse_command_string("   ")

    def test_only_backticks_raises(self):
        with pytest.raises(EmptyCommandError):
            parse_command_string("``")


class TestCleanCommand:
    def test_strips_whitespace_and_backticks(self):
        assert clean_command("  `make test`\n") == "make test"
