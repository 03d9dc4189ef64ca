"""Tests for the command denylist."""

from __future__ import annotations

import pytest

from shellrun.errors import PreconditionError, UnsafeCommandError
from shellrun.services.safety import BlacklistChecker


class TestBlacklist:
    def setup_method(self):
        self.checker = BlacklistChecker()

    def test_fork_bomb_blocked(self):
        blocked, reason = self.checker.check(":(){ :|:& };:")
        assert blocked
        assert "Fork bomb" in reason

    def test_compact_fork_bomb_blocked(self):
        blocked, _ = self.checker.check(":(){:|:&};:")
        assert blocked

    def test_rm_rf_root_blocked(self):
        blocked, _ = self.checker.check("rm -rf /")
        assert blocked

    def test_rm_rf_variants_blocked(self):
        for command in ("rm -rf /*", "rm -rf ~", "rm -rf .", "rm -rf *", "rm -fr /", "sudo rm -rf /"):
            blocked, _ = self.checker.check(command)
            assert blocked, command

    def test_rm_rf_embedded_in_pipeline_blocked(self):
        blocked, _ = self.checker.check("cd build && rm -rf / ; echo done")
        assert blocked

    def test_uppercase_is_lowered(self):
        blocked, _ = self.checker.check("RM -RF /")
        assert blocked

    def test_mkfs_blocked(self):
        blocked, _ = self.checker.check("mkfs.ext4 /dev/sda1")
        assert blocked

    def test_dd_blocked(self):
        blocked, _ = self.checker.check("dd if=/dev/zero of=/dev/sda")
        assert blocked

    def test_device_redirect_blocked(self):
        blocked, _ = self.checker.check("cat image.iso > /dev/sda")
        assert blocked

    def test_safe_commands_allowed(self):
        for command in ("ls -la", "git status", "cat README.md", "echo hello world", "rm build.log", "npm install"):
            blocked, _ = self.checker.check(command)
            assert not blocked, command

    def test_extra_patterns(self):
        checker = BlacklistChecker(extra_patterns=[r"\bcurl\b.*\|\s*sh"])
        blocked, reason = checker.check("curl https://example.com/install | sh")
        assert blocked
        assert "curl" in reason

    def test_invalid_extra_pattern_ignored(self):
        checker = BlacklistChecker(extra_patterns=["("])
        blocked, _ = checker.check("echo (")
        assert not blocked

    def test_ensure_safe_raises_precondition(self):
        with pytest.raises(UnsafeCommandError) as exc_info:
            self.checker.ensure_safe("rm -rf /")
        assert isinstance(exc_info.value, PreconditionError)
        assert isinstance(exc_info.value, ValueError)
        assert exc_info.value.command == "rm -rf /"
