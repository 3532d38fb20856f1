"""Tests for the local runner and the scoped gcloud project override."""

from __future__ import annotations

import io
import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from wsctl.core.config import AppConfig
from wsctl.core.errors import LaunchError
from wsctl.execution.apps import execute_invocation
from wsctl.execution.invocation import ToolInvocation
from wsctl.execution.local import LocalRunner, gcloud_project, get_gcloud_project

pytestmark = pytest.mark.skipif(os.name == "nt", reason="runs POSIX shell commands")


def _runner(config: AppConfig, tmp_path: Path) -> tuple[LocalRunner, io.BytesIO, io.BytesIO]:
    out, err = io.BytesIO(), io.BytesIO()
    return LocalRunner(config, stdout=out, stderr=err, cwd=tmp_path), out, err


def _sh(script: str) -> ToolInvocation:
    return ToolInvocation(executable="sh", args=["-c", f"'{script}'"])


class TestExitCodes:
    def test_codes_are_relayed_unchanged(self, config: AppConfig, tmp_path: Path):
        runner, _, _ = _runner(config, tmp_path)
        failing = _sh("exit 123")
        assert runner.run(failing, failing.command_line(), {}, None) == 123
        passing = _sh("exit 0")
        assert runner.run(passing, passing.command_line(), {}, None) == 0

    def test_output_streams_forwarded(self, config: AppConfig, tmp_path: Path):
        runner, out, err = _runner(config, tmp_path)
        invocation = _sh("echo to-out; echo to-err >&2")
        assert runner.run(invocation, invocation.command_line(), {}, None) == 0
        assert out.getvalue() == b"to-out\n"
        assert err.getvalue() == b"to-err\n"

    def test_environment_and_cwd(self, config: AppConfig, tmp_path: Path):
        runner, out, _ = _runner(config, tmp_path)
        invocation = ToolInvocation(executable="echo", args=["$WSCTL_TEST_VAR", "$(pwd)"])
        runner.run(invocation, invocation.command_line(), {"WSCTL_TEST_VAR": "hello"}, None)
        assert out.getvalue().decode().split() == ["hello", str(tmp_path.resolve())]

    def test_missing_binary_raises_launch_error(self, config: AppConfig, tmp_path: Path):
        runner, _, _ = _runner(config, tmp_path)
        invocation = ToolInvocation(executable="definitely-not-installed-tool", install_url="https://example.org/get")
        with pytest.raises(LaunchError, match="https://example.org/get"):
            runner.run(invocation, invocation.command_line(), {}, None)


class TestPlainCommandLines:
    def test_shell_builtin_exit_code(self, config: AppConfig, tmp_path: Path):
        runner, _, _ = _runner(config, tmp_path)
        invocation = execute_invocation(["exit", "123"])
        assert runner.run(invocation, invocation.command_line(), {}, None) == 123

    def test_leading_assignment(self, config: AppConfig, tmp_path: Path):
        runner, out, _ = _runner(config, tmp_path)
        invocation = execute_invocation(["FOO=bar", "sh", "-c", "'echo $FOO'"])
        assert runner.run(invocation, invocation.command_line(), {}, None) == 0
        assert out.getvalue() == b"bar\n"

    def test_unknown_command_is_shell_127(self, config: AppConfig, tmp_path: Path):
        runner, _, _ = _runner(config, tmp_path)
        invocation = execute_invocation(["definitely-not-installed-tool"])
        assert runner.run(invocation, invocation.command_line(), {}, None) == 127


class TestGcloudProject:
    def test_sets_and_restores_previous(self, fake_gcloud: Path):
        fake_gcloud.write_text("user-project")
        with gcloud_project("workspace-project") as previous:
            assert previous == "user-project"
            assert get_gcloud_project() == "workspace-project"
        assert get_gcloud_project() == "user-project"

    def test_unsets_when_none_before(self, fake_gcloud: Path):
        with gcloud_project("workspace-project") as previous:
            assert previous is None
        assert get_gcloud_project() is None
        assert not fake_gcloud.exists()

    def test_restores_after_exception(self, fake_gcloud: Path):
        fake_gcloud.write_text("user-project")
        with pytest.raises(RuntimeError):
            with gcloud_project("workspace-project"):
                raise RuntimeError("boom")
        assert get_gcloud_project() == "user-project"

    def test_set_failure_raises_launch_error(self):
        failed = MagicMock(returncode=1, stdout="", stderr="permission denied")
        with patch("wsctl.execution.local.subprocess.run", return_value=failed):
            with pytest.raises(LaunchError):
                with gcloud_project("workspace-project"):
                    pass

    def test_missing_gcloud_raises_launch_error(self):
        with pytest.raises(LaunchError):
            get_gcloud_project("/nonexistent/gcloud")


class TestWrappedRun:
    def test_failing_child_still_restores_project(self, config: AppConfig, tmp_path: Path, fake_gcloud: Path,
                                                  monkeypatch: pytest.MonkeyPatch):
        fake_gcloud.write_text("user-project")
        monkeypatch.setenv("FAKE_GCLOUD_EXIT", "7")
        runner, out, _ = _runner(config, tmp_path)
        invocation = ToolInvocation(executable="gcloud", args=["info"], wrap_project=True)

        exit_code = runner.run(invocation, invocation.command_line(), {}, "workspace-project")

        assert exit_code == 7
        # The child saw the workspace project ...
        assert out.getvalue() == b"project=workspace-project\n"
        # ... and the user's project is back right after.
        assert get_gcloud_project() == "user-project"

    def test_no_wrap_without_project(self, config: AppConfig, tmp_path: Path, fake_gcloud: Path):
        fake_gcloud.write_text("user-project")
        runner, out, _ = _runner(config, tmp_path)
        invocation = ToolInvocation(executable="gcloud", args=["info"], wrap_project=True)
        assert runner.run(invocation, invocation.command_line(), {}, None) == 0
        assert out.getvalue() == b"project=user-project\n"

    def test_unwrapped_tool_leaves_config_alone(self, config: AppConfig, tmp_path: Path, fake_gcloud: Path):
        runner, out, _ = _runner(config, tmp_path)
        invocation = ToolInvocation(executable="gcloud", args=["info"])
        runner.run(invocation, invocation.command_line(), {}, "workspace-project")
        assert out.getvalue() == b""
        assert not fake_gcloud.exists()
