"""Run tools as local child processes."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from contextlib import contextmanager
from typing import Iterator, Optional

from wsctl.core.errors import LaunchError
from wsctl.execution.invocation import ToolInvocation
from wsctl.execution.runner import ToolRunner
from wsctl.execution.streaming import forward, pipe_chunks

logger = logging.getLogger(__name__)

_UNSET_MARKER = "(unset)"


def _gcloud(gcloud: str, args: list[str]) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(
            [gcloud, *args],
            capture_output=True,
            text=True,
            stdin=subprocess.DEVNULL,
        )
    except OSError as e:
        raise LaunchError(f"Could not run {gcloud}: {e}", e) from e


def get_gcloud_project(gcloud: str = "gcloud") -> Optional[str]:
    """The project gcloud is currently configured with, or None."""
    result = _gcloud(gcloud, ["config", "get-value", "project"])
    value = result.stdout.strip()
    if result.returncode != 0 or not value or value == _UNSET_MARKER:
        return None
    return value


@contextmanager
def gcloud_project(project_id: str, gcloud: str = "gcloud") -> Iterator[Optional[str]]:
    """
    Point gcloud's default project at ``project_id`` for the duration of the block.

    The previous project is restored on every exit path (a failing tool, an
    exception, Ctrl-C); if there was none, the setting is unset again.

    Yields:
        The project that was configured before.
    """
    previous = get_gcloud_project(gcloud)
    logger.info("Setting the gcloud project to the workspace project %s", project_id)
    result = _gcloud(gcloud, ["config", "set", "project", project_id])
    if result.returncode != 0:
        raise LaunchError(f"Could not set the gcloud project to {project_id}: {result.stderr.strip()}")

    try:
        yield previous
    finally:
        logger.info("Restoring the original gcloud project configuration: %s", previous)
        if previous:
            restore = _gcloud(gcloud, ["config", "set", "project", previous])
        else:
            restore = _gcloud(gcloud, ["config", "unset", "project"])
        if restore.returncode != 0:
            logger.error("Failed to restore the gcloud project configuration: %s", restore.stderr.strip())


class LocalRunner(ToolRunner):
    """Runs the command line in a local shell with the workspace environment."""

    name = "local"

    def _check_installed(self, invocation: ToolInvocation, env: dict[str, str]) -> None:
        # Only named tools are checked; other command lines go to the shell as is.
        if invocation.install_url is None:
            return
        if shutil.which(invocation.executable, path=env.get("PATH")) is None:
            raise LaunchError(f"{invocation.executable} not found on PATH. Install it from {invocation.install_url}")

    def run(
        self,
        invocation: ToolInvocation,
        command: str,
        env: dict[str, str],
        project_id: Optional[str],
    ) -> int:
        process_env = {**os.environ, **env}
        self._check_installed(invocation, process_env)

        if invocation.wrap_project and project_id:
            with gcloud_project(project_id, self.config.gcloud_executable):
                return self._launch(command, process_env)
        return self._launch(command, process_env)

    def _launch(self, command: str, env: dict[str, str]) -> int:
        logger.debug("Launching local process: %s", command)
        try:
            proc = subprocess.Popen(
                self.shell_command(command),
                env=env,
                cwd=self.cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise LaunchError(f"Could not start {self.config.shell}: {e}", e) from e

        forwarders = forward({
            "stdout": (pipe_chunks(proc.stdout), self.stdout),
            "stderr": (pipe_chunks(proc.stderr), self.stderr),
        })

        exit_code = proc.wait()
        for forwarder in forwarders:
            forwarder.join()
        logger.debug("Local process exit code: %d", exit_code)
        return exit_code
