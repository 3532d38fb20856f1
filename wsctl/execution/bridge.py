"""Run an external tool with the bound workspace's identity and environment.

Every tool call goes through the same phases::

    BUILD -> VALIDATE_CREDENTIALS -> WRAP_SETUP -> LAUNCH -> STREAM -> WRAP_TEARDOWN -> EXIT

The wrap phases only apply to tools that read gcloud's saved project and
only on the local runner; the container runner gets the project through the
environment instead.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from wsctl.core.config import AppConfig
from wsctl.core.context import Context, require_workspace
from wsctl.core.logging import log_child_exit
from wsctl.execution.container import ContainerRunner
from wsctl.execution.credentials import CredentialProvider, GoogleDefaultCredentials, validate_credentials
from wsctl.execution.invocation import ToolInvocation
from wsctl.execution.local import LocalRunner
from wsctl.execution.runner import ToolRunner
from wsctl.resources.catalog import ResourceCatalog

logger = logging.getLogger(__name__)

WORKSPACE_ID_VAR = "WSCTL_WORKSPACE_ID"
PROJECT_VAR = "GOOGLE_CLOUD_PROJECT"


class Phase(Enum):
    BUILD = "build"
    VALIDATE_CREDENTIALS = "validate_credentials"
    WRAP_SETUP = "wrap_setup"
    LAUNCH = "launch"
    STREAM = "stream"
    WRAP_TEARDOWN = "wrap_teardown"
    EXIT = "exit"


def make_runner(
    config: AppConfig,
    stdout: Any = None,
    stderr: Any = None,
    cwd: Optional[Path] = None,
) -> ToolRunner:
    """The runner selected by ``config.runner``."""
    if config.runner == "docker":
        return ContainerRunner(config, stdout=stdout, stderr=stderr, cwd=cwd)
    return LocalRunner(config, stdout=stdout, stderr=stderr, cwd=cwd)


class ExecutionBridge:
    """
    Runs ToolInvocations for the bound workspace.

    The bridge itself never interprets the child's result: whatever exit
    code the tool produced is returned as is. Only failures to get the tool
    started (no workspace, wrong credentials, missing binary or image) are
    raised.
    """

    def __init__(
        self,
        config: AppConfig,
        context: Context,
        catalog: Optional[ResourceCatalog] = None,
        credentials: Optional[CredentialProvider] = None,
        runner: Optional[ToolRunner] = None,
    ):
        self.config = config
        self.context = context
        self.catalog = catalog if catalog is not None else ResourceCatalog(context)
        self._credentials = credentials
        self.runner = runner if runner is not None else make_runner(config)

    @property
    def credentials(self) -> CredentialProvider:
        if self._credentials is None:
            self._credentials = GoogleDefaultCredentials()
        return self._credentials

    def build_environment(self, invocation: ToolInvocation) -> dict[str, str]:
        """Variables exported to the child, on top of the caller's own environment.

        Resource variables come first; the invocation's explicit ``env``
        overrides anything computed here.
        """
        context = require_workspace(self.context)
        env: dict[str, str] = {WORKSPACE_ID_VAR: context.workspace_id}
        if context.google_project_id:
            env[PROJECT_VAR] = context.google_project_id
        env.update(self.catalog.environment(self.config.env_prefix))
        env.update(invocation.env)
        return env

    def run(self, invocation: ToolInvocation) -> int:
        """
        Run one tool call to completion.

        Args:
            invocation: What to run.

        Returns:
            The child's exit code, unmodified.

        Raises:
            NoWorkspaceBoundError: No workspace is bound.
            CredentialMismatchError: Local credentials belong to someone else.
            LaunchError: The tool could not be started.
        """
        logger.debug("Phase %s: %s", Phase.BUILD.value, invocation.executable)
        context = require_workspace(self.context)
        env = self.build_environment(invocation)
        command = invocation.command_line()

        if self.config.skip_credential_check:
            logger.debug("Skipping credential validation")
        else:
            logger.debug("Phase %s", Phase.VALIDATE_CREDENTIALS.value)
            validate_credentials(self.credentials, context.user)

        logger.debug("Phase %s via %s runner: %s", Phase.LAUNCH.value, self.runner.name, command)
        started = time.monotonic()
        exit_code = self.runner.run(invocation, command, env, context.google_project_id)
        duration_ms = (time.monotonic() - started) * 1000

        log_child_exit(invocation.executable, command, exit_code, duration_ms)
        return exit_code
