"""Runner strategy interface shared by the local and container runners."""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from wsctl.core.config import AppConfig
from wsctl.execution.invocation import ToolInvocation


class ToolRunner(ABC):
    """Runs a composed command line and relays its exit code untouched."""

    name: str = "base"

    def __init__(
        self,
        config: AppConfig,
        stdout: Any = None,
        stderr: Any = None,
        cwd: Optional[Path] = None,
    ) -> None:
        """
        Args:
            config: Shell, image and gcloud settings.
            stdout: Where the child's stdout goes. Defaults to ours.
            stderr: Where the child's stderr goes. Defaults to ours.
            cwd: Directory the tool should see as its working directory.
        """
        self.config = config
        self._stdout = stdout
        self._stderr = stderr
        self._cwd = Path(cwd) if cwd is not None else None

    @property
    def stdout(self) -> Any:
        return self._stdout if self._stdout is not None else sys.stdout

    @property
    def stderr(self) -> Any:
        return self._stderr if self._stderr is not None else sys.stderr

    @property
    def cwd(self) -> Path:
        return (self._cwd or Path.cwd()).absolute()

    def shell_command(self, command: str) -> list[str]:
        # -e: a failing step of a compound command line fails the whole line.
        return [self.config.shell, "-ce", command]

    @abstractmethod
    def run(
        self,
        invocation: ToolInvocation,
        command: str,
        env: dict[str, str],
        project_id: Optional[str],
    ) -> int:
        """Run ``command`` to completion, streaming output, and return its exit code.

        Raises:
            LaunchError: The tool or its environment could not be started.
        """
