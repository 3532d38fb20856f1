"""What to run: the bundle handed to the execution bridge."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class ToolInvocation:
    """One external tool call.

    ``bind_mounts`` maps an in-container mount point to a host directory and
    only matters to the container runner. ``wrap_project`` asks the local
    runner to point gcloud at the workspace project for the duration of the
    call.
    """
    executable: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    bind_mounts: dict[str, Path] = field(default_factory=dict)
    wrap_project: bool = False
    install_url: Optional[str] = None

    def command_line(self) -> str:
        """The literal command line, interpreted by the shell so ``$VARS`` expand."""
        return " ".join([self.executable, *self.args])
