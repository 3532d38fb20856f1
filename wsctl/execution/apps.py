"""Tools the CLI passes through to, and the workspace-aware git clone."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from wsctl.core.errors import UserActionableError
from wsctl.execution.bridge import ExecutionBridge
from wsctl.execution.invocation import ToolInvocation
from wsctl.resources.catalog import ResourceCatalog
from wsctl.resources.models import GitRepository, ResourceType

logger = logging.getLogger(__name__)

NEXTFLOW_MOUNT_POINT = "/usr/local/etc/nextflow"
NEXTFLOW_DIRNAME = "nextflow"

GCLOUD_INSTALL_URL = "https://cloud.google.com/sdk/docs/install"


@dataclass(frozen=True)
class SupportedApp:
    """A tool with first-class CLI support."""
    name: str
    install_url: Optional[str] = None
    # Reads gcloud's saved project, so the local runner points it at the workspace project.
    wrap_project: bool = False
    env: dict[str, str] = field(default_factory=dict)
    needs_nextflow_dir: bool = False


SUPPORTED_APPS: dict[str, SupportedApp] = {
    app.name: app
    for app in (
        SupportedApp("gcloud", install_url=GCLOUD_INSTALL_URL, wrap_project=True),
        SupportedApp("gsutil", install_url=GCLOUD_INSTALL_URL, wrap_project=True),
        SupportedApp("bq", install_url=GCLOUD_INSTALL_URL, wrap_project=True),
        SupportedApp(
            "nextflow",
            install_url="https://www.nextflow.io/docs/latest/getstarted.html#installation",
            env={"NXF_MODE": "google"},
            needs_nextflow_dir=True,
        ),
        SupportedApp("git", install_url="https://git-scm.com/book/en/v2/Getting-Started-Installing-Git"),
    )
}


def enable_nextflow(cwd: Optional[Path] = None) -> Path:
    """Create the ``nextflow`` working directory under ``cwd`` if it is missing."""
    nextflow_dir = (Path(cwd) if cwd is not None else Path.cwd()) / NEXTFLOW_DIRNAME
    if not nextflow_dir.is_dir():
        logger.info("Creating nextflow directory %s", nextflow_dir)
        nextflow_dir.mkdir(parents=True, exist_ok=True)
    return nextflow_dir


def build_invocation(name: str, args: Iterable[str], cwd: Optional[Path] = None) -> ToolInvocation:
    """ToolInvocation for one of SUPPORTED_APPS."""
    try:
        app = SUPPORTED_APPS[name]
    except KeyError:
        raise UserActionableError(
            f"Unsupported app: {name}. Supported apps: {', '.join(SUPPORTED_APPS)}"
        ) from None

    bind_mounts = {}
    if app.needs_nextflow_dir:
        bind_mounts[NEXTFLOW_MOUNT_POINT] = enable_nextflow(cwd)

    return ToolInvocation(
        executable=app.name,
        args=list(args),
        env=dict(app.env),
        bind_mounts=bind_mounts,
        wrap_project=app.wrap_project,
        install_url=app.install_url,
    )


def execute_invocation(command: list[str]) -> ToolInvocation:
    """ToolInvocation for an arbitrary command (``app execute``)."""
    if not command:
        raise UserActionableError("No command given. Usage: wsctl app execute CMD [ARGS]...")
    # Anything may call gcloud under the hood, so treat it like a gcloud tool.
    return ToolInvocation(executable=command[0], args=list(command[1:]), wrap_project=True)


def resolve_git_repos(
    catalog: ResourceCatalog,
    names: Optional[list[str]],
    clone_all: bool,
    git_args: list[str],
) -> list[str]:
    """
    URLs of the workspace git repositories a ``git clone --resource/--all`` should clone.

    With ``clone_all`` this includes repositories reachable through data
    collections; collections the user cannot read contribute nothing.

    Raises:
        UserActionableError: Both selectors were given, the git command is not
            a bare ``clone``, or a named resource is not a git repository.
    """
    if clone_all and names:
        raise UserActionableError(
            "Conflicting arguments: use either --all or --resource, depending on whether you want "
            "to clone all or some of the git repositories in this workspace."
        )
    if git_args != ["clone"]:
        raise UserActionableError(
            "Did you mean to clone the workspace's git repositories? If so, use `wsctl git clone`."
        )

    if clone_all:
        return catalog.reachable(ResourceType.GIT_REPO)

    urls: dict[str, None] = {}
    for name in names or []:
        resource = catalog.get(name)
        if not isinstance(resource, GitRepository):
            raise UserActionableError(
                f"{resource.kind.value} {resource.name} cannot be cloned because it is not a git repository."
            )
        urls.setdefault(resource.git_repo_url, None)
    return list(urls)


def clone_repositories(bridge: ExecutionBridge, urls: Iterable[str]) -> dict[str, int]:
    """Run ``git clone`` for each URL; a failed clone does not stop the rest.

    Returns:
        Exit code per URL.
    """
    app = SUPPORTED_APPS["git"]
    results: dict[str, int] = {}
    for url in urls:
        invocation = ToolInvocation(executable=app.name, args=["clone", url], install_url=app.install_url)
        exit_code = bridge.run(invocation)
        if exit_code != 0:
            logger.warning("git clone for %s failed with exit code %d", url, exit_code)
        results[url] = exit_code
    return results
