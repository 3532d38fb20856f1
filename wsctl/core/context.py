"""Workspace context: which workspace a directory tree is bound to.

The binding lives in a hidden state directory (``.wsctl/workspace-context.json``
by default) at the root of the bound tree. Like git looking for ``.git``, the
store walks up from the current directory to find it, so every subdirectory of
a bound root sees the same workspace.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wsctl.core.config import AppConfig
from wsctl.core.errors import NoWorkspaceBoundError, PersistenceError
from wsctl.resources.models import CloudPlatform, Resource, ResourceType, WorkspaceDescription

logger = logging.getLogger(__name__)

_KNOWN_RESOURCE_TYPES = {t.value for t in ResourceType}


class UserIdentity(BaseModel):
    """The logged-in user and the service account that acts on their behalf."""
    email: str
    pet_sa_email: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    def principals(self) -> set[str]:
        """Identities that local credentials are allowed to belong to."""
        allowed = {self.email.lower()}
        if self.pet_sa_email:
            allowed.add(self.pet_sa_email.lower())
        return allowed


class Context(BaseModel):
    """Per-invocation workspace state, mirrored to the context file."""
    workspace_id: Optional[str] = None
    workspace_name: Optional[str] = None
    cloud_platform: Optional[CloudPlatform] = None
    google_project_id: Optional[str] = None
    user: Optional[UserIdentity] = None
    resources: dict[str, Resource] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    @field_validator("resources", mode="before")
    @classmethod
    def _drop_unknown_resources(cls, value: Any) -> Any:
        # Files written by newer versions may carry kinds this version cannot resolve.
        if not isinstance(value, dict):
            return value
        kept = {}
        for name, entry in value.items():
            kind = entry.get("resource_type") if isinstance(entry, dict) else None
            if isinstance(entry, dict) and kind not in _KNOWN_RESOURCE_TYPES:
                logger.warning("Ignoring resource %s with unknown type %s", name, kind)
                continue
            kept[name] = entry
        return kept

    @property
    def is_empty(self) -> bool:
        return self.workspace_id is None


def require_workspace(context: Context) -> Context:
    """Fail fast unless a workspace is bound. Returns the context for chaining."""
    if context.workspace_id is None:
        raise NoWorkspaceBoundError()
    return context


class ContextStore:
    """Finds, loads and writes the workspace context file."""

    def __init__(self, config: AppConfig, cwd: Optional[Path] = None) -> None:
        """
        Args:
            config: Supplies the state directory and file names.
            cwd: Directory to search from. Defaults to the process's
                working directory at call time.
        """
        self.dirname = config.context_dirname
        self.filename = config.context_filename
        self._cwd = Path(cwd) if cwd is not None else None
        self._context_file: Optional[Path] = None

    @property
    def cwd(self) -> Path:
        return (self._cwd or Path(os.getcwd())).absolute()

    @property
    def context_file(self) -> Optional[Path]:
        """The file this store reads from and writes to, once known."""
        return self._context_file

    def locate_context_file(self, start_dir: Path) -> Optional[Path]:
        """Walk up from ``start_dir`` to the first directory holding a context file.

        Returns None when the filesystem root is reached without a match.
        """
        current = Path(start_dir).absolute()
        seen: set[Path] = set()
        while True:
            try:
                identity = current.resolve()
            except (OSError, RuntimeError):
                identity = current
            if identity in seen:
                return None
            seen.add(identity)

            state_dir = current / self.dirname
            candidate = state_dir / self.filename
            try:
                if state_dir.is_dir() and candidate.is_file():
                    return candidate
            except OSError as e:
                logger.debug("Skipping unreadable directory %s: %s", current, e)

            parent = current.parent
            if parent == current:
                return None
            current = parent

    def load(self) -> Context:
        """Load the context bound to the current directory tree.

        Never raises: an unbound tree or an unreadable file yields an empty
        context so workspace-agnostic commands keep working.
        """
        path = self.locate_context_file(self.cwd)
        self._context_file = path
        if path is None:
            logger.debug("No workspace context found above %s", self.cwd)
            return Context()

        try:
            context = Context.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Workspace context file %s not readable, treating as unbound: %s", path, e)
            return Context()

        logger.debug("Loaded workspace context %s from %s", context.workspace_id, path)
        return context

    def persist(self, context: Context) -> Path:
        """Write the context to its file.

        The first write of an unbound tree creates the state directory in the
        current directory; later writes go to the file found by ``load``.

        Raises:
            PersistenceError: The file could not be written. ``context`` is
                left as it is.
        """
        path = self._context_file or self.cwd / self.dirname / self.filename
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(context.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error("Error persisting workspace context to %s: %s", path, e)
            raise PersistenceError(f"Could not save workspace context to {path}: {e}", e) from e

        self._context_file = path
        logger.debug("Persisted workspace context %s to %s", context.workspace_id, path)
        return path

    # ---- Workspace binding ----

    def set_workspace(self, context: Context, description: WorkspaceDescription) -> Context:
        """Point the context at another workspace and persist.

        Switching to a different workspace empties the resource catalog.
        """
        logger.debug("Updating workspace from %s to %s", context.workspace_id, description.id)
        if context.workspace_id != description.id:
            context.resources = {}
        context.workspace_id = description.id
        context.workspace_name = description.name or None
        context.cloud_platform = description.cloud_platform
        context.google_project_id = description.google_project_id
        self.persist(context)
        return context

    def bind(
        self,
        context: Context,
        description: WorkspaceDescription,
        user: Optional[UserIdentity] = None,
    ) -> Context:
        """Bind the workspace to this directory tree (or re-bind an existing one)."""
        if user is not None:
            context.user = user
        return self.set_workspace(context, description)

    def unbind(self, context: Context) -> Context:
        """Forget the workspace and its resources. The user identity is kept."""
        logger.debug("Unbinding workspace %s", context.workspace_id)
        context.workspace_id = None
        context.workspace_name = None
        context.cloud_platform = None
        context.google_project_id = None
        context.resources = {}
        self.persist(context)
        return context

    # ---- Paths ----

    def workspace_dir(self) -> Optional[Path]:
        """Root of the bound directory tree (parent of the state directory)."""
        if self._context_file is None:
            return None
        return self._context_file.parent.parent

    def current_dir_relative_to_workspace(self) -> Optional[Path]:
        root = self.workspace_dir()
        if root is None:
            return None
        try:
            return self.cwd.relative_to(root)
        except ValueError:
            return None
