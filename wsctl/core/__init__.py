"""Core module - Configuration, errors, logging and the workspace context."""

from wsctl.core.config import AppConfig, ConfigManager, ServerConfig
from wsctl.core.errors import (
    CredentialMismatchError,
    ErrorCategory,
    ExitCode,
    LaunchError,
    NoWorkspaceBoundError,
    PersistenceError,
    RemoteFetchError,
    ResolveOptionsInvalidError,
    ResourceNotFoundError,
    WsctlError,
)
from wsctl.core.context import Context, ContextStore, UserIdentity, require_workspace

__all__ = [
    "AppConfig",
    "ConfigManager",
    "ServerConfig",
    "CredentialMismatchError",
    "ErrorCategory",
    "ExitCode",
    "LaunchError",
    "NoWorkspaceBoundError",
    "PersistenceError",
    "RemoteFetchError",
    "ResolveOptionsInvalidError",
    "ResourceNotFoundError",
    "WsctlError",
    "Context",
    "ContextStore",
    "UserIdentity",
    "require_workspace",
]
