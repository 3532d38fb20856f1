"""Error taxonomy and exit-code mapping for wsctl."""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Optional

import httpx


class ErrorCategory(Enum):
    """Categories of errors with different reporting policies."""
    USER_ACTIONABLE = "user_actionable"    # Bad input or missing setup the user can fix
    SYSTEM = "system"                      # Environment or remote service problem
    PERSISTENCE = "persistence"            # On-disk context could not be written


class ExitCode(IntEnum):
    """Process exit codes for failures raised by wsctl itself.

    Child tool exit codes never pass through this table.
    """
    USER_ACTIONABLE = 2
    SYSTEM = 3
    UNEXPECTED = 4


CATEGORY_EXIT_CODES: dict[ErrorCategory, ExitCode] = {
    ErrorCategory.USER_ACTIONABLE: ExitCode.USER_ACTIONABLE,
    ErrorCategory.SYSTEM: ExitCode.SYSTEM,
    ErrorCategory.PERSISTENCE: ExitCode.SYSTEM,
}


class WsctlError(Exception):
    """Base exception for wsctl-specific errors."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.SYSTEM):
        super().__init__(message)
        self.message = message
        self.category = category

    @property
    def exit_code(self) -> int:
        return int(CATEGORY_EXIT_CODES[self.category])

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for JSON output or logging."""
        return {
            "type": type(self).__name__,
            "category": self.category.value,
            "message": self.message,
        }


class UserActionableError(WsctlError):
    """Something the user can fix: a bad name, a missing binding, a conflicting flag."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.USER_ACTIONABLE)


class NoWorkspaceBoundError(UserActionableError):
    """No workspace is bound to the current directory tree."""

    def __init__(
        self,
        message: str = "There is no workspace bound to the current directory. Run `wsctl workspace bind` first.",
    ):
        super().__init__(message)


class ResourceNotFoundError(UserActionableError):
    """A resource name is not in the catalog."""

    def __init__(self, name: str, workspace_id: Optional[str] = None):
        where = f" in workspace {workspace_id}" if workspace_id else ""
        super().__init__(f"Resource not found{where}: {name}")
        self.name = name


class ResolveOptionsInvalidError(UserActionableError):
    """The requested resolve options do not apply to this resource."""


class UnsupportedResolveError(UserActionableError):
    """A resource kind cannot be resolved in the requested way."""


class InvalidResourceNameError(UserActionableError):
    """Resource names must be alphanumeric or underscore."""

    def __init__(self, name: str):
        super().__init__(
            f"Invalid resource name {name!r}: only letters, numbers and underscores are allowed "
            "(1 to 1024 characters)."
        )
        self.name = name


class DuplicateResourceNameError(UserActionableError):
    """Resource names are unique within a workspace."""

    def __init__(self, name: str):
        super().__init__(f"A resource named {name!r} already exists in this workspace.")
        self.name = name


class CredentialMismatchError(UserActionableError):
    """Application-default credentials belong to someone other than the current user."""


class LaunchError(WsctlError):
    """The child tool could not be started at all (missing binary or image)."""

    def __init__(self, message: str, original: Optional[Exception] = None):
        super().__init__(message, ErrorCategory.SYSTEM)
        self.original = original


class PersistenceError(WsctlError):
    """The workspace context could not be written. In-memory state is kept."""

    def __init__(self, message: str, original: Optional[Exception] = None):
        super().__init__(message, ErrorCategory.PERSISTENCE)
        self.original = original


class RemoteFetchError(WsctlError):
    """
    Base class for failures of the resource-description backend.

    Subclasses distinguish the three outcomes callers act on differently.
    """

    def __init__(self, message: str, original: Optional[Exception] = None):
        super().__init__(message, ErrorCategory.SYSTEM)
        self.original = original


class FetchNotFoundError(RemoteFetchError):
    """The backend has no such workspace or resource."""


class FetchPermissionDeniedError(RemoteFetchError):
    """
    The caller may not read the workspace or resource.

    Covers: HTTP 401/403, expired or missing credentials.
    """


class FetchUnavailableError(RemoteFetchError):
    """
    The backend could not be reached or failed.

    Covers: DNS and connection failures, timeouts, HTTP 5xx.
    """


def translate_fetch_error(error: Exception) -> RemoteFetchError:
    """
    Translate an httpx (or stdlib network) error into a RemoteFetchError subclass.

    Args:
        error: Any exception raised while talking to the backend.

    Returns:
        The matching RemoteFetchError subclass.
    """
    if isinstance(error, RemoteFetchError):
        return error

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 404:
            return FetchNotFoundError(f"Not found: {error.request.url}", error)
        if status in (401, 403):
            return FetchPermissionDeniedError(f"Permission denied: {error.request.url}", error)
        return FetchUnavailableError(f"Backend returned HTTP {status}: {error.request.url}", error)

    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError)):
        return FetchUnavailableError(f"Backend unavailable: {error}", error)

    if isinstance(error, PermissionError):
        return FetchPermissionDeniedError(str(error), error)

    return FetchUnavailableError(f"Unexpected backend error: {error}", error)
