"""Client for the workspace backend's resource descriptions."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

import httpx

from wsctl.core.errors import FetchUnavailableError, translate_fetch_error
from wsctl.resources.models import Resource, WorkspaceDescription, parse_resource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SasToken:
    """A time-limited shared access signature for an Azure storage container."""
    token: str
    url: Optional[str] = None
    expires_at: Optional[datetime] = None


class ResourceFetcher(ABC):
    """
    Read side of the workspace backend.

    Implementations raise FetchNotFoundError, FetchPermissionDeniedError or
    FetchUnavailableError; nothing else escapes.
    """

    @abstractmethod
    def get_workspace(self, workspace_id: str) -> WorkspaceDescription:
        """Describe a workspace (name, platform, backing project)."""

    @abstractmethod
    def get_resource(self, workspace_id: str, resource_id: str) -> Resource:
        """Full typed attributes of one resource."""

    @abstractmethod
    def list_resources(self, workspace_id: str) -> list[Resource]:
        """Every resource in a workspace."""

    @abstractmethod
    def get_sas_token(self, workspace_id: str, resource_id: str) -> SasToken:
        """Issue a SAS token for an Azure storage container resource."""


class HttpResourceFetcher(ResourceFetcher):
    """ResourceFetcher over the backend's JSON REST API."""

    API_ROOT = "/api/workspaces/v1"

    def __init__(
        self,
        base_url: str,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Args:
            base_url: Backend base URL.
            token_provider: Returns a bearer token for each request, or None
                to send requests unauthenticated.
            timeout: Request timeout in seconds.
            transport: Custom httpx transport (tests pass a MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token_provider = token_provider
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    def _get_client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._get_client().request(method, path, headers=self._headers(), **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            error = translate_fetch_error(e)
            logger.debug("%s %s failed: %s", method, path, error)
            raise error from e
        except ValueError as e:
            raise FetchUnavailableError(f"Malformed response from {path}: {e}", e) from e

    def _parse(self, payload: Any, path: str) -> Resource:
        try:
            return parse_resource(payload)
        except ValueError as e:
            raise FetchUnavailableError(f"Unrecognised resource description from {path}: {e}", e) from e

    def get_workspace(self, workspace_id: str) -> WorkspaceDescription:
        path = f"{self.API_ROOT}/{workspace_id}"
        payload = self._request("GET", path)
        try:
            return WorkspaceDescription.model_validate(payload)
        except ValueError as e:
            raise FetchUnavailableError(f"Unrecognised workspace description from {path}: {e}", e) from e

    def get_resource(self, workspace_id: str, resource_id: str) -> Resource:
        path = f"{self.API_ROOT}/{workspace_id}/resources/{resource_id}"
        return self._parse(self._request("GET", path), path)

    def list_resources(self, workspace_id: str) -> list[Resource]:
        path = f"{self.API_ROOT}/{workspace_id}/resources"
        payload = self._request("GET", path)
        entries = payload.get("resources", []) if isinstance(payload, dict) else payload
        resources = []
        for entry in entries or []:
            try:
                resources.append(parse_resource(entry))
            except ValueError as e:
                # Newer backends may list kinds this client does not know.
                logger.warning("Skipping unrecognised resource in workspace %s: %s", workspace_id, e)
        return resources

    def get_sas_token(self, workspace_id: str, resource_id: str) -> SasToken:
        path = f"{self.API_ROOT}/{workspace_id}/resources/controlled/azure/storageContainer/{resource_id}/getSasToken"
        payload = self._request("POST", path)
        if not isinstance(payload, dict) or not payload.get("token"):
            raise FetchUnavailableError(f"No SAS token in response from {path}")
        expires_at = payload.get("expiresAt")
        return SasToken(
            token=payload["token"],
            url=payload.get("url"),
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )
