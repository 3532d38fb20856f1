"""Application-default credential checks before a tool runs."""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import google.auth
import google.auth.exceptions
import httpx
from google.auth.transport.requests import Request

from wsctl.core.context import UserIdentity
from wsctl.core.errors import CredentialMismatchError

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"


class CredentialProvider(ABC):
    """Where the locally discoverable default credentials come from, and whose they are."""

    @abstractmethod
    def current_principal(self) -> Optional[str]:
        """Email of the identity the default credentials act as, or None if there are none."""

    @abstractmethod
    def backing_file(self) -> Optional[Path]:
        """File the credentials were read from; None when a metadata server provides them."""

    @abstractmethod
    def default_backing_file(self) -> Path:
        """Where gcloud writes application-default credentials."""


class GoogleDefaultCredentials(CredentialProvider):
    """Application-default credentials as google-auth discovers them."""

    ENV_VAR = "GOOGLE_APPLICATION_CREDENTIALS"
    ADC_FILENAME = "application_default_credentials.json"

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._credentials = None

    def _load(self):
        if self._credentials is None:
            credentials, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
            credentials.refresh(Request())
            self._credentials = credentials
        return self._credentials

    def default_backing_file(self) -> Path:
        config_dir = os.environ.get("CLOUDSDK_CONFIG")
        base = Path(config_dir) if config_dir else Path.home() / ".config" / "gcloud"
        return base / self.ADC_FILENAME

    def backing_file(self) -> Optional[Path]:
        explicit = os.environ.get(self.ENV_VAR)
        if explicit and Path(explicit).is_file():
            return Path(explicit)
        default = self.default_backing_file()
        if default.is_file():
            return default
        return None

    def access_token(self) -> Optional[str]:
        """A fresh access token, or None when no default credentials exist."""
        try:
            return self._load().token
        except google.auth.exceptions.GoogleAuthError as e:
            logger.debug("No usable application default credentials: %s", e)
            return None

    def current_principal(self) -> Optional[str]:
        try:
            credentials = self._load()
        except google.auth.exceptions.GoogleAuthError as e:
            logger.warning("No usable application default credentials: %s", e)
            return None

        email = getattr(credentials, "service_account_email", None)
        if email and email != "default":
            return email

        # User credentials carry no email; ask the token info endpoint.
        try:
            response = httpx.get(TOKENINFO_URL, params={"access_token": credentials.token}, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Could not look up the identity of the default credentials: %s", e)
            return None
        return response.json().get("email")


def validate_credentials(provider: CredentialProvider, user: Optional[UserIdentity]) -> None:
    """
    Confirm the default credentials belong to the user or their pet service account.

    Raises:
        CredentialMismatchError: No user is recorded, no credentials are found,
            or they belong to someone else.
    """
    if user is None:
        raise CredentialMismatchError(
            "No user is recorded for this workspace. Re-bind with `wsctl workspace bind --user-email`."
        )

    principal = provider.current_principal()
    if principal is None or principal.lower() not in user.principals():
        raise CredentialMismatchError(
            f"Application default credentials ({principal or 'none found'}) do not match the current user "
            f"({user.email}) or their service account. Run `gcloud auth application-default login` as {user.email}."
        )

    # Diagnostic only: where the credentials came from.
    backing = provider.backing_file()
    if backing is None:
        logger.info("ADC set by metadata server.")
    elif backing == provider.default_backing_file():
        logger.info("ADC backing file is in the default location")
    else:
        logger.info("ADC backing file is %s", backing)
