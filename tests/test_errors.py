"""Tests for the error taxonomy and fetch-error translation."""

import httpx
import pytest

from wsctl.core.errors import (
    CredentialMismatchError,
    ErrorCategory,
    ExitCode,
    FetchNotFoundError,
    FetchPermissionDeniedError,
    FetchUnavailableError,
    LaunchError,
    NoWorkspaceBoundError,
    PersistenceError,
    RemoteFetchError,
    ResolveOptionsInvalidError,
    ResourceNotFoundError,
    WsctlError,
    translate_fetch_error,
)


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://backend.example.org/api/workspaces/v1/ws")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class TestCategories:
    @pytest.mark.parametrize("error", [
        NoWorkspaceBoundError(),
        ResourceNotFoundError("b1"),
        ResolveOptionsInvalidError("bad flag"),
        CredentialMismatchError("wrong user"),
    ])
    def test_user_actionable_exit_code(self, error: WsctlError):
        assert error.category == ErrorCategory.USER_ACTIONABLE
        assert error.exit_code == ExitCode.USER_ACTIONABLE == 2

    def test_system_errors(self):
        assert LaunchError("no gcloud").exit_code == ExitCode.SYSTEM
        assert FetchUnavailableError("down").exit_code == ExitCode.SYSTEM

    def test_persistence_error(self):
        original = OSError("disk full")
        error = PersistenceError("could not save", original)
        assert error.category == ErrorCategory.PERSISTENCE
        assert error.original is original
        assert error.exit_code == ExitCode.SYSTEM

    def test_exit_codes_distinct_from_unexpected(self):
        assert len({ExitCode.USER_ACTIONABLE, ExitCode.SYSTEM, ExitCode.UNEXPECTED}) == 3

    def test_to_dict(self):
        data = ResourceNotFoundError("b1", "ws-main").to_dict()
        assert data["type"] == "ResourceNotFoundError"
        assert data["category"] == "user_actionable"
        assert "b1" in data["message"]
        assert "ws-main" in data["message"]


class TestTranslateFetchError:
    def test_not_found(self):
        assert isinstance(translate_fetch_error(_status_error(404)), FetchNotFoundError)

    @pytest.mark.parametrize("status", [401, 403])
    def test_permission_denied(self, status: int):
        assert isinstance(translate_fetch_error(_status_error(status)), FetchPermissionDeniedError)

    @pytest.mark.parametrize("status", [500, 502, 503, 429])
    def test_other_statuses_unavailable(self, status: int):
        assert isinstance(translate_fetch_error(_status_error(status)), FetchUnavailableError)

    def test_transport_errors_unavailable(self):
        error = httpx.ConnectError("connection refused")
        translated = translate_fetch_error(error)
        assert isinstance(translated, FetchUnavailableError)
        assert translated.original is error

    def test_timeout_unavailable(self):
        assert isinstance(translate_fetch_error(httpx.ReadTimeout("slow")), FetchUnavailableError)

    def test_already_translated_passes_through(self):
        error = FetchNotFoundError("gone")
        assert translate_fetch_error(error) is error

    def test_all_are_remote_fetch_errors(self):
        for status in (404, 403, 500):
            assert isinstance(translate_fetch_error(_status_error(status)), RemoteFetchError)
