"""Shared test fixtures and pytest configuration."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from wsctl.core.config import AppConfig
from wsctl.core.context import Context, ContextStore, UserIdentity

from factories import PET_SA_EMAIL, PROJECT_ID, USER_EMAIL, WORKSPACE_ID, FakeCredentials, FakeFetcher


@pytest.fixture
def tmp_config_dir(tmp_path: Path) -> Path:
    """Provide a temporary config directory."""
    config_dir = tmp_path / ".wsctl-config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(logs_dir=tmp_path / "logs", shell="sh")


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def credentials() -> FakeCredentials:
    return FakeCredentials()


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def bound_context() -> Context:
    """A context bound to WORKSPACE_ID with a known user and no resources."""
    return Context(
        workspace_id=WORKSPACE_ID,
        workspace_name="Main",
        google_project_id=PROJECT_ID,
        user=UserIdentity(email=USER_EMAIL, pet_sa_email=PET_SA_EMAIL),
    )


@pytest.fixture
def store(config: AppConfig, workspace_root: Path) -> ContextStore:
    return ContextStore(config, cwd=workspace_root)


FAKE_GCLOUD = """#!/bin/sh
# Minimal stand-in for gcloud's project configuration commands.
state="$FAKE_GCLOUD_STATE"
case "$1 $2" in
  "config get-value")
    if [ -s "$state" ]; then cat "$state"; echo; else echo "(unset)"; fi ;;
  "config set")
    printf '%s' "$4" > "$state" ;;
  "config unset")
    rm -f "$state" ;;
  *)
    if [ -s "$state" ]; then echo "project=$(cat "$state")"; fi
    exit "${FAKE_GCLOUD_EXIT:-0}" ;;
esac
"""


@pytest.fixture
def fake_gcloud(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Put a fake ``gcloud`` on PATH. Returns the file holding its saved project."""
    if os.name == "nt":
        pytest.skip("fake gcloud is a POSIX shell script")
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "gcloud"
    script.write_text(FAKE_GCLOUD)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    state_file = tmp_path / "gcloud-project"
    monkeypatch.setenv("FAKE_GCLOUD_STATE", str(state_file))
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    return state_file
