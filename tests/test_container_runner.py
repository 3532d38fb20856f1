"""Tests for the Docker runner, all via docker SDK mocks."""

from __future__ import annotations

import io
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import APIError, DockerException, ImageNotFound

from wsctl.core.config import AppConfig
from wsctl.core.errors import LaunchError
from wsctl.execution.container import CONTAINER_GCLOUD_CONFIG, CONTAINER_WORKDIR, ContainerRunner
from wsctl.execution.invocation import ToolInvocation


def _mock_container(stdout: bytes = b"", stderr: bytes = b"", status: int = 0) -> MagicMock:
    container = MagicMock()
    container.id = "abc123"

    def logs(stdout=True, stderr=True, stream=False, follow=False):
        chunks = []
        if stdout:
            chunks.append(stdout_data)
        if stderr:
            chunks.append(stderr_data)
        return iter([c for c in chunks if c])

    stdout_data, stderr_data = stdout, stderr
    container.logs.side_effect = logs
    container.wait.return_value = {"StatusCode": status}
    return container


def _mock_client(container: MagicMock) -> MagicMock:
    client = MagicMock()
    client.containers.create.return_value = container
    return client


@pytest.fixture
def docker_config(tmp_path: Path) -> AppConfig:
    return AppConfig(logs_dir=tmp_path / "logs", runner="docker", docker_image="example/tools:1")


@pytest.fixture(autouse=True)
def _no_host_gcloud_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CLOUDSDK_CONFIG", str(tmp_path / "no-gcloud-config"))


def _runner(config: AppConfig, client: MagicMock, cwd: Path):
    out, err = io.BytesIO(), io.BytesIO()
    return ContainerRunner(config, stdout=out, stderr=err, cwd=cwd, client=client), out, err


class TestRun:
    def test_exit_code_and_output(self, docker_config: AppConfig, tmp_path: Path):
        container = _mock_container(stdout=b"hello\n", stderr=b"warn\n", status=123)
        runner, out, err = _runner(docker_config, _mock_client(container), tmp_path)
        invocation = ToolInvocation(executable="gcloud", args=["info"])

        assert runner.run(invocation, invocation.command_line(), {"A": "1"}, "proj") == 123
        assert out.getvalue() == b"hello\n"
        assert err.getvalue() == b"warn\n"
        container.start.assert_called_once()
        container.remove.assert_called_once_with(force=True)

    def test_create_parameters(self, docker_config: AppConfig, tmp_path: Path):
        container = _mock_container()
        client = _mock_client(container)
        runner, _, _ = _runner(docker_config, client, tmp_path)
        nextflow_dir = tmp_path / "nextflow"
        invocation = ToolInvocation(
            executable="nextflow", args=["run", "x"], bind_mounts={"/usr/local/etc/nextflow": nextflow_dir},
        )

        runner.run(invocation, "nextflow run x", {"NXF_MODE": "google"}, "proj")

        kwargs = client.containers.create.call_args.kwargs
        assert kwargs["image"] == "example/tools:1"
        assert kwargs["command"] == ["bash", "-ce", "nextflow run x"]
        assert kwargs["working_dir"] == CONTAINER_WORKDIR
        assert kwargs["environment"] == {"NXF_MODE": "google", "CLOUDSDK_CORE_PROJECT": "proj"}
        assert f"{tmp_path.absolute()}:{CONTAINER_WORKDIR}:rw" in kwargs["volumes"]
        assert f"{nextflow_dir.absolute()}:/usr/local/etc/nextflow:rw" in kwargs["volumes"]

    def test_explicit_project_env_wins(self, docker_config: AppConfig, tmp_path: Path):
        client = _mock_client(_mock_container())
        runner, _, _ = _runner(docker_config, client, tmp_path)
        invocation = ToolInvocation(executable="gcloud")
        runner.run(invocation, "gcloud", {"CLOUDSDK_CORE_PROJECT": "mine"}, "proj")
        assert client.containers.create.call_args.kwargs["environment"]["CLOUDSDK_CORE_PROJECT"] == "mine"

    def test_host_gcloud_config_mounted_read_only(self, docker_config: AppConfig, tmp_path: Path,
                                                  monkeypatch: pytest.MonkeyPatch):
        gcloud_dir = tmp_path / "gcloud-config"
        gcloud_dir.mkdir()
        monkeypatch.setenv("CLOUDSDK_CONFIG", str(gcloud_dir))
        runner, _, _ = _runner(docker_config, _mock_client(_mock_container()), tmp_path)
        volumes = runner.volumes(ToolInvocation(executable="gcloud"))
        assert f"{gcloud_dir}:{CONTAINER_GCLOUD_CONFIG}:ro" in volumes

    def test_container_removed_when_start_fails(self, docker_config: AppConfig, tmp_path: Path):
        container = _mock_container()
        container.start.side_effect = APIError("no start")
        runner, _, _ = _runner(docker_config, _mock_client(container), tmp_path)
        with pytest.raises(LaunchError):
            runner.run(ToolInvocation(executable="gcloud"), "gcloud", {}, None)
        container.remove.assert_called_once_with(force=True)


class TestImage:
    def test_pulls_missing_image(self, docker_config: AppConfig, tmp_path: Path):
        client = _mock_client(_mock_container())
        client.images.get.side_effect = ImageNotFound("missing")
        runner, _, _ = _runner(docker_config, client, tmp_path)
        runner.run(ToolInvocation(executable="gcloud"), "gcloud", {}, None)
        client.images.pull.assert_called_once_with("example/tools:1")

    def test_unpullable_image_raises_launch_error(self, docker_config: AppConfig, tmp_path: Path):
        client = _mock_client(_mock_container())
        client.images.get.side_effect = ImageNotFound("missing")
        client.images.pull.side_effect = ImageNotFound("still missing")
        runner, _, _ = _runner(docker_config, client, tmp_path)
        with pytest.raises(LaunchError):
            runner.run(ToolInvocation(executable="gcloud"), "gcloud", {}, None)
        client.containers.create.assert_not_called()


class TestClient:
    @patch("wsctl.execution.container.docker.from_env")
    def test_daemon_unavailable(self, mock_from_env, docker_config: AppConfig, tmp_path: Path):
        mock_from_env.side_effect = DockerException("daemon not running")
        runner = ContainerRunner(docker_config, cwd=tmp_path)
        with pytest.raises(LaunchError, match="Docker daemon is not available"):
            runner.run(ToolInvocation(executable="gcloud"), "gcloud", {}, None)

    @patch("wsctl.execution.container.docker.from_env")
    def test_client_created_once(self, mock_from_env, docker_config: AppConfig, tmp_path: Path):
        mock_from_env.return_value = _mock_client(_mock_container())
        runner = ContainerRunner(docker_config, stdout=io.BytesIO(), stderr=io.BytesIO(), cwd=tmp_path)
        runner.run(ToolInvocation(executable="gcloud"), "gcloud", {}, None)
        runner.run(ToolInvocation(executable="gcloud"), "gcloud", {}, None)
        mock_from_env.assert_called_once()
        mock_from_env.return_value.ping.assert_called_once()
