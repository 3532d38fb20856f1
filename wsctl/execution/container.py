"""Run tools inside a Docker container."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

import docker
from docker.errors import APIError, DockerException, ImageNotFound

from wsctl.core.errors import LaunchError
from wsctl.execution.invocation import ToolInvocation
from wsctl.execution.runner import ToolRunner
from wsctl.execution.streaming import forward

logger = logging.getLogger(__name__)

# The caller's working directory is mounted here and used as the container's cwd.
CONTAINER_WORKDIR = "/workspace"
# The host's gcloud configuration (credentials included) is mounted read-only here.
CONTAINER_GCLOUD_CONFIG = "/root/.config/gcloud"


class ContainerRunner(ToolRunner):
    """
    Runs the command line in a fresh container of the configured image.

    The container gets the same environment a local process would, the
    invocation's bind mounts, and the caller's working directory mounted at
    CONTAINER_WORKDIR so relative file arguments resolve. It is removed once
    the tool exits.
    """

    name = "docker"

    def __init__(self, config, stdout=None, stderr=None, cwd=None, client: Any = None):
        super().__init__(config, stdout=stdout, stderr=stderr, cwd=cwd)
        self._client = client

    def _get_client(self) -> Any:
        """Create and validate a Docker client."""
        if self._client is None:
            try:
                client = docker.from_env()
                client.ping()
            except DockerException as e:
                raise LaunchError(f"Docker daemon is not available. Please start Docker and try again. ({e})", e) from e
            self._client = client
        return self._client

    def _ensure_image(self, client: Any, image: str) -> None:
        """Ensure the image is available locally, pulling if needed."""
        try:
            client.images.get(image)
            return
        except ImageNotFound:
            logger.info("Pulling image: %s", image)
        except APIError as e:
            raise LaunchError(f"Could not inspect image {image}: {e}", e) from e

        try:
            client.images.pull(image)
        except (ImageNotFound, APIError) as e:
            raise LaunchError(f"Image {image} not found and could not be pulled: {e}", e) from e

    def volumes(self, invocation: ToolInvocation) -> list[str]:
        """Docker volume specs (``host:container:mode``) for this invocation."""
        specs = [f"{self.cwd}:{CONTAINER_WORKDIR}:rw"]
        for mount_point, host_dir in invocation.bind_mounts.items():
            specs.append(f"{Path(host_dir).absolute()}:{mount_point}:rw")

        gcloud_config = _host_gcloud_config()
        if gcloud_config is not None:
            specs.append(f"{gcloud_config}:{CONTAINER_GCLOUD_CONFIG}:ro")
        return specs

    def run(
        self,
        invocation: ToolInvocation,
        command: str,
        env: dict[str, str],
        project_id: Optional[str],
    ) -> int:
        client = self._get_client()
        image = self.config.docker_image
        self._ensure_image(client, image)

        environment = dict(env)
        if project_id:
            # gcloud inside the image has no saved project; the env var stands in for it.
            environment.setdefault("CLOUDSDK_CORE_PROJECT", project_id)

        volumes = self.volumes(invocation)
        logger.debug("docker params: image=%s cmd=%s volumes=%s env_keys=%s", image, command, volumes, sorted(environment))

        try:
            container = client.containers.create(
                image=image,
                command=self.shell_command(command),
                environment=environment,
                volumes=volumes,
                working_dir=CONTAINER_WORKDIR,
                tty=False,
                stdin_open=False,
                detach=True,
            )
        except (ImageNotFound, APIError) as e:
            raise LaunchError(f"Could not create a container from {image}: {e}", e) from e

        try:
            try:
                container.start()
            except APIError as e:
                raise LaunchError(f"Could not start the container: {e}", e) from e

            forwarders = forward({
                "stdout": (container.logs(stdout=True, stderr=False, stream=True, follow=True), self.stdout),
                "stderr": (container.logs(stdout=False, stderr=True, stream=True, follow=True), self.stderr),
            })
            result = container.wait()
            for forwarder in forwarders:
                forwarder.join()
        finally:
            try:
                container.remove(force=True)
            except APIError as e:
                logger.warning("Could not remove container %s: %s", getattr(container, "id", "?"), e)

        exit_code = int(result.get("StatusCode", -1))
        logger.debug("Container exit code: %d", exit_code)
        return exit_code


def _host_gcloud_config() -> Optional[Path]:
    override = os.environ.get("CLOUDSDK_CONFIG")
    config_dir = Path(override) if override else Path.home() / ".config" / "gcloud"
    return config_dir if config_dir.is_dir() else None
