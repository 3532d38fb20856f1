"""Configuration management for wsctl."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field


def _default_config_dir() -> Path:
    """Get default configuration directory."""
    override = os.environ.get("WSCTL_CONFIG_DIR")
    if override:
        return Path(override)
    return Path.home() / ".wsctl"


def _default_logs_dir() -> Path:
    """Get default logs directory."""
    return _default_config_dir() / "logs"


class ServerConfig(BaseModel):
    """Workspace backend the CLI talks to."""
    name: str = Field(default="default", description="Short name of the backend deployment")
    url: str = Field(default="http://localhost:8080", description="Base URL of the workspace backend")
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")


class AppConfig(BaseModel):
    """Main wsctl configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)

    log_level: str = Field(default="INFO", description="Level for the rotating log file")
    logs_dir: Path = Field(default_factory=_default_logs_dir)

    # Tool execution
    runner: Literal["local", "docker"] = Field(default="local", description="Where tools run")
    docker_image: str = Field(
        default="gcr.io/google.com/cloudsdktool/google-cloud-cli:latest",
        description="Image used by the docker runner",
    )
    gcloud_executable: str = Field(default="gcloud", description="gcloud binary used for project switching")
    shell: str = Field(default="bash", description="Shell that interprets tool command lines")
    env_prefix: str = Field(default="WSCTL_", description="Prefix for exported resource variables")
    skip_credential_check: bool = Field(
        default=False,
        description="Skip application-default credential validation (test mode only)",
    )

    # On-disk workspace context
    context_dirname: str = Field(default=".wsctl")
    context_filename: str = Field(default="workspace-context.json")

    model_config = ConfigDict(arbitrary_types_allowed=True)


class ConfigManager:
    """Manages the wsctl configuration file."""

    CONFIG_FILENAME = "config.yaml"

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize the configuration manager.

        Args:
            config_dir: Custom configuration directory. Defaults to ~/.wsctl
                (or $WSCTL_CONFIG_DIR when set).
        """
        self.config_dir = Path(config_dir) if config_dir else _default_config_dir()
        self.config_path = self.config_dir / self.CONFIG_FILENAME
        self._config: Optional[AppConfig] = None

    @property
    def config(self) -> AppConfig:
        """Get the current configuration, loading if necessary."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def load(self) -> AppConfig:
        """
        Load configuration from file, then apply environment overrides.

        Returns:
            AppConfig: Loaded configuration, or defaults if the file doesn't exist
            or cannot be parsed.
        """
        data: dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                print(f"Warning: Failed to read config from {self.config_path}: {e}")
                data = {}

        try:
            config = AppConfig(**data)
        except ValueError as e:
            print(f"Warning: Invalid config in {self.config_path}: {e}")
            config = AppConfig()

        server_url = os.environ.get("WSCTL_SERVER_URL")
        if server_url:
            config.server.url = server_url
        docker_image = os.environ.get("WSCTL_DOCKER_IMAGE")
        if docker_image:
            config.docker_image = docker_image
        return config

    def save(self, config: Optional[AppConfig] = None) -> None:
        """
        Save configuration to file.

        Args:
            config: Configuration to save. Uses current config if not provided.
        """
        if config is not None:
            self._config = config

        if self._config is None:
            self._config = AppConfig()

        self.config_dir.mkdir(parents=True, exist_ok=True)

        data = self._config.model_dump(mode="json")
        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value by dot-notation key.

        Args:
            key: Dot-notation key (e.g., "server.url")
            default: Default value if key not found

        Returns:
            Configuration value or default.
        """
        obj: Any = self.config

        for part in key.split("."):
            if isinstance(obj, BaseModel) and part in type(obj).model_fields:
                obj = getattr(obj, part)
            elif isinstance(obj, dict) and part in obj:
                obj = obj[part]
            else:
                return default

        return obj

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value by dot-notation key.

        The new value is validated by rebuilding the model, so a bad value
        (e.g. ``runner=podman``) raises ``ValueError`` and leaves the current
        configuration untouched.

        Args:
            key: Dot-notation key (e.g., "server.url")
            value: Value to set
        """
        parts = key.split(".")
        data = self.config.model_dump()

        node = data
        for part in parts[:-1]:
            if not isinstance(node.get(part), dict):
                raise KeyError(f"Configuration key not found: {key}")
            node = node[part]

        if parts[-1] not in node:
            raise KeyError(f"Configuration key not found: {key}")
        node[parts[-1]] = value

        self._config = AppConfig(**data)

    def reset(self) -> AppConfig:
        """Reset configuration to defaults."""
        self._config = AppConfig()
        return self._config
