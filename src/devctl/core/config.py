"""Configuration management for devctl."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from devctl.core.exceptions import ConfigurationError

DEFAULT_HOME = "~/.devctl"
DEFAULT_SETTINGS_PATH = "~/.devctl/settings.yaml"


class PathsConfig(BaseModel):
    """Filesystem locations. Unset paths derive from ``home``."""

    home: str = DEFAULT_HOME
    registry_document: str | None = None
    backup_dir: str | None = None
    cache_dir: str | None = None
    log_file: str | None = None

    def _resolve(self, explicit: str | None, *parts: str) -> Path:
        if explicit:
            return Path(explicit).expanduser()
        return Path(self.home).expanduser().joinpath(*parts)

    @property
    def registry_path(self) -> Path:
        return self._resolve(self.registry_document, "config.yaml")

    @property
    def backups_path(self) -> Path:
        return self._resolve(self.backup_dir, "backups")

    @property
    def cache_path(self) -> Path:
        return self._resolve(self.cache_dir, "kubeconfigs")

    @property
    def log_path(self) -> Path:
        return self._resolve(self.log_file, "devctl.log")


class SSHConfig(BaseModel):
    """Remote bootstrap (SSH) configuration."""

    port: int = 22
    connect_timeout: float = 10.0
    remote_kubeconfig_path: str = "/root/.kube/config"


class ManagementClusterConfig(BaseModel):
    """Where workload clusters live inside a management cluster."""

    namespace: str = "jd-tpaas"
    cluster_group: str = "infrastructure.cluster.x-k8s.io"
    cluster_version: str = "v1beta1"
    cluster_plural: str = "jdosclusters"
    display_name_label: str = "cos.jdcloud.com/display-name"
    kubeconfig_secret_label: str = "cos.jdcloud.com/kubeconfig-secret"
    secret_type: str = "cluster.x-k8s.io/secret"
    secret_suffix: str = "-kubeconfig"
    secret_label_key: str = "cluster.x-k8s.io/cluster-name"
    secret_data_key: str = "value"

    def secret_name(self, cluster_id: str) -> str:
        """Name of the Secret backing a workload cluster."""
        return f"{cluster_id}{self.secret_suffix}"


class LoggingConfig(BaseModel):
    """Logging configuration.

    ``output`` is ``stdout``, ``stderr``, ``file`` (the log file under
    ``paths``) or an explicit file path.
    """

    level: str = "INFO"
    format: str = "json"
    output: str = "file"


class DevctlConfig(BaseModel):
    """Main devctl configuration."""

    paths: PathsConfig = Field(default_factory=PathsConfig)
    ssh: SSHConfig = Field(default_factory=SSHConfig)
    management: ManagementClusterConfig = Field(default_factory=ManagementClusterConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "DevctlConfig":
        """Load configuration from YAML file.

        A missing file yields the defaults; every key is optional.

        Args:
            path: Path to settings file

        Returns:
            DevctlConfig instance

        Raises:
            ConfigurationError: If file cannot be loaded or parsed
        """
        config_path = Path(path).expanduser()

        if not config_path.exists():
            return cls()

        try:
            with config_path.open() as f:
                data = yaml.safe_load(f) or {}
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Invalid configuration: expected a mapping in {config_path}")

        try:
            return cls(**data)
        except Exception as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def log_destination(self) -> str:
        """Resolve ``logging.output`` to a stream name or file path."""
        output = self.logging.output
        if output == "file":
            return str(self.paths.log_path)
        return output

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Dictionary representation
        """
        return self.model_dump()
