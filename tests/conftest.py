"""Pytest configuration and shared fixtures."""

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from kubernetes.client.models import V1Secret

from devctl.cache.credential_cache import CredentialCache
from devctl.core.config import DevctlConfig, PathsConfig
from devctl.core.exceptions import AlreadyExistsError, NotFoundError
from devctl.core.models import Environment
from devctl.interfaces.bootstrap_client import RemoteBootstrapClient
from devctl.registry.document_store import RegistryDocumentStore
from devctl.registry.environment_registry import EnvironmentRegistry

SAMPLE_KUBECONFIG = b"""apiVersion: v1
kind: Config
clusters:
- cluster:
    server: https://10.0.0.1:6443
  name: gaia
contexts:
- context:
    cluster: gaia
    user: admin
  name: gaia
current-context: gaia
users:
- name: admin
  user:
    token: test-token
"""


class FakeManagementClient:
    """In-memory stand-in for ManagementClusterClient."""

    def __init__(self) -> None:
        self.secrets: dict[str, V1Secret] = {}
        self.custom_objects: list[dict[str, Any]] = []
        self.nodes: list[Any] = []
        self.kubeconfig_path: str | None = None

    def list_custom_objects(
        self, group: str, version: str, namespace: str, plural: str
    ) -> list[dict[str, Any]]:
        return list(self.custom_objects)

    def list_secrets(self, namespace: str, label_selector: str | None = None) -> list[V1Secret]:
        return list(self.secrets.values())

    def get_secret(self, name: str, namespace: str) -> V1Secret:
        if name not in self.secrets:
            raise NotFoundError(f"Secret {name} not found in {namespace}")
        return self.secrets[name]

    def secret_exists(self, name: str, namespace: str) -> bool:
        return name in self.secrets

    def create_secret(self, namespace: str, secret: V1Secret) -> V1Secret:
        name = secret.metadata.name
        if name in self.secrets:
            raise AlreadyExistsError(f"Secret {name} already exists in {namespace}")
        self.secrets[name] = secret
        return secret

    def delete_secret(self, name: str, namespace: str) -> None:
        if name not in self.secrets:
            raise NotFoundError(f"Secret {name} not found in {namespace}")
        del self.secrets[name]

    def get_nodes(self) -> list[Any]:
        return list(self.nodes)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME at a scratch directory and clear KUBECONFIG."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("KUBECONFIG", raising=False)
    return home


@pytest.fixture
def sample_kubeconfig() -> bytes:
    """Provide sample kubeconfig bytes."""
    return SAMPLE_KUBECONFIG


@pytest.fixture
def devctl_config(tmp_path: Path) -> DevctlConfig:
    """Provide a configuration rooted in a temporary directory."""
    return DevctlConfig(paths=PathsConfig(home=str(tmp_path / ".devctl")))


@pytest.fixture
def credential_cache(devctl_config: DevctlConfig) -> CredentialCache:
    """Provide a credential cache under the temporary home."""
    return CredentialCache(devctl_config.paths.cache_path)


@pytest.fixture
def document_store(devctl_config: DevctlConfig) -> RegistryDocumentStore:
    """Provide a registry document store under the temporary home."""
    return RegistryDocumentStore(
        devctl_config.paths.registry_path, devctl_config.paths.backups_path
    )


@pytest.fixture
def mock_bootstrap_client(sample_kubeconfig: bytes) -> MagicMock:
    """Mock bootstrap client whose connection test succeeds and returns a kubeconfig."""
    bootstrap = MagicMock(spec=RemoteBootstrapClient)
    bootstrap.test_connection.return_value = None
    bootstrap.fetch_file.return_value = sample_kubeconfig
    return bootstrap


@pytest.fixture
def registry(
    document_store: RegistryDocumentStore,
    credential_cache: CredentialCache,
    mock_bootstrap_client: MagicMock,
    devctl_config: DevctlConfig,
) -> EnvironmentRegistry:
    """Provide an empty environment registry."""
    return EnvironmentRegistry(
        document_store, credential_cache, mock_bootstrap_client, devctl_config
    )


@pytest.fixture
def sample_environment() -> Environment:
    """Provide a candidate environment as entered by an operator."""
    return Environment(
        id="prod-1",
        display_name="Production 1",
        host="10.0.0.5",
        ssh_user="root",
        ssh_password="s3cret",
    )


@pytest.fixture
def fake_management_client() -> FakeManagementClient:
    """Provide an in-memory management cluster."""
    return FakeManagementClient()


@pytest.fixture
def sample_cluster_items() -> list[dict[str, Any]]:
    """Provide cluster custom resources as returned by the API."""
    return [
        {
            "metadata": {
                "name": "c-abc123",
                "labels": {
                    "cos.jdcloud.com/display-name": "payments",
                    "cos.jdcloud.com/kubeconfig-secret": "c-abc123-kubeconfig",
                },
            },
            "spec": {
                "os": "linux",
                "arch": "amd64",
                "region": "cn-north-1",
                "containerRuntime": "containerd",
                "kubernetesVersion": "v1.28.3",
                "controlPlaneEndpoint": {"url": "https://10.1.0.10", "port": 6443},
            },
            "status": {"ready": True},
        },
        {
            "metadata": {"name": "c-def456", "labels": {"cos.jdcloud.com/display-name": "search"}},
            "spec": {"os": "linux", "kubernetesVersion": "v1.27.8"},
            "status": {"ready": False},
        },
    ]
