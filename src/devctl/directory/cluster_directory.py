"""Per-environment view of the workload clusters behind a management cluster."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kubernetes.client.models import V1ObjectMeta, V1Secret

from devctl.cache.credential_cache import CredentialCache, require_kubeconfig_content
from devctl.clients.kubernetes_client import ManagementClusterClient
from devctl.core.config import DevctlConfig, ManagementClusterConfig
from devctl.core.exceptions import (
    AlreadyExistsError,
    ClusterNotFoundError,
    InconsistentError,
    NotFoundError,
    ProtectedError,
)
from devctl.core.models import (
    MANAGEMENT_CLUSTER_ID,
    ClusterReadiness,
    ClusterRecord,
    Environment,
    NodeInfo,
)
from devctl.utils.logging import get_logger

if TYPE_CHECKING:
    from devctl.interfaces.bootstrap_client import RemoteBootstrapClient
    from devctl.registry.environment_registry import EnvironmentRegistry

logger = get_logger(__name__)

ClientFactory = Callable[[str], ManagementClusterClient]


def _nested(obj: Any, *keys: str) -> Any:
    """Walk nested mappings, returning None on any missing or non-mapping step."""
    for key in keys:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _endpoint(value: Any) -> str:
    """Render ``controlPlaneEndpoint`` as ``url:port``; empty if either part is unusable."""
    url = _nested(value, "url")
    port = _nested(value, "port")
    if not isinstance(url, str) or not url:
        return ""
    if isinstance(port, bool):
        return ""
    if isinstance(port, int):
        return f"{url}:{port}"
    if isinstance(port, str) and port.isdigit():
        return f"{url}:{port}"
    return ""


class ClusterDirectory:
    """Lists, registers and resolves the clusters of one environment.

    The directory is bound to a single environment id for its whole
    lifetime and looks the record up through the registry on every call.
    Kubeconfigs are always fetched from the authoritative source (remote
    host or Secret) and written to the cache before their path is returned.
    """

    def __init__(
        self,
        environment_id: str,
        registry: EnvironmentRegistry,
        cache: CredentialCache,
        bootstrap_client: RemoteBootstrapClient,
        config: DevctlConfig | None = None,
        client_factory: ClientFactory | None = None,
    ):
        """Initialize cluster directory.

        Args:
            environment_id: Environment the directory is scoped to
            registry: Environment registry owning the record
            cache: Local credential cache
            bootstrap_client: Client used to fetch the management kubeconfig
            config: devctl configuration (defaults if omitted)
            client_factory: Builds a Kubernetes client from a kubeconfig path
        """
        self.environment_id = environment_id
        self.registry = registry
        self.cache = cache
        self.bootstrap_client = bootstrap_client
        self.config = config or DevctlConfig()
        self.client_factory: ClientFactory = client_factory or ManagementClusterClient
        self._management_client: ManagementClusterClient | None = None

        # Fail fast on unknown environments
        self.registry.get_environment(environment_id)
        logger.debug("cluster_directory_initialized", environment_id=environment_id)

    @property
    def environment(self) -> Environment:
        return self.registry.get_environment(self.environment_id)

    @property
    def management(self) -> ManagementClusterConfig:
        return self.config.management

    @property
    def management_client(self) -> ManagementClusterClient:
        """Kubernetes client for the management cluster, created on first use.

        If the cached management kubeconfig has gone missing it is fetched
        again from the remote host first.
        """
        if self._management_client is None:
            env = self.environment
            kubeconfig_path = Path(env.management_kubeconfig_path).expanduser()
            if not env.is_local_default and not kubeconfig_path.is_file():
                logger.info(
                    "management_kubeconfig_missing",
                    environment_id=self.environment_id,
                    path=str(kubeconfig_path),
                )
                kubeconfig_path = self.resolve_kubeconfig(MANAGEMENT_CLUSTER_ID)
            self._management_client = self.client_factory(str(kubeconfig_path))
        return self._management_client

    def list_clusters(self) -> list[ClusterRecord]:
        """List workload clusters from the management cluster's custom resources.

        Fields that are missing or have an unexpected shape are rendered
        empty instead of failing the listing.

        Raises:
            KubernetesError: If the custom resources cannot be listed
        """
        logger.info("listing_clusters", environment_id=self.environment_id)

        items = self.management_client.list_custom_objects(
            group=self.management.cluster_group,
            version=self.management.cluster_version,
            namespace=self.management.namespace,
            plural=self.management.cluster_plural,
        )

        clusters = []
        for item in items:
            labels = _nested(item, "metadata", "labels")
            labels = labels if isinstance(labels, dict) else {}
            spec = _nested(item, "spec")

            clusters.append(
                ClusterRecord(
                    id=_text(_nested(item, "metadata", "name")),
                    display_name=_text(labels.get(self.management.display_name_label)),
                    os=_text(_nested(spec, "os")),
                    arch=_text(_nested(spec, "arch")),
                    region=_text(_nested(spec, "region")),
                    container_runtime=_text(_nested(spec, "containerRuntime")),
                    kubernetes_version=_text(_nested(spec, "kubernetesVersion")),
                    api_server_endpoint=_endpoint(_nested(spec, "controlPlaneEndpoint")),
                    ready=ClusterReadiness.from_raw(_nested(item, "status", "ready")),
                    kubeconfig_secret_name=_text(
                        labels.get(self.management.kubeconfig_secret_label)
                    ),
                )
            )

        logger.info("clusters_listed", environment_id=self.environment_id, count=len(clusters))
        return clusters

    def list_cluster_secrets(self) -> list[str]:
        """List cluster ids that have kubeconfig Secrets, management cluster first.

        Raises:
            KubernetesError: If the Secrets cannot be listed
        """
        logger.info("listing_cluster_secrets", environment_id=self.environment_id)

        secrets = self.management_client.list_secrets(
            namespace=self.management.namespace,
            label_selector=self.management.secret_label_key,
        )

        suffix = self.management.secret_suffix
        cluster_ids = [MANAGEMENT_CLUSTER_ID]
        for secret in secrets:
            name = secret.metadata.name if secret.metadata else None
            if secret.type != self.management.secret_type or not name:
                continue
            if not name.endswith(suffix) or len(name) == len(suffix):
                continue
            cluster_ids.append(name[: -len(suffix)])

        logger.info(
            "cluster_secrets_listed", environment_id=self.environment_id, count=len(cluster_ids)
        )
        return cluster_ids

    def resolve_kubeconfig(self, cluster_id: str) -> Path:
        """Fetch a cluster's kubeconfig from its source and materialize it locally.

        The management cluster is re-downloaded from the environment host on
        every call; workload clusters are read from their Secret. The cache
        is never consulted first.

        Args:
            cluster_id: Cluster identifier ("gaia" for the management cluster)

        Returns:
            Path of a non-empty kubeconfig file

        Raises:
            ClusterNotFoundError: If the backing Secret does not exist
            InconsistentError: If the Secret or remote file holds no kubeconfig
            InvalidIdentifierError: If the cluster id cannot name a cache file
            UnreachableError: If the management host cannot be reached
        """
        logger.info(
            "resolving_kubeconfig", environment_id=self.environment_id, cluster_id=cluster_id
        )

        if cluster_id == MANAGEMENT_CLUSTER_ID:
            return self._resolve_management_kubeconfig()

        self.cache.path_for(self.environment_id, cluster_id)
        content = self._read_secret_kubeconfig(cluster_id)
        path = self.cache.put(self.environment_id, cluster_id, content)

        logger.info(
            "kubeconfig_resolved",
            environment_id=self.environment_id,
            cluster_id=cluster_id,
            path=str(path),
        )
        return path

    def _resolve_management_kubeconfig(self) -> Path:
        env = self.environment

        if env.is_local_default:
            # The default environment points at the operator's own kubeconfig
            path = Path(env.management_kubeconfig_path).expanduser()
            try:
                content = path.read_bytes()
            except FileNotFoundError as e:
                raise ClusterNotFoundError(
                    f"Kubeconfig {path} for environment {env.id} does not exist"
                ) from e
            require_kubeconfig_content(content, env.id, MANAGEMENT_CLUSTER_ID)
            return path

        logger.info("downloading_management_kubeconfig", environment_id=env.id, host=env.host)
        content = self.bootstrap_client.fetch_file(
            env.host, env.ssh_user, env.ssh_password, self.config.ssh.remote_kubeconfig_path
        )
        require_kubeconfig_content(content, env.id, MANAGEMENT_CLUSTER_ID)
        path = self.cache.put(env.id, MANAGEMENT_CLUSTER_ID, content)

        logger.info("management_kubeconfig_downloaded", environment_id=env.id, path=str(path))
        return path

    def _read_secret_kubeconfig(self, cluster_id: str) -> bytes:
        secret_name = self.management.secret_name(cluster_id)
        try:
            secret = self.management_client.get_secret(secret_name, self.management.namespace)
        except NotFoundError as e:
            raise ClusterNotFoundError(
                f"Cluster {cluster_id} not found in environment {self.environment_id}"
            ) from e

        encoded = (secret.data or {}).get(self.management.secret_data_key)
        if not encoded:
            logger.error(
                "kubeconfig_key_missing",
                environment_id=self.environment_id,
                cluster_id=cluster_id,
                secret=secret_name,
                key=self.management.secret_data_key,
            )
            raise InconsistentError(
                f"Secret {secret_name} has no '{self.management.secret_data_key}' kubeconfig data"
            )

        try:
            content = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InconsistentError(f"Secret {secret_name} holds undecodable data") from e

        return require_kubeconfig_content(content, self.environment_id, cluster_id)

    def register_cluster(self, cluster_id: str, kubeconfig_content: str | bytes) -> Path:
        """Store a workload cluster kubeconfig as a Secret and mirror it locally.

        Args:
            cluster_id: New cluster identifier
            kubeconfig_content: Kubeconfig text or bytes

        Returns:
            Path of the cached kubeconfig

        Raises:
            ProtectedError: If the management cluster id is used
            InvalidIdentifierError: If the cluster id cannot name a cache file
            AlreadyExistsError: If the backing Secret already exists
            InconsistentError: If the kubeconfig is empty
        """
        logger.info(
            "registering_cluster", environment_id=self.environment_id, cluster_id=cluster_id
        )

        if cluster_id == MANAGEMENT_CLUSTER_ID:
            raise ProtectedError(f"Cannot register management cluster ({MANAGEMENT_CLUSTER_ID})")
        # Rejects ids that cannot become a cache filename before touching the cluster
        self.cache.path_for(self.environment_id, cluster_id)

        content = (
            kubeconfig_content.encode()
            if isinstance(kubeconfig_content, str)
            else kubeconfig_content
        )
        require_kubeconfig_content(content, self.environment_id, cluster_id)

        secret_name = self.management.secret_name(cluster_id)
        namespace = self.management.namespace
        if self.management_client.secret_exists(secret_name, namespace):
            logger.error(
                "cluster_already_exists",
                environment_id=self.environment_id,
                cluster_id=cluster_id,
            )
            raise AlreadyExistsError(
                f"Cluster {cluster_id} already exists in environment {self.environment_id}"
            )

        secret = V1Secret(
            metadata=V1ObjectMeta(
                name=secret_name,
                namespace=namespace,
                labels={self.management.secret_label_key: cluster_id},
            ),
            type=self.management.secret_type,
            data={self.management.secret_data_key: base64.b64encode(content).decode("ascii")},
        )
        self.management_client.create_secret(namespace, secret)

        path = self.cache.put(self.environment_id, cluster_id, content)

        logger.info(
            "cluster_registered", environment_id=self.environment_id, cluster_id=cluster_id
        )
        return path

    def deregister_cluster(self, cluster_id: str) -> None:
        """Delete a workload cluster's Secret and its cached kubeconfig.

        Raises:
            ProtectedError: If the management cluster id is used
            InvalidIdentifierError: If the cluster id cannot name a cache file
            ClusterNotFoundError: If the backing Secret does not exist
        """
        logger.info(
            "deregistering_cluster", environment_id=self.environment_id, cluster_id=cluster_id
        )

        if cluster_id == MANAGEMENT_CLUSTER_ID:
            raise ProtectedError(f"Cannot delete management cluster ({MANAGEMENT_CLUSTER_ID})")
        self.cache.path_for(self.environment_id, cluster_id)

        secret_name = self.management.secret_name(cluster_id)
        try:
            self.management_client.delete_secret(secret_name, self.management.namespace)
        except NotFoundError as e:
            raise ClusterNotFoundError(
                f"Cluster {cluster_id} not found in environment {self.environment_id}"
            ) from e

        try:
            self.cache.delete(self.environment_id, cluster_id)
        except OSError as e:
            logger.error(
                "credential_cleanup_failed",
                environment_id=self.environment_id,
                cluster_id=cluster_id,
                error=str(e),
            )

        logger.info(
            "cluster_deregistered", environment_id=self.environment_id, cluster_id=cluster_id
        )

    def list_cluster_nodes(self, cluster_id: str) -> list[NodeInfo]:
        """List node names and internal IPs of a cluster.

        Nodes without an InternalIP address are skipped.
        """
        kubeconfig_path = self.resolve_kubeconfig(cluster_id)
        cluster_client = self.client_factory(str(kubeconfig_path))

        nodes = []
        for node in cluster_client.get_nodes():
            addresses = (node.status.addresses if node.status else None) or []
            internal_ip = next(
                (addr.address for addr in addresses if addr.type == "InternalIP"), None
            )
            if internal_ip:
                nodes.append(NodeInfo(name=node.metadata.name, internal_ip=internal_ip))

        logger.info(
            "cluster_nodes_listed",
            environment_id=self.environment_id,
            cluster_id=cluster_id,
            count=len(nodes),
        )
        return nodes
