"""Kubernetes client scoped to a single kubeconfig file."""

from typing import Any

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.client.models import V1Node, V1Secret

from devctl.core.exceptions import AlreadyExistsError, KubernetesError, NotFoundError
from devctl.utils.logging import get_logger

logger = get_logger(__name__)


class ManagementClusterClient:
    """Typed and dynamic Kubernetes API access for one kubeconfig.

    Unlike ``config.load_kube_config`` this never touches the process-wide
    default configuration, so clients for several clusters can coexist.
    """

    def __init__(self, kubeconfig_path: str, context: str | None = None):
        """Initialize Kubernetes client.

        Args:
            kubeconfig_path: Path to kubeconfig file
            context: Kubernetes context to use (optional)
        """
        self.kubeconfig_path = kubeconfig_path
        try:
            api_client = config.new_client_from_config(
                config_file=kubeconfig_path, context=context
            )

            self.core_v1 = client.CoreV1Api(api_client)
            self.custom_objects = client.CustomObjectsApi(api_client)

            logger.debug("k8s_client_initialized", kubeconfig=kubeconfig_path, context=context)

        except Exception as e:
            logger.error(
                "k8s_client_initialization_failed", kubeconfig=kubeconfig_path, error=str(e)
            )
            raise KubernetesError(
                f"Failed to initialize Kubernetes client from {kubeconfig_path}: {e}"
            ) from e

    def list_custom_objects(
        self, group: str, version: str, namespace: str, plural: str
    ) -> list[dict[str, Any]]:
        """List namespaced custom resources as plain dictionaries.

        Raises:
            KubernetesError: If the resources cannot be listed
        """
        try:
            logger.debug(
                "listing_custom_objects",
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
            )
            response = self.custom_objects.list_namespaced_custom_object(
                group=group, version=version, namespace=namespace, plural=plural
            )
            items = response.get("items") or []

            logger.info("custom_objects_retrieved", plural=plural, count=len(items))
            return items

        except ApiException as e:
            logger.error(
                "list_custom_objects_failed",
                plural=plural,
                namespace=namespace,
                status=e.status,
                reason=e.reason,
            )
            raise KubernetesError(f"Failed to list {plural} in {namespace}: {e.reason}") from e

    def list_secrets(self, namespace: str, label_selector: str | None = None) -> list[V1Secret]:
        """List Secrets in a namespace.

        Raises:
            KubernetesError: If the Secrets cannot be listed
        """
        try:
            logger.debug("listing_secrets", namespace=namespace, selector=label_selector)
            response = self.core_v1.list_namespaced_secret(
                namespace=namespace, label_selector=label_selector
            )
            secrets = response.items

            logger.info("secrets_retrieved", namespace=namespace, count=len(secrets))
            return secrets

        except ApiException as e:
            logger.error(
                "list_secrets_failed", namespace=namespace, status=e.status, reason=e.reason
            )
            raise KubernetesError(f"Failed to list secrets in {namespace}: {e.reason}") from e

    def get_secret(self, name: str, namespace: str) -> V1Secret:
        """Read a Secret.

        Raises:
            NotFoundError: If the Secret does not exist
            KubernetesError: If the read fails for another reason
        """
        try:
            logger.debug("getting_secret", name=name, namespace=namespace)
            return self.core_v1.read_namespaced_secret(name=name, namespace=namespace)

        except ApiException as e:
            if e.status == 404:
                logger.warning("secret_not_found", name=name, namespace=namespace)
                raise NotFoundError(f"Secret {name} not found in {namespace}") from e

            logger.error(
                "get_secret_failed", name=name, namespace=namespace, status=e.status
            )
            raise KubernetesError(f"Failed to get secret {name}: {e.reason}") from e

    def secret_exists(self, name: str, namespace: str) -> bool:
        """Check whether a Secret exists."""
        try:
            self.get_secret(name, namespace)
        except NotFoundError:
            return False
        return True

    def create_secret(self, namespace: str, secret: V1Secret) -> V1Secret:
        """Create a Secret.

        Raises:
            AlreadyExistsError: If a Secret with the same name exists
            KubernetesError: If creation fails for another reason
        """
        name = secret.metadata.name if secret.metadata else None
        try:
            logger.debug("creating_secret", name=name, namespace=namespace)
            created = self.core_v1.create_namespaced_secret(namespace=namespace, body=secret)

            logger.info("secret_created", name=name, namespace=namespace)
            return created

        except ApiException as e:
            if e.status == 409:
                logger.warning("secret_already_exists", name=name, namespace=namespace)
                raise AlreadyExistsError(f"Secret {name} already exists in {namespace}") from e

            logger.error(
                "create_secret_failed", name=name, namespace=namespace, status=e.status
            )
            raise KubernetesError(f"Failed to create secret {name}: {e.reason}") from e

    def delete_secret(self, name: str, namespace: str) -> None:
        """Delete a Secret.

        Raises:
            NotFoundError: If the Secret does not exist
            KubernetesError: If deletion fails for another reason
        """
        try:
            logger.debug("deleting_secret", name=name, namespace=namespace)
            self.core_v1.delete_namespaced_secret(name=name, namespace=namespace)

            logger.info("secret_deleted", name=name, namespace=namespace)

        except ApiException as e:
            if e.status == 404:
                logger.warning("secret_not_found", name=name, namespace=namespace)
                raise NotFoundError(f"Secret {name} not found in {namespace}") from e

            logger.error(
                "delete_secret_failed", name=name, namespace=namespace, status=e.status
            )
            raise KubernetesError(f"Failed to delete secret {name}: {e.reason}") from e

    def get_nodes(self) -> list[V1Node]:
        """Get all nodes in the cluster.

        Raises:
            KubernetesError: If nodes cannot be retrieved
        """
        try:
            logger.debug("getting_nodes")
            response = self.core_v1.list_node()
            nodes = response.items

            logger.info("nodes_retrieved", count=len(nodes))
            return nodes

        except ApiException as e:
            logger.error("get_nodes_failed", status=e.status, reason=e.reason)
            raise KubernetesError(f"Failed to get nodes: {e.reason}") from e
