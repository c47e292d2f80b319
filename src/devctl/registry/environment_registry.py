"""Environment registry backed by a YAML document."""

import os
from pathlib import Path

from devctl.cache.credential_cache import CredentialCache, require_kubeconfig_content
from devctl.core.config import DevctlConfig
from devctl.core.exceptions import (
    AlreadyExistsError,
    EnvironmentNotFoundError,
    ProtectedError,
)
from devctl.core.models import (
    DEFAULT_ENVIRONMENT_ID,
    MANAGEMENT_CLUSTER_ID,
    Environment,
    now,
)
from devctl.interfaces.bootstrap_client import RemoteBootstrapClient
from devctl.registry.document_store import RegistryDocumentStore
from devctl.utils.logging import get_logger

logger = get_logger(__name__)

PLACEHOLDER = "--"


def find_ambient_kubeconfig() -> Path | None:
    """Locate the locally configured kubeconfig.

    Uses the first entry of ``$KUBECONFIG`` when set, otherwise
    ``~/.kube/config``. Only existing files count.
    """
    env_value = os.environ.get("KUBECONFIG", "")
    candidates = [p for p in env_value.split(os.pathsep) if p]
    candidate = Path(candidates[0]) if candidates else Path.home() / ".kube" / "config"
    candidate = candidate.expanduser()
    return candidate if candidate.is_file() else None


class EnvironmentRegistry:
    """Ordered collection of environments persisted as one document.

    The in-memory list is only replaced after the document has been saved,
    so a failed save leaves both the file and this object unchanged.
    """

    def __init__(
        self,
        store: RegistryDocumentStore,
        cache: CredentialCache,
        bootstrap_client: RemoteBootstrapClient,
        config: DevctlConfig | None = None,
    ):
        """Initialize environment registry.

        Args:
            store: Registry document store
            cache: Local credential cache
            bootstrap_client: Client used to test hosts and fetch kubeconfigs
            config: devctl configuration (defaults if omitted)
        """
        self.store = store
        self.cache = cache
        self.bootstrap_client = bootstrap_client
        self.config = config or DevctlConfig()
        self._environments: list[Environment] = store.load()
        self._default_checked = False

        logger.debug("environment_registry_initialized", count=len(self._environments))

    @classmethod
    def from_config(
        cls, config: DevctlConfig, bootstrap_client: RemoteBootstrapClient
    ) -> "EnvironmentRegistry":
        """Build a registry using the paths from configuration."""
        store = RegistryDocumentStore(config.paths.registry_path, config.paths.backups_path)
        cache = CredentialCache(config.paths.cache_path)
        return cls(store, cache, bootstrap_client, config)

    def _index_of(self, environment_id: str) -> int | None:
        for i, env in enumerate(self._environments):
            if env.id == environment_id:
                return i
        return None

    def _commit(self, environments: list[Environment]) -> None:
        self.store.save(environments)
        self._environments = environments

    def reload(self) -> None:
        """Re-read the registry document, discarding the in-memory view."""
        self._environments = self.store.load()

    def list_environments(self) -> list[Environment]:
        """List copies of the environments in insertion order."""
        return [env.model_copy() for env in self._environments]

    def get_environment(self, environment_id: str) -> Environment:
        """Get a copy of an environment by ID.

        Raises:
            EnvironmentNotFoundError: If the environment is not registered
        """
        index = self._index_of(environment_id)
        if index is None:
            logger.warning("environment_not_found", environment_id=environment_id)
            raise EnvironmentNotFoundError(f"Environment not found: {environment_id}")
        return self._environments[index].model_copy()

    def add_environment(self, candidate: Environment) -> Environment:
        """Register a new environment.

        The host connection is tested and its management kubeconfig cached before
        anything is persisted.

        Args:
            candidate: Environment to add (timestamps and kubeconfig path are set here)

        Returns:
            The stored Environment

        Raises:
            ProtectedError: If the reserved default id is used
            InvalidIdentifierError: If the id cannot name a cache directory
            AlreadyExistsError: If the id is already registered
            UnreachableError: If the connection test or kubeconfig download fails
            InconsistentError: If the downloaded kubeconfig is empty
        """
        environment_id = candidate.id
        logger.info("adding_environment", environment_id=environment_id, host=candidate.host)

        if environment_id == DEFAULT_ENVIRONMENT_ID:
            raise ProtectedError(
                f"Cannot add environment {environment_id}: id is reserved for the local cluster"
            )
        if self._index_of(environment_id) is not None:
            logger.error("environment_already_exists", environment_id=environment_id)
            raise AlreadyExistsError(f"Environment with ID {environment_id} already exists")
        self.cache.environment_dir(environment_id)

        self.bootstrap_client.test_connection(
            candidate.host, candidate.ssh_user, candidate.ssh_password
        )

        content = self.bootstrap_client.fetch_file(
            candidate.host,
            candidate.ssh_user,
            candidate.ssh_password,
            self.config.ssh.remote_kubeconfig_path,
        )
        require_kubeconfig_content(content, environment_id, MANAGEMENT_CLUSTER_ID)
        kubeconfig_path = self.cache.put(environment_id, MANAGEMENT_CLUSTER_ID, content)

        timestamp = now()
        stored = candidate.model_copy(
            update={
                "management_kubeconfig_path": str(kubeconfig_path),
                "created_at": timestamp,
                "updated_at": timestamp,
            }
        )

        try:
            self._commit([*self._environments, stored])
        except OSError:
            self._discard_cache(environment_id)
            raise

        logger.info("environment_added", environment_id=environment_id)
        return stored.model_copy()

    def update_environment(self, candidate: Environment) -> Environment:
        """Replace an environment in place.

        Connectivity is not re-tested and the cached kubeconfig is not
        refreshed; delete and re-add to force a refresh.

        Raises:
            ProtectedError: If the reserved default environment is targeted
            EnvironmentNotFoundError: If the environment is not registered
        """
        environment_id = candidate.id
        logger.info("updating_environment", environment_id=environment_id)

        if environment_id == DEFAULT_ENVIRONMENT_ID:
            raise ProtectedError(f"Cannot update environment {environment_id}: it is protected")

        index = self._index_of(environment_id)
        if index is None:
            logger.error("environment_not_found", environment_id=environment_id)
            raise EnvironmentNotFoundError(f"Environment with ID {environment_id} not found")

        current = self._environments[index]
        stored = candidate.model_copy(
            update={
                "created_at": current.created_at,
                "management_kubeconfig_path": candidate.management_kubeconfig_path
                or current.management_kubeconfig_path,
                "updated_at": now(),
            }
        )

        environments = list(self._environments)
        environments[index] = stored
        self._commit(environments)

        logger.info("environment_updated", environment_id=environment_id)
        return stored.model_copy()

    def delete_environment(self, environment_id: str) -> None:
        """Delete an environment and every cached kubeconfig under it.

        Cache removal runs first; failing to remove it is logged and does
        not stop the registry update.

        Raises:
            ProtectedError: If the reserved default environment is targeted
            EnvironmentNotFoundError: If the environment is not registered
        """
        logger.info("deleting_environment", environment_id=environment_id)

        if environment_id == DEFAULT_ENVIRONMENT_ID:
            raise ProtectedError(f"Cannot delete environment {environment_id}: it is protected")

        index = self._index_of(environment_id)
        if index is None:
            logger.error("environment_not_found", environment_id=environment_id)
            raise EnvironmentNotFoundError(f"Environment with ID {environment_id} not found")

        self._discard_cache(environment_id)

        environments = [env for env in self._environments if env.id != environment_id]
        self._commit(environments)

        logger.info("environment_deleted", environment_id=environment_id)

    def _discard_cache(self, environment_id: str) -> None:
        try:
            self.cache.delete_all(environment_id)
        except OSError as e:
            logger.error(
                "credential_cleanup_failed", environment_id=environment_id, error=str(e)
            )

    def ensure_local_default_bootstrapped(self) -> Environment | None:
        """Register the locally configured cluster as the default environment.

        Runs once per registry instance and never replaces an existing
        default entry.

        Returns:
            The default Environment if one exists afterwards, else None
        """
        index = self._index_of(DEFAULT_ENVIRONMENT_ID)
        if self._default_checked or index is not None:
            self._default_checked = True
            return self._environments[index].model_copy() if index is not None else None
        self._default_checked = True

        kubeconfig_path = find_ambient_kubeconfig()
        if kubeconfig_path is None:
            logger.info("ambient_kubeconfig_absent")
            return None

        timestamp = now()
        default_env = Environment(
            id=DEFAULT_ENVIRONMENT_ID,
            display_name="Default",
            created_at=timestamp,
            updated_at=timestamp,
            host=PLACEHOLDER,
            ssh_user=PLACEHOLDER,
            ssh_password=PLACEHOLDER,
            management_kubeconfig_path=str(kubeconfig_path),
        )

        environments = [default_env, *self._environments]
        try:
            self.store.save(environments)
        except OSError as e:
            logger.error("default_environment_save_failed", error=str(e))
        self._environments = environments

        logger.info("default_environment_added", kubeconfig=str(kubeconfig_path))
        return default_env.model_copy()
