"""Filesystem-backed kubeconfig cache keyed by (environment, cluster)."""

import os
import shutil
from pathlib import Path

from devctl.core.exceptions import (
    CredentialNotCachedError,
    InconsistentError,
    InvalidIdentifierError,
)
from devctl.core.models import MANAGEMENT_CLUSTER_ID, is_path_safe_identifier
from devctl.utils.logging import get_logger

logger = get_logger(__name__)

MANAGEMENT_KUBECONFIG_FILENAME = "config"

_DIR_MODE = 0o700
_FILE_MODE = 0o600


def require_kubeconfig_content(
    content: bytes | None, environment_id: str, cluster_id: str
) -> bytes:
    """Reject empty kubeconfig payloads before they reach the cache.

    Raises:
        InconsistentError: If the payload is missing or blank
    """
    if not content or not content.strip():
        logger.error(
            "kubeconfig_payload_empty", environment_id=environment_id, cluster_id=cluster_id
        )
        raise InconsistentError(
            f"Kubeconfig for cluster {cluster_id} in environment {environment_id} is empty"
        )
    return content


class CredentialCache:
    """Directory-per-environment store of raw kubeconfig bytes.

    Layout::

        <root>/<environment_id>/config        management cluster (gaia)
        <root>/<environment_id>/<cluster_id>  workload clusters

    The cache is a materialization target, never the source of truth: every
    entry can be rebuilt from the remote host or the backing Secret.
    """

    def __init__(self, root: str | Path):
        """Initialize credential cache.

        Args:
            root: Cache root directory
        """
        self.root = Path(root).expanduser()
        logger.debug("credential_cache_initialized", root=str(self.root))

    @staticmethod
    def _check_component(value: str, kind: str) -> None:
        if not is_path_safe_identifier(value):
            logger.error("invalid_identifier", kind=kind, value=value)
            raise InvalidIdentifierError(f"Invalid {kind}: {value!r}")

    def environment_dir(self, environment_id: str) -> Path:
        """Directory holding all cached kubeconfigs of an environment."""
        self._check_component(environment_id, "environment id")
        return self.root / environment_id

    def path_for(self, environment_id: str, cluster_id: str) -> Path:
        """Get the cache file path for an environment/cluster pair.

        Args:
            environment_id: Environment identifier
            cluster_id: Cluster identifier ("gaia" for the management cluster)

        Returns:
            Path of the cache file (it may not exist)
        """
        self._check_component(cluster_id, "cluster id")
        filename = (
            MANAGEMENT_KUBECONFIG_FILENAME if cluster_id == MANAGEMENT_CLUSTER_ID else cluster_id
        )
        return self.environment_dir(environment_id) / filename

    def put(self, environment_id: str, cluster_id: str, content: bytes) -> Path:
        """Write kubeconfig bytes with owner-only permissions.

        Args:
            environment_id: Environment identifier
            cluster_id: Cluster identifier
            content: Raw kubeconfig bytes

        Returns:
            Path of the written file

        Raises:
            OSError: If the directory or file cannot be written
        """
        path = self.path_for(environment_id, cluster_id)
        path.parent.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)

        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _FILE_MODE)
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        # O_CREAT mode is ignored for pre-existing files
        os.chmod(path, _FILE_MODE)

        logger.debug(
            "credential_cached",
            environment_id=environment_id,
            cluster_id=cluster_id,
            path=str(path),
            size=len(content),
        )
        return path

    def read(self, environment_id: str, cluster_id: str) -> bytes:
        """Read cached kubeconfig bytes.

        Raises:
            CredentialNotCachedError: If nothing is cached for the pair
        """
        path = self.path_for(environment_id, cluster_id)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise CredentialNotCachedError(
                f"No cached kubeconfig for cluster {cluster_id} in environment {environment_id}"
            ) from e

    def exists(self, environment_id: str, cluster_id: str) -> bool:
        """Check whether a cache entry is present."""
        return self.path_for(environment_id, cluster_id).is_file()

    def delete(self, environment_id: str, cluster_id: str) -> None:
        """Remove one cache entry; an absent entry is not an error."""
        path = self.path_for(environment_id, cluster_id)
        path.unlink(missing_ok=True)
        logger.debug("credential_deleted", environment_id=environment_id, cluster_id=cluster_id)

    def delete_all(self, environment_id: str) -> None:
        """Remove every cache entry of an environment; absence is not an error."""
        env_dir = self.environment_dir(environment_id)
        if not env_dir.exists():
            logger.debug("credential_dir_absent", environment_id=environment_id)
            return

        shutil.rmtree(env_dir)
        logger.info("credential_dir_deleted", environment_id=environment_id, path=str(env_dir))
