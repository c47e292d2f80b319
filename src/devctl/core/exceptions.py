"""Custom exceptions for devctl."""


class DevctlError(Exception):
    """Base exception for all devctl errors."""


class ConfigurationError(DevctlError):
    """Configuration or registry document is missing, unreadable or invalid."""


class NotFoundError(DevctlError):
    """Requested environment, cluster, secret or document does not exist."""


class EnvironmentNotFoundError(NotFoundError):
    """Environment not found in registry."""


class ClusterNotFoundError(NotFoundError):
    """Cluster credentials not found in the management cluster."""


class CredentialNotCachedError(NotFoundError):
    """No cached kubeconfig for the requested environment/cluster."""


class AlreadyExistsError(DevctlError):
    """Duplicate identifier on add or register."""


class ProtectedError(DevctlError):
    """Mutation attempted on the reserved default environment or gaia cluster."""


class UnreachableError(DevctlError):
    """Remote bootstrap host could not be reached or authenticated."""


class InconsistentError(NotFoundError):
    """Remote object exists but does not hold usable kubeconfig data.

    A NotFoundError because the kubeconfig itself was not found.
    """


class KubernetesError(DevctlError):
    """Kubernetes operation failed."""


class InvalidIdentifierError(DevctlError):
    """Environment or cluster id cannot be used as a cache path component."""
