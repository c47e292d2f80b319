"""Interface definitions for external collaborators."""

from devctl.interfaces.bootstrap_client import RemoteBootstrapClient

__all__ = [
    "RemoteBootstrapClient",
]
