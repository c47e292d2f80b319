"""Remote bootstrap client interface."""

import os
from abc import ABC, abstractmethod
from pathlib import Path


class RemoteBootstrapClient(ABC):
    """Abstract interface for fetching files from a bastion host.

    Implementations must raise UnreachableError when the host cannot be
    reached, authentication fails or the remote read fails.
    """

    @abstractmethod
    def test_connection(self, host: str, user: str, password: str) -> None:
        """Verify the host is reachable and the credentials are accepted.

        Args:
            host: Remote host address
            user: SSH user
            password: SSH password

        Raises:
            UnreachableError: If the host cannot be reached or rejects the credentials
        """

    @abstractmethod
    def fetch_file(self, host: str, user: str, password: str, remote_path: str) -> bytes:
        """Read a remote file.

        Args:
            host: Remote host address
            user: SSH user
            password: SSH password
            remote_path: Absolute path on the remote host

        Returns:
            Raw file content

        Raises:
            UnreachableError: If the connection or the read fails
        """

    def download_file(
        self,
        host: str,
        user: str,
        password: str,
        remote_path: str,
        local_path: str | Path,
    ) -> Path:
        """Copy a remote file to a local path with owner-only permissions.

        Returns:
            The local path written
        """
        content = self.fetch_file(host, user, password, remote_path)

        target = Path(local_path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        return target
