"""Password-authenticated SSH client used to bootstrap environments."""

import shlex
import time
from collections.abc import Iterator
from contextlib import contextmanager

import paramiko

from devctl.core.exceptions import UnreachableError
from devctl.interfaces.bootstrap_client import RemoteBootstrapClient
from devctl.utils.logging import get_logger

logger = get_logger(__name__)

CONNECTION_MARKER = "DEVCTL_CONNECTION_OK"
READ_CHUNK_SIZE = 32768
POLL_INTERVAL = 0.05


class SSHBootstrapClient(RemoteBootstrapClient):
    """RemoteBootstrapClient over paramiko.

    Each call opens and closes its own connection; callers that need to
    cancel an in-flight operation sever it by closing the client process.
    """

    def __init__(self, port: int = 22, connect_timeout: float | None = 10.0):
        """Initialize SSH bootstrap client.

        Args:
            port: SSH port on the bastion hosts
            connect_timeout: TCP/banner/auth timeout in seconds (None for transport default)
        """
        self.port = port
        self.connect_timeout = connect_timeout

    @contextmanager
    def _connect(self, host: str, user: str, password: str) -> Iterator[paramiko.SSHClient]:
        client = paramiko.SSHClient()
        # Bastions are addressed by IP and rotate host keys on rebuild
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            logger.debug("ssh_connecting", host=host, user=user, port=self.port)
            client.connect(
                hostname=host,
                port=self.port,
                username=user,
                password=password,
                timeout=self.connect_timeout,
                banner_timeout=self.connect_timeout,
                auth_timeout=self.connect_timeout,
                look_for_keys=False,
                allow_agent=False,
            )
        except paramiko.AuthenticationException as e:
            client.close()
            logger.error("ssh_auth_failed", host=host, user=user)
            raise UnreachableError(f"Authentication failed for {user}@{host}") from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            logger.error("ssh_connect_failed", host=host, user=user, error=str(e))
            raise UnreachableError(f"Failed to connect to {user}@{host}: {e}") from e

        try:
            yield client
        finally:
            client.close()

    @staticmethod
    def _run(client: paramiko.SSHClient, command: str) -> tuple[int, bytes, bytes]:
        stdin, stdout, stderr = client.exec_command(command)
        stdin.close()
        channel = stdout.channel
        out = bytearray()
        err = bytearray()

        # Both streams share one channel window; drain them in turn until the command exits
        while not channel.exit_status_ready():
            idle = True
            if channel.recv_ready():
                out += channel.recv(READ_CHUNK_SIZE)
                idle = False
            if channel.recv_stderr_ready():
                err += channel.recv_stderr(READ_CHUNK_SIZE)
                idle = False
            if idle:
                time.sleep(POLL_INTERVAL)

        out += stdout.read()
        err += stderr.read()
        return channel.recv_exit_status(), bytes(out), bytes(err)

    def test_connection(self, host: str, user: str, password: str) -> None:
        """Verify reachability and credentials by running a trivial command.

        Raises:
            UnreachableError: If the connection or the command fails
        """
        logger.info("ssh_testing_connection", host=host, user=user)

        with self._connect(host, user, password) as client:
            try:
                exit_status, out, err = self._run(client, f"echo {CONNECTION_MARKER}")
            except (paramiko.SSHException, OSError) as e:
                logger.error("ssh_connection_test_failed", host=host, error=str(e))
                raise UnreachableError(f"Connection test to {host} failed: {e}") from e

        if exit_status != 0 or CONNECTION_MARKER.encode() not in out:
            logger.error(
                "ssh_connection_test_failed",
                host=host,
                exit_status=exit_status,
                stderr=err.decode(errors="replace"),
            )
            raise UnreachableError(f"Connection test to {host} failed (exit status {exit_status})")

        logger.info("ssh_connection_ok", host=host, user=user)

    def fetch_file(self, host: str, user: str, password: str, remote_path: str) -> bytes:
        """Read a remote file by streaming it through ``cat``.

        Raises:
            UnreachableError: If the connection fails or the file cannot be read
        """
        logger.info("ssh_fetching_file", host=host, remote_path=remote_path)

        with self._connect(host, user, password) as client:
            try:
                exit_status, out, err = self._run(client, f"cat {shlex.quote(remote_path)}")
            except (paramiko.SSHException, OSError) as e:
                logger.error("ssh_fetch_failed", host=host, remote_path=remote_path, error=str(e))
                raise UnreachableError(f"Failed to read {host}:{remote_path}: {e}") from e

        if exit_status != 0:
            message = err.decode(errors="replace").strip()
            logger.error(
                "ssh_fetch_failed",
                host=host,
                remote_path=remote_path,
                exit_status=exit_status,
                stderr=message,
            )
            raise UnreachableError(f"Failed to read {host}:{remote_path}: {message}")

        logger.info("ssh_file_fetched", host=host, remote_path=remote_path, size=len(out))
        return out
