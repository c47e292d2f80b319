"""Main CLI entry point for devctl."""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.table import Table

from devctl import __version__
from devctl.core.exceptions import DevctlError, InvalidIdentifierError
from devctl.core.models import (
    ClusterReadiness,
    Environment,
    format_timestamp,
    is_path_safe_identifier,
)
from devctl.utils.logging import get_logger, log_error

if TYPE_CHECKING:
    from devctl.cache.credential_cache import CredentialCache
    from devctl.clients.ssh_client import SSHBootstrapClient
    from devctl.core.config import DevctlConfig
    from devctl.directory.cluster_directory import ClusterDirectory
    from devctl.registry.environment_registry import EnvironmentRegistry

console = Console()
logger = get_logger(__name__)

READINESS_STYLE = {
    ClusterReadiness.READY: "green",
    ClusterReadiness.NOT_READY: "red",
    ClusterReadiness.UNKNOWN: "yellow",
}


class DevctlContext:
    """Shared context for CLI commands with lazy initialization."""

    def __init__(self, settings_path: str, log_level: str | None = None):
        """Initialize context with settings path.

        Args:
            settings_path: Path to settings file
            log_level: Overrides the configured log level when given
        """
        self.settings_path = settings_path
        self.log_level = log_level
        self._config: DevctlConfig | None = None
        self._bootstrap_client: SSHBootstrapClient | None = None
        self._registry: EnvironmentRegistry | None = None
        self._directories: dict[str, ClusterDirectory] = {}

    @property
    def config(self) -> DevctlConfig:
        """Get or create config lazily; logging is configured on first load."""
        if self._config is None:
            from devctl.core.config import DevctlConfig
            from devctl.utils.logging import setup_logging

            self._config = DevctlConfig.from_file(self.settings_path)
            setup_logging(
                level=self.log_level or self._config.logging.level,
                format=self._config.logging.format,
                output=self._config.log_destination(),
            )
        return self._config

    @property
    def bootstrap_client(self) -> SSHBootstrapClient:
        """Get or create SSH bootstrap client lazily."""
        if self._bootstrap_client is None:
            from devctl.clients.ssh_client import SSHBootstrapClient

            self._bootstrap_client = SSHBootstrapClient(
                port=self.config.ssh.port,
                connect_timeout=self.config.ssh.connect_timeout,
            )
        return self._bootstrap_client

    @property
    def registry(self) -> EnvironmentRegistry:
        """Get or create environment registry lazily, adding the local default."""
        if self._registry is None:
            from devctl.registry.environment_registry import EnvironmentRegistry

            self._registry = EnvironmentRegistry.from_config(self.config, self.bootstrap_client)
            self._registry.ensure_local_default_bootstrapped()
        return self._registry

    @property
    def cache(self) -> CredentialCache:
        return self.registry.cache

    def directory(self, environment_id: str) -> ClusterDirectory:
        """Get or create the cluster directory scoped to one environment."""
        if environment_id not in self._directories:
            from devctl.directory.cluster_directory import ClusterDirectory

            self._directories[environment_id] = ClusterDirectory(
                environment_id=environment_id,
                registry=self.registry,
                cache=self.cache,
                bootstrap_client=self.bootstrap_client,
                config=self.config,
            )
        return self._directories[environment_id]


def _fail(error: Exception, operation: str) -> None:
    log_error(logger, error, operation=operation)
    console.print(f"[red]Error: {error}[/red]")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--settings",
    type=click.Path(dir_okay=False),
    default="~/.devctl/settings.yaml",
    help="Path to settings file (optional)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the configured log level",
)
@click.pass_context
def cli(ctx: click.Context, settings: str, log_level: str | None) -> None:
    """devctl - Cluster Credential Directory for bastion-fronted Kubernetes clusters."""
    ctx.obj = DevctlContext(settings_path=settings, log_level=log_level)


# ==============================================================================
# Environment commands
# ==============================================================================


@cli.group()
def env() -> None:
    """Manage registered environments."""


@env.command(name="list")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
@click.pass_context
def list_environments(ctx: click.Context, format: str) -> None:
    """List environments in registration order."""
    try:
        environments = ctx.obj.registry.list_environments()
    except DevctlError as e:
        _fail(e, "list_environments")

    if format == "json":
        data = [e.model_dump(mode="json", exclude={"ssh_password"}) for e in environments]
        click.echo(json.dumps(data, indent=2))
        return

    if not environments:
        console.print("[yellow]No environments registered[/yellow]")
        return

    table = Table(title=f"Environments ({len(environments)} total)")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Host", style="blue")
    table.add_column("User")
    table.add_column("Created", style="green")
    table.add_column("Updated", style="yellow")

    for environment in environments:
        table.add_row(
            environment.id,
            environment.display_name,
            environment.host,
            environment.ssh_user,
            format_timestamp(environment.created_at),
            format_timestamp(environment.updated_at),
        )

    console.print(table)


@env.command(name="show")
@click.argument("environment_id")
@click.pass_context
def show_environment(ctx: click.Context, environment_id: str) -> None:
    """Show one environment."""
    try:
        environment = ctx.obj.registry.get_environment(environment_id)
    except DevctlError as e:
        _fail(e, "show_environment")

    console.print(f"[bold]ID:[/bold] {environment.id}")
    console.print(f"[bold]Name:[/bold] {environment.display_name}")
    console.print(f"[bold]Host:[/bold] {environment.host}")
    console.print(f"[bold]User:[/bold] {environment.ssh_user}")
    console.print(f"[bold]Kubeconfig:[/bold] {environment.management_kubeconfig_path}")
    console.print(f"[bold]Created:[/bold] {format_timestamp(environment.created_at)}")
    console.print(f"[bold]Updated:[/bold] {format_timestamp(environment.updated_at)}")


@env.command(name="add")
@click.option("--id", "environment_id", required=True, help="Unique environment identifier")
@click.option("--name", default="", help="Display name")
@click.option("--host", required=True, help="Bastion host address")
@click.option("--user", default="root", show_default=True, help="SSH user")
@click.option("--password", prompt=True, hide_input=True, help="SSH password")
@click.pass_context
def add_environment(
    ctx: click.Context, environment_id: str, name: str, host: str, user: str, password: str
) -> None:
    """Register an environment after testing its bastion host connection."""
    if not is_path_safe_identifier(environment_id):
        _fail(
            InvalidIdentifierError(f"Invalid environment id: {environment_id!r}"),
            "add_environment",
        )

    candidate = Environment(
        id=environment_id,
        display_name=name or environment_id,
        host=host,
        ssh_user=user,
        ssh_password=password,
    )

    console.print(f"Testing connection to {user}@{host}...")
    try:
        stored = ctx.obj.registry.add_environment(candidate)
    except DevctlError as e:
        _fail(e, "add_environment")

    console.print(f"[green]✓ Environment {stored.id} added[/green]")
    console.print(f"  Management kubeconfig: {stored.management_kubeconfig_path}")


@env.command(name="update")
@click.argument("environment_id")
@click.option("--name", default=None, help="New display name")
@click.option("--host", default=None, help="New bastion host address")
@click.option("--user", default=None, help="New SSH user")
@click.option("--password", default=None, help="New SSH password")
@click.pass_context
def update_environment(
    ctx: click.Context,
    environment_id: str,
    name: str | None,
    host: str | None,
    user: str | None,
    password: str | None,
) -> None:
    """Update an environment in place (no reconnection)."""
    changes = {
        "display_name": name,
        "host": host,
        "ssh_user": user,
        "ssh_password": password,
    }
    changes = {key: value for key, value in changes.items() if value is not None}

    try:
        current = ctx.obj.registry.get_environment(environment_id)
        ctx.obj.registry.update_environment(current.model_copy(update=changes))
    except DevctlError as e:
        _fail(e, "update_environment")

    console.print(f"[green]✓ Environment {environment_id} updated[/green]")


@env.command(name="delete")
@click.argument("environment_id")
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
def delete_environment(ctx: click.Context, environment_id: str, yes: bool) -> None:
    """Delete an environment and its cached kubeconfigs."""
    if not yes:
        click.confirm(f"Are you sure you want to delete environment {environment_id}?", abort=True)

    try:
        ctx.obj.registry.delete_environment(environment_id)
    except DevctlError as e:
        _fail(e, "delete_environment")

    console.print(f"[green]✓ Environment {environment_id} deleted[/green]")


# ==============================================================================
# Cluster commands
# ==============================================================================


@cli.group()
def cluster() -> None:
    """Work with the clusters of an environment."""


@cluster.command(name="list")
@click.argument("environment_id")
@click.option("--search", default=None, help="Filter by display name (case-insensitive)")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
@click.pass_context
def list_clusters(
    ctx: click.Context, environment_id: str, search: str | None, format: str
) -> None:
    """List workload clusters registered in the management cluster."""
    try:
        clusters = ctx.obj.directory(environment_id).list_clusters()
    except DevctlError as e:
        _fail(e, "list_clusters")

    if search:
        clusters = [c for c in clusters if search.lower() in c.display_name.lower()]

    if format == "json":
        click.echo(json.dumps([c.model_dump(mode="json") for c in clusters], indent=2))
        return

    if not clusters:
        console.print("[yellow]No clusters found[/yellow]")
        return

    table = Table(title=f"Clusters - {environment_id} ({len(clusters)} total)")
    table.add_column("Cluster ID", style="cyan")
    table.add_column("Cluster Name", style="magenta")
    table.add_column("OS")
    table.add_column("Arch")
    table.add_column("Version", style="green")
    table.add_column("CRI")
    table.add_column("API Server", style="blue")
    table.add_column("Status", style="bold")

    for record in clusters:
        style = READINESS_STYLE[record.ready]
        table.add_row(
            record.id,
            record.display_name,
            record.os,
            record.arch,
            record.kubernetes_version,
            record.container_runtime,
            record.api_server_endpoint,
            f"[{style}]{record.ready.value}[/{style}]",
        )

    console.print(table)


@cluster.command(name="secrets")
@click.argument("environment_id")
@click.pass_context
def list_cluster_secrets(ctx: click.Context, environment_id: str) -> None:
    """List cluster ids with stored kubeconfigs (management cluster first)."""
    try:
        cluster_ids = ctx.obj.directory(environment_id).list_cluster_secrets()
    except DevctlError as e:
        _fail(e, "list_cluster_secrets")

    for cluster_id in cluster_ids:
        click.echo(cluster_id)


@cluster.command(name="kubeconfig")
@click.argument("environment_id")
@click.argument("cluster_id")
@click.pass_context
def resolve_kubeconfig(ctx: click.Context, environment_id: str, cluster_id: str) -> None:
    """Fetch a cluster's kubeconfig and print its local path."""
    try:
        path = ctx.obj.directory(environment_id).resolve_kubeconfig(cluster_id)
    except DevctlError as e:
        _fail(e, "resolve_kubeconfig")

    click.echo(str(path))


@cluster.command(name="register")
@click.argument("environment_id")
@click.argument("cluster_id")
@click.option(
    "--kubeconfig",
    "kubeconfig_file",
    type=click.File("rb"),
    required=True,
    help="Kubeconfig file to store ('-' for stdin)",
)
@click.pass_context
def register_cluster(
    ctx: click.Context, environment_id: str, cluster_id: str, kubeconfig_file
) -> None:
    """Store a workload cluster's kubeconfig in the management cluster."""
    content = kubeconfig_file.read()
    try:
        ctx.obj.directory(environment_id).register_cluster(cluster_id, content)
    except DevctlError as e:
        _fail(e, "register_cluster")

    console.print(f"[green]✓ Cluster {cluster_id} added to {environment_id}[/green]")


@cluster.command(name="deregister")
@click.argument("environment_id")
@click.argument("cluster_id")
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
def deregister_cluster(ctx: click.Context, environment_id: str, cluster_id: str, yes: bool) -> None:
    """Remove a workload cluster's kubeconfig Secret and local copy."""
    if not yes:
        click.confirm(f"Are you sure you want to delete cluster {cluster_id}?", abort=True)

    try:
        ctx.obj.directory(environment_id).deregister_cluster(cluster_id)
    except DevctlError as e:
        _fail(e, "deregister_cluster")

    console.print(f"[green]✓ Cluster {cluster_id} deleted from {environment_id}[/green]")


@cluster.command(name="nodes")
@click.argument("environment_id")
@click.argument("cluster_id")
@click.pass_context
def list_cluster_nodes(ctx: click.Context, environment_id: str, cluster_id: str) -> None:
    """List node names and internal IPs of a cluster."""
    try:
        nodes = ctx.obj.directory(environment_id).list_cluster_nodes(cluster_id)
    except DevctlError as e:
        _fail(e, "list_cluster_nodes")

    table = Table(title=f"Nodes - {cluster_id} ({len(nodes)} total)")
    table.add_column("Name", style="cyan")
    table.add_column("Internal IP", style="green")
    for node in nodes:
        table.add_row(node.name, node.internal_ip)

    console.print(table)


if __name__ == "__main__":
    cli()
