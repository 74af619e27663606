"""Stack lifecycle commands: up, down, status, logs, login, clean, generate-key."""

from __future__ import annotations

from dataclasses import asdict

import typer

from dev_stack_manager.cli.commands.base import (
    CLI_ERRORS,
    ForceOption,
    OutputOption,
    console,
    handle_error,
    load_config,
    print_warnings,
)
from dev_stack_manager.cli.output import (
    OutputFormat,
    Table,
    render_document,
    render_records,
    styled_state,
)
from dev_stack_manager.core.config.env_file import generate_encryption_key
from dev_stack_manager.integrations.docker.client import DockerClient
from dev_stack_manager.services.stack_manager import ServiceEndpoint, StackManager

CONTAINER_COLUMNS = [
    ("name", "Name"),
    ("state", "State"),
    ("status", "Status"),
    ("ports", "Ports"),
]


def _manager(ctx: typer.Context) -> StackManager:
    config = load_config(ctx)
    try:
        return StackManager(config, DockerClient(config.project_dir))
    except CLI_ERRORS as e:
        handle_error(e)


def _print_endpoints(endpoints: list[ServiceEndpoint]) -> None:
    table = Table(title="URLs", show_header=True)
    table.add_column("Service", style="cyan", no_wrap=True)
    table.add_column("URL")
    table.add_column("Access", style="dim")
    for endpoint in endpoints:
        table.add_row(endpoint.name, endpoint.url, endpoint.credentials)
    console.print(table)


def up(ctx: typer.Context) -> None:
    """Start all enabled services."""
    manager = _manager(ctx)
    try:
        manager.up()
        status = manager.status()
    except CLI_ERRORS as e:
        handle_error(e)
    _print_endpoints(status.endpoints)


def down(ctx: typer.Context) -> None:
    """Stop all enabled services."""
    manager = _manager(ctx)
    try:
        manager.down()
    except CLI_ERRORS as e:
        handle_error(e)
    console.print("[green]Services stopped[/green]")


def status(ctx: typer.Context, output: OutputOption = OutputFormat.TABLE) -> None:
    """Show container status and service URLs.

    Examples:
        devstack status
        devstack status --output json
    """
    manager = _manager(ctx)
    try:
        stack = manager.status()
    except CLI_ERRORS as e:
        handle_error(e)

    containers = [c.model_dump() for c in stack.containers]
    if output != OutputFormat.TABLE:
        document = {
            "containers": containers,
            "endpoints": [asdict(endpoint) for endpoint in stack.endpoints],
        }
        render_document(console, document, output)
        return

    if containers:
        rows = [{**row, "state": styled_state(row["state"])} for row in containers]
        render_records(console, rows, CONTAINER_COLUMNS, title="Services")
    else:
        console.print("[yellow]No containers found.[/yellow] Start them with: devstack up")
    _print_endpoints(stack.endpoints)


def logs(
    ctx: typer.Context,
    service: str | None = typer.Argument(None, help="Service to show logs for."),
    follow: bool = typer.Option(True, "--follow/--no-follow", help="Follow log output."),
) -> None:
    """Show service logs (all services, or one by name)."""
    manager = _manager(ctx)
    code = manager.logs(service, follow=follow)
    if code != 0:
        raise typer.Exit(code)


def login(ctx: typer.Context) -> None:
    """Log in to the AWS ECR registry."""
    manager = _manager(ctx)
    try:
        manager.login()
    except CLI_ERRORS as e:
        handle_error(e)
    console.print("[green]ECR login successful[/green]")


def clean(ctx: typer.Context, force: ForceOption = False) -> None:
    """Stop services and remove all data (destructive)."""
    if not force:
        console.print("[yellow]WARNING:[/yellow] This will delete all container data.")
        if not typer.confirm("Continue?", default=False):
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Abort()

    manager = _manager(ctx)
    try:
        result = manager.clean()
    except CLI_ERRORS as e:
        handle_error(e)

    console.print("[green]Cleanup complete[/green]")
    for volume in result.volumes_removed:
        console.print(f"  Removed volume {volume}")
    if result.keys_file_removed:
        console.print("  Removed OpenBao keys file")
    if result.env_lines_removed:
        console.print(f"  Removed {result.env_lines_removed} vault lines from .env")
    print_warnings(result.warnings)


def generate_key() -> None:
    """Print a new 64-character encryption key."""
    console.print(generate_encryption_key(), highlight=False)
