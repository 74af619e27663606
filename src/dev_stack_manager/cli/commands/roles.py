"""Role sync command."""

from __future__ import annotations

import typer

from dev_stack_manager.cli.commands.base import CLI_ERRORS, console, handle_error, load_config
from dev_stack_manager.cli.output import Table
from dev_stack_manager.integrations.datastore.mongo_shell import MongoShellClient
from dev_stack_manager.integrations.docker.client import DockerClient
from dev_stack_manager.services.role_sync import RoleSynchronizer

app = typer.Typer(help="Manage role assignments.", no_args_is_help=True)


@app.command("sync")
def sync(ctx: typer.Context) -> None:
    """Give admin_group (and the LDAP admin) every role on the platform.

    Run after installing adapters, which register new roles.

    Examples:
        devstack roles sync
    """
    config = load_config(ctx)
    try:
        datastore = MongoShellClient(DockerClient(config.project_dir))
        if not datastore.is_available():
            console.print("[yellow]MongoDB container not running, skipping role sync[/yellow]")
            return
        results = RoleSynchronizer(datastore).sync_admins(config)
    except CLI_ERRORS as e:
        handle_error(e)

    table = Table(title="Role Sync")
    table.add_column("Target", style="cyan", no_wrap=True)
    table.add_column("Roles")
    table.add_column("Status")
    for result in results:
        status = "[green]synced[/green]" if result.ok else "[yellow]not found[/yellow]"
        table.add_row(result.target, str(result.role_count), status)
    console.print(table)
