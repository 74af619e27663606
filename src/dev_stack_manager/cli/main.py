"""Main CLI entry point using Typer."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from dev_stack_manager import __version__
from dev_stack_manager.cli.commands import certs, configure, roles, setup, stack
from dev_stack_manager.cli.commands.base import CliState
from dev_stack_manager.logging.config import configure_logging

app = typer.Typer(
    name="devstack",
    help="Bootstrap and wire up the local automation platform dev stack.",
    add_completion=True,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"devstack version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output (same as --debug).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode.",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only show warnings and errors.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit console logs as JSON.",
    ),
    project_dir: Path | None = typer.Option(
        None,
        "--project-dir",
        "-C",
        help="Dev stack checkout containing .env and docker-compose.yml.",
        envvar="DEVSTACK_PROJECT_DIR",
        exists=True,
        file_okay=False,
        resolve_path=True,
    ),
) -> None:
    """Dev stack manager - set up, configure and operate the local stack."""
    configure_logging(quiet=quiet, debug=debug or verbose, json_output=json_logs)
    ctx.obj = CliState(project_dir=project_dir)


# Register subcommands
app.command()(setup.setup)
app.command()(certs.certs)
app.command()(stack.up)
app.command()(stack.down)
app.command()(stack.status)
app.command()(stack.logs)
app.command()(stack.login)
app.command()(stack.clean)
app.command("generate-key")(stack.generate_key)
app.add_typer(configure.app, name="configure")
app.add_typer(roles.app, name="roles")


if __name__ == "__main__":
    app()
