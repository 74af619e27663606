"""Shared options, configuration loading and error handling for CLI commands."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.console import Console

from dev_stack_manager.cli.output import OutputFormat
from dev_stack_manager.core.config.models import StackConfig
from dev_stack_manager.core.exceptions import ServiceUnavailableError, StackError
from dev_stack_manager.integrations.datastore.mongo_shell import DatastoreError
from dev_stack_manager.integrations.docker.exceptions import (
    DockerBinaryNotFoundError,
    DockerError,
)
from dev_stack_manager.integrations.openbao.exceptions import (
    OpenBaoConfigError,
    OpenBaoError,
    OpenBaoSealedError,
)
from dev_stack_manager.integrations.platform.exceptions import (
    PlatformAPIError,
    PlatformAuthError,
    PlatformConnectionError,
)

# Shared console instance for all commands
console = Console()

# Every error a command turns into exit code 1
CLI_ERRORS = (StackError, PlatformAPIError, OpenBaoError, DockerError, DatastoreError)


@dataclass
class CliState:
    """Options from the root callback, stored on ``ctx.obj``."""

    project_dir: Path | None = None


# =============================================================================
# Common Typer Option Annotations
# =============================================================================

OutputOption = Annotated[
    OutputFormat,
    typer.Option(
        "--output",
        "-o",
        help="Output format: table, json, or yaml",
        case_sensitive=False,
    ),
]

ForceOption = Annotated[
    bool,
    typer.Option(
        "--force",
        "-f",
        help="Skip confirmation prompts",
    ),
]


def load_config(ctx: typer.Context) -> StackConfig:
    """Load the stack configuration for the selected project directory."""
    state = ctx.obj if isinstance(ctx.obj, CliState) else CliState()
    try:
        return StackConfig.load(state.project_dir)
    except StackError as e:
        handle_error(e)


def print_warnings(warnings: list[str]) -> None:
    """List warnings collected during a run."""
    if not warnings:
        return
    console.print("\n[yellow]Completed with warnings:[/yellow]")
    for warning in warnings:
        console.print(f"  - {warning}")


# =============================================================================
# Error Handling
# =============================================================================


def handle_error(error: Exception) -> NoReturn:
    """Print a user-facing error and exit with status 1.

    Raises:
        typer.Exit: Always exits with code 1.
    """
    if isinstance(error, ServiceUnavailableError):
        console.print(f"[red]Error:[/red] {error.message}")
        console.print(f"  {error.details}")
        console.print("\n[dim]Hint: Check the container with: devstack logs[/dim]")

    elif isinstance(error, PlatformConnectionError):
        console.print("[red]Error:[/red] Cannot connect to the platform")
        console.print(f"  {error.message}")
        if error.original_error:
            console.print(f"  Cause: {error.original_error}")

    elif isinstance(error, PlatformAuthError):
        console.print("[red]Error:[/red] Platform authentication failed")
        console.print(f"  {error.message}")
        console.print("\n[dim]Hint: Check PLATFORM_USER and PLATFORM_PASSWORD in .env[/dim]")

    elif isinstance(error, OpenBaoConfigError):
        console.print(f"[red]Error:[/red] {error.message}")
        console.print("\n[dim]Hint: Reset OpenBao with: devstack clean[/dim]")

    elif isinstance(error, OpenBaoSealedError):
        console.print(f"[red]Error:[/red] {error.message}")

    elif isinstance(error, DockerBinaryNotFoundError):
        console.print(f"[red]Error:[/red] {error.message}")

    elif isinstance(error, DockerError):
        console.print(f"[red]Error:[/red] {error.message}")
        if error.command:
            console.print(f"  Command: {' '.join(error.command)}")

    elif isinstance(error, StackError):
        console.print(f"[red]Error:[/red] {error.message}")
        if error.details:
            console.print(f"  {error.details}")

    elif isinstance(error, DatastoreError):
        console.print(f"[red]Error:[/red] {error.message}")
        if error.output:
            console.print(f"  Output: {error.output.strip()}")

    else:
        console.print(f"[red]Error:[/red] {error}")

    raise typer.Exit(1)
