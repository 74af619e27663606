"""Certificate generation command."""

from __future__ import annotations

import typer

from dev_stack_manager.cli.commands.base import CLI_ERRORS, console, handle_error, load_config
from dev_stack_manager.cli.output import Table
from dev_stack_manager.services.certificates import CertificateManager


def certs(
    ctx: typer.Context,
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Regenerate certificates even if valid ones exist.",
    ),
) -> None:
    """Generate the platform and Gateway5 certificates."""
    config = load_config(ctx)
    try:
        results = CertificateManager(config).ensure_all(force=force)
    except CLI_ERRORS as e:
        handle_error(e)

    table = Table(title="Certificates")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Certificate")
    table.add_column("Status")
    for result in results:
        status = "[green]generated[/green]" if result.generated else "exists"
        table.add_row(result.profile.name, str(result.profile.cert_file), status)
    console.print(table)
