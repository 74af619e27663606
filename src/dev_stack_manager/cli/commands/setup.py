"""First-time setup command."""

from __future__ import annotations

import typer
from rich.panel import Panel

from dev_stack_manager.cli.commands.base import (
    CLI_ERRORS,
    console,
    handle_error,
    load_config,
    print_warnings,
)
from dev_stack_manager.services.setup_manager import StackSetup
from dev_stack_manager.services.stack_manager import StackManager


def setup(ctx: typer.Context) -> None:
    """First-time setup: env, certificates, services and gateway manager.

    Safe to re-run; completed steps are detected and skipped.
    """
    config = load_config(ctx)
    runner = StackSetup(config)
    try:
        result = runner.run()
    except CLI_ERRORS as e:
        handle_error(e)

    lines = ["[green]Setup complete.[/green] Check status with: devstack status", ""]
    for endpoint in StackManager(runner.config, runner.docker).endpoints():
        lines.append(f"  {endpoint.name + ':':<10} {endpoint.url}  ({endpoint.credentials})")

    gateway = result.gateway_manager
    if gateway is not None and not gateway.complete:
        lines.extend(["", "Gateway Manager needs manual steps:"])
        steps = gateway.manual_steps(runner.config.platform_base_url)
        lines.extend(f"  {number}. {step}" for number, step in enumerate(steps, start=1))

    console.print(Panel("\n".join(lines), title="devstack setup", border_style="green"))
    print_warnings(result.warnings)
