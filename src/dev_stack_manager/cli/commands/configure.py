"""Configure commands for the platform integrations.

- gateway-manager: register the Gateway5 certificate, admin group and cluster
- ldap: enable LDAP authentication and grant the LDAP admin full access
- openbao: initialise OpenBao and wire it into the platform
"""

from __future__ import annotations

import structlog
import typer
from rich.panel import Panel

from dev_stack_manager.cli.commands.base import (
    CLI_ERRORS,
    console,
    handle_error,
    load_config,
    print_warnings,
)
from dev_stack_manager.integrations.datastore.mongo_shell import MongoShellClient
from dev_stack_manager.integrations.docker.client import DockerClient
from dev_stack_manager.integrations.docker.exceptions import DockerBinaryNotFoundError
from dev_stack_manager.services.gateway_manager import GatewayManagerProvisioner
from dev_stack_manager.services.ldap_manager import LdapConfigurator
from dev_stack_manager.services.openbao_manager import OpenBaoConfigurator

app = typer.Typer(help="Configure platform integrations.", no_args_is_help=True)
logger = structlog.get_logger()


@app.command("gateway-manager")
def gateway_manager(ctx: typer.Context) -> None:
    """Register Gateway5 with the platform's gateway manager.

    Steps that cannot be automated are printed at the end; the command still
    exits 0 in that case.

    Examples:
        devstack configure gateway-manager
    """
    config = load_config(ctx)
    try:
        result = GatewayManagerProvisioner(config).run()
    except CLI_ERRORS as e:
        handle_error(e)

    if result.complete:
        status = "connected" if result.connected else "created (waiting for Gateway5 to connect)"
        console.print(
            Panel(
                f"[green]Gateway Manager configured[/green]\n\n"
                f"Cluster:     {result.cluster_id} ({status})\n"
                f"Certificate: {result.certificate_alias}\n"
                f"Roles:       {result.role_count}",
                title="gateway manager",
                border_style="green",
            )
        )
    else:
        console.print("[yellow]Gateway Manager partially configured. Manual steps:[/yellow]")
        for number, step in enumerate(result.manual_steps(config.platform_base_url), start=1):
            console.print(f"  {number}. {step}")
        if not result.certificate_uploaded:
            console.print("\nCertificate to upload:")
            console.print(config.gateway5_cert_file.read_text(), markup=False, highlight=False)
    print_warnings(result.warnings)


@app.command("ldap")
def ldap(ctx: typer.Context) -> None:
    """Configure the LDAP authentication adapter.

    Examples:
        devstack configure ldap
    """
    config = load_config(ctx)
    try:
        datastore = MongoShellClient(DockerClient(config.project_dir))
        result = LdapConfigurator(config, datastore).run()
    except CLI_ERRORS as e:
        handle_error(e)

    if result.already_configured:
        console.print("[green]LDAP already configured.[/green] Log in as admin@itential / admin")
    elif result.user_provisioned:
        console.print(
            Panel(
                "[green]LDAP configured[/green]\n\n"
                "Log in as admin@itential / admin\n"
                f"Roles copied:   {'yes' if result.roles_copied else 'no'}\n"
                f"admin_group:    {result.group_roles_synced} roles",
                title="ldap",
                border_style="green",
            )
        )
    print_warnings(result.warnings)


@app.command("openbao")
def openbao(ctx: typer.Context) -> None:
    """Initialise and unseal OpenBao and connect the platform to it.

    Examples:
        devstack configure openbao
    """
    config = load_config(ctx)
    try:
        docker: DockerClient | None = DockerClient(config.project_dir)
    except DockerBinaryNotFoundError as e:
        logger.warning("docker_unavailable", error=e.message)
        docker = None

    try:
        result = OpenBaoConfigurator(config, docker=docker).run()
    except CLI_ERRORS as e:
        handle_error(e)

    adapter = "configured" if result.adapter and result.adapter.active else "not configured"
    console.print(
        Panel(
            f"[green]OpenBao configured[/green]\n\n"
            f"URL:        {config.openbao_url}\n"
            f"Root token: {result.root_token}\n"
            f"Keys file:  {config.openbao_keys_file}\n"
            f"Adapter:    {adapter}",
            title="openbao",
            border_style="green",
        )
    )
    if result.example_secret_written:
        console.print("Example secret: secret/example/credentials (username, password, api_key)")
        console.print(
            'Use in adapter properties: "$SECRET_example/credentials $KEY_password"',
            markup=False,
        )
    print_warnings(result.warnings)
