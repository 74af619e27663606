"""Day-to-day stack lifecycle: start, stop, status, registry login and cleanup."""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from dev_stack_manager.core.config.env_file import EnvFile
from dev_stack_manager.core.config.models import ALL_PROFILES
from dev_stack_manager.integrations.docker.client import AwsClient
from dev_stack_manager.integrations.docker.exceptions import DockerError
from dev_stack_manager.integrations.openbao.exceptions import OpenBaoConfigError
from dev_stack_manager.integrations.openbao.models import InitKeys
from dev_stack_manager.services.openbao_manager import VAULT_ENV_PREFIXES

if TYPE_CHECKING:
    from dev_stack_manager.core.config.models import StackConfig
    from dev_stack_manager.integrations.docker.client import DockerClient
    from dev_stack_manager.integrations.docker.models import ContainerStatus

logger = structlog.get_logger()

COMPOSE_PROJECT = "itential-dev-stack"
MCP_IMAGE = "ghcr.io/itential/itential-mcp"
NAMED_VOLUMES = ("gateway5-data", "openbao-data", "platform-logs")
CLEANUP_IMAGE = "alpine"


@dataclass
class ServiceEndpoint:
    """A user-facing service address."""

    name: str
    url: str
    credentials: str = ""


@dataclass
class StackStatus:
    """Containers of every profile plus the URLs of the running services."""

    containers: list[ContainerStatus] = field(default_factory=list)
    endpoints: list[ServiceEndpoint] = field(default_factory=list)


@dataclass
class CleanResult:
    """What ``clean`` removed."""

    mcp_containers: int = 0
    volumes_removed: list[str] = field(default_factory=list)
    keys_file_removed: bool = False
    env_lines_removed: int = 0
    datastore_cleared: bool = False
    gateway4_db_files: int = 0
    warnings: list[str] = field(default_factory=list)


class StackManager:
    """Drive the compose project for the configured profiles.

    Args:
        config: Stack configuration.
        docker: Docker client for the project directory.
    """

    def __init__(self, config: StackConfig, docker: DockerClient) -> None:
        self._config = config
        self._docker = docker

    def up(self) -> None:
        """Start the enabled services."""
        self._docker.compose_up(self._config.profiles)

    def down(self) -> None:
        """Stop the enabled services."""
        self._docker.compose_down(self._config.profiles)

    def logs(self, service: str | None = None, follow: bool = True) -> int:
        """Stream logs for one service or all of them."""
        return self._docker.compose_logs(service, follow=follow)

    def login(self, aws: AwsClient | None = None) -> None:
        """Authenticate docker against the ECR registry.

        Args:
            aws: aws CLI client, created on demand when omitted.

        Raises:
            DockerBinaryNotFoundError: If the aws CLI is not installed.
            DockerCommandError: If fetching the password or the login fails.
        """
        logger.info("authenticating_with_ecr", registry=self._config.ecr_registry)
        password = (aws or AwsClient()).ecr_login_password(self._config.ecr_region)
        self._docker.login(self._config.ecr_registry, password)

    # -----------------------------------------------------------------------
    # Status
    # -----------------------------------------------------------------------

    def _openbao_token(self) -> str:
        try:
            return InitKeys.load(self._config.openbao_keys_file).root_token.get_secret_value()
        except OpenBaoConfigError:
            return "see init-keys.json"

    def endpoints(self, running: list[str] | None = None) -> list[ServiceEndpoint]:
        """Service URLs; optional services only when their container runs.

        Args:
            running: Names of running containers. None lists every optional
                service that is enabled in the configuration instead.
        """
        config = self._config

        def _present(container: str, enabled: bool) -> bool:
            return container in running if running is not None else enabled

        items = [
            ServiceEndpoint("Platform", config.platform_base_url, "admin/admin"),
            ServiceEndpoint(
                "Gateway4", f"http://localhost:{config.gateway4_port}", "admin@itential/admin"
            ),
            ServiceEndpoint("Gateway5", f"localhost:{config.gateway5_port}", "gRPC, use iagctl"),
        ]
        if _present("openldap", config.ldap_enabled):
            items.append(
                ServiceEndpoint(
                    "OpenLDAP", f"localhost:{config.ldap_port}", "cn=admin,dc=itential,dc=io/admin"
                )
            )
        if _present("mcp", config.mcp_enabled):
            items.append(
                ServiceEndpoint("MCP", f"http://localhost:{config.mcp_sse_port}", "SSE transport")
            )
        if _present("openbao", config.openbao_enabled):
            items.append(
                ServiceEndpoint("OpenBao", config.openbao_url, f"token: {self._openbao_token()}")
            )
        return items

    def status(self) -> StackStatus:
        """Containers across all profiles and the URLs of running services."""
        containers = self._docker.compose_ps(ALL_PROFILES)
        running = [c.name for c in containers if c.is_running]
        return StackStatus(containers=containers, endpoints=self.endpoints(running))

    # -----------------------------------------------------------------------
    # Clean
    # -----------------------------------------------------------------------

    def _remove_datastore_files(self, result: CleanResult) -> None:
        data_dir = self._config.mongodb_data_dir
        if not data_dir.is_dir():
            return
        # Files belong to the container user, so delete them from a root container
        try:
            self._docker.run_container(
                CLEANUP_IMAGE,
                ["sh", "-c", "rm -rf /data/* /data/.[!.]*"],
                volumes={data_dir.resolve(): "/data"},
            )
        except DockerError as e:
            result.warnings.append(f"Could not clear {data_dir}: {e.message}")
            logger.warning("datastore_clear_failed", path=str(data_dir), error=e.message)
            return
        result.datastore_cleared = True

    def clean(self) -> CleanResult:
        """Stop everything and delete all stack data.

        Raises:
            DockerCommandError: If ``compose down -v`` fails.
        """
        result = CleanResult()
        self._docker.compose_down(ALL_PROFILES, volumes=True)

        try:
            result.mcp_containers = self._docker.remove_containers_by_image(MCP_IMAGE)
        except DockerError as e:
            result.warnings.append(f"Could not remove MCP containers: {e.message}")

        for volume in NAMED_VOLUMES:
            name = f"{COMPOSE_PROJECT}_{volume}"
            if self._docker.volume_remove(name):
                result.volumes_removed.append(name)

        keys_file = self._config.openbao_keys_file
        if keys_file.exists():
            keys_file.unlink()
            result.keys_file_removed = True

        result.env_lines_removed = EnvFile(self._config.env_file).remove_matching(
            VAULT_ENV_PREFIXES
        )

        self._remove_datastore_files(result)

        data_dir = self._config.gateway4_dir / "data"
        for db_file in data_dir.glob("*.db"):
            if db_file.is_dir():
                shutil.rmtree(db_file)
            else:
                db_file.unlink()
            result.gateway4_db_files += 1

        logger.info(
            "cleanup_complete",
            volumes=len(result.volumes_removed),
            env_lines=result.env_lines_removed,
        )
        return result
