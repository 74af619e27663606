"""First-time stack setup.

Runs the whole bring-up in order: pre-flight checks, ``.env`` and the
encryption key, registry login, certificates, volume permissions, compose
up, and finally gateway manager and LDAP configuration. Only pre-flight,
configuration and certificate failures abort; everything after the
services start degrades to warnings with a hint to re-run the step.
"""

from __future__ import annotations

import stat
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from dev_stack_manager.core.config.env_file import EnvFile
from dev_stack_manager.core.config.models import StackConfig
from dev_stack_manager.core.exceptions import PreflightError, StackError
from dev_stack_manager.integrations.datastore.mongo_shell import DatastoreError, MongoShellClient
from dev_stack_manager.integrations.docker.client import DockerClient
from dev_stack_manager.integrations.docker.exceptions import (
    DockerBinaryNotFoundError,
    DockerCommandError,
    DockerError,
)
from dev_stack_manager.integrations.docker.runner import CommandRunner
from dev_stack_manager.integrations.platform.exceptions import PlatformAPIError
from dev_stack_manager.services.certificates import CertificateManager, CertificateResult
from dev_stack_manager.services.gateway_manager import (
    GatewayManagerProvisioner,
    GatewayProvisionResult,
)
from dev_stack_manager.services.ldap_manager import LdapConfigurator, LdapConfigureResult
from dev_stack_manager.services.stack_manager import StackManager
from dev_stack_manager.utils.polling import SleepFn, wait_for_http

if TYPE_CHECKING:
    from dev_stack_manager.integrations.docker.client import AwsClient

logger = structlog.get_logger()

HEALTH_WAIT_TIMEOUT = 180
HEALTH_WAIT_INTERVAL = 5
EXECUTABLE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH

PLATFORM_OWNER = "1001:1001"
GATEWAY5_OWNER = "100:101"
GATEWAY4_VOLUMES = ("data", "scripts", "playbooks", "terraform")
PLAYBOOK_SUFFIXES = (".yml", ".yaml")
SCRIPT_SUFFIXES = (".py", ".sh")

# Errors a configuration step may raise without aborting setup
STEP_ERRORS = (StackError, PlatformAPIError, DockerError, DatastoreError)


@dataclass
class PreflightReport:
    """Host tool versions and whether registry access is needed."""

    docker_version: str
    compose_version: str
    images_present: bool


@dataclass
class SetupResult:
    """What the setup run achieved."""

    preflight: PreflightReport | None = None
    env_created: bool = False
    encryption_key_generated: bool = False
    ecr_login: bool = False
    certificates: list[CertificateResult] = field(default_factory=list)
    executables_fixed: int = 0
    ownership_set: bool = False
    platform_healthy: bool = False
    gateway_manager: GatewayProvisionResult | None = None
    ldap: LdapConfigureResult | None = None
    warnings: list[str] = field(default_factory=list)


def make_executable(directory: Path, suffixes: tuple[str, ...]) -> int:
    """Add execute bits to matching files below a directory.

    Returns:
        Number of files updated.
    """
    if not directory.is_dir():
        return 0
    count = 0
    for path in directory.rglob("*"):
        if path.is_file() and path.suffix in suffixes:
            path.chmod(path.stat().st_mode | EXECUTABLE_BITS)
            count += 1
    return count


class StackSetup:
    """First-time setup of a dev stack checkout.

    Args:
        config: Stack configuration. Reloaded after ``.env`` is created.
        docker: Docker client; created lazily by pre-flight when omitted.
        aws_factory: Builds the aws CLI client for ECR login.
        sleep: Sleep function used for every wait.
    """

    def __init__(
        self,
        config: StackConfig,
        docker: DockerClient | None = None,
        aws_factory: Callable[[], AwsClient] | None = None,
        sleep: SleepFn = time.sleep,
    ) -> None:
        self.config = config
        self._docker = docker
        self._aws_factory = aws_factory
        self._sleep = sleep

    @property
    def docker(self) -> DockerClient:
        """Docker client, available after pre-flight."""
        if self._docker is None:
            self._docker = DockerClient(self.config.project_dir)
        return self._docker

    def _warn(self, result: SetupResult, message: str, **context: Any) -> None:
        result.warnings.append(message)
        logger.warning(message, **context)

    # -----------------------------------------------------------------------
    # Steps
    # -----------------------------------------------------------------------

    def preflight(self) -> PreflightReport:
        """Check docker, compose v2 and, when images must be pulled, the aws CLI.

        Raises:
            PreflightError: If a required tool is missing or the daemon is down.
        """
        try:
            docker_version = self.docker.version()
        except DockerBinaryNotFoundError as e:
            raise PreflightError(
                "Docker is not installed", details="Install Docker first"
            ) from e
        except DockerCommandError as e:
            raise PreflightError(
                "Docker is not responding", details=(e.stderr or e.message).strip()
            ) from e
        logger.info("docker_found", version=docker_version)

        try:
            compose_version = self.docker.compose_version()
        except DockerCommandError as e:
            raise PreflightError(
                "Docker Compose is not available", details="Install Docker Compose v2+"
            ) from e
        logger.info("docker_compose_found", version=compose_version)

        images_present = all(self.docker.image_present(i) for i in self.config.required_images)
        if images_present:
            logger.info("aws_cli_check_skipped", reason="images already present")
        elif not CommandRunner.is_available("aws"):
            raise PreflightError(
                "AWS CLI is not installed",
                details="Required for ECR authentication",
            )
        return PreflightReport(docker_version, compose_version, images_present)

    def prepare_env(self, result: SetupResult) -> None:
        """Create ``.env`` from the template, fill the encryption key and reload."""
        env = EnvFile(self.config.env_file)
        if not env.exists():
            env.create_from_template(self.config.env_example_file)
            result.env_created = True
        else:
            logger.info("env_file_exists", path=str(env.path))
        result.encryption_key_generated = env.ensure_encryption_key()
        self.config = StackConfig.load(self.config.project_dir)

    def ecr_login(self, images_present: bool) -> bool:
        """Log in to ECR unless every image is already local.

        Raises:
            PreflightError: If authentication fails.
        """
        if images_present:
            logger.info("ecr_login_skipped", reason="images already present")
            return False
        try:
            aws = self._aws_factory() if self._aws_factory else None
            StackManager(self.config, self.docker).login(aws)
        except DockerError as e:
            raise PreflightError(
                "ECR authentication failed", details="Check your AWS credentials: aws configure"
            ) from e
        return True

    def fix_executables(self) -> int:
        """Make Gateway4 playbooks and scripts executable."""
        gateway4 = self.config.gateway4_dir
        count = make_executable(gateway4 / "playbooks", PLAYBOOK_SUFFIXES)
        count += make_executable(gateway4 / "scripts", SCRIPT_SUFFIXES)
        logger.info("gateway4_executables_fixed", files=count)
        return count

    def _ownership_targets(self) -> list[tuple[str, Path]]:
        config = self.config
        targets = [
            (PLATFORM_OWNER, config.platform_logs_dir),
            (PLATFORM_OWNER, config.platform_adapters_dir),
        ]
        targets.extend((PLATFORM_OWNER, config.gateway4_dir / v) for v in GATEWAY4_VOLUMES)
        targets.append((GATEWAY5_OWNER, config.gateway5_data_dir))
        return [(owner, path) for owner, path in targets if path.is_dir()]

    def set_volume_ownership(self, result: SetupResult) -> bool:
        """Hand bind-mounted volumes to the container users via ``sudo chown``."""
        if not CommandRunner.is_available("sudo"):
            self._warn(
                result,
                "sudo not available, skipping volume ownership (may cause permission issues)",
            )
            return False
        sudo = CommandRunner("sudo")
        ok = True
        for owner, path in self._ownership_targets():
            try:
                sudo.run(["chown", "-R", owner, str(path)], timeout=60)
            except DockerError as e:
                ok = False
                self._warn(result, f"Could not set ownership of {path}", error=e.message)
        logger.info("volume_ownership_set", success=ok)
        return ok

    def wait_for_health(self) -> bool:
        """Wait for the platform health endpoint."""
        logger.info("waiting_for_platform_health", timeout=HEALTH_WAIT_TIMEOUT)
        healthy = wait_for_http(
            f"{self.config.platform_base_url}/health",
            HEALTH_WAIT_TIMEOUT,
            HEALTH_WAIT_INTERVAL,
            sleep=self._sleep,
        )
        if healthy:
            logger.info("platform_healthy")
        return healthy

    def configure_gateway_manager(self, result: SetupResult) -> None:
        """Provision the gateway manager; failures become warnings."""
        try:
            result.gateway_manager = GatewayManagerProvisioner(
                self.config, sleep=self._sleep
            ).run()
        except STEP_ERRORS as e:
            self._warn(
                result,
                "Gateway Manager configuration skipped (Platform may not be ready)",
                error=str(e),
                hint="run manually later: devstack configure gateway-manager",
            )

    def configure_ldap(self, result: SetupResult) -> None:
        """Configure the LDAP adapter; failures become warnings."""
        try:
            result.ldap = LdapConfigurator(
                self.config, MongoShellClient(self.docker), sleep=self._sleep
            ).run()
        except STEP_ERRORS as e:
            self._warn(
                result,
                "LDAP configuration skipped",
                error=str(e),
                hint="run manually later: devstack configure ldap",
            )

    # -----------------------------------------------------------------------
    # Flow
    # -----------------------------------------------------------------------

    def run(self) -> SetupResult:
        """Run the complete first-time setup.

        Raises:
            PreflightError: If a host tool or the registry login is missing.
            ConfigurationError: If ``.env`` cannot be created or parsed.
            CertificateError: If certificates cannot be written.
            DockerCommandError: If ``compose up`` fails.
        """
        result = SetupResult()

        result.preflight = self.preflight()
        self.prepare_env(result)
        result.ecr_login = self.ecr_login(result.preflight.images_present)
        result.certificates = CertificateManager(self.config).ensure_all()
        result.executables_fixed = self.fix_executables()
        result.ownership_set = self.set_volume_ownership(result)

        StackManager(self.config, self.docker).up()

        result.platform_healthy = self.wait_for_health()
        if not result.platform_healthy:
            self._warn(
                result,
                "Platform health check timeout, it may still be starting",
                hint="devstack logs platform",
            )

        self.configure_gateway_manager(result)
        if self.config.ldap_enabled:
            self.configure_ldap(result)

        logger.info("setup_complete", warnings=len(result.warnings))
        return result
