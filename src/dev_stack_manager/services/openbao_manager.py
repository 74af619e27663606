"""OpenBao secrets manager bootstrap and platform integration.

Initializes and unseals OpenBao, mounts a KV v2 engine, points the
platform's Vault integration at it through ``.env``, installs and
configures the HashiCorp Vault adapter, and seeds an example secret.
Only the OpenBao bootstrap itself is fatal; the platform side degrades to
warnings so a half-started platform does not block secrets setup.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from dev_stack_manager.core.config.env_file import EnvFile
from dev_stack_manager.core.config.models import LDAP_ADMIN_PASSWORD, LDAP_ADMIN_USERNAME
from dev_stack_manager.core.exceptions import ServiceUnavailableError
from dev_stack_manager.integrations.docker.exceptions import DockerError
from dev_stack_manager.integrations.docker.runner import CommandRunner
from dev_stack_manager.integrations.openbao.client import OpenBaoClient
from dev_stack_manager.integrations.openbao.config import OpenBaoConnectionConfig
from dev_stack_manager.integrations.openbao.exceptions import (
    OpenBaoAPIError,
    OpenBaoSealedError,
)
from dev_stack_manager.integrations.openbao.models import InitKeys
from dev_stack_manager.integrations.platform.config import PlatformCredentials
from dev_stack_manager.integrations.platform.exceptions import PlatformAPIError
from dev_stack_manager.services.platform_session import admin_credentials, create_client
from dev_stack_manager.services.reconciler import AdapterReconciler, AdapterSpec, ReconcileResult
from dev_stack_manager.utils.polling import SleepFn, poll_until

if TYPE_CHECKING:
    from dev_stack_manager.core.config.models import StackConfig
    from dev_stack_manager.integrations.docker.client import DockerClient
    from dev_stack_manager.integrations.platform.models import Adapter

logger = structlog.get_logger()

OPENBAO_WAIT_TIMEOUT = 60
OPENBAO_WAIT_INTERVAL = 2
PLATFORM_WAIT_TIMEOUT = 120
PLATFORM_WAIT_INTERVAL = 2
PLATFORM_RESTART_GRACE = 5

KV_MOUNT = "secret"
# OpenBao listens on 8200 inside the compose network regardless of OPENBAO_PORT
OPENBAO_INTERNAL_URL = "http://openbao:8200"
OPENBAO_INTERNAL_HOST = "openbao"
OPENBAO_INTERNAL_PORT = 8200

VAULT_ENV_HEADER = (
    "OpenBao Platform Integration (auto-configured)\n"
    "Platform connects via Docker internal network (always port 8200 internally)"
)
VAULT_ENV_PREFIXES = (
    "# OpenBao Platform Integration",
    "# Platform connects via Docker internal network",
    "ITENTIAL_VAULT_",
)

VAULT_ADAPTER_NAME = "HashiCorpVault"
VAULT_ADAPTER_DIR_NAME = "adapter-hashicorp_vault"
VAULT_ADAPTER_REPO = "https://gitlab.com/itentialopensource/adapters/adapter-hashicorp_vault.git"
PLATFORM_CONTAINER = "platform"

EXAMPLE_SECRET_PATH = "example/credentials"
EXAMPLE_SECRET_DATA = {
    "username": "demo_user",
    "password": "demo_password",
    "api_key": "demo_api_key_12345",
}


def vault_env_entries(root_token: str) -> dict[str, str]:
    """Platform Vault integration settings for ``.env``."""
    return {
        "ITENTIAL_VAULT_URL": OPENBAO_INTERNAL_URL,
        "ITENTIAL_VAULT_AUTH_METHOD": "token",
        "ITENTIAL_VAULT_TOKEN": root_token,
        "ITENTIAL_VAULT_SECRETS_ENDPOINT": f"{KV_MOUNT}/data",
        "ITENTIAL_VAULT_READ_ONLY": "false",
    }


def vault_adapter_properties(root_token: str) -> dict[str, Any]:
    """Properties of the HashiCorp Vault adapter pointing at OpenBao."""
    return {
        "host": OPENBAO_INTERNAL_HOST,
        "port": OPENBAO_INTERNAL_PORT,
        "protocol": "http",
        "base_path": "/",
        "version": "v1",
        "stub": False,
        "authentication": {
            "auth_method": "static_token",
            "token": root_token,
            "auth_field": "header.headers.X-Vault-Token",
            "auth_field_format": "{token}",
        },
        "healthcheck": {"type": "startup", "frequency": 60000},
    }


def _has_host(adapter: Adapter) -> bool:
    return bool(adapter.properties.get("host"))


class InstallOutcome(StrEnum):
    """Result of installing the Vault adapter sources."""

    INSTALLED = "installed"
    ALREADY_PRESENT = "already_present"
    SKIPPED = "skipped"
    FAILED = "failed"


class VaultAdapterInstaller:
    """Clone the Vault adapter into the platform's adapter directory."""

    def __init__(self, adapters_dir: Path, repo_url: str = VAULT_ADAPTER_REPO) -> None:
        self.adapters_dir = adapters_dir
        self.repo_url = repo_url

    @property
    def target_dir(self) -> Path:
        """Directory the adapter is installed into."""
        return self.adapters_dir / VAULT_ADAPTER_DIR_NAME

    def install(self) -> InstallOutcome:
        """Clone and ``npm install`` the adapter unless it is already present."""
        if self.target_dir.is_dir():
            logger.info("vault_adapter_already_installed", path=str(self.target_dir))
            return InstallOutcome.ALREADY_PRESENT

        for tool in ("git", "npm"):
            if not CommandRunner.is_available(tool):
                logger.warning(
                    "vault_adapter_install_skipped",
                    reason=f"{tool} not installed",
                    hint=f"git clone {self.repo_url} {self.target_dir} && npm install",
                )
                return InstallOutcome.SKIPPED

        logger.info("installing_vault_adapter", repo=self.repo_url)
        self.adapters_dir.mkdir(parents=True, exist_ok=True)
        try:
            CommandRunner("git").run(
                ["clone", "--depth", "1", self.repo_url, str(self.target_dir)]
            )
            CommandRunner("npm").run(
                ["install", "--production", "--silent"], cwd=self.target_dir
            )
        except DockerError as e:
            logger.warning(
                "vault_adapter_install_failed", error=e.message, path=str(self.target_dir)
            )
            return InstallOutcome.FAILED

        if not (self.target_dir / "node_modules" / ".package-lock.json").exists():
            logger.warning("vault_adapter_dependencies_missing", path=str(self.target_dir))
            return InstallOutcome.FAILED
        logger.info("vault_adapter_installed")
        return InstallOutcome.INSTALLED


@dataclass
class OpenBaoConfigureResult:
    """What the OpenBao configuration run achieved."""

    root_token: str = ""
    initialized_now: bool = False
    unsealed_now: bool = False
    kv_enabled_now: bool = False
    env_change: str | None = None
    adapter_install: InstallOutcome | None = None
    adapter: ReconcileResult | None = None
    example_secret_written: bool = False
    warnings: list[str] = field(default_factory=list)


class OpenBaoConfigurator:
    """Bootstrap OpenBao and wire it into the platform.

    Args:
        config: Stack configuration.
        docker: Docker client, used to restart the platform after an
            adapter install. None skips the restart.
        installer: Vault adapter installer.
        sleep: Sleep function used for every wait.
    """

    def __init__(
        self,
        config: StackConfig,
        docker: DockerClient | None = None,
        installer: VaultAdapterInstaller | None = None,
        sleep: SleepFn = time.sleep,
    ) -> None:
        self._config = config
        self._docker = docker
        self._installer = installer or VaultAdapterInstaller(config.platform_adapters_dir)
        self._sleep = sleep
        self._log = logger.bind(openbao_url=config.openbao_url)

    def _warn(self, result: OpenBaoConfigureResult, message: str, **context: Any) -> None:
        result.warnings.append(message)
        self._log.warning(message, **context)

    # -----------------------------------------------------------------------
    # OpenBao bootstrap
    # -----------------------------------------------------------------------

    def wait_for_openbao(self, client: OpenBaoClient) -> None:
        """Wait for the health endpoint in any init/seal state.

        Raises:
            ServiceUnavailableError: If OpenBao never answers.
        """
        self._log.info("waiting_for_openbao")
        if not poll_until(
            client.is_healthy,
            OPENBAO_WAIT_TIMEOUT,
            OPENBAO_WAIT_INTERVAL,
            sleep=self._sleep,
            description="openbao",
        ):
            raise ServiceUnavailableError("OpenBao", self._config.openbao_url, OPENBAO_WAIT_TIMEOUT)
        self._log.info("openbao_accessible")

    def initialize_or_load(
        self, client: OpenBaoClient, result: OpenBaoConfigureResult
    ) -> InitKeys:
        """Initialize with one key share, or load the keys saved by a previous run.

        Raises:
            OpenBaoConfigError: If already initialized and the keys file is missing.
        """
        keys_file = self._config.openbao_keys_file
        if client.is_initialized():
            self._log.info("openbao_already_initialized")
            return InitKeys.load(keys_file)

        keys = client.initialize(secret_shares=1, secret_threshold=1)
        keys.save(keys_file)
        result.initialized_now = True
        self._log.info("openbao_keys_saved", path=str(keys_file))
        return keys

    def unseal(self, client: OpenBaoClient, keys: InitKeys, result: OpenBaoConfigureResult) -> None:
        """Unseal when sealed.

        Raises:
            OpenBaoSealedError: If still sealed after submitting the key.
        """
        if not client.seal_status().sealed:
            self._log.info("openbao_already_unsealed")
            return
        if client.unseal(keys.unseal_key).sealed:
            raise OpenBaoSealedError("OpenBao is still sealed after unseal attempt")
        result.unsealed_now = True
        self._log.info("openbao_unsealed")

    def ensure_kv_engine(self, client: OpenBaoClient, result: OpenBaoConfigureResult) -> None:
        """Mount KV v2 at ``secret/`` unless something is mounted there."""
        try:
            mounts = client.list_mounts()
        except OpenBaoAPIError as e:
            self._warn(result, "Could not list mounts", error=str(e))
            mounts = {}

        if f"{KV_MOUNT}/" in mounts:
            self._log.info("kv_engine_already_enabled", mount=KV_MOUNT)
            return

        try:
            client.enable_kv_v2(KV_MOUNT)
            result.kv_enabled_now = True
        except OpenBaoAPIError as e:
            if e.status_code == 400:
                self._log.info("kv_engine_probably_enabled", mount=KV_MOUNT)
            else:
                self._warn(result, "Could not enable KV v2 secrets engine", error=str(e))

    def update_env(self, root_token: str) -> str | None:
        """Add or refresh the platform's Vault settings in ``.env``.

        Returns:
            ``"added"``, ``"updated"`` or None when nothing changed.
        """
        env = EnvFile(self._config.env_file)
        if not env.has("ITENTIAL_VAULT_URL"):
            env.append_block(VAULT_ENV_HEADER, vault_env_entries(root_token))
            self._log.info("vault_env_added", path=str(env.path))
            return "added"
        if env.get("ITENTIAL_VAULT_TOKEN") != root_token:
            env.set("ITENTIAL_VAULT_TOKEN", root_token)
            self._log.info("vault_env_token_updated", path=str(env.path))
            return "updated"
        self._log.info("vault_env_already_configured")
        return None

    # -----------------------------------------------------------------------
    # Platform side
    # -----------------------------------------------------------------------

    def _platform_credentials(self) -> PlatformCredentials:
        # The local admin cannot log in once LDAP handles authentication
        if self._config.ldap_enabled:
            return PlatformCredentials(username=LDAP_ADMIN_USERNAME, password=LDAP_ADMIN_PASSWORD)
        return admin_credentials(self._config)

    def restart_platform(self, result: OpenBaoConfigureResult) -> None:
        """Restart the platform container so it loads a new adapter."""
        if self._docker is None:
            self._warn(result, "Docker unavailable, restart the platform to load the Vault adapter")
            return
        try:
            self._docker.restart(PLATFORM_CONTAINER)
        except DockerError as e:
            self._warn(result, "Failed to restart Platform", error=e.message)
        self._sleep(PLATFORM_RESTART_GRACE)

    def configure_adapter(
        self, root_token: str, result: OpenBaoConfigureResult
    ) -> ReconcileResult | None:
        """Create and configure the Vault adapter. Every failure is a warning."""
        with create_client(self._config) as client:
            ready = poll_until(
                lambda: client.probe("health") == 200,
                PLATFORM_WAIT_TIMEOUT,
                PLATFORM_WAIT_INTERVAL,
                sleep=self._sleep,
                description="platform health",
            )
            if not ready:
                self._warn(result, "Platform not accessible, skipping Vault adapter configuration")
                return None

            if self._config.platform_init_delay > 0:
                self._sleep(self._config.platform_init_delay)

            try:
                client.login(self._platform_credentials())
            except PlatformAPIError as e:
                self._log.debug("platform_login_failed", error=str(e))
            if not client.has_api_access():
                self._warn(result, "Platform authentication failed, skipping Vault adapter")
                return None

            spec = AdapterSpec(
                name=VAULT_ADAPTER_NAME,
                adapter_type=VAULT_ADAPTER_NAME,
                properties=vault_adapter_properties(root_token),
                configured=_has_host,
            )
            try:
                reconciled = AdapterReconciler(client, sleep=self._sleep).reconcile(spec)
            except PlatformAPIError as e:
                self._warn(result, "Failed to configure Vault adapter", error=str(e))
                return None
        result.warnings.extend(reconciled.warnings)
        return reconciled

    def write_example_secret(self, client: OpenBaoClient, result: OpenBaoConfigureResult) -> None:
        """Seed a secret that adapter properties can reference."""
        try:
            client.write_secret(KV_MOUNT, EXAMPLE_SECRET_PATH, EXAMPLE_SECRET_DATA)
        except OpenBaoAPIError as e:
            self._warn(result, "Could not create example secrets", error=str(e))
            return
        result.example_secret_written = True

    # -----------------------------------------------------------------------
    # Flow
    # -----------------------------------------------------------------------

    def run(self) -> OpenBaoConfigureResult:
        """Run the full OpenBao configuration.

        Raises:
            ServiceUnavailableError: If OpenBao never answers.
            OpenBaoConfigError: If keys are needed but missing.
            OpenBaoSealedError: If unsealing fails.
            OpenBaoError: If the init or seal APIs fail.
        """
        result = OpenBaoConfigureResult()
        connection = OpenBaoConnectionConfig(base_url=self._config.openbao_url)

        with OpenBaoClient(connection) as client:
            self.wait_for_openbao(client)
            keys = self.initialize_or_load(client, result)
            root_token = keys.root_token.get_secret_value()
            result.root_token = root_token
            self.unseal(client, keys, result)
            client.set_token(root_token)
            self.ensure_kv_engine(client, result)

            if self._config.openbao_enabled:
                result.env_change = self.update_env(root_token)

            result.adapter_install = self._installer.install()
            if self._installer.target_dir.is_dir():
                if result.adapter_install == InstallOutcome.INSTALLED:
                    self.restart_platform(result)
                result.adapter = self.configure_adapter(root_token, result)

            self.write_example_secret(client, result)

        self._log.info("openbao_configuration_complete")
        return result
