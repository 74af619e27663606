"""Stack configuration loaded from the project's .env file."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from dev_stack_manager.core.exceptions import ConfigurationError

ENV_FILE_NAME = ".env"
ENV_EXAMPLE_FILE_NAME = ".env.example"

DEFAULT_ECR_REGISTRY = "497639811223.dkr.ecr.us-east-2.amazonaws.com"
DEFAULT_ECR_REGION = "us-east-2"

# Built-in platform admin account has a fixed id
LOCAL_ADMIN_ACCOUNT_ID = "000000000000000000000000"
ADMIN_GROUP_NAME = "admin_group"
ALL_PROFILES = ("full", "ldap", "mcp", "openbao")
LDAP_ADMIN_USERNAME = "admin@itential"
LDAP_ADMIN_PASSWORD = "admin"


class StackConfig(BaseModel):
    """Configuration for one dev stack checkout.

    Field aliases are the .env keys used by the compose file and Makefile,
    so a validated model can be built straight from the key/value pairs.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    project_dir: Path = Field(default_factory=Path.cwd)

    # Platform
    platform_port: int = Field(default=3000, alias="PLATFORM_PORT")
    platform_url: str | None = Field(default=None, alias="PLATFORM_URL")
    platform_user: str = Field(default="admin", alias="PLATFORM_USER")
    platform_password: SecretStr = Field(default=SecretStr("admin"), alias="PLATFORM_PASSWORD")
    platform_init_delay: float = Field(default=10, alias="PLATFORM_INIT_DELAY")
    platform_version: str = Field(default="6", alias="PLATFORM_VERSION")

    # Gateways
    gateway4_port: int = Field(default=8083, alias="GATEWAY4_PORT")
    gateway4_version: str = Field(default="4.3.7", alias="GATEWAY4_VERSION")
    gateway5_port: int = Field(default=50051, alias="GATEWAY5_PORT")
    gateway5_version: str = Field(default="5.1.0-amd64", alias="GATEWAY5_VERSION")
    gateway5_cluster_id: str = Field(default="cluster_1", alias="GATEWAY5_CLUSTER_ID")

    # Optional services
    ldap_enabled: bool = Field(default=False, alias="LDAP_ENABLED")
    ldap_port: int = Field(default=3389, alias="LDAP_PORT")
    ldap_host: str = Field(default="openldap", alias="LDAP_HOST")
    ldap_admin_password: SecretStr = Field(default=SecretStr("admin"), alias="LDAP_ADMIN_PASSWORD")
    mcp_enabled: bool = Field(default=False, alias="MCP_ENABLED")
    mcp_sse_port: int = Field(default=8000, alias="MCP_SSE_PORT")
    openbao_enabled: bool = Field(default=False, alias="OPENBAO_ENABLED")
    openbao_port: int = Field(default=8200, alias="OPENBAO_PORT")

    # Registry
    ecr_registry: str = Field(default=DEFAULT_ECR_REGISTRY, alias="ECR_REGISTRY")
    ecr_region: str = Field(default=DEFAULT_ECR_REGION, alias="ECR_REGION")

    @field_validator("platform_url")
    @classmethod
    def validate_platform_url(cls, v: str | None) -> str | None:
        """Validate platform URL format."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("PLATFORM_URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("platform_init_delay")
    @classmethod
    def validate_init_delay(cls, v: float) -> float:
        """Validate init delay is non-negative."""
        if v < 0:
            raise ValueError("PLATFORM_INIT_DELAY must be non-negative")
        return v

    # -----------------------------------------------------------------------
    # Loading
    # -----------------------------------------------------------------------

    @classmethod
    def aliases(cls) -> set[str]:
        """Return the .env keys understood by this model."""
        return {field.alias for field in cls.model_fields.values() if field.alias}

    @classmethod
    def from_values(cls, values: Mapping[str, str | None], project_dir: Path) -> StackConfig:
        """Build a config from raw key/value pairs.

        Empty values are treated as unset so that defaults apply.

        Raises:
            ConfigurationError: If a value fails validation.
        """
        data: dict[str, Any] = {k: v for k, v in values.items() if v not in (None, "")}
        data["project_dir"] = project_dir
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                "Invalid stack configuration",
                details=str(e),
            ) from e

    @classmethod
    def load(cls, project_dir: Path | None = None, env_file: Path | None = None) -> StackConfig:
        """Load configuration from the .env file with environment overrides.

        Priority:
        1. Process environment variables
        2. The .env file (defaults to ``<project_dir>/.env``)
        3. Field defaults

        Args:
            project_dir: Stack checkout root. Defaults to the current directory.
            env_file: Explicit .env path.

        Returns:
            Loaded configuration.
        """
        root = (project_dir or Path.cwd()).resolve()
        path = env_file or root / ENV_FILE_NAME

        values: dict[str, str | None] = {}
        if path.exists():
            values.update(dotenv_values(path))

        for key in cls.aliases():
            if (env_value := os.environ.get(key)) is not None:
                values[key] = env_value

        return cls.from_values(values, root)

    # -----------------------------------------------------------------------
    # Derived values
    # -----------------------------------------------------------------------

    @property
    def env_file(self) -> Path:
        """Path to the project's .env file."""
        return self.project_dir / ENV_FILE_NAME

    @property
    def env_example_file(self) -> Path:
        """Path to the .env template."""
        return self.project_dir / ENV_EXAMPLE_FILE_NAME

    @property
    def platform_base_url(self) -> str:
        """Platform URL, honouring an explicit PLATFORM_URL."""
        return self.platform_url or f"http://localhost:{self.platform_port}"

    @property
    def openbao_url(self) -> str:
        """OpenBao URL as seen from the host."""
        return f"http://localhost:{self.openbao_port}"

    @property
    def volumes_dir(self) -> Path:
        """Root of the bind-mounted volume directories."""
        return self.project_dir / "volumes"

    @property
    def platform_ssl_dir(self) -> Path:
        """Platform TLS certificate directory."""
        return self.volumes_dir / "platform" / "ssl"

    @property
    def platform_adapters_dir(self) -> Path:
        """Directory the platform loads custom adapters from."""
        return self.volumes_dir / "platform" / "adapters"

    @property
    def platform_logs_dir(self) -> Path:
        """Platform log directory."""
        return self.volumes_dir / "platform" / "logs"

    @property
    def gateway4_dir(self) -> Path:
        """Root of the Gateway4 volumes (data, scripts, playbooks, terraform)."""
        return self.volumes_dir / "gateway4"

    @property
    def gateway5_data_dir(self) -> Path:
        """Gateway5 data directory."""
        return self.volumes_dir / "gateway5" / "data"

    @property
    def mongodb_data_dir(self) -> Path:
        """Datastore files written by the mongodb container."""
        return self.project_dir / "dependencies" / "mongodb-data"

    @property
    def gateway5_certs_dir(self) -> Path:
        """Gateway5 client certificate directory."""
        return self.volumes_dir / "gateway5" / "certificates"

    @property
    def gateway5_cert_file(self) -> Path:
        """Gateway manager client certificate."""
        return self.gateway5_certs_dir / "gw-manager.pem"

    @property
    def gateway5_key_file(self) -> Path:
        """Gateway manager client private key."""
        return self.gateway5_certs_dir / "gw-manager-key.pem"

    @property
    def openbao_keys_file(self) -> Path:
        """Persisted OpenBao root token and unseal keys."""
        return self.volumes_dir / "openbao" / "init-keys.json"

    @property
    def certificate_alias(self) -> str:
        """Alias under which the Gateway5 certificate is registered."""
        return f"gateway5-{self.gateway5_cluster_id}"

    @property
    def profiles(self) -> list[str]:
        """Compose profiles for the enabled services."""
        profiles = ["full"]
        if self.ldap_enabled:
            profiles.append("ldap")
        if self.mcp_enabled:
            profiles.append("mcp")
        if self.openbao_enabled:
            profiles.append("openbao")
        return profiles

    @property
    def required_images(self) -> list[str]:
        """Registry images that must be present locally to skip ECR login."""
        return [
            f"{self.ecr_registry}/automation-platform-config-lcm:{self.platform_version}",
            f"{self.ecr_registry}/automation-gateway:{self.gateway4_version}",
            f"{self.ecr_registry}/automation-gateway5:{self.gateway5_version}",
        ]
