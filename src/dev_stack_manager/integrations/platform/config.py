"""Workflow platform connection configuration models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, SecretStr, field_validator


class PlatformConnectionConfig(BaseModel):
    """Platform REST API connection configuration."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = "http://localhost:3000"
    timeout: int = 30
    verify_ssl: bool = True
    retries: int = 3

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate base URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        """Validate retries is at least one attempt."""
        if v < 1:
            raise ValueError("retries must be at least 1")
        return v


class PlatformCredentials(BaseModel):
    """Username/password pair exchanged for a session cookie."""

    model_config = ConfigDict(extra="forbid")

    username: str
    password: SecretStr

    def to_login_payload(self) -> dict[str, str]:
        """Build the JSON body for ``POST /login``."""
        return {"username": self.username, "password": self.password.get_secret_value()}
