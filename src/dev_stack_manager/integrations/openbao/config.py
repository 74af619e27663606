"""OpenBao connection configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, SecretStr, field_validator


class OpenBaoConnectionConfig(BaseModel):
    """OpenBao HTTP API connection configuration."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = "http://localhost:8200"
    token: SecretStr | None = None
    timeout: int = 30
    retries: int = 3

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate base URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        """Validate retries is at least one attempt."""
        if v < 1:
            raise ValueError("retries must be at least 1")
        return v
