"""OpenBao response and local state models."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_serializer

from dev_stack_manager.integrations.openbao.exceptions import OpenBaoConfigError

KEYS_FILE_MODE = 0o600


class SealStatus(BaseModel):
    """Result of ``GET /v1/sys/seal-status`` or ``POST /v1/sys/unseal``."""

    model_config = ConfigDict(extra="ignore")

    sealed: bool
    initialized: bool = True
    threshold: int = Field(default=0, alias="t")
    shares: int = Field(default=0, alias="n")
    progress: int = 0


class InitKeys(BaseModel):
    """Root token and unseal keys returned by ``POST /v1/sys/init``.

    Persisted as JSON so later runs can unseal and authenticate.
    """

    model_config = ConfigDict(extra="ignore")

    root_token: SecretStr
    keys: list[str] = Field(default_factory=list)
    keys_base64: list[str] = Field(default_factory=list)

    @field_serializer("root_token")
    def _dump_root_token(self, value: SecretStr) -> str:
        return value.get_secret_value()

    @property
    def unseal_key(self) -> str:
        """First unseal key."""
        if not self.keys:
            raise OpenBaoConfigError("Init keys contain no unseal keys")
        return self.keys[0]

    @classmethod
    def load(cls, path: Path) -> InitKeys:
        """Load keys from a JSON file.

        Raises:
            OpenBaoConfigError: If the file is missing or malformed.
        """
        if not path.exists():
            raise OpenBaoConfigError(f"OpenBao keys file not found: {path}")
        try:
            data: dict[str, Any] = json.loads(path.read_text())
            return cls.model_validate(data)
        except (ValueError, ValidationError) as e:
            raise OpenBaoConfigError(f"Invalid OpenBao keys file {path}: {e}") from e

    def save(self, path: Path) -> None:
        """Write keys to a JSON file readable only by the owner.

        The file is created with owner-only permissions, and an existing
        file is narrowed before the keys are written.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, KEYS_FILE_MODE)
        os.fchmod(fd, KEYS_FILE_MODE)
        with os.fdopen(fd, "w") as handle:
            handle.write(json.dumps(self.model_dump(), indent=2) + "\n")
