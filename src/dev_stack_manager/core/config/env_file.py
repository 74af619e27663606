"""Editing helpers for the project's .env file."""

from __future__ import annotations

import secrets
import shutil
from pathlib import Path

import structlog
from dotenv import dotenv_values, set_key

from dev_stack_manager.core.exceptions import ConfigurationError

logger = structlog.get_logger()

ENCRYPTION_KEY_NAME = "ITENTIAL_ENCRYPTION_KEY"
ENCRYPTION_KEY_BYTES = 32


def generate_encryption_key() -> str:
    """Return a new 64-character hex encryption key."""
    return secrets.token_hex(ENCRYPTION_KEY_BYTES)


class EnvFile:
    """Read and update a KEY=VALUE file in place.

    Writes go through python-dotenv's ``set_key`` so existing comments and
    ordering are preserved.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        """Check whether the file exists."""
        return self.path.exists()

    def create_from_template(self, template: Path) -> None:
        """Copy a template into place.

        Raises:
            ConfigurationError: If the template does not exist.
        """
        if not template.exists():
            raise ConfigurationError(
                f"Template not found: {template}",
                details="Restore .env.example from the repository",
            )
        shutil.copyfile(template, self.path)
        logger.info("Created env file from template", path=str(self.path))

    def values(self) -> dict[str, str]:
        """Return all defined keys with their (possibly empty) values."""
        if not self.path.exists():
            return {}
        return {k: v or "" for k, v in dotenv_values(self.path).items()}

    def get(self, key: str) -> str | None:
        """Get a single value, None when the key is absent."""
        return self.values().get(key)

    def has(self, key: str) -> bool:
        """Check whether a key is defined (even if empty)."""
        return key in self.values()

    def set(self, key: str, value: str) -> None:
        """Set a key, adding it when missing."""
        set_key(self.path, key, value, quote_mode="never")
        logger.debug("Set env key", key=key, path=str(self.path))

    def append_block(self, header: str, entries: dict[str, str]) -> None:
        """Append a commented block of keys to the end of the file."""
        lines = ["", *(f"# {line}" for line in header.splitlines())]
        lines.extend(f"{key}={value}" for key, value in entries.items())
        with self.path.open("a") as f:
            f.write("\n".join(lines) + "\n")
        logger.debug("Appended env block", keys=list(entries), path=str(self.path))

    def remove_matching(self, prefixes: tuple[str, ...]) -> int:
        """Remove lines starting with any of the given prefixes.

        Returns:
            Number of lines removed.
        """
        if not self.path.exists():
            return 0
        lines = self.path.read_text().splitlines(keepends=True)
        kept = [line for line in lines if not line.startswith(prefixes)]
        self.path.write_text("".join(kept))
        return len(lines) - len(kept)

    def ensure_encryption_key(self) -> bool:
        """Generate the platform encryption key when it is empty.

        Returns:
            True if a new key was written.
        """
        if self.get(ENCRYPTION_KEY_NAME):
            return False
        self.set(ENCRYPTION_KEY_NAME, generate_encryption_key())
        logger.info("Generated encryption key", path=str(self.path))
        return True
