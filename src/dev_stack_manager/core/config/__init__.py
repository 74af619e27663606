"""Configuration management with Pydantic validation."""

from dev_stack_manager.core.config.env_file import EnvFile, generate_encryption_key
from dev_stack_manager.core.config.models import StackConfig

__all__ = [
    "EnvFile",
    "StackConfig",
    "generate_encryption_key",
]
