"""Workflow platform integration - HTTP client and API models."""

from dev_stack_manager.integrations.platform.client import PlatformClient
from dev_stack_manager.integrations.platform.config import (
    PlatformConnectionConfig,
    PlatformCredentials,
)
from dev_stack_manager.integrations.platform.exceptions import (
    PlatformAPIError,
    PlatformAuthError,
    PlatformConflictError,
    PlatformConnectionError,
    PlatformNotFoundError,
)

__all__ = [
    "PlatformAPIError",
    "PlatformAuthError",
    "PlatformClient",
    "PlatformConflictError",
    "PlatformConnectionConfig",
    "PlatformConnectionError",
    "PlatformCredentials",
    "PlatformNotFoundError",
]
