"""Docker, Docker Compose and host CLI integration."""

from dev_stack_manager.integrations.docker.client import AwsClient, DockerClient
from dev_stack_manager.integrations.docker.exceptions import (
    DockerBinaryNotFoundError,
    DockerCommandError,
    DockerError,
)
from dev_stack_manager.integrations.docker.models import ContainerStatus
from dev_stack_manager.integrations.docker.runner import CommandRunner

__all__ = [
    "AwsClient",
    "CommandRunner",
    "ContainerStatus",
    "DockerBinaryNotFoundError",
    "DockerClient",
    "DockerCommandError",
    "DockerError",
]
