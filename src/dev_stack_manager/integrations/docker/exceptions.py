"""Exceptions for container and host tool commands."""

from __future__ import annotations


class DockerError(Exception):
    """Base exception for docker and other host CLI invocations.

    Attributes:
        message: Human-readable error message.
        stderr: Captured standard error of the failed command.
        command: The command line that was run.
    """

    def __init__(
        self,
        message: str,
        stderr: str | None = None,
        command: list[str] | None = None,
    ) -> None:
        """Initialize DockerError.

        Args:
            message: Human-readable error message.
            stderr: Captured standard error.
            command: The command line that was run.
        """
        super().__init__(message)
        self.message = message
        self.stderr = stderr
        self.command = command


class DockerBinaryNotFoundError(DockerError):
    """Raised when a required binary is not found in PATH."""

    def __init__(self, binary: str = "docker", hint: str | None = None) -> None:
        message = f"{binary} binary not found in PATH"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message=message)
        self.binary = binary


class DockerCommandError(DockerError):
    """Raised when a command exits non-zero or times out."""
