"""Service-level exceptions shared across the stack tooling."""

from __future__ import annotations


class StackError(Exception):
    """Base exception for unrecoverable orchestration failures.

    Attributes:
        message: Human-readable error message.
        details: Additional context, usually a hint for the operator.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """Initialize StackError.

        Args:
            message: Human-readable error message.
            details: Additional context or remediation hint.
        """
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(StackError):
    """Raised when local configuration is missing or invalid."""


class PreflightError(StackError):
    """Raised when a required host tool is missing or not responding."""


class CertificateError(StackError):
    """Raised when certificates cannot be generated or are missing."""


class ServiceUnavailableError(StackError):
    """Raised when a service does not become reachable within its wait budget."""

    def __init__(self, service: str, url: str, waited: float) -> None:
        """Initialize ServiceUnavailableError.

        Args:
            service: Display name of the service.
            url: URL that was polled.
            waited: Seconds waited before giving up.
        """
        super().__init__(
            f"{service} not accessible after {waited:g}s",
            details=f"Polled {url}",
        )
        self.service = service
        self.url = url
        self.waited = waited
