"""Workflow platform API exceptions."""

from __future__ import annotations

from typing import Any


class PlatformAPIError(Exception):
    """Base exception for platform REST API errors.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code from the platform (if applicable).
        response_body: Raw response body from the platform (if available).
        endpoint: The API endpoint that was called.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: Any = None,
        endpoint: str | None = None,
    ) -> None:
        """Initialize PlatformAPIError.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code from the platform.
            response_body: Raw response body from the platform.
            endpoint: The API endpoint that was called.
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.endpoint = endpoint

    def __str__(self) -> str:
        """Return string representation of the error."""
        parts = [self.message]
        if self.status_code:
            parts.append(f"(status: {self.status_code})")
        if self.endpoint:
            parts.append(f"[endpoint: {self.endpoint}]")
        return " ".join(parts)


class PlatformConnectionError(PlatformAPIError):
    """Exception raised when the platform cannot be reached.

    This includes network errors, timeouts, and DNS resolution failures.
    """

    def __init__(
        self,
        message: str = "Failed to connect to the platform API",
        endpoint: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """Initialize PlatformConnectionError.

        Args:
            message: Human-readable error message.
            endpoint: The API endpoint that was attempted.
            original_error: The original exception that caused this error.
        """
        super().__init__(message=message, endpoint=endpoint)
        self.original_error = original_error


class PlatformAuthError(PlatformAPIError):
    """Exception raised when login fails or the session lacks permission."""

    def __init__(
        self,
        message: str = "Authentication to the platform failed",
        status_code: int | None = 401,
        response_body: Any = None,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=status_code,
            response_body=response_body,
            endpoint=endpoint,
        )


class PlatformNotFoundError(PlatformAPIError):
    """Exception raised when a requested platform resource does not exist."""

    def __init__(
        self,
        message: str = "Platform resource not found",
        resource_type: str | None = None,
        resource_id: str | None = None,
        response_body: Any = None,
        endpoint: str | None = None,
    ) -> None:
        """Initialize PlatformNotFoundError.

        Args:
            message: Human-readable error message.
            resource_type: Type of resource (e.g., "adapter", "group").
            resource_id: ID or name of the resource.
            response_body: Raw response body from the platform.
            endpoint: The API endpoint that was called.
        """
        if resource_type and resource_id:
            message = f"{resource_type} '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=404,
            response_body=response_body,
            endpoint=endpoint,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class PlatformConflictError(PlatformAPIError):
    """Exception raised when a resource already exists (HTTP 409)."""

    def __init__(
        self,
        message: str = "Platform resource already exists",
        response_body: Any = None,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=409,
            response_body=response_body,
            endpoint=endpoint,
        )
