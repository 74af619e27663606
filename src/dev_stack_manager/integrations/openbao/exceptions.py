"""OpenBao secrets manager exceptions."""

from __future__ import annotations

from typing import Any


class OpenBaoError(Exception):
    """Base exception for OpenBao operations.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code from OpenBao (if applicable).
        response_body: Raw response body (if available).
        endpoint: The API endpoint that was called.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: Any = None,
        endpoint: str | None = None,
    ) -> None:
        """Initialize OpenBaoError.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code from OpenBao.
            response_body: Raw response body.
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


class OpenBaoConnectionError(OpenBaoError):
    """Raised when OpenBao cannot be reached."""

    def __init__(
        self,
        message: str = "Failed to connect to OpenBao",
        endpoint: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message=message, endpoint=endpoint)
        self.original_error = original_error


class OpenBaoAPIError(OpenBaoError):
    """Raised when OpenBao answers with an error status."""


class OpenBaoSealedError(OpenBaoError):
    """Raised when OpenBao is still sealed after an unseal attempt."""

    def __init__(self, message: str = "OpenBao is still sealed") -> None:
        super().__init__(message=message, status_code=503)


class OpenBaoConfigError(OpenBaoError):
    """Raised when local OpenBao state (keys file) is missing or invalid."""
