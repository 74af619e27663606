"""OpenBao HTTP API client."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from dev_stack_manager.integrations.openbao.exceptions import (
    OpenBaoAPIError,
    OpenBaoConnectionError,
)
from dev_stack_manager.integrations.openbao.models import InitKeys, SealStatus

if TYPE_CHECKING:
    from dev_stack_manager.integrations.openbao.config import OpenBaoConnectionConfig

logger = structlog.get_logger()

HEALTH_PARAMS = {"standbyok": "true", "uninitcode": "200", "sealedcode": "200"}


class OpenBaoClient:
    """HTTP client for the OpenBao system and KV v2 APIs.

    The token is optional because the init, seal-status and unseal
    endpoints are unauthenticated; call ``set_token`` once a root token
    is known.
    """

    def __init__(self, connection_config: OpenBaoConnectionConfig) -> None:
        self.connection_config = connection_config
        self._retries = connection_config.retries
        headers = {"Accept": "application/json"}
        if connection_config.token is not None:
            headers["X-Vault-Token"] = connection_config.token.get_secret_value()
        self._client = httpx.Client(
            base_url=f"{connection_config.base_url}/v1",
            timeout=httpx.Timeout(connection_config.timeout),
            headers=headers,
        )
        logger.debug("OpenBao client initialized", base_url=connection_config.base_url)

    def __enter__(self) -> OpenBaoClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def set_token(self, token: str) -> None:
        """Authenticate subsequent requests with the given token."""
        self._client.headers["X-Vault-Token"] = token

    # -----------------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------------

    def _send(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        url = f"/{endpoint.lstrip('/')}"
        try:
            response = self._client.request(method, url, **kwargs)
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            logger.debug("OpenBao connection error", endpoint=url, error=str(e))
            raise OpenBaoConnectionError(
                message=f"Failed to connect to OpenBao: {e}",
                endpoint=url,
                original_error=e,
            ) from e
        logger.debug(
            "OpenBao API response", method=method, endpoint=url, status=response.status_code
        )
        return response

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        retry_decorator = retry(
            retry=retry_if_exception_type(OpenBaoConnectionError),
            stop=stop_after_attempt(self._retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        )
        response: httpx.Response = retry_decorator(self._send)(method, endpoint, **kwargs)
        return response

    @staticmethod
    def _body(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    def _json(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Send a request and return the decoded body.

        Raises:
            OpenBaoAPIError: On any non-2xx status.
        """
        response = self._request(method, endpoint, **kwargs)
        body = self._body(response)
        if not response.is_success:
            errors = body.get("errors") if isinstance(body, dict) else None
            message = "; ".join(errors) if errors else f"OpenBao API error: {response.status_code}"
            raise OpenBaoAPIError(
                message=message,
                status_code=response.status_code,
                response_body=body,
                endpoint=f"/v1/{endpoint.lstrip('/')}",
            )
        return body

    # -----------------------------------------------------------------------
    # System
    # -----------------------------------------------------------------------

    def is_healthy(self) -> bool:
        """Check that the server answers health checks in any init/seal state."""
        try:
            return self._send("GET", "sys/health", params=HEALTH_PARAMS).status_code == 200
        except OpenBaoConnectionError:
            return False

    def is_initialized(self) -> bool:
        """Check whether the server has been initialized."""
        return bool(self._json("GET", "sys/init").get("initialized", False))

    def initialize(self, secret_shares: int = 1, secret_threshold: int = 1) -> InitKeys:
        """Initialize the server and return the generated keys."""
        data = self._json(
            "POST",
            "sys/init",
            json={"secret_shares": secret_shares, "secret_threshold": secret_threshold},
        )
        logger.info("OpenBao initialized", shares=secret_shares, threshold=secret_threshold)
        return InitKeys.model_validate(data)

    def seal_status(self) -> SealStatus:
        """Get the current seal status."""
        return SealStatus.model_validate(self._json("GET", "sys/seal-status"))

    def unseal(self, key: str) -> SealStatus:
        """Submit an unseal key."""
        return SealStatus.model_validate(self._json("POST", "sys/unseal", json={"key": key}))

    # -----------------------------------------------------------------------
    # Secrets engines
    # -----------------------------------------------------------------------

    def list_mounts(self) -> dict[str, Any]:
        """List mounted secrets engines keyed by path (with trailing slash)."""
        data = self._json("GET", "sys/mounts")
        mounts = data.get("data", data) if isinstance(data, dict) else {}
        return {k: v for k, v in mounts.items() if k.endswith("/")}

    def enable_kv_v2(self, path: str = "secret") -> None:
        """Mount a KV version 2 engine at the given path.

        Raises:
            OpenBaoAPIError: If the mount fails (400 when already mounted).
        """
        self._json(
            "POST",
            f"sys/mounts/{path}",
            json={"type": "kv", "options": {"version": "2"}},
        )
        logger.info("Enabled KV v2 secrets engine", path=path)

    def write_secret(self, mount: str, path: str, data: dict[str, Any]) -> dict[str, Any]:
        """Write a KV v2 secret and return the version metadata."""
        body = self._json("POST", f"{mount}/data/{path}", json={"data": data})
        logger.info("Wrote secret", mount=mount, path=path)
        result: dict[str, Any] = body.get("data", {}) if isinstance(body, dict) else {}
        return result
