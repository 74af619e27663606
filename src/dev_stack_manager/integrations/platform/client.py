"""Workflow platform REST API HTTP client."""

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

from dev_stack_manager.integrations.platform.exceptions import (
    PlatformAPIError,
    PlatformAuthError,
    PlatformConflictError,
    PlatformConnectionError,
    PlatformNotFoundError,
)
from dev_stack_manager.integrations.platform.models import (
    Account,
    GatewayCertificate,
    GatewayCluster,
    Group,
    Role,
    RoleRef,
)

if TYPE_CHECKING:
    from dev_stack_manager.integrations.platform.config import (
        PlatformConnectionConfig,
        PlatformCredentials,
    )

logger = structlog.get_logger()

GATEWAY_MANAGER_PREFIX = "gateway_manager/v1"


def parse_body(response: httpx.Response) -> Any:
    """Decode a response body, falling back to the raw text."""
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text}


def error_message(body: Any, default: str) -> str:
    """Pull a human-readable message out of an error body."""
    if isinstance(body, dict):
        for key in ("message", "error", "raw"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    if isinstance(body, str) and body:
        return body
    return default


class PlatformClient:
    """HTTP client for the workflow platform REST API.

    Holds the session cookie issued by ``POST /login`` for the lifetime of
    the client, so one instance represents one authenticated session.

    Example:
        ```python
        from dev_stack_manager.integrations.platform import (
            PlatformClient,
            PlatformConnectionConfig,
            PlatformCredentials,
        )

        connection = PlatformConnectionConfig(base_url="http://localhost:3000")
        credentials = PlatformCredentials(username="admin", password="admin")

        with PlatformClient(connection) as client:
            client.login(credentials)
            roles = client.list_roles()
        ```
    """

    def __init__(self, connection_config: PlatformConnectionConfig) -> None:
        """Initialize platform API client.

        Args:
            connection_config: Connection settings (URL, timeout, SSL, retries).
        """
        self.connection_config = connection_config
        self._retries = connection_config.retries
        self._client = httpx.Client(
            base_url=connection_config.base_url,
            timeout=httpx.Timeout(connection_config.timeout),
            verify=connection_config.verify_ssl,
            headers={"Accept": "application/json"},
        )
        self.username: str | None = None

        logger.debug("Platform client initialized", base_url=connection_config.base_url)

    def __enter__(self) -> PlatformClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()

    def close(self) -> None:
        """Close the HTTP client and release resources."""
        self._client.close()

    # -----------------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------------

    def _make_retry_decorator(self) -> Any:
        """Create a retry decorator based on configuration."""
        return retry(
            retry=retry_if_exception_type(PlatformConnectionError),
            stop=stop_after_attempt(self._retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        )

    def _send(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Send a single request without retries.

        Raises:
            PlatformConnectionError: If the platform cannot be reached.
        """
        url = f"/{endpoint.lstrip('/')}"
        log = logger.bind(method=method, endpoint=url)

        try:
            log.debug("Platform API request")
            response = self._client.request(method, url, **kwargs)
            log.debug("Platform API response", status=response.status_code)
            return response
        except httpx.ConnectError as e:
            log.debug("Platform connection error", error=str(e))
            raise PlatformConnectionError(
                message=f"Failed to connect to the platform: {e}",
                endpoint=url,
                original_error=e,
            ) from e
        except httpx.TimeoutException as e:
            log.debug("Platform request timeout", error=str(e))
            raise PlatformConnectionError(
                message=f"Platform request timed out: {e}",
                endpoint=url,
                original_error=e,
            ) from e

    def request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Send a request with connection retries and return the raw response.

        Callers that classify status codes themselves use this instead of
        the JSON helpers.
        """
        retry_decorator = self._make_retry_decorator()
        response: httpx.Response = retry_decorator(self._send)(method, endpoint, **kwargs)
        return response

    def probe(self, endpoint: str) -> int | None:
        """Issue a single GET and return its status code, None when unreachable."""
        try:
            return self._send("GET", endpoint).status_code
        except PlatformConnectionError:
            return None

    def _handle_response(self, response: httpx.Response, endpoint: str) -> Any:
        """Handle HTTP response and raise appropriate exceptions.

        Raises:
            PlatformAuthError: If authentication failed (401/403).
            PlatformNotFoundError: If resource not found (404).
            PlatformConflictError: If the resource already exists (409).
            PlatformAPIError: For other API errors.
        """
        body = parse_body(response)

        if response.is_success:
            return body

        status = response.status_code
        if status in (401, 403):
            raise PlatformAuthError(
                message=error_message(body, "Authentication failed"),
                status_code=status,
                response_body=body,
                endpoint=endpoint,
            )
        if status == 404:
            raise PlatformNotFoundError(
                message=error_message(body, "Resource not found"),
                response_body=body,
                endpoint=endpoint,
            )
        if status == 409:
            raise PlatformConflictError(
                message=error_message(body, "Resource already exists"),
                response_body=body,
                endpoint=endpoint,
            )
        raise PlatformAPIError(
            message=error_message(body, f"Platform API error: {status}"),
            status_code=status,
            response_body=body,
            endpoint=endpoint,
        )

    def _json(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        response = self.request(method, endpoint, **kwargs)
        return self._handle_response(response, f"/{endpoint.lstrip('/')}")

    def get(self, endpoint: str, **kwargs: Any) -> Any:
        """GET request returning the decoded body."""
        return self._json("GET", endpoint, **kwargs)

    def post(self, endpoint: str, json: Any = None, **kwargs: Any) -> Any:
        """POST request returning the decoded body."""
        return self._json("POST", endpoint, json=json, **kwargs)

    def patch(self, endpoint: str, json: Any = None, **kwargs: Any) -> Any:
        """PATCH request returning the decoded body."""
        return self._json("PATCH", endpoint, json=json, **kwargs)

    # -----------------------------------------------------------------------
    # Session
    # -----------------------------------------------------------------------

    def login(self, credentials: PlatformCredentials) -> None:
        """Exchange credentials for a session cookie.

        Args:
            credentials: Username and password.

        Raises:
            PlatformAuthError: If the platform rejects the credentials.
            PlatformConnectionError: If the platform cannot be reached.
        """
        response = self.request("POST", "login", json=credentials.to_login_payload())
        if not response.is_success:
            raise PlatformAuthError(
                message=f"Login failed for '{credentials.username}'",
                status_code=response.status_code,
                response_body=parse_body(response),
                endpoint="/login",
            )
        self.username = credentials.username
        logger.info("Authenticated with platform", username=credentials.username)

    def has_api_access(self) -> bool:
        """Check that the current session can call an authenticated endpoint."""
        try:
            return self.request("GET", "adapters", params={"limit": 1}).status_code == 200
        except PlatformConnectionError:
            return False

    # -----------------------------------------------------------------------
    # Authorization
    # -----------------------------------------------------------------------

    def list_roles(self, limit: int = 200) -> list[Role]:
        """List all authorization roles."""
        data = self.get("authorization/roles", params={"limit": limit})
        roles = [Role.model_validate(item) for item in data.get("results", [])]
        logger.debug("Listed roles", count=len(roles))
        return roles

    def list_groups(self, limit: int = 100) -> list[Group]:
        """List authorization groups."""
        data = self.get("authorization/groups", params={"limit": limit})
        return [Group.model_validate(item) for item in data.get("results", [])]

    def find_group(self, name: str) -> Group | None:
        """Find a group by exact name."""
        for group in self.list_groups():
            if group.name == name:
                return group
        return None

    def create_group(
        self,
        name: str,
        role_refs: list[RoleRef],
        description: str = "",
        provenance: str = "Pronghorn",
    ) -> str:
        """Create a group and return its id.

        Raises:
            PlatformAPIError: If the platform does not return an id.
        """
        payload = {
            "group": {
                "name": name,
                "provenance": provenance,
                "description": description,
                "assignedRoles": [ref.to_payload() for ref in role_refs],
                "memberOf": [],
                "inactive": False,
            }
        }
        data = self.post("authorization/groups", json=payload)
        group_id = (data.get("data") or {}).get("_id") if isinstance(data, dict) else None
        if not group_id:
            raise PlatformAPIError(
                message="Group creation response did not include an id",
                response_body=data,
                endpoint="/authorization/groups",
            )
        return str(group_id)

    def update_group(self, group_id: str, updates: dict[str, Any]) -> Any:
        """Apply a partial update to a group."""
        return self.patch(f"authorization/groups/{group_id}", json={"updates": updates})

    def get_account(self, account_id: str) -> Account:
        """Get an account by id."""
        return Account.model_validate(self.get(f"authorization/accounts/{account_id}"))

    def update_account(self, account_id: str, updates: dict[str, Any]) -> Any:
        """Apply a partial update to an account."""
        return self.patch(f"authorization/accounts/{account_id}", json={"updates": updates})

    # -----------------------------------------------------------------------
    # Gateway manager
    # -----------------------------------------------------------------------

    def list_gateway_certificates(self) -> list[GatewayCertificate]:
        """List certificates registered with the gateway manager."""
        data = self.get(f"{GATEWAY_MANAGER_PREFIX}/certificates")
        return [GatewayCertificate.model_validate(item) for item in data.get("results") or []]

    def find_gateway_certificate(self, alias: str) -> GatewayCertificate | None:
        """Find a registered certificate by alias."""
        for cert in self.list_gateway_certificates():
            if cert.alias == alias:
                return cert
        return None

    def list_gateways(self) -> list[GatewayCluster]:
        """List gateway clusters."""
        data = self.get(f"{GATEWAY_MANAGER_PREFIX}/gateways")
        return [GatewayCluster.model_validate(item) for item in data.get("results") or []]

    def get_gateway_connections(self) -> dict[str, Any]:
        """Return live gateway connections keyed by cluster id."""
        data = self.get(f"{GATEWAY_MANAGER_PREFIX}/connections")
        return data if isinstance(data, dict) else {}
