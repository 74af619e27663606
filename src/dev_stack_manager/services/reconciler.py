"""Idempotent adapter reconciliation.

This module drives an adapter instance on the platform towards a desired
configuration with check-before-create semantics:

1. Look the adapter up and classify the answer into a ``ResourceState``.
2. Create it when missing, classifying the answer into a ``CreateOutcome``.
   An "already exists" answer re-resolves the adapter with a fresh lookup.
3. Write its properties unless it is already configured and active.
4. Wait for the platform to report it active. A timeout is a warning.

Re-running against an adapter that is already configured and active makes
no write calls.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog
from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_fixed

from dev_stack_manager.integrations.platform.client import error_message, parse_body
from dev_stack_manager.integrations.platform.exceptions import (
    PlatformAPIError,
    PlatformAuthError,
    PlatformConnectionError,
)
from dev_stack_manager.integrations.platform.models import Adapter
from dev_stack_manager.utils.polling import SleepFn, poll_until

if TYPE_CHECKING:
    from dev_stack_manager.integrations.platform.client import PlatformClient

logger = structlog.get_logger()

ALREADY_EXISTS_MARKERS = ("already exists", "duplicate")
RETRYABLE_STATUSES = frozenset({0, 502, 503, 504})
AUTH_STATUSES = frozenset({401, 403})
# The platform answers a lookup of a missing adapter with a 500
NOT_FOUND_STATUSES = frozenset({404, 500})


class ResourceState(StrEnum):
    """Classification of a resource lookup."""

    EXISTS_CONFIGURED = "exists_configured"
    EXISTS_UNCONFIGURED = "exists_unconfigured"
    NOT_FOUND = "not_found"
    AUTH_BLOCKED = "auth_blocked"
    UNEXPECTED = "unexpected"


class CreateOutcome(StrEnum):
    """Classification of a create call."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    RETRYABLE = "retryable"
    FAILED = "failed"


def _always_configured(adapter: Adapter) -> bool:
    return True


def mentions_already_exists(body: Any) -> bool:
    """Check whether an error body says the resource already exists."""
    text = body if isinstance(body, str) else error_message(body, "") or str(body)
    lowered = text.lower()
    return any(marker in lowered for marker in ALREADY_EXISTS_MARKERS)


def classify_lookup(
    status: int,
    body: Any,
    configured: Callable[[Adapter], bool] = _always_configured,
) -> ResourceState:
    """Classify the answer to ``GET adapters/{name}``.

    Args:
        status: HTTP status code.
        body: Decoded response body.
        configured: Predicate deciding whether an existing adapter already
            carries the desired configuration.

    Returns:
        The resource state.
    """
    if status == 200:
        adapter = Adapter.from_api_response(body if isinstance(body, dict) else {})
        if adapter.is_active and configured(adapter):
            return ResourceState.EXISTS_CONFIGURED
        return ResourceState.EXISTS_UNCONFIGURED
    if status in AUTH_STATUSES:
        return ResourceState.AUTH_BLOCKED
    if status in NOT_FOUND_STATUSES:
        return ResourceState.NOT_FOUND
    return ResourceState.UNEXPECTED


def classify_create(status: int, body: Any) -> CreateOutcome:
    """Classify the answer to a create call.

    Status 0 stands for "no response" (connection failure).
    """
    if 200 <= status < 300:
        return CreateOutcome.CREATED
    if status == 409:
        return CreateOutcome.ALREADY_EXISTS
    if status == 500 and mentions_already_exists(body):
        return CreateOutcome.ALREADY_EXISTS
    if status in RETRYABLE_STATUSES:
        return CreateOutcome.RETRYABLE
    return CreateOutcome.FAILED


@dataclass
class AdapterSpec:
    """Desired state of one adapter instance.

    Attributes:
        name: Adapter instance name.
        adapter_type: Adapter implementation type (e.g. ``LDAP``).
        properties: Service config written with ``PUT adapters/{name}/properties``.
        configured: Predicate telling whether an existing adapter already
            carries this configuration.
        auth_blocked_means_configured: Treat 401/403 on lookup as
            "already configured" instead of an error.
        activation_timeout: Seconds to wait for the adapter to become active.
        activation_interval: Seconds between activation checks.
        create_attempts: Attempts for a create answered with a transient status.
        create_retry_delay: Seconds between create attempts.
    """

    name: str
    adapter_type: str
    properties: dict[str, Any]
    configured: Callable[[Adapter], bool] = _always_configured
    auth_blocked_means_configured: bool = False
    activation_timeout: float = 30
    activation_interval: float = 2
    create_attempts: int = 3
    create_retry_delay: float = 3


@dataclass
class ReconcileResult:
    """Outcome of reconciling one adapter.

    Attributes:
        name: Adapter instance name.
        initial_state: Classification of the first lookup.
        created: The adapter was created by this run.
        configured: Properties were written by this run.
        active: The adapter was reported active at the end of the run.
        adapter: Last known adapter state, None when auth-blocked.
    """

    name: str
    initial_state: ResourceState
    created: bool = False
    configured: bool = False
    active: bool = False
    adapter: Adapter | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """True if this run made any write call."""
        return self.created or self.configured

    @property
    def auth_blocked(self) -> bool:
        """True if the lookup was answered with 401/403."""
        return self.initial_state == ResourceState.AUTH_BLOCKED


class AdapterReconciler:
    """Reconcile adapter instances through an authenticated platform session.

    Args:
        client: Logged-in platform client.
        sleep: Sleep function used between polls and create retries.
    """

    def __init__(self, client: PlatformClient, sleep: SleepFn = time.sleep) -> None:
        self._client = client
        self._sleep = sleep

    def _lookup(self, name: str) -> tuple[int, Any]:
        response = self._client.request("GET", f"adapters/{name}")
        return response.status_code, parse_body(response)

    def _create_once(self, spec: AdapterSpec) -> tuple[CreateOutcome, int, Any]:
        try:
            response = self._client.request(
                "POST",
                "adapters",
                json=Adapter.create_payload(spec.name, spec.adapter_type),
            )
        except PlatformConnectionError as e:
            return CreateOutcome.RETRYABLE, 0, {"error": str(e)}
        body = parse_body(response)
        return classify_create(response.status_code, body), response.status_code, body

    def _create(self, spec: AdapterSpec, log: Any) -> CreateOutcome:
        """Create the adapter, retrying transient failures.

        Raises:
            PlatformAPIError: If the create fails or stays transient.
        """
        retrying = Retrying(
            retry=retry_if_result(lambda r: r[0] == CreateOutcome.RETRYABLE),
            stop=stop_after_attempt(spec.create_attempts),
            wait=wait_fixed(spec.create_retry_delay),
            sleep=self._sleep,
            retry_error_callback=lambda state: state.outcome.result() if state.outcome else None,
        )
        outcome, status, body = retrying(self._create_once, spec)

        if outcome in (CreateOutcome.FAILED, CreateOutcome.RETRYABLE):
            log.error("adapter_create_failed", status=status, body=body)
            raise PlatformAPIError(
                message=f"Failed to create adapter '{spec.name}': "
                + error_message(body, "unexpected response"),
                status_code=status or None,
                response_body=body,
                endpoint="/adapters",
            )
        created = outcome == CreateOutcome.CREATED
        log.info("adapter_created" if created else "adapter_already_exists")
        return outcome

    def _resolve(self, spec: AdapterSpec) -> Adapter:
        """Fetch the adapter after create.

        Raises:
            PlatformAPIError: If the adapter still cannot be read.
        """
        status, body = self._lookup(spec.name)
        adapter = None
        if status == 200 and isinstance(body, dict):
            adapter = Adapter.from_api_response(body)
        if adapter is None or adapter.name != spec.name:
            raise PlatformAPIError(
                message=f"Adapter '{spec.name}' not available after create",
                status_code=status,
                response_body=body,
                endpoint=f"/adapters/{spec.name}",
            )
        return adapter

    def _configure(self, spec: AdapterSpec, log: Any) -> None:
        endpoint = f"adapters/{spec.name}/properties"
        response = self._client.request("PUT", endpoint, json={"properties": spec.properties})
        if response.status_code != 200:
            body = parse_body(response)
            log.error("adapter_configure_failed", status=response.status_code, body=body)
            raise PlatformAPIError(
                message=f"Failed to configure adapter '{spec.name}': "
                + error_message(body, "unexpected response"),
                status_code=response.status_code,
                response_body=body,
                endpoint=f"/{endpoint}",
            )
        log.info("adapter_properties_configured")

    def _wait_active(self, spec: AdapterSpec) -> Adapter | None:
        latest: list[Adapter] = []

        def _is_active() -> bool:
            status, body = self._lookup(spec.name)
            if status != 200 or not isinstance(body, dict):
                return False
            adapter = Adapter.from_api_response(body)
            latest[:] = [adapter]
            return adapter.is_active

        poll_until(
            _is_active,
            spec.activation_timeout,
            spec.activation_interval,
            sleep=self._sleep,
            ignore=(PlatformConnectionError,),
            description=f"adapter {spec.name} active",
        )
        return latest[0] if latest else None

    def reconcile(self, spec: AdapterSpec) -> ReconcileResult:
        """Bring one adapter to the desired state.

        Args:
            spec: Desired adapter state.

        Returns:
            What was found and what was changed.

        Raises:
            PlatformAuthError: If the lookup is auth-blocked and ``spec``
                does not treat that as configured.
            PlatformAPIError: On unexpected lookup answers or failed writes.
        """
        log = logger.bind(adapter=spec.name)
        status, body = self._lookup(spec.name)
        state = classify_lookup(status, body, spec.configured)
        log.info("adapter_lookup", status=status, state=state.value)
        result = ReconcileResult(name=spec.name, initial_state=state)

        if state == ResourceState.AUTH_BLOCKED:
            if spec.auth_blocked_means_configured:
                log.info("adapter_lookup_auth_blocked_assumed_configured")
                result.active = True
                return result
            raise PlatformAuthError(
                message=f"Session is not allowed to read adapter '{spec.name}'",
                status_code=status,
                response_body=body,
                endpoint=f"/adapters/{spec.name}",
            )

        if state == ResourceState.UNEXPECTED:
            log.error("adapter_lookup_unexpected", status=status, body=body)
            raise PlatformAPIError(
                message=f"Unexpected response checking adapter '{spec.name}'",
                status_code=status,
                response_body=body,
                endpoint=f"/adapters/{spec.name}",
            )

        if state == ResourceState.EXISTS_CONFIGURED:
            result.adapter = Adapter.from_api_response(body)
            result.active = True
            log.info("adapter_already_configured")
            return result

        if state == ResourceState.NOT_FOUND:
            result.created = self._create(spec, log) == CreateOutcome.CREATED
            adapter = self._resolve(spec)
            if adapter.is_active and spec.configured(adapter):
                result.adapter = adapter
                result.active = True
                log.info("adapter_already_configured")
                return result

        self._configure(spec, log)
        result.configured = True

        adapter = self._wait_active(spec)
        result.adapter = adapter
        result.active = bool(adapter and adapter.is_active)
        if result.active:
            log.info("adapter_active")
        else:
            message = f"Adapter '{spec.name}' not yet active after {spec.activation_timeout:g}s"
            result.warnings.append(message)
            log.warning("adapter_not_active", timeout=spec.activation_timeout)
        return result
