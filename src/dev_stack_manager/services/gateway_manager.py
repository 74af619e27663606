"""Gateway manager provisioning.

Registers the Gateway5 client certificate with the platform, gives the
built-in admin every role through ``admin_group`` and creates the gateway
cluster that Gateway5 connects to. Every step checks before it creates, so
the whole flow is safe to re-run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog
from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_incrementing

from dev_stack_manager.core.config.models import ADMIN_GROUP_NAME, LOCAL_ADMIN_ACCOUNT_ID
from dev_stack_manager.core.exceptions import CertificateError
from dev_stack_manager.integrations.platform.client import (
    GATEWAY_MANAGER_PREFIX,
    error_message,
    parse_body,
)
from dev_stack_manager.integrations.platform.exceptions import (
    PlatformAPIError,
    PlatformConnectionError,
)
from dev_stack_manager.integrations.platform.models import (
    GatewayCluster,
    GroupRef,
    RoleRef,
    build_role_refs,
)
from dev_stack_manager.services.platform_session import open_session
from dev_stack_manager.services.reconciler import CreateOutcome, classify_create
from dev_stack_manager.utils.polling import SleepFn, poll_until

if TYPE_CHECKING:
    from dev_stack_manager.core.config.models import StackConfig
    from dev_stack_manager.integrations.platform.client import PlatformClient

logger = structlog.get_logger()

API_WAIT_TIMEOUT = 60
API_WAIT_INTERVAL = 3
UPLOAD_ATTEMPTS = 5
UPLOAD_INITIAL_DELAY = 3
UPLOAD_DELAY_INCREMENT = 2
CONNECTION_CHECK_INTERVAL = 5
CONNECTION_CHECK_ATTEMPTS = 12
ADMIN_GROUP_DESCRIPTION = "Admin group with full permissions"
GATEWAY_DESCRIPTION = "Auto-configured gateway"


@dataclass
class GatewayProvisionResult:
    """What the provisioning run achieved.

    Attributes:
        cluster_id: Gateway cluster id.
        certificate_alias: Alias the certificate is registered under.
        role_count: Number of roles found on the platform.
        certificate_id: Id of the registered certificate, None if upload failed.
        group_id: Id of ``admin_group``, None if it could not be ensured.
        permissions_assigned: The admin account got all roles and the group.
        gateway_created: The cluster exists (created now or before).
        connected: Gateway5 reported a live connection.
    """

    cluster_id: str
    certificate_alias: str
    role_count: int = 0
    certificate_id: str | None = None
    group_id: str | None = None
    permissions_assigned: bool = False
    gateway_created: bool = False
    connected: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def certificate_uploaded(self) -> bool:
        """True if the certificate is registered."""
        return self.certificate_id is not None

    @property
    def group_configured(self) -> bool:
        """True if ``admin_group`` exists with all roles."""
        return self.group_id is not None

    @property
    def complete(self) -> bool:
        """True if nothing is left for the operator to do."""
        return self.gateway_created

    def manual_steps(self, platform_url: str) -> list[str]:
        """Steps the operator must still perform in the UI."""
        if self.complete:
            return []
        steps = [f"Login to Platform: {platform_url} (admin / admin)"]
        if not self.group_configured:
            steps.append(
                f"Navigate to Admin Essentials > Authorization > Groups, create group "
                f"'{ADMIN_GROUP_NAME}' and add roles gateway:read, gateway:update, "
                "gateway:create under the Roles tab"
            )
        steps.append("Navigate to Admin Essentials > Gateway Manager")
        steps.append(
            f"Create cluster '{self.cluster_id}' with certificate "
            f"'{self.certificate_alias}', assign group '{ADMIN_GROUP_NAME}' and enable it"
        )
        return steps


class GatewayManagerProvisioner:
    """Provision the gateway manager through the platform REST API.

    Args:
        config: Stack configuration.
        sleep: Sleep function used for every wait, injectable for tests.
    """

    def __init__(self, config: StackConfig, sleep: SleepFn = time.sleep) -> None:
        self._config = config
        self._sleep = sleep
        self._log = logger.bind(cluster_id=config.gateway5_cluster_id)

    def _warn(self, result: GatewayProvisionResult, message: str, **context: Any) -> None:
        result.warnings.append(message)
        self._log.warning(message, **context)

    def check_certificate_files(self) -> None:
        """Ensure the Gateway5 certificate pair exists.

        Raises:
            CertificateError: If either file is missing.
        """
        for path in (self._config.gateway5_cert_file, self._config.gateway5_key_file):
            if not path.is_file():
                raise CertificateError(
                    f"Certificate file not found: {path}",
                    details="Run: devstack certs",
                )

    # -----------------------------------------------------------------------
    # Steps
    # -----------------------------------------------------------------------

    def wait_for_api(self, client: PlatformClient) -> bool:
        """Wait until the gateway manager endpoints answer 200."""
        self._log.info("waiting_for_gateway_manager_api")
        ready = poll_until(
            lambda: client.probe(f"{GATEWAY_MANAGER_PREFIX}/certificates") == 200,
            API_WAIT_TIMEOUT,
            API_WAIT_INTERVAL,
            sleep=self._sleep,
            description="gateway manager api",
        )
        if ready:
            self._log.info("gateway_manager_api_ready")
        return ready

    def lookup_roles(self, client: PlatformClient, result: GatewayProvisionResult) -> list[RoleRef]:
        """Reference every role known to the platform."""
        try:
            roles = client.list_roles()
        except PlatformAPIError as e:
            self._warn(result, "Could not look up roles", error=str(e))
            return []
        refs = build_role_refs(roles)
        result.role_count = len(refs)
        self._log.info("roles_found", count=len(refs))
        if not refs:
            self._warn(result, "Could not find any roles, gateway creation may fail")
        return refs

    def _find_certificate_id(self, client: PlatformClient, alias: str) -> str | None:
        try:
            cert = client.find_gateway_certificate(alias)
        except PlatformAPIError as e:
            self._log.debug("certificate_lookup_failed", error=str(e))
            return None
        return cert.id if cert else None

    @staticmethod
    def _extract_certificate_id(body: Any) -> str | None:
        if not isinstance(body, dict):
            return None
        data = body.get("data")
        if isinstance(data, dict) and data.get("_id"):
            return str(data["_id"])
        results = body.get("results")
        if isinstance(results, dict):
            upserted = results.get("upsertedIds") or {}
            if isinstance(upserted, dict) and upserted.get("0"):
                return str(upserted["0"])
        return None

    def _upload_once(
        self, client: PlatformClient, payload: dict[str, str]
    ) -> tuple[CreateOutcome, int, Any]:
        endpoint = f"{GATEWAY_MANAGER_PREFIX}/certificates"
        try:
            response = client.request("POST", endpoint, json=payload)
        except PlatformConnectionError as e:
            return CreateOutcome.RETRYABLE, 0, {"error": str(e)}
        body = parse_body(response)
        outcome = classify_create(response.status_code, body)
        if outcome == CreateOutcome.RETRYABLE:
            self._log.warning("gateway_manager_not_ready", status=response.status_code)
        return outcome, response.status_code, body

    def ensure_certificate(
        self, client: PlatformClient, result: GatewayProvisionResult
    ) -> str | None:
        """Register the Gateway5 certificate unless an entry with its alias exists."""
        alias = self._config.certificate_alias
        existing = self._find_certificate_id(client, alias)
        if existing:
            self._log.info("certificate_exists", alias=alias, id=existing)
            return existing

        self._log.info("uploading_certificate", alias=alias)
        payload = {
            "raw_certificate": self._config.gateway5_cert_file.read_text(),
            "contract_id": alias,
            "alias": alias,
        }
        retrying = Retrying(
            retry=retry_if_result(lambda r: r[0] == CreateOutcome.RETRYABLE),
            stop=stop_after_attempt(UPLOAD_ATTEMPTS),
            wait=wait_incrementing(start=UPLOAD_INITIAL_DELAY, increment=UPLOAD_DELAY_INCREMENT),
            sleep=self._sleep,
            retry_error_callback=lambda state: state.outcome.result() if state.outcome else None,
        )
        outcome, status, body = retrying(self._upload_once, client, payload)

        cert_id: str | None = None
        if outcome == CreateOutcome.CREATED:
            cert_id = self._extract_certificate_id(body)
            if not cert_id:
                self._sleep(1)
                cert_id = self._find_certificate_id(client, alias)
        elif outcome == CreateOutcome.ALREADY_EXISTS:
            cert_id = self._find_certificate_id(client, alias)

        if cert_id:
            self._log.info("certificate_registered", alias=alias, id=cert_id, outcome=outcome.value)
        else:
            self._warn(result, f"Certificate upload failed (HTTP {status})", body=body)
        return cert_id

    def ensure_admin_group(
        self, client: PlatformClient, role_refs: list[RoleRef], result: GatewayProvisionResult
    ) -> str | None:
        """Create ``admin_group`` or overwrite its roles with the full set."""
        try:
            group = client.find_group(ADMIN_GROUP_NAME)
            if group:
                self._log.info("group_exists_updating_roles", group=group.name, id=group.id)
                try:
                    client.update_group(
                        group.id, {"assignedRoles": [ref.to_payload() for ref in role_refs]}
                    )
                except PlatformAPIError as e:
                    self._warn(result, "Failed to update admin_group roles", error=str(e))
                return group.id

            group_id = client.create_group(ADMIN_GROUP_NAME, role_refs, ADMIN_GROUP_DESCRIPTION)
        except PlatformAPIError as e:
            self._warn(result, "Failed to create group", error=str(e))
            return None
        self._log.info("group_created", group=ADMIN_GROUP_NAME, id=group_id)
        return group_id

    def assign_admin_permissions(
        self,
        client: PlatformClient,
        group_id: str,
        role_refs: list[RoleRef],
        result: GatewayProvisionResult,
    ) -> bool:
        """Give the built-in admin the group membership and all roles in one update."""
        updates = {
            "memberOf": [GroupRef(group_id=group_id).to_payload()],
            "assignedRoles": [ref.to_payload() for ref in role_refs],
        }
        try:
            body = client.update_account(LOCAL_ADMIN_ACCOUNT_ID, updates)
        except PlatformAPIError as e:
            self._warn(result, "Failed to assign admin permissions", error=str(e))
            return False
        if isinstance(body, dict) and body.get("status") == "OK":
            self._log.info("admin_permissions_assigned")
            return True
        self._warn(result, "Failed to assign admin permissions", body=body)
        return False

    def ensure_gateway(
        self, client: PlatformClient, cert_id: str, result: GatewayProvisionResult
    ) -> bool:
        """Create the gateway cluster unless it already exists."""
        cluster_id = self._config.gateway5_cluster_id
        try:
            if any(gw.cluster_id == cluster_id for gw in client.list_gateways()):
                self._log.info("gateway_cluster_exists")
                return True
        except PlatformAPIError as e:
            self._log.debug("gateway_lookup_failed", error=str(e))

        cluster = GatewayCluster(
            cluster_id=cluster_id,
            description=GATEWAY_DESCRIPTION,
            enabled=True,
            readonly=False,
            certificates=[cert_id],
            groups=[ADMIN_GROUP_NAME],
        )
        try:
            response = client.request(
                "POST", f"{GATEWAY_MANAGER_PREFIX}/gateways", json=cluster.to_create_payload()
            )
        except PlatformConnectionError as e:
            self._warn(result, "Gateway cluster creation failed", error=str(e))
            return False

        body = parse_body(response)
        outcome = classify_create(response.status_code, body)
        if outcome == CreateOutcome.CREATED:
            self._log.info("gateway_cluster_created")
            return True
        if outcome == CreateOutcome.ALREADY_EXISTS:
            self._log.info("gateway_cluster_exists")
            return True
        self._warn(
            result,
            f"Gateway cluster creation failed (HTTP {response.status_code}): "
            + error_message(body, "unexpected response"),
        )
        return False

    def verify_connection(self, client: PlatformClient) -> bool:
        """Wait for Gateway5 to show up among live connections."""
        cluster_id = self._config.gateway5_cluster_id
        self._log.info("waiting_for_gateway5_connection")
        connected = poll_until(
            lambda: cluster_id in client.get_gateway_connections(),
            CONNECTION_CHECK_INTERVAL * (CONNECTION_CHECK_ATTEMPTS - 1),
            CONNECTION_CHECK_INTERVAL,
            sleep=self._sleep,
            ignore=(PlatformAPIError,),
            description="gateway5 connection",
        )
        if connected:
            self._log.info("gateway5_connected")
        else:
            self._log.warning("gateway5_not_connected", hint="will connect when container starts")
        return connected

    # -----------------------------------------------------------------------
    # Flow
    # -----------------------------------------------------------------------

    def provision(self, client: PlatformClient) -> GatewayProvisionResult:
        """Run all steps with an authenticated client."""
        result = GatewayProvisionResult(
            cluster_id=self._config.gateway5_cluster_id,
            certificate_alias=self._config.certificate_alias,
        )
        if not self.wait_for_api(client):
            self._warn(result, "Gateway Manager API readiness timeout, proceeding anyway")

        role_refs = self.lookup_roles(client, result)
        result.certificate_id = self.ensure_certificate(client, result)
        result.group_id = self.ensure_admin_group(client, role_refs, result)
        if result.group_id:
            result.permissions_assigned = self.assign_admin_permissions(
                client, result.group_id, role_refs, result
            )

        if result.certificate_id and result.group_id and result.permissions_assigned:
            result.gateway_created = self.ensure_gateway(client, result.certificate_id, result)
        elif not result.permissions_assigned:
            self._warn(result, "Skipping gateway creation, admin roles not assigned")

        if result.gateway_created:
            result.connected = self.verify_connection(client)
        return result

    def run(self) -> GatewayProvisionResult:
        """Check prerequisites, log in as the local admin and provision.

        Raises:
            CertificateError: If the certificate pair is missing.
            ServiceUnavailableError: If the platform never answers.
            PlatformAuthError: If the admin login is rejected.
        """
        self.check_certificate_files()
        self._log.info("configuring_gateway_manager", platform_url=self._config.platform_base_url)
        with open_session(self._config, sleep=self._sleep) as client:
            return self.provision(client)
