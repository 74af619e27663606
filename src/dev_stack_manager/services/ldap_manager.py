"""LDAP authentication adapter configuration.

Once the LDAP adapter is active the platform delegates logins to OpenLDAP,
and the local admin loses API access. The flow therefore captures the local
admin's roles first and copies them to the LDAP admin account afterwards,
going through the datastore because the LDAP account cannot grant itself
roles over REST.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from dev_stack_manager.core.config.models import (
    ADMIN_GROUP_NAME,
    LDAP_ADMIN_PASSWORD,
    LDAP_ADMIN_USERNAME,
    LOCAL_ADMIN_ACCOUNT_ID,
)
from dev_stack_manager.integrations.datastore.mongo_shell import DatastoreError
from dev_stack_manager.integrations.platform.config import PlatformCredentials
from dev_stack_manager.integrations.platform.exceptions import PlatformAPIError
from dev_stack_manager.integrations.platform.models import Adapter
from dev_stack_manager.services.platform_session import create_client, open_session
from dev_stack_manager.services.reconciler import (
    AdapterReconciler,
    AdapterSpec,
    ReconcileResult,
    ResourceState,
)
from dev_stack_manager.services.role_sync import RoleSynchronizer
from dev_stack_manager.utils.polling import SleepFn

if TYPE_CHECKING:
    from dev_stack_manager.core.config.models import StackConfig
    from dev_stack_manager.integrations.datastore.mongo_shell import MongoShellClient
    from dev_stack_manager.integrations.platform.client import PlatformClient

logger = structlog.get_logger()

LDAP_ADAPTER_NAME = "LDAP"
LDAP_INTERNAL_PORT = 389
LDAP_BASE_DN = "dc=itential,dc=io"
LDAP_USERS = (
    ("admin@itential", "admin"),
    ("builder@itential", "builder"),
    ("operator@itential", "operator"),
)


def ldap_adapter_properties(config: StackConfig) -> dict[str, Any]:
    """Connection properties for the OpenLDAP container."""
    return {
        "url": f"ldap://{config.ldap_host}:{LDAP_INTERNAL_PORT}",
        "domain": f"cn={{0}},{LDAP_BASE_DN}",
        "bindUsername": f"cn=admin,{LDAP_BASE_DN}",
        "bindPassword": config.ldap_admin_password.get_secret_value(),
        "baseDN": LDAP_BASE_DN,
        "baseUserDN": LDAP_BASE_DN,
        "baseGroupDN": LDAP_BASE_DN,
        "userSearchFilter": "cn",
        "groupSearchFilter": "(objectClass=groupOfNames)",
        "userMembershipAttribute": "memberOf",
        "healthCheckInterval": 5000,
        "timeout": 5000,
        "connectTimeout": 5000,
        "idleTimeout": 5000,
        "timeLimit": 10,
        "reconnect": True,
        "activeDirectory": False,
        "tlsOptions": {"requestCert": False},
    }


def _has_url(adapter: Adapter) -> bool:
    return bool(adapter.properties.get("url"))


def ldap_adapter_spec(config: StackConfig) -> AdapterSpec:
    """Desired state of the LDAP adapter.

    A 401/403 on lookup means LDAP already took over authentication.
    """
    return AdapterSpec(
        name=LDAP_ADAPTER_NAME,
        adapter_type=LDAP_ADAPTER_NAME,
        properties=ldap_adapter_properties(config),
        configured=_has_url,
        auth_blocked_means_configured=True,
    )


@dataclass
class LdapConfigureResult:
    """What the LDAP configuration run achieved."""

    adapter: ReconcileResult | None = None
    already_configured: bool = False
    user_provisioned: bool = False
    roles_copied: bool = False
    group_membership: bool = False
    group_roles_synced: int = 0
    warnings: list[str] = field(default_factory=list)


class LdapConfigurator:
    """Configure the LDAP adapter and give the LDAP admin full access.

    Args:
        config: Stack configuration.
        datastore: Datastore shell client for role copies.
        sleep: Sleep function used for every wait.
    """

    def __init__(
        self,
        config: StackConfig,
        datastore: MongoShellClient,
        sleep: SleepFn = time.sleep,
    ) -> None:
        self._config = config
        self._sync = RoleSynchronizer(datastore)
        self._sleep = sleep
        self._log = logger.bind(adapter=LDAP_ADAPTER_NAME)

    def _warn(self, result: LdapConfigureResult, message: str, **context: Any) -> None:
        result.warnings.append(message)
        self._log.warning(message, **context)

    def _local_admin_role_ids(
        self, client: PlatformClient, result: LdapConfigureResult
    ) -> list[str]:
        try:
            role_ids = client.get_account(LOCAL_ADMIN_ACCOUNT_ID).role_ids
        except PlatformAPIError as e:
            self._warn(result, "Could not fetch local admin roles", error=str(e))
            return []
        self._log.info("local_admin_roles_found", count=len(role_ids))
        return role_ids

    def provision_ldap_user(self) -> bool:
        """Log in once as the LDAP admin so the platform creates the account."""
        credentials = PlatformCredentials(
            username=LDAP_ADMIN_USERNAME, password=LDAP_ADMIN_PASSWORD
        )
        with create_client(self._config) as client:
            try:
                client.login(credentials)
            except PlatformAPIError as e:
                self._log.warning("ldap_login_failed", error=str(e))
                return False
        self._log.info("ldap_user_provisioned", username=LDAP_ADMIN_USERNAME)
        return True

    def grant_ldap_admin(self, role_ids: list[str], result: LdapConfigureResult) -> None:
        """Copy roles, add group membership and refresh the group's roles.

        The LDAP admin already exists at this point, so datastore failures
        are recorded as warnings and the remaining steps still run.
        """
        if role_ids:
            try:
                copied = self._sync.copy_roles_to_account(role_ids)
            except DatastoreError as e:
                self._warn(
                    result, f"Failed to copy roles to {LDAP_ADMIN_USERNAME}", error=e.message
                )
            else:
                result.roles_copied = copied.found
                if not copied.found:
                    self._warn(result, f"Failed to copy roles to {LDAP_ADMIN_USERNAME}")
        else:
            self._warn(result, f"No roles to copy to {LDAP_ADMIN_USERNAME}")

        try:
            membership = self._sync.ensure_group_membership(ADMIN_GROUP_NAME)
        except DatastoreError as e:
            self._warn(
                result,
                f"Failed to add {LDAP_ADMIN_USERNAME} to {ADMIN_GROUP_NAME}",
                error=e.message,
            )
        else:
            if membership is None:
                self._warn(
                    result, f"{ADMIN_GROUP_NAME} not found, run gateway manager setup first"
                )
            elif not membership.found:
                self._warn(result, f"Account {LDAP_ADMIN_USERNAME} not found in the datastore")
            else:
                result.group_membership = True

        try:
            synced = self._sync.sync_group(ADMIN_GROUP_NAME)
        except DatastoreError as e:
            self._warn(result, f"Failed to sync {ADMIN_GROUP_NAME} roles", error=e.message)
        else:
            result.group_roles_synced = synced.role_count
            if not synced.ok:
                self._warn(result, f"Failed to sync {ADMIN_GROUP_NAME} roles")

    def run(self) -> LdapConfigureResult:
        """Configure LDAP end to end.

        Raises:
            ServiceUnavailableError: If the platform never answers.
            PlatformAuthError: If the local admin login is rejected.
            PlatformAPIError: If the adapter cannot be created or configured.
        """
        result = LdapConfigureResult()
        self._log.info("configuring_ldap", platform_url=self._config.platform_base_url)

        with open_session(self._config, sleep=self._sleep) as client:
            role_ids = self._local_admin_role_ids(client, result)
            reconciled = AdapterReconciler(client, sleep=self._sleep).reconcile(
                ldap_adapter_spec(self._config)
            )
        result.adapter = reconciled
        result.warnings.extend(reconciled.warnings)

        already = (ResourceState.AUTH_BLOCKED, ResourceState.EXISTS_CONFIGURED)
        if reconciled.initial_state in already:
            result.already_configured = True
            self._log.info("ldap_already_configured", hint=f"log in as {LDAP_ADMIN_USERNAME}")
            return result

        result.user_provisioned = self.provision_ldap_user()
        if not result.user_provisioned:
            self._warn(result, "LDAP login failed, user may need to be provisioned manually")
            return result

        self.grant_ldap_admin(role_ids, result)
        self._log.info("ldap_configuration_complete")
        return result
