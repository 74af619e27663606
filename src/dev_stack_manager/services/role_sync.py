"""Role synchronisation through the platform datastore.

Adapters register new roles when they start, so groups and accounts that
should hold "every role" drift over time. The synchronizer overwrites
their ``assignedRoles`` with the full role set (last writer wins).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from dev_stack_manager.core.config.models import ADMIN_GROUP_NAME, LDAP_ADMIN_USERNAME

if TYPE_CHECKING:
    from dev_stack_manager.core.config.models import StackConfig
    from dev_stack_manager.integrations.datastore.mongo_shell import MongoShellClient

logger = structlog.get_logger()

LDAP_PROVENANCE = "LDAP"


@dataclass
class SyncResult:
    """Outcome of one datastore update.

    Attributes:
        target: Human-readable name of the group or account.
        found: The target document exists.
        role_count: Number of roles now assigned (for role updates).
        changed: The document was modified.
    """

    target: str
    found: bool
    role_count: int = 0
    changed: bool = False

    @property
    def ok(self) -> bool:
        """True if the target exists and carries at least one role."""
        return self.found and self.role_count > 0


def _account_selector(username: str, provenance: str) -> dict[str, str]:
    return {"username": username, "provenance": provenance}


def _to_result(target: str, raw: dict[str, Any]) -> SyncResult:
    if "error" in raw:
        return SyncResult(target=target, found=False)
    return SyncResult(
        target=target,
        found=int(raw.get("matchedCount", 0)) > 0,
        role_count=int(raw.get("roleCount", 0)),
        changed=int(raw.get("modifiedCount", 0)) > 0,
    )


class RoleSynchronizer:
    """Overwrite role assignments of groups and accounts."""

    def __init__(self, datastore: MongoShellClient) -> None:
        self._datastore = datastore

    def sync_group(self, name: str = ADMIN_GROUP_NAME) -> SyncResult:
        """Assign every role to a group.

        Raises:
            DatastoreError: If the datastore script fails.
        """
        result = _to_result(name, self._datastore.set_all_roles("groups", {"name": name}))
        if result.found:
            logger.info("group_roles_synced", group=name, roles=result.role_count)
        else:
            logger.warning("group_not_found", group=name)
        return result

    def sync_account(
        self, username: str = LDAP_ADMIN_USERNAME, provenance: str = LDAP_PROVENANCE
    ) -> SyncResult:
        """Assign every role to an account."""
        raw = self._datastore.set_all_roles("accounts", _account_selector(username, provenance))
        result = _to_result(username, raw)
        if result.found:
            logger.info("account_roles_synced", account=username, roles=result.role_count)
        else:
            logger.warning("account_not_found", account=username, provenance=provenance)
        return result

    def copy_roles_to_account(
        self,
        role_ids: list[str],
        username: str = LDAP_ADMIN_USERNAME,
        provenance: str = LDAP_PROVENANCE,
    ) -> SyncResult:
        """Overwrite an account's roles with the given role ids."""
        raw = self._datastore.set_roles(
            "accounts", _account_selector(username, provenance), role_ids
        )
        result = _to_result(username, raw)
        logger.info(
            "account_roles_copied",
            account=username,
            roles=result.role_count,
            found=result.found,
            changed=result.changed,
        )
        return result

    def ensure_group_membership(
        self,
        group: str = ADMIN_GROUP_NAME,
        username: str = LDAP_ADMIN_USERNAME,
        provenance: str = LDAP_PROVENANCE,
    ) -> SyncResult | None:
        """Add an account to a group unless it is already a member.

        Returns:
            None if the group does not exist. A result with ``found`` False
            if the account does not exist. Otherwise ``changed`` tells
            whether membership was added; an account that already belongs
            to the group matches nothing and is reported unchanged.
        """
        raw = self._datastore.add_group_membership(_account_selector(username, provenance), group)
        error = raw.get("error")
        if error == "account not found":
            logger.warning("account_not_found", account=username, provenance=provenance)
            return SyncResult(target=username, found=False)
        if error:
            logger.warning("group_not_found", group=group)
            return None
        changed = int(raw.get("modifiedCount", 0)) > 0
        logger.info("group_membership_ensured", group=group, account=username, added=changed)
        return SyncResult(target=username, found=True, changed=changed)

    def sync_admins(self, config: StackConfig) -> list[SyncResult]:
        """Sync ``admin_group`` and, with LDAP enabled, the LDAP admin account."""
        results = [self.sync_group(ADMIN_GROUP_NAME)]
        if config.ldap_enabled:
            results.append(self.sync_account(LDAP_ADMIN_USERNAME, LDAP_PROVENANCE))
        return results
