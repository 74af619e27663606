"""Workflow platform resource models.

These models describe resources owned by the platform and referenced by
the bootstrap flows. The platform returns MongoDB-style ``_id`` keys and
camelCase fields; models accept both the wire names and snake_case.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PlatformModel(BaseModel):
    """Base class for platform resource models."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RoleRef(PlatformModel):
    """Reference to a role assigned to a group or account."""

    role_id: str = Field(..., alias="roleId")

    def to_payload(self) -> dict[str, str]:
        """Serialize to the wire shape ``{"roleId": ...}``."""
        return {"roleId": self.role_id}


class GroupRef(PlatformModel):
    """Group membership entry on an account."""

    group_id: str = Field(..., alias="groupId")
    aaa_managed: bool = Field(default=False, alias="aaaManaged")

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the wire shape used by account updates."""
        return {"aaaManaged": self.aaa_managed, "groupId": self.group_id}


class Role(PlatformModel):
    """Authorization role. Enumerated, never created by this tool."""

    id: str = Field(..., alias="_id")
    name: str
    provenance: str | None = None
    description: str | None = None


class Group(PlatformModel):
    """Authorization group."""

    id: str = Field(..., alias="_id")
    name: str
    provenance: str | None = None
    description: str | None = None
    assigned_roles: list[RoleRef] = Field(default_factory=list, alias="assignedRoles")
    inactive: bool = False


class Account(PlatformModel):
    """Platform user account."""

    id: str = Field(..., alias="_id")
    username: str
    provenance: str | None = None
    assigned_roles: list[RoleRef] = Field(default_factory=list, alias="assignedRoles")
    member_of: list[GroupRef] = Field(default_factory=list, alias="memberOf")

    @property
    def role_ids(self) -> list[str]:
        """IDs of the roles directly assigned to the account."""
        return [ref.role_id for ref in self.assigned_roles]


class Adapter(PlatformModel):
    """Adapter instance connecting the platform to a third-party system.

    Attributes:
        name: Adapter instance name (also its id).
        type: Adapter implementation type.
        properties: Adapter-specific connection properties.
        is_active: Set by the platform once the adapter has started.
    """

    name: str
    type: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = False

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> Adapter:
        """Create from a ``GET /adapters/{name}`` response.

        The platform nests the service config as
        ``data.properties.properties`` and reports state under ``metadata``.
        """
        body = data.get("data") or {}
        service_config = body.get("properties") or {}
        metadata = data.get("metadata") or {}
        return cls(
            name=body.get("name", ""),
            type=service_config.get("type"),
            properties=service_config.get("properties") or {},
            is_active=bool(metadata.get("isActive", False)),
        )

    @staticmethod
    def create_payload(name: str, adapter_type: str) -> dict[str, Any]:
        """Build the ``POST /adapters`` body for a new adapter instance."""
        return {
            "properties": {
                "name": name,
                "type": "Adapter",
                "properties": {
                    "id": name,
                    "type": adapter_type,
                },
            }
        }


class GatewayCertificate(PlatformModel):
    """Certificate registered with the gateway manager."""

    id: str = Field(..., alias="_id")
    alias: str
    contract_id: str | None = None


class GatewayCluster(PlatformModel):
    """Gateway cluster definition in the gateway manager."""

    cluster_id: str
    description: str | None = None
    enabled: bool = True
    readonly: bool = False
    certificates: list[str] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)

    def to_create_payload(self) -> dict[str, Any]:
        """Build the ``POST gateway_manager/v1/gateways`` body."""
        return {"gateway": self.model_dump(exclude_none=True)}


def build_role_refs(roles: list[Role]) -> list[RoleRef]:
    """Reference every given role, preserving order and dropping duplicates."""
    seen: set[str] = set()
    refs: list[RoleRef] = []
    for role in roles:
        if role.id not in seen:
            seen.add(role.id)
            refs.append(RoleRef(role_id=role.id))
    return refs
