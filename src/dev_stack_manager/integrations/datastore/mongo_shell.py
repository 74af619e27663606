"""Datastore access through ``mongosh`` inside the datastore container.

Each script prints exactly one JSON document on its last line; the client
parses that line and returns it. Values are embedded with ``json.dumps`` so
no caller input is interpolated into JavaScript unescaped.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import structlog

from dev_stack_manager.integrations.docker.exceptions import DockerCommandError

if TYPE_CHECKING:
    from dev_stack_manager.integrations.docker.client import DockerClient

logger = structlog.get_logger()

DATASTORE_CONTAINER = "mongodb"
DATABASE_NAME = "itential"


class DatastoreError(Exception):
    """Raised when a datastore script fails or prints unparseable output.

    Attributes:
        message: Human-readable error message.
        output: Raw shell output, if any.
    """

    def __init__(self, message: str, output: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.output = output


class MongoShellClient:
    """Run scripts against the platform datastore via ``docker exec``."""

    def __init__(
        self,
        docker: DockerClient,
        container: str = DATASTORE_CONTAINER,
        database: str = DATABASE_NAME,
    ) -> None:
        self._docker = docker
        self.container = container
        self.database = database

    def is_available(self) -> bool:
        """Check that the datastore container is running."""
        return self._docker.is_running(self.container)

    def eval(self, body: str) -> dict[str, Any]:
        """Evaluate a script body against the platform database.

        Args:
            body: JavaScript that ends by printing one JSON document.

        Returns:
            The decoded document.

        Raises:
            DatastoreError: If the shell fails or the output is not JSON.
        """
        script = f"db = db.getSiblingDB({json.dumps(self.database)});\n{body}"
        try:
            output = self._docker.exec(
                self.container, ["mongosh", "--quiet", "--eval", script]
            )
        except DockerCommandError as e:
            raise DatastoreError(f"Datastore script failed: {e.message}", e.stderr) from e

        lines = [line for line in output.splitlines() if line.strip()]
        if not lines:
            raise DatastoreError("Datastore script printed nothing", output)
        try:
            result = json.loads(lines[-1])
        except json.JSONDecodeError as e:
            raise DatastoreError(f"Unparseable datastore output: {e}", output) from e
        if not isinstance(result, dict):
            raise DatastoreError("Datastore output is not a JSON object", output)
        logger.debug("Datastore script result", result=result)
        return result

    # -----------------------------------------------------------------------
    # Role assignment
    # -----------------------------------------------------------------------

    def set_all_roles(self, collection: str, selector: dict[str, Any]) -> dict[str, Any]:
        """Overwrite ``assignedRoles`` of one document with every known role.

        Returns:
            ``{"error": ...}`` when no document matches, otherwise
            ``{"matchedCount", "modifiedCount", "roleCount"}``.
        """
        query = json.dumps(selector)
        return self.eval(
            f"""
var target = db.{collection}.findOne({query});
if (!target) {{
    print(JSON.stringify({{ error: "not found" }}));
}} else {{
    var allRoleIds = db.roles.find({{}}, {{ _id: 1 }}).toArray().map(r => ({{ roleId: r._id }}));
    var result = db.{collection}.updateOne({query}, {{ $set: {{ assignedRoles: allRoleIds }} }});
    print(JSON.stringify({{
        matchedCount: result.matchedCount,
        modifiedCount: result.modifiedCount,
        roleCount: allRoleIds.length
    }}));
}}
"""
        )

    def set_roles(
        self, collection: str, selector: dict[str, Any], role_ids: list[str]
    ) -> dict[str, Any]:
        """Overwrite ``assignedRoles`` of one document with the given role ids."""
        query = json.dumps(selector)
        ids = json.dumps(role_ids)
        return self.eval(
            f"""
var roles = {ids}.map(id => ({{ roleId: ObjectId(id) }}));
var result = db.{collection}.updateOne({query}, {{ $set: {{ assignedRoles: roles }} }});
print(JSON.stringify({{
    matchedCount: result.matchedCount,
    modifiedCount: result.modifiedCount,
    roleCount: roles.length
}}));
"""
        )

    def add_group_membership(
        self, selector: dict[str, Any], group_name: str
    ) -> dict[str, Any]:
        """Push a ``memberOf`` entry for the named group unless already present.

        Returns:
            ``{"error": "group not found"}`` or ``{"error": "account not found"}``
            when either side is missing, otherwise ``{"matchedCount", "modifiedCount"}``.
        """
        query = json.dumps(selector)
        name = json.dumps(group_name)
        return self.eval(
            f"""
var group = db.groups.findOne({{ name: {name} }}, {{ _id: 1 }});
if (!group) {{
    print(JSON.stringify({{ error: "group not found" }}));
}} else if (!db.accounts.findOne({query}, {{ _id: 1 }})) {{
    print(JSON.stringify({{ error: "account not found" }}));
}} else {{
    var selector = Object.assign({query}, {{ "memberOf.groupId": {{ $ne: group._id }} }});
    var result = db.accounts.updateOne(
        selector,
        {{ $push: {{ memberOf: {{ aaaManaged: false, groupId: group._id }} }} }}
    );
    print(JSON.stringify({{
        matchedCount: result.matchedCount,
        modifiedCount: result.modifiedCount
    }}));
}}
"""
        )
