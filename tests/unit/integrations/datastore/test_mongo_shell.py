"""Unit tests for the mongosh datastore client."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from dev_stack_manager.integrations.datastore.mongo_shell import DatastoreError, MongoShellClient
from dev_stack_manager.integrations.docker.client import DockerClient
from dev_stack_manager.integrations.docker.exceptions import DockerCommandError


@pytest.fixture
def docker() -> MagicMock:
    """Mock docker client."""
    return MagicMock(spec=DockerClient)


@pytest.fixture
def shell(docker: MagicMock) -> MongoShellClient:
    """Shell client over the mock docker client."""
    return MongoShellClient(docker)


@pytest.mark.unit
class TestEval:
    """Tests for MongoShellClient.eval."""

    def test_parses_last_line(self, shell: MongoShellClient, docker: MagicMock) -> None:
        """Earlier output lines are ignored."""
        docker.exec.return_value = 'warning: something\n{"matchedCount": 1}\n\n'

        assert shell.eval("print(1)") == {"matchedCount": 1}

        container, command = docker.exec.call_args.args
        assert container == "mongodb"
        assert command[:3] == ["mongosh", "--quiet", "--eval"]
        assert command[3].startswith('db = db.getSiblingDB("itential");')

    def test_shell_failure(self, shell: MongoShellClient, docker: MagicMock) -> None:
        """Docker failures become datastore errors."""
        docker.exec.side_effect = DockerCommandError("exec failed", stderr="no container")

        with pytest.raises(DatastoreError, match="exec failed") as exc_info:
            shell.eval("x")

        assert exc_info.value.output == "no container"

    def test_empty_output(self, shell: MongoShellClient, docker: MagicMock) -> None:
        """A silent script is an error."""
        docker.exec.return_value = "\n"

        with pytest.raises(DatastoreError, match="printed nothing"):
            shell.eval("x")

    def test_non_json_output(self, shell: MongoShellClient, docker: MagicMock) -> None:
        """Unparseable output is an error."""
        docker.exec.return_value = "ReferenceError: foo"

        with pytest.raises(DatastoreError, match="Unparseable"):
            shell.eval("x")

    def test_non_object_output(self, shell: MongoShellClient, docker: MagicMock) -> None:
        """Only objects are accepted."""
        docker.exec.return_value = "[1, 2]"

        with pytest.raises(DatastoreError, match="not a JSON object"):
            shell.eval("x")


@pytest.mark.unit
class TestRoleScripts:
    """Tests for the role assignment scripts."""

    def test_set_all_roles_embeds_selector(
        self, shell: MongoShellClient, docker: MagicMock
    ) -> None:
        """The selector is embedded as JSON."""
        docker.exec.return_value = '{"matchedCount": 1, "modifiedCount": 1, "roleCount": 12}'

        result = shell.set_all_roles("groups", {"name": "admin_group"})

        assert result["roleCount"] == 12
        script = docker.exec.call_args.args[1][3]
        assert 'db.groups.findOne({"name": "admin_group"})' in script

    def test_set_roles_uses_object_ids(self, shell: MongoShellClient, docker: MagicMock) -> None:
        """Role ids are converted to ObjectId in the script."""
        docker.exec.return_value = '{"matchedCount": 1, "modifiedCount": 0, "roleCount": 2}'

        shell.set_roles("accounts", {"username": "admin@itential"}, ["r1", "r2"])

        script = docker.exec.call_args.args[1][3]
        assert '["r1", "r2"].map(id => ({ roleId: ObjectId(id) }))' in script

    def test_add_group_membership_quotes_name(
        self, shell: MongoShellClient, docker: MagicMock
    ) -> None:
        """Group names are quoted, not interpolated raw."""
        docker.exec.return_value = '{"error": "group not found"}'

        result = shell.add_group_membership({"username": "admin"}, 'bad"name')

        assert result == {"error": "group not found"}
        assert '"bad\\"name"' in docker.exec.call_args.args[1][3]

    def test_add_group_membership_checks_account(
        self, shell: MongoShellClient, docker: MagicMock
    ) -> None:
        """The script reports a missing account before updating."""
        docker.exec.return_value = '{"error": "account not found"}'

        result = shell.add_group_membership({"username": "admin@itential"}, "admin_group")

        assert result == {"error": "account not found"}
        script = docker.exec.call_args.args[1][3]
        assert 'db.accounts.findOne({"username": "admin@itential"}, { _id: 1 })' in script

    def test_is_available(self, shell: MongoShellClient, docker: MagicMock) -> None:
        """Availability is the container running state."""
        docker.is_running.return_value = True

        assert shell.is_available() is True
        docker.is_running.assert_called_once_with("mongodb")
