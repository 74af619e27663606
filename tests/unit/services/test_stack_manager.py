"""Unit tests for stack lifecycle management."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from pydantic import SecretStr

from dev_stack_manager.core.config.models import ALL_PROFILES, StackConfig
from dev_stack_manager.integrations.docker.client import AwsClient, DockerClient
from dev_stack_manager.integrations.docker.exceptions import DockerCommandError
from dev_stack_manager.integrations.docker.models import ContainerStatus
from dev_stack_manager.integrations.openbao.models import InitKeys
from dev_stack_manager.services.stack_manager import StackManager


@pytest.fixture
def docker() -> MagicMock:
    """Mock docker client."""
    mock_docker = MagicMock(spec=DockerClient)
    mock_docker.volume_remove.return_value = True
    mock_docker.remove_containers_by_image.return_value = 0
    return mock_docker


@pytest.fixture
def manager(stack_config: StackConfig, docker: MagicMock) -> StackManager:
    """Stack manager over the mock client."""
    return StackManager(stack_config, docker)


@pytest.mark.unit
class TestLifecycle:
    """Tests for up, down, logs and login."""

    def test_up_uses_enabled_profiles(
        self, stack_config: StackConfig, docker: MagicMock
    ) -> None:
        """Optional services start only when enabled."""
        config = stack_config.model_copy(update={"mcp_enabled": True})

        StackManager(config, docker).up()

        docker.compose_up.assert_called_once_with(["full", "mcp"])

    def test_down(self, manager: StackManager, docker: MagicMock) -> None:
        """down keeps volumes."""
        manager.down()

        docker.compose_down.assert_called_once_with(["full"])

    def test_logs(self, manager: StackManager, docker: MagicMock) -> None:
        """The exit code is passed through."""
        docker.compose_logs.return_value = 0

        assert manager.logs("platform", follow=False) == 0
        docker.compose_logs.assert_called_once_with("platform", follow=False)

    def test_login(
        self, manager: StackManager, docker: MagicMock, stack_config: StackConfig
    ) -> None:
        """The ECR password is piped into docker login."""
        aws = MagicMock(spec=AwsClient)
        aws.ecr_login_password.return_value = "pw"

        manager.login(aws)

        aws.ecr_login_password.assert_called_once_with(stack_config.ecr_region)
        docker.login.assert_called_once_with(stack_config.ecr_registry, "pw")


@pytest.mark.unit
class TestStatus:
    """Tests for status and endpoints."""

    def test_core_endpoints(self, manager: StackManager) -> None:
        """Core services are always listed."""
        names = [e.name for e in manager.endpoints([])]

        assert names == ["Platform", "Gateway4", "Gateway5"]

    def test_optional_endpoints_follow_running(self, manager: StackManager) -> None:
        """Optional services appear when their container runs."""
        names = [e.name for e in manager.endpoints(["openldap", "mcp"])]

        assert names[-2:] == ["OpenLDAP", "MCP"]

    def test_endpoints_from_config(self, stack_config: StackConfig, docker: MagicMock) -> None:
        """Without a container list, enabled services are shown."""
        config = stack_config.model_copy(update={"openbao_enabled": True})
        InitKeys(root_token=SecretStr("s.root")).save(config.openbao_keys_file)

        endpoints = StackManager(config, docker).endpoints()

        assert endpoints[-1].name == "OpenBao"
        assert endpoints[-1].credentials == "token: s.root"

    def test_openbao_token_missing(self, manager: StackManager) -> None:
        """A missing keys file points at the file instead."""
        endpoints = manager.endpoints(["openbao"])

        assert endpoints[-1].credentials == "token: see init-keys.json"

    def test_status(self, manager: StackManager, docker: MagicMock) -> None:
        """Status lists every profile's containers."""
        docker.compose_ps.return_value = [
            ContainerStatus(name="platform", state="running"),
            ContainerStatus(name="openldap", state="exited"),
        ]

        status = manager.status()

        docker.compose_ps.assert_called_once_with(ALL_PROFILES)
        assert len(status.containers) == 2
        assert "OpenLDAP" not in [e.name for e in status.endpoints]


@pytest.mark.unit
class TestClean:
    """Tests for clean."""

    def test_clean_removes_everything(
        self, manager: StackManager, docker: MagicMock, stack_config: StackConfig
    ) -> None:
        """Volumes, keys, Vault env lines, datastore files and gateway4 databases go."""
        InitKeys(root_token=SecretStr("s")).save(stack_config.openbao_keys_file)
        stack_config.env_file.write_text(
            "A=1\n"
            "# OpenBao Platform Integration (auto-configured)\n"
            "ITENTIAL_VAULT_URL=http://openbao:8200\n"
            "ITENTIAL_VAULT_TOKEN=s\n"
        )
        stack_config.mongodb_data_dir.mkdir(parents=True)
        db_dir = stack_config.gateway4_dir / "data"
        db_dir.mkdir(parents=True)
        (db_dir / "automation.db").write_text("x")
        (db_dir / "keep.txt").write_text("x")
        docker.remove_containers_by_image.return_value = 1

        result = manager.clean()

        docker.compose_down.assert_called_once_with(ALL_PROFILES, volumes=True)
        assert result.mcp_containers == 1
        assert result.volumes_removed == [
            "itential-dev-stack_gateway5-data",
            "itential-dev-stack_openbao-data",
            "itential-dev-stack_platform-logs",
        ]
        assert result.keys_file_removed
        assert not stack_config.openbao_keys_file.exists()
        assert result.env_lines_removed == 3
        assert stack_config.env_file.read_text() == "A=1\n"
        assert result.datastore_cleared
        assert docker.run_container.call_args.args[0] == "alpine"
        assert result.gateway4_db_files == 1
        assert (db_dir / "keep.txt").exists()
        assert result.warnings == []

    def test_clean_tolerates_partial_failures(
        self, manager: StackManager, docker: MagicMock, stack_config: StackConfig
    ) -> None:
        """Container and datastore cleanup failures are warnings."""
        docker.remove_containers_by_image.side_effect = DockerCommandError("denied")
        docker.volume_remove.return_value = False
        stack_config.mongodb_data_dir.mkdir(parents=True)
        docker.run_container.side_effect = DockerCommandError("no alpine")

        result = manager.clean()

        assert result.volumes_removed == []
        assert not result.datastore_cleared
        assert result.warnings[0] == "Could not remove MCP containers: denied"
        assert result.warnings[1].endswith("no alpine")

    def test_clean_propagates_compose_failure(
        self, manager: StackManager, docker: MagicMock
    ) -> None:
        """compose down failures abort the cleanup."""
        docker.compose_down.side_effect = DockerCommandError("compose failed")

        with pytest.raises(DockerCommandError):
            manager.clean()

        docker.volume_remove.assert_not_called()


@pytest.mark.unit
def test_all_profiles_cover_optional_services() -> None:
    """Cleanup and status see every optional profile."""
    assert set(ALL_PROFILES) >= {"full", "ldap", "mcp", "openbao"}

