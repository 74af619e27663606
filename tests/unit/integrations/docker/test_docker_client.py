"""Unit tests for the docker CLI wrapper."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from dev_stack_manager.integrations.docker.client import AwsClient, DockerClient
from dev_stack_manager.integrations.docker.exceptions import (
    DockerBinaryNotFoundError,
    DockerCommandError,
    DockerError,
)
from dev_stack_manager.integrations.docker.runner import CommandRunner


def _completed(stdout: str = "", returncode: int = 0) -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr="")


@pytest.fixture
def mock_run(mocker: Any) -> MagicMock:
    """Patch subprocess.run and shutil.which for the runner module."""
    mocker.patch(
        "dev_stack_manager.integrations.docker.runner.shutil.which",
        side_effect=lambda name: f"/usr/bin/{name}",
    )
    return mocker.patch(
        "dev_stack_manager.integrations.docker.runner.subprocess.run",
        return_value=_completed(),
    )


@pytest.fixture
def docker(mock_run: MagicMock, temp_dir: Path) -> DockerClient:
    """Docker client rooted in a temp project directory."""
    return DockerClient(temp_dir)


@pytest.mark.unit
class TestCommandRunner:
    """Tests for binary lookup and error mapping."""

    def test_binary_not_found(self, mocker: Any) -> None:
        """A missing binary raises with the install hint."""
        mocker.patch(
            "dev_stack_manager.integrations.docker.runner.shutil.which", return_value=None
        )

        with pytest.raises(DockerBinaryNotFoundError, match="Install Docker"):
            DockerClient(Path("."))

    def test_explicit_binary_path_missing(self, temp_dir: Path) -> None:
        """An explicit path must exist."""
        with pytest.raises(DockerBinaryNotFoundError):
            CommandRunner("git", binary_path=str(temp_dir / "nope"))

    def test_runs_in_project_dir(
        self, docker: DockerClient, mock_run: MagicMock, temp_dir: Path
    ) -> None:
        """Commands are prefixed with the binary and run in cwd."""
        mock_run.return_value = _completed("27.3.1\n")

        assert docker.version() == "27.3.1"
        args, kwargs = mock_run.call_args
        assert args[0][0] == "/usr/bin/docker"
        assert kwargs["cwd"] == temp_dir
        assert kwargs["check"] is True

    def test_called_process_error(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """Non-zero exits carry stderr."""
        mock_run.side_effect = subprocess.CalledProcessError(1, ["docker"], stderr="boom\n")

        with pytest.raises(DockerCommandError, match="docker command failed: boom") as exc_info:
            docker.restart("platform")

        assert exc_info.value.stderr == "boom\n"

    def test_timeout(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """Timeouts are command errors."""
        mock_run.side_effect = subprocess.TimeoutExpired(["docker"], 10)

        with pytest.raises(DockerCommandError, match="timed out"):
            docker.version()

    def test_run_attached_returns_code(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """Attached runs do not capture output or raise."""
        mock_run.return_value = _completed(returncode=130)

        assert docker.compose_logs("platform", follow=True) == 130
        assert mock_run.call_args.args[0][1:] == ["compose", "logs", "-f", "platform"]
        assert mock_run.call_args.kwargs["check"] is False


@pytest.mark.unit
class TestCompose:
    """Tests for compose commands."""

    def test_up_with_profiles(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """Each profile gets its own flag."""
        docker.compose_up(["full", "ldap"])

        assert mock_run.call_args.args[0][1:] == [
            "compose",
            "--profile",
            "full",
            "--profile",
            "ldap",
            "up",
            "-d",
        ]

    def test_down_with_volumes(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """Volumes are removed on request."""
        docker.compose_down(["full"], volumes=True)

        assert mock_run.call_args.args[0][-2:] == ["down", "-v"]

    def test_ps_json_array(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """Older compose prints one array."""
        rows = [
            {"Name": "platform", "Service": "platform", "State": "running"},
            {"Name": "mongodb", "Service": "mongodb", "State": "exited"},
        ]
        mock_run.return_value = _completed(json.dumps(rows))

        containers = docker.compose_ps(["full"])

        assert [c.name for c in containers] == ["platform", "mongodb"]
        assert containers[0].is_running
        assert not containers[1].is_running

    def test_ps_ndjson(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """Newer compose prints one object per line."""
        mock_run.return_value = _completed(
            '{"Name": "redis", "State": "running"}\n{"Name": "gateway5", "State": "running"}\n'
        )

        assert [c.name for c in docker.compose_ps(["full"])] == ["redis", "gateway5"]

    def test_ps_empty(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """No containers, no rows."""
        mock_run.return_value = _completed("\n")

        assert docker.compose_ps(["full"]) == []

    def test_ps_garbage(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """Unparseable output is a docker error."""
        mock_run.return_value = _completed("not json")

        with pytest.raises(DockerError, match="Unparseable"):
            docker.compose_ps(["full"])


@pytest.mark.unit
class TestContainers:
    """Tests for container and volume helpers."""

    def test_is_running_exact_name(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """Names must match exactly."""
        mock_run.return_value = _completed("platform\nmongodb-old\n")

        assert docker.is_running("platform")
        assert not docker.is_running("mongodb")

    def test_image_present(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """A failed inspect means the image is absent."""
        mock_run.side_effect = [_completed("[]"), subprocess.CalledProcessError(1, ["docker"])]

        assert docker.image_present("a:1") is True
        assert docker.image_present("b:1") is False

    def test_exec_returns_stdout(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """exec passes the command through."""
        mock_run.return_value = _completed('{"ok": 1}\n')

        assert docker.exec("mongodb", ["mongosh", "--quiet"]) == '{"ok": 1}\n'
        assert mock_run.call_args.args[0][1:] == ["exec", "mongodb", "mongosh", "--quiet"]

    def test_remove_containers_by_image(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """Matching containers are force-removed."""
        mock_run.side_effect = [_completed("abc\ndef\n"), _completed()]

        assert docker.remove_containers_by_image("mcp:latest") == 2
        assert mock_run.call_args.args[0][1:] == ["rm", "-f", "abc", "def"]

    def test_remove_containers_none(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """No matches, no rm call."""
        mock_run.return_value = _completed("")

        assert docker.remove_containers_by_image("mcp:latest") == 0
        assert mock_run.call_count == 1

    def test_volume_remove_missing(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """Missing volumes report False."""
        mock_run.side_effect = subprocess.CalledProcessError(1, ["docker"], stderr="no such")

        assert docker.volume_remove("openbao-data") is False

    def test_run_container_mounts(
        self, docker: DockerClient, mock_run: MagicMock, temp_dir: Path
    ) -> None:
        """Bind mounts are passed as -v host:container."""
        docker.run_container("alpine", ["sh", "-c", "true"], {temp_dir: "/data"})

        cmd = mock_run.call_args.args[0]
        assert cmd[1:5] == ["run", "--rm", "-u", "root"]
        assert f"{temp_dir}:/data" in cmd

    def test_login_uses_stdin(self, docker: DockerClient, mock_run: MagicMock) -> None:
        """The password never appears in argv."""
        docker.login("registry.test", "s3cret")

        cmd = mock_run.call_args.args[0]
        assert "s3cret" not in cmd
        assert mock_run.call_args.kwargs["input"] == "s3cret"
        assert cmd[-1] == "registry.test"


@pytest.mark.unit
class TestAwsClient:
    """Tests for AwsClient."""

    def test_ecr_login_password(self, mock_run: MagicMock) -> None:
        """The password is read from stdout."""
        mock_run.return_value = _completed("token\n")

        assert AwsClient().ecr_login_password("us-east-2") == "token"
        assert mock_run.call_args.args[0][1:] == [
            "ecr",
            "get-login-password",
            "--region",
            "us-east-2",
        ]
