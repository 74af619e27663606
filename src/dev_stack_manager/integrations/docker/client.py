"""Docker and Docker Compose CLI wrapper.

Wraps the docker binary for compose lifecycle, container inspection,
exec and registry login. Compose commands run in the stack's project
directory so the checked-in compose file is picked up.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from dev_stack_manager.integrations.docker.exceptions import DockerCommandError, DockerError
from dev_stack_manager.integrations.docker.models import ContainerStatus
from dev_stack_manager.integrations.docker.runner import CommandRunner

logger = structlog.get_logger()

VERSION_TIMEOUT_SECONDS = 10
SHORT_TIMEOUT_SECONDS = 30
COMPOSE_TIMEOUT_SECONDS = 600


class DockerClient(CommandRunner):
    """Client for the docker CLI.

    Args:
        project_dir: Directory holding the compose file.
        binary_path: Optional explicit path to the docker binary.

    Raises:
        DockerBinaryNotFoundError: If docker is not installed.
    """

    def __init__(self, project_dir: Path, binary_path: str | None = None) -> None:
        super().__init__(
            "docker",
            binary_path=binary_path,
            cwd=project_dir,
            install_hint="Install Docker from https://docs.docker.com/get-docker/",
        )
        self._log.debug("docker_client_initialized", project_dir=str(project_dir))

    # -----------------------------------------------------------------------
    # Versions
    # -----------------------------------------------------------------------

    def version(self) -> str:
        """Get the docker client version (e.g. ``27.3.1``)."""
        result = self.run(
            ["version", "--format", "{{.Client.Version}}"],
            timeout=VERSION_TIMEOUT_SECONDS,
        )
        return result.stdout.strip()

    def compose_version(self) -> str:
        """Get the compose plugin version.

        Raises:
            DockerCommandError: If the compose v2 plugin is not available.
        """
        result = self.run(["compose", "version", "--short"], timeout=VERSION_TIMEOUT_SECONDS)
        return result.stdout.strip()

    # -----------------------------------------------------------------------
    # Compose
    # -----------------------------------------------------------------------

    @staticmethod
    def _profile_args(profiles: list[str] | tuple[str, ...]) -> list[str]:
        args: list[str] = []
        for profile in profiles:
            args.extend(["--profile", profile])
        return args

    def compose_up(self, profiles: list[str] | tuple[str, ...]) -> None:
        """Start services for the given profiles in the background."""
        self._log.info("Starting services", profiles=list(profiles))
        self.run(
            ["compose", *self._profile_args(profiles), "up", "-d"],
            timeout=COMPOSE_TIMEOUT_SECONDS,
        )

    def compose_down(self, profiles: list[str] | tuple[str, ...], volumes: bool = False) -> None:
        """Stop services, optionally removing their named volumes."""
        args = ["compose", *self._profile_args(profiles), "down"]
        if volumes:
            args.append("-v")
        self._log.info("Stopping services", profiles=list(profiles), volumes=volumes)
        self.run(args, timeout=COMPOSE_TIMEOUT_SECONDS)

    def compose_ps(self, profiles: list[str] | tuple[str, ...]) -> list[ContainerStatus]:
        """List containers of the compose project.

        Compose emits either a JSON array or one JSON object per line
        depending on its version; both are accepted.

        Raises:
            DockerError: If the output cannot be parsed.
        """
        result = self.run(
            ["compose", *self._profile_args(profiles), "ps", "--all", "--format", "json"],
            timeout=SHORT_TIMEOUT_SECONDS,
        )
        output = result.stdout.strip()
        if not output:
            return []
        try:
            if output.startswith("["):
                rows = json.loads(output)
            else:
                rows = [json.loads(line) for line in output.splitlines() if line.strip()]
        except json.JSONDecodeError as e:
            raise DockerError(f"Unparseable compose ps output: {e}", command=result.args) from e
        return [ContainerStatus.model_validate(row) for row in rows]

    def compose_logs(self, service: str | None = None, follow: bool = True) -> int:
        """Stream service logs to the terminal and return the exit code."""
        args = ["compose", "logs"]
        if follow:
            args.append("-f")
        if service:
            args.append(service)
        return self.run_attached(args)

    # -----------------------------------------------------------------------
    # Containers and images
    # -----------------------------------------------------------------------

    def running_containers(self) -> list[str]:
        """Names of all running containers."""
        result = self.run(["ps", "--format", "{{.Names}}"], timeout=SHORT_TIMEOUT_SECONDS)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def is_running(self, container: str) -> bool:
        """Check whether a container with exactly this name is running."""
        return container in self.running_containers()

    def image_present(self, image: str) -> bool:
        """Check whether an image exists locally."""
        try:
            self.run(["image", "inspect", image], timeout=SHORT_TIMEOUT_SECONDS)
        except DockerCommandError:
            return False
        return True

    def restart(self, container: str) -> None:
        """Restart a container."""
        self._log.info("Restarting container", container=container)
        self.run(["restart", container], timeout=COMPOSE_TIMEOUT_SECONDS)

    def exec(self, container: str, command: list[str], timeout: int = SHORT_TIMEOUT_SECONDS) -> str:
        """Run a command inside a container and return its stdout."""
        result = self.run(["exec", container, *command], timeout=timeout)
        return result.stdout

    def remove_containers_by_image(self, image: str) -> int:
        """Force-remove all containers created from an image.

        Returns:
            Number of containers removed.
        """
        result = self.run(
            ["ps", "-aq", "--filter", f"ancestor={image}"],
            timeout=SHORT_TIMEOUT_SECONDS,
        )
        ids = result.stdout.split()
        if ids:
            self.run(["rm", "-f", *ids], timeout=SHORT_TIMEOUT_SECONDS)
        return len(ids)

    def volume_remove(self, name: str) -> bool:
        """Remove a named volume.

        Returns:
            True if the volume was removed, False if it did not exist or is in use.
        """
        try:
            self.run(["volume", "rm", name], timeout=SHORT_TIMEOUT_SECONDS)
        except DockerCommandError as e:
            self._log.debug("Volume not removed", volume=name, error=str(e))
            return False
        return True

    def run_container(self, image: str, args: list[str], volumes: dict[Path, str]) -> None:
        """Run a throwaway root container with bind mounts."""
        cmd = ["run", "--rm", "-u", "root"]
        for host_path, container_path in volumes.items():
            cmd.extend(["-v", f"{host_path}:{container_path}"])
        self.run([*cmd, image, *args], timeout=COMPOSE_TIMEOUT_SECONDS)

    # -----------------------------------------------------------------------
    # Registry
    # -----------------------------------------------------------------------

    def login(self, registry: str, password: str, username: str = "AWS") -> None:
        """Log in to a registry with a password supplied on stdin."""
        self.run(
            ["login", "--username", username, "--password-stdin", registry],
            input_text=password,
            timeout=SHORT_TIMEOUT_SECONDS,
        )
        self._log.info("Registry login successful", registry=registry)


class AwsClient(CommandRunner):
    """Client for the aws CLI, used only for ECR authentication."""

    def __init__(self, binary_path: str | None = None) -> None:
        super().__init__(
            "aws",
            binary_path=binary_path,
            install_hint="Required for ECR authentication",
        )

    def ecr_login_password(self, region: str) -> str:
        """Fetch a temporary ECR registry password."""
        result = self.run(
            ["ecr", "get-login-password", "--region", region],
            timeout=SHORT_TIMEOUT_SECONDS,
        )
        return result.stdout.strip()
