"""Subprocess wrapper for host command-line tools."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import structlog

from dev_stack_manager.integrations.docker.exceptions import (
    DockerBinaryNotFoundError,
    DockerCommandError,
)

logger = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 300


class CommandRunner:
    """Run a single host binary and capture its output.

    Args:
        binary: Name of the executable to look up in PATH.
        binary_path: Optional explicit path to the executable.
        cwd: Working directory for every invocation.
        install_hint: Appended to the not-found error message.

    Raises:
        DockerBinaryNotFoundError: If the binary cannot be located.
    """

    def __init__(
        self,
        binary: str,
        binary_path: str | None = None,
        cwd: Path | None = None,
        install_hint: str | None = None,
    ) -> None:
        self.name = binary
        self.cwd = cwd
        self._binary = self._find_binary(binary, binary_path, install_hint)
        self._log = logger.bind(binary=self._binary)

    @staticmethod
    def _find_binary(binary: str, binary_path: str | None, install_hint: str | None) -> str:
        if binary_path:
            path = Path(binary_path)
            if not path.exists():
                raise DockerBinaryNotFoundError(binary, install_hint)
            return str(path.resolve())

        found = shutil.which(binary)
        if not found:
            raise DockerBinaryNotFoundError(binary, install_hint)
        return found

    @staticmethod
    def is_available(binary: str) -> bool:
        """Check whether a binary is on PATH."""
        return shutil.which(binary) is not None

    def run(
        self,
        args: list[str],
        *,
        timeout: int | None = DEFAULT_TIMEOUT_SECONDS,
        input_text: str | None = None,
        cwd: Path | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run the binary with the given arguments.

        Args:
            args: Arguments without the binary itself.
            timeout: Timeout in seconds, None for no limit.
            input_text: Text written to the command's stdin.
            cwd: Working directory override.

        Returns:
            CompletedProcess with captured stdout/stderr.

        Raises:
            DockerCommandError: On non-zero exit or timeout.
        """
        cmd = [self._binary, *args]
        self._log.debug("running_command", args=args)

        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=timeout,
                input=input_text,
                cwd=cwd or self.cwd,
            )
        except subprocess.CalledProcessError as e:
            detail = e.stderr.strip() if e.stderr else f"exit code {e.returncode}"
            raise DockerCommandError(
                message=f"{self.name} command failed: {detail}",
                stderr=e.stderr,
                command=cmd,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise DockerCommandError(
                message=f"{self.name} command timed out after {timeout}s",
                command=cmd,
            ) from e

    def run_attached(self, args: list[str]) -> int:
        """Run the binary attached to the terminal and return its exit code."""
        cmd = [self._binary, *args]
        self._log.debug("running_attached_command", args=args)
        return subprocess.run(cmd, cwd=self.cwd, check=False).returncode
