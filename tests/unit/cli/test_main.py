"""Tests for the root CLI callback."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
import typer
from typer.testing import CliRunner

from dev_stack_manager import __version__


@pytest.mark.unit
class TestRootCallback:
    """Tests for global options and help."""

    def test_help_option(self, cli_runner: CliRunner, cli_app: typer.Typer) -> None:
        """--help lists the stack commands."""
        result = cli_runner.invoke(cli_app, ["--help"])

        assert result.exit_code == 0
        assert "setup" in result.output
        assert "configure" in result.output
        assert "generate-key" in result.output

    def test_no_args_shows_help(self, cli_runner: CliRunner, cli_app: typer.Typer) -> None:
        """Running without a command prints usage."""
        result = cli_runner.invoke(cli_app, [])

        assert "Usage" in result.output

    def test_version_option(self, cli_runner: CliRunner, cli_app: typer.Typer) -> None:
        """--version prints the package version."""
        result = cli_runner.invoke(cli_app, ["--version"])

        assert result.exit_code == 0
        assert f"devstack version {__version__}" in result.output

    @pytest.mark.parametrize(
        ("flags", "expected"),
        [
            ([], {"quiet": False, "debug": False, "json_output": False}),
            (["--verbose"], {"quiet": False, "debug": True, "json_output": False}),
            (["--debug"], {"quiet": False, "debug": True, "json_output": False}),
            (["-q"], {"quiet": True, "debug": False, "json_output": False}),
            (["--json-logs"], {"quiet": False, "debug": False, "json_output": True}),
        ],
    )
    def test_logging_flags(
        self,
        cli_runner: CliRunner,
        cli_app: typer.Typer,
        flags: list[str],
        expected: dict[str, bool],
    ) -> None:
        """Global flags are forwarded to configure_logging."""
        with patch("dev_stack_manager.cli.main.configure_logging") as configure:
            result = cli_runner.invoke(cli_app, [*flags, "generate-key"])

        assert result.exit_code == 0
        configure.assert_called_once_with(**expected)

    def test_project_dir_must_exist(
        self, cli_runner: CliRunner, cli_app: typer.Typer, temp_dir: Path
    ) -> None:
        """A missing --project-dir is a usage error."""
        with patch("dev_stack_manager.cli.main.configure_logging"):
            result = cli_runner.invoke(
                cli_app, ["-C", str(temp_dir / "missing"), "generate-key"]
            )

        assert result.exit_code == 2

    def test_project_dir_from_environment(
        self, cli_runner: CliRunner, cli_app: typer.Typer, temp_dir: Path
    ) -> None:
        """DEVSTACK_PROJECT_DIR selects the checkout."""
        (temp_dir / ".env").write_text("PLATFORM_PORT=not-a-port\n")

        with patch("dev_stack_manager.cli.main.configure_logging"):
            result = cli_runner.invoke(
                cli_app, ["down"], env={"DEVSTACK_PROJECT_DIR": str(temp_dir)}
            )

        assert result.exit_code == 1
        assert "Invalid stack configuration" in result.output


@pytest.mark.unit
class TestGenerateKey:
    """Tests for generate-key."""

    def test_prints_hex_key(self, cli_runner: CliRunner, cli_app: typer.Typer) -> None:
        """The key is 64 hex characters on its own line."""
        with patch("dev_stack_manager.cli.main.configure_logging"):
            result = cli_runner.invoke(cli_app, ["generate-key"])

        key = result.output.strip()
        assert result.exit_code == 0
        assert len(key) == 64
        int(key, 16)
