"""Shared pytest fixtures for dev_stack_manager tests."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
import typer
from typer.testing import CliRunner

from dev_stack_manager.cli.main import app
from dev_stack_manager.core.config.models import StackConfig


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def env_example(temp_dir: Path) -> Path:
    """Write a minimal .env.example into the temp project directory."""
    path = temp_dir / ".env.example"
    path.write_text(
        "# Platform\n"
        "PLATFORM_PORT=3000\n"
        "ITENTIAL_ENCRYPTION_KEY=\n"
        "LDAP_ENABLED=false\n"
    )
    return path


@pytest.fixture
def stack_config(temp_dir: Path) -> StackConfig:
    """Stack configuration rooted in a temp directory, no init delay."""
    return StackConfig.from_values(
        {"PLATFORM_INIT_DELAY": "0", "PLATFORM_URL": "http://platform.test"},
        temp_dir,
    )


@pytest.fixture
def no_sleep() -> Any:
    """Sleep replacement that records requested delays."""
    calls: list[float] = []

    def _sleep(seconds: float) -> None:
        calls.append(seconds)

    _sleep.calls = calls  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear stack variables so the host environment cannot leak into tests."""
    for key in list(os.environ.keys()):
        if key in StackConfig.aliases() or key.startswith("DEVSTACK_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def cli_app() -> typer.Typer:
    """Return the CLI app for testing."""
    return app
