"""Tests for package version metadata."""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from dev_stack_manager import __version__

PYPROJECT = Path(__file__).resolve().parents[2] / "pyproject.toml"


@pytest.mark.unit
def test_version_is_semantic() -> None:
    """major.minor.patch, all numeric."""
    parts = __version__.split(".")

    assert len(parts) == 3
    assert all(part.isdigit() for part in parts)


@pytest.mark.unit
def test_version_matches_project_metadata() -> None:
    """The CLI reports the version that gets packaged."""
    with PYPROJECT.open("rb") as f:
        project = tomllib.load(f)["project"]

    assert project["version"] == __version__
