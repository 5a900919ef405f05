"""Shared fixtures for all tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest


@pytest.fixture()
def tmp_config_dir(tmp_path: Path):
    """Provide a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture()
def write_tool_config(tmp_config_dir: Path):
    """Write a tool's JSON config file into the temporary config directory."""

    def _write(tool_name: str, config) -> Path:
        path = tmp_config_dir / f"{tool_name}.json"
        path.write_text(json.dumps(config))
        return path

    return _write


@pytest.fixture()
def submission_values():
    """Client/period values as merged into submission email templates."""
    return {
        "client": "Acme Ltd",
        "period": "2024-2025",
    }
