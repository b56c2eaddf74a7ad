"""Shared test fixtures for vidshrink."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import tomli_w


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    """Create a temporary media directory."""
    d = tmp_path / "media"
    d.mkdir()
    return d


@pytest.fixture
def sample_config_dict(media_root: Path) -> dict[str, Any]:
    """Return a minimal valid config dict."""
    return {
        "root": str(media_root),
        "log_level": "DEBUG",
    }


@pytest.fixture
def sample_config_file(
    tmp_path: Path, sample_config_dict: dict[str, Any]
) -> Path:
    """Write a sample config TOML file and return its path."""
    config_path = tmp_path / "vidshrink.toml"
    config_path.write_bytes(tomli_w.dumps(sample_config_dict).encode())
    return config_path
