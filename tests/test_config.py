"""Tests for configuration loading, merging, and validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import tomli_w

from vidshrink.config import ShrinkConfig, load_config, merge_config


class TestLoadConfig:
    """Tests for load_config()."""

    def test_loads_valid_toml(self, sample_config_file: Path) -> None:
        result = load_config(sample_config_file)
        assert isinstance(result, dict)
        assert result["log_level"] == "DEBUG"

    def test_loads_all_fields(self, tmp_path: Path) -> None:
        data = {
            "log_level": "WARNING",
            "log_file": "/var/log/vidshrink.log",
            "ffmpeg_bin": "/opt/bin/ffmpeg",
            "ffprobe_bin": "/opt/bin/ffprobe",
        }
        path = tmp_path / "vidshrink.toml"
        path.write_bytes(tomli_w.dumps(data).encode())
        assert load_config(path) == data

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.toml")


class TestMergeConfig:
    """Tests for merge_config()."""

    def test_defaults_applied(self, media_root: Path) -> None:
        config = merge_config({}, {"root": str(media_root)})
        assert config == ShrinkConfig(root=media_root)
        assert config.log_level == "INFO"
        assert config.log_file is None
        assert config.ffmpeg_bin == "ffmpeg"
        assert config.ffprobe_bin == "ffprobe"

    def test_file_config_overrides_defaults(
        self, sample_config_dict: dict[str, Any]
    ) -> None:
        sample_config_dict["ffmpeg_bin"] = "/usr/local/bin/ffmpeg"
        config = merge_config(sample_config_dict, {})
        assert config.log_level == "DEBUG"
        assert config.ffmpeg_bin == "/usr/local/bin/ffmpeg"

    def test_cli_overrides_file_config(
        self, sample_config_dict: dict[str, Any], tmp_path: Path
    ) -> None:
        config = merge_config(
            sample_config_dict, {"root": str(tmp_path / "other"), "log_level": "error"}
        )
        assert config.root == tmp_path / "other"
        assert config.log_level == "ERROR"

    def test_cli_none_values_ignored(
        self, sample_config_dict: dict[str, Any]
    ) -> None:
        config = merge_config(sample_config_dict, {"log_level": None})
        assert config.log_level == "DEBUG"

    def test_env_log_level_below_file(
        self, media_root: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("VIDSHRINK_LOG_LEVEL", "warning")
        assert merge_config({}, {"root": str(media_root)}).log_level == "WARNING"
        assert merge_config({"log_level": "DEBUG"}, {"root": str(media_root)}).log_level == "DEBUG"

    def test_log_file_becomes_path(self, media_root: Path, tmp_path: Path) -> None:
        config = merge_config({"log_file": str(tmp_path / "logs" / "run.log")}, {"root": str(media_root)})
        assert config.log_file == tmp_path / "logs" / "run.log"

    def test_root_not_required_to_exist(self, tmp_path: Path) -> None:
        config = merge_config({}, {"root": str(tmp_path / "missing")})
        assert config.root == tmp_path / "missing"

    def test_config_is_frozen(self, media_root: Path) -> None:
        config = merge_config({}, {"root": str(media_root)})
        with pytest.raises(AttributeError):
            config.log_level = "DEBUG"  # type: ignore[misc]


class TestValidation:
    """Tests for validation errors."""

    def test_missing_root(self) -> None:
        with pytest.raises(ValueError, match="root is required"):
            merge_config({}, {})

    def test_invalid_log_level(self, media_root: Path) -> None:
        with pytest.raises(ValueError, match="log_level must be one of"):
            merge_config({"log_level": "LOUD"}, {"root": str(media_root)})

    def test_empty_binary(self, media_root: Path) -> None:
        with pytest.raises(ValueError, match="ffmpeg_bin must be a non-empty string"):
            merge_config({"ffmpeg_bin": "  "}, {"root": str(media_root)})

    def test_errors_are_collected(self) -> None:
        with pytest.raises(ValueError) as exc_info:
            merge_config({"log_level": "LOUD", "ffprobe_bin": ""}, {})
        message = str(exc_info.value)
        assert "root is required" in message
        assert "log_level" in message
        assert "ffprobe_bin" in message
