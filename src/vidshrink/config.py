"""Configuration loading, merging, and validation."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_FILE = Path("vidshrink.toml")


@dataclass(frozen=True)
class ShrinkConfig:
    """Immutable configuration for a vidshrink run."""

    root: Path
    log_level: str = "INFO"
    log_file: Path | None = None
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"


_DEFAULTS: dict[str, Any] = {
    "log_level": "INFO",
    "log_file": None,
    "ffmpeg_bin": "ffmpeg",
    "ffprobe_bin": "ffprobe",
}

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_config(path: Path) -> dict[str, Any]:
    """Read a TOML config file and return a dict."""
    with path.open("rb") as f:
        return tomllib.load(f)


def merge_config(
    file_config: dict[str, Any],
    cli_overrides: dict[str, Any],
) -> ShrinkConfig:
    """Merge defaults, environment, file config, and CLI overrides.

    Priority: defaults < VIDSHRINK_LOG_LEVEL < file config < CLI overrides.
    """
    merged: dict[str, Any] = {**_DEFAULTS}

    env_level = os.environ.get("VIDSHRINK_LOG_LEVEL", "")
    if env_level:
        merged["log_level"] = env_level

    merged.update({k: v for k, v in file_config.items() if v is not None})
    merged.update({k: v for k, v in cli_overrides.items() if v is not None})

    if "root" in merged:
        merged["root"] = Path(merged["root"])
    if merged.get("log_file"):
        merged["log_file"] = Path(merged["log_file"]).expanduser()

    return _validate(merged)


def _validate(merged: dict[str, Any]) -> ShrinkConfig:
    """Validate the merged config and return a ShrinkConfig."""
    errors: list[str] = []

    if "root" not in merged:
        errors.append("root is required")

    log_level = str(merged.get("log_level", "")).upper()
    if log_level not in _LOG_LEVELS:
        errors.append(
            f"log_level must be one of {', '.join(_LOG_LEVELS)} (got {merged.get('log_level')!r})"
        )

    for key in ("ffmpeg_bin", "ffprobe_bin"):
        value = merged.get(key)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"{key} must be a non-empty string")

    if errors:
        raise ValueError("Configuration errors:\n  " + "\n  ".join(errors))

    return ShrinkConfig(
        root=merged["root"],
        log_level=log_level,
        log_file=merged.get("log_file") or None,
        ffmpeg_bin=merged["ffmpeg_bin"],
        ffprobe_bin=merged["ffprobe_bin"],
    )
