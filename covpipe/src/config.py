"""Shared config loading helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from .errors import ConfigError
from .models import ToolchainConfig
from .paths import get_config_path

logger = logging.getLogger(__name__)


def load_config(path: Path | str | None = None, working_directory: Optional[str] = None) -> Dict[str, Any]:
    """
    Load covpipe.yml if present; return empty dict when missing.

    Parse/IO errors are logged and surfaced to callers to prevent silent fallbacks.
    """
    config_path = Path(path) if path is not None else get_config_path(working_directory)
    if not config_path.exists():
        logger.debug("No config at %s; using defaults", config_path)
        return {}
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Failed to load config from %s: %s", config_path, exc)
        raise ConfigError(f"Failed to load config at {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config at {config_path} must be a mapping, got {type(data).__name__}")
    logger.debug("Loaded config from %s", config_path)
    return data


def build_toolchain_config(raw: Optional[Dict[str, Any]] = None) -> ToolchainConfig:
    """Validate a raw config mapping into a ToolchainConfig (missing keys take defaults)."""
    try:
        return ToolchainConfig(**(raw or {}))
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_toolchain_config(
    path: Path | str | None = None, working_directory: Optional[str] = None
) -> ToolchainConfig:
    """Load and validate the toolchain config for a working directory."""
    return build_toolchain_config(load_config(path, working_directory))
