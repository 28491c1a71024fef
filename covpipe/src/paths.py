"""Path resolution for covpipe.

Config files are looked up relative to the working directory the pipeline
runs in, never relative to the installed package.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from .constants import CONFIG_ENV_VAR, CONFIG_FILENAME


def get_config_path(working_directory: Optional[str] = None) -> Path:
    """Get the covpipe.yml config file path with overrides.

    Resolution order:
      1) Environment variable COVPIPE_CONFIG (if set)
      2) covpipe.yml in the working directory (current directory by default)

    The returned path may not exist; callers fall back to defaults then.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser().resolve()

    base = Path(working_directory) if working_directory else Path.cwd()
    return (base / CONFIG_FILENAME).resolve()


def resolve_in(working_directory: Path | str, name: Path | str) -> Path:
    """Resolve an artifact name against the working directory (absolute names pass through)."""
    path = Path(name).expanduser()
    if path.is_absolute():
        return path
    return Path(working_directory) / path
