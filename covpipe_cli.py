#!/usr/bin/env python3
"""
covpipe CLI wrapper.

Usage:
  python covpipe_cli.py [options...]

All arguments are passed through to the covpipe CLI (see --help).

Notes:
  - Prefers .venv/bin/python if present; falls back to current interpreter.
  - The pipeline runs in the caller's current directory, not the repository root.
"""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from typing import List


PROJECT_ROOT = Path(__file__).resolve().parent
VENV_DIR = PROJECT_ROOT / ".venv"
VENV_PY = VENV_DIR / "bin" / "python"


def resolve_python() -> Path:
    """Return the python executable to use. Prefer .venv/bin/python."""
    if VENV_PY.exists():
        return VENV_PY
    return Path(sys.executable)


def build_command(python_exe: Path, args: List[str]) -> List[str]:
    return [str(python_exe), "-m", "covpipe.src.cli", *args]


def build_env() -> dict:
    """Environment with the repository root on PYTHONPATH so the package imports uninstalled."""
    env = dict(os.environ)
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = str(PROJECT_ROOT) + (os.pathsep + existing if existing else "")
    return env


def main(argv: List[str]) -> int:
    result = subprocess.run(build_command(resolve_python(), argv), env=build_env())
    return result.returncode


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
