from __future__ import annotations

import logging
import os
import re
import sys
from pathlib import Path
from typing import Optional

from .command import run_cmd

logger = logging.getLogger(__name__)

USER_ENV_DIR = Path.home() / ".config" / "environment.d"
MACHINE_ENV_DIR = Path("/etc/environment.d")

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _write_env_d(directory: Path, file_stem: str, name: str, value: str) -> Path:
    """Set ``name`` in ``<directory>/<file_stem>.conf``, keeping other entries."""

    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{file_stem}.conf"
    lines = []
    if path.exists():
        lines = [ln for ln in path.read_text(encoding="utf-8").splitlines() if not ln.startswith(f"{name}=")]
    lines.append(f"{name}={value}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def set_environment_variable(name: str, value: str, *, target: str = "user", file_stem: Optional[str] = None) -> None:
    """Set an environment variable for the process, the user or the machine.

    The process target only affects this installer and its children; the user
    and machine targets leave the installer's own environment untouched.
    """

    if not _NAME_RE.match(name):
        raise ValueError(f"Invalid environment variable name: {name!r}")

    if target == "process":
        os.environ[name] = value
        return

    if sys.platform.startswith("win"):
        argv = ["setx", name, value]
        if target == "machine":
            argv.append("/M")
        run_cmd(argv)
        return

    stem = re.sub(r"[^A-Za-z0-9_.-]+", "-", file_stem or "arcas-installer").strip("-") or "arcas-installer"
    directory = MACHINE_ENV_DIR if target == "machine" else USER_ENV_DIR
    path = _write_env_d(directory, stem, name, value)
    logger.debug("Wrote %s to %s", name, path)
