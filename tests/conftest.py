from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path() -> None:
    """Guarantee the repository root is discoverable for absolute imports."""

    root = Path(__file__).resolve().parent.parent
    root_str = str(root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)

    tests_dir = root / "tests"
    tests_str = str(tests_dir)
    if tests_str not in sys.path:
        sys.path.insert(1, tests_str)


_ensure_project_root_on_path()

from helpers import FakeRegistry  # noqa: E402


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture(autouse=True)
def _isolated_env_dirs(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Keep user/machine environment writes out of the real home and /etc."""

    from arcas_installer.lib import envvars

    base = tmp_path_factory.mktemp("environment.d")
    monkeypatch.setattr(envvars, "USER_ENV_DIR", base / "user")
    monkeypatch.setattr(envvars, "MACHINE_ENV_DIR", base / "machine")
    yield
