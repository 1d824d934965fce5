from __future__ import annotations

import tempfile
from pathlib import Path

from arcas_installer.variables import VariableExpander, program_files_dir

from helpers import make_context, make_definition


def _expander(tmp_path: Path, **variables: str) -> VariableExpander:
    return VariableExpander(make_context(make_definition(variables=variables), tmp_path / "app"))


def test_builtins(tmp_path: Path) -> None:
    expander = _expander(tmp_path)

    assert expander.expand("{InstallPath}/bin") == f"{tmp_path / 'app'}/bin"
    assert expander.expand("{AppName} {AppVersion} by {AppPublisher}") == "Demo 1.2.3 by Acme"
    assert expander.expand("{AppDescription}") == "Demo app"
    assert expander.expand("{TempPath}") == tempfile.gettempdir()
    assert expander.expand("{ProgramFiles}") == program_files_dir()


def test_empty_and_none_are_returned_unchanged(tmp_path: Path) -> None:
    expander = _expander(tmp_path)

    assert expander.expand("") == ""
    assert expander.expand(None) is None


def test_unknown_placeholders_are_left_alone(tmp_path: Path) -> None:
    expander = _expander(tmp_path)

    assert expander.expand("{NotAVariable}/x") == "{NotAVariable}/x"
    assert expander.expand("no placeholders") == "no placeholders"


def test_author_and_runtime_variables(tmp_path: Path) -> None:
    expander = _expander(tmp_path, Channel="stable")
    expander.context.state.resolved_variables["Build"] = "42"

    assert expander.expand("{Channel}-{Build}") == "stable-42"


def test_builtins_win_over_author_variables(tmp_path: Path) -> None:
    expander = _expander(tmp_path, AppName="Shadowed")

    assert expander.expand("{AppName}") == "Demo"


def test_author_variables_win_over_runtime(tmp_path: Path) -> None:
    expander = _expander(tmp_path, Channel="stable")
    expander.context.state.resolved_variables["Channel"] = "beta"

    assert expander.expand("{Channel}") == "stable"


def test_substituted_values_are_not_expanded_again(tmp_path: Path) -> None:
    expander = _expander(tmp_path, DataDir="{InstallPath}/data")

    assert expander.expand("{DataDir}") == "{InstallPath}/data"


def test_install_path_is_read_live(tmp_path: Path) -> None:
    expander = _expander(tmp_path)
    expander.context.state.set_installation_path(str(tmp_path / "elsewhere"))

    assert expander.expand("{InstallPath}") == str(tmp_path / "elsewhere")


def test_expansion_is_idempotent(tmp_path: Path) -> None:
    expander = _expander(tmp_path, Channel="stable")
    once = expander.expand("{InstallPath}/{Channel}/{Unknown}")

    assert expander.expand(once) == once
