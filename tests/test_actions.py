from __future__ import annotations

import os
import sys
import tarfile
import zipfile
from pathlib import Path

import pytest

from arcas_installer.actions import ActionContext, ActionOutcome, ActionRegistry
from arcas_installer.errors import CommandError, UnsupportedCommandError
from arcas_installer.executor import CommandExecutor
from arcas_installer.lib import envvars
from arcas_installer.lib.command import CmdResult
from arcas_installer.lib.registry import UnavailableRegistry, convert_value
from arcas_installer.model import CommandType, LogLevel, Status, Timing
from arcas_installer.params import (
    CopyDirectoryParams,
    CopyFileParams,
    CreateFileAssociationParams,
    CreateShortcutParams,
    CustomParams,
    DeleteRegistryParams,
    ExtractArchiveParams,
    RunExecutableParams,
    RunShellCommandParams,
    SetEnvironmentVariableParams,
    WriteRegistryParams,
)
from arcas_installer.variables import VariableExpander

from helpers import FakeRegistry, make_command, make_component, make_context, make_definition

posix_only = pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX shell and desktop entries")


def _ctx(tmp_path: Path, registry: FakeRegistry, actions: ActionRegistry | None = None) -> ActionContext:
    context = make_context(make_definition(), tmp_path / "install")
    return ActionContext(
        context=context,
        expander=VariableExpander(context),
        registry=registry,
        custom_handlers=(actions or ActionRegistry()).custom_handlers,
    )


def _dispatch(command, ctx: ActionContext, actions: ActionRegistry | None = None) -> ActionOutcome:
    return (actions or ActionRegistry()).dispatch(command, ctx)


def test_copy_file_into_directory(tmp_path: Path, registry: FakeRegistry) -> None:
    src = tmp_path / "readme.txt"
    src.write_text("hello", encoding="utf-8")
    (tmp_path / "install").mkdir()
    ctx = _ctx(tmp_path, registry)

    _dispatch(make_command("copy", type=CommandType.COPY_FILE, params=CopyFileParams(str(src), "{InstallPath}")), ctx)

    assert (tmp_path / "install" / "readme.txt").read_text(encoding="utf-8") == "hello"


def test_copy_file_without_overwrite(tmp_path: Path, registry: FakeRegistry) -> None:
    src = tmp_path / "a.txt"
    src.write_text("new", encoding="utf-8")
    dst = tmp_path / "b.txt"
    dst.write_text("old", encoding="utf-8")
    ctx = _ctx(tmp_path, registry)
    command = make_command("copy", type=CommandType.COPY_FILE, params=CopyFileParams(str(src), str(dst), overwrite=False))

    with pytest.raises(CommandError, match="overwrite"):
        _dispatch(command, ctx)
    assert dst.read_text(encoding="utf-8") == "old"


def test_copy_file_missing_source(tmp_path: Path, registry: FakeRegistry) -> None:
    ctx = _ctx(tmp_path, registry)
    command = make_command("copy", type=CommandType.COPY_FILE, params=CopyFileParams(str(tmp_path / "nope"), str(tmp_path / "x")))

    with pytest.raises(FileNotFoundError):
        _dispatch(command, ctx)


def test_copy_directory_recursive_and_flat(tmp_path: Path, registry: FakeRegistry) -> None:
    src = tmp_path / "payload"
    (src / "nested").mkdir(parents=True)
    (src / "top.txt").write_text("t", encoding="utf-8")
    (src / "nested" / "deep.txt").write_text("d", encoding="utf-8")
    ctx = _ctx(tmp_path, registry)

    deep = _dispatch(
        make_command("tree", type=CommandType.COPY_DIRECTORY, params=CopyDirectoryParams(str(src), "{InstallPath}/deep")), ctx
    )
    flat = _dispatch(
        make_command(
            "flat",
            type=CommandType.COPY_DIRECTORY,
            params=CopyDirectoryParams(str(src), "{InstallPath}/flat", recursive=False),
        ),
        ctx,
    )

    assert (tmp_path / "install" / "deep" / "nested" / "deep.txt").exists()
    assert deep.output == "2 file(s) copied"
    assert (tmp_path / "install" / "flat" / "top.txt").exists()
    assert not (tmp_path / "install" / "flat" / "nested").exists()
    assert flat.output == "1 file(s) copied"


def test_extract_zip_and_tar(tmp_path: Path, registry: FakeRegistry) -> None:
    inner = tmp_path / "inner.txt"
    inner.write_text("zipped", encoding="utf-8")
    with zipfile.ZipFile(tmp_path / "bundle.zip", "w") as zf:
        zf.write(inner, "docs/inner.txt")
    with tarfile.open(tmp_path / "bundle.tar.gz", "w:gz") as tf:
        tf.add(inner, "lib/inner.txt")
    ctx = _ctx(tmp_path, registry)

    _dispatch(
        make_command(
            "zip",
            type=CommandType.EXTRACT_ARCHIVE,
            params=ExtractArchiveParams(str(tmp_path / "bundle.zip"), "{InstallPath}"),
        ),
        ctx,
    )
    _dispatch(
        make_command(
            "tar",
            type=CommandType.EXTRACT_ARCHIVE,
            params=ExtractArchiveParams(str(tmp_path / "bundle.tar.gz"), "{InstallPath}"),
        ),
        ctx,
    )

    assert (tmp_path / "install" / "docs" / "inner.txt").read_text(encoding="utf-8") == "zipped"
    assert (tmp_path / "install" / "lib" / "inner.txt").read_text(encoding="utf-8") == "zipped"


def test_extract_unknown_format(tmp_path: Path, registry: FakeRegistry) -> None:
    blob = tmp_path / "bundle.bin"
    blob.write_bytes(b"\x00\x01")
    ctx = _ctx(tmp_path, registry)

    with pytest.raises(CommandError, match="archive format"):
        _dispatch(
            make_command("x", type=CommandType.EXTRACT_ARCHIVE, params=ExtractArchiveParams(str(blob), "{InstallPath}")),
            ctx,
        )


def test_registry_write_and_delete(tmp_path: Path, registry: FakeRegistry) -> None:
    ctx = _ctx(tmp_path, registry)

    _dispatch(
        make_command(
            "write",
            type=CommandType.WRITE_REGISTRY,
            params=WriteRegistryParams(r"SOFTWARE\{AppPublisher}\{AppName}", "InstallDir", "{InstallPath}"),
        ),
        ctx,
    )

    key = ("hklm", r"software\acme\demo", "InstallDir")
    assert registry.values[key] == (str(tmp_path / "install"), "string")

    _dispatch(
        make_command(
            "delete-value",
            type=CommandType.DELETE_REGISTRY,
            params=DeleteRegistryParams(r"SOFTWARE\Acme\Demo", "InstallDir"),
        ),
        ctx,
    )
    assert key not in registry.values
    assert registry.key_exists("hklm", r"SOFTWARE\Acme\Demo")

    _dispatch(
        make_command("delete-key", type=CommandType.DELETE_REGISTRY, params=DeleteRegistryParams(r"SOFTWARE\Acme\Demo")),
        ctx,
    )
    assert not registry.key_exists("hklm", r"SOFTWARE\Acme\Demo")


def test_file_association_writes_three_keys(tmp_path: Path, registry: FakeRegistry) -> None:
    ctx = _ctx(tmp_path, registry)

    _dispatch(
        make_command(
            "assoc",
            type=CommandType.CREATE_FILE_ASSOCIATION,
            params=CreateFileAssociationParams(".arc", "Demo.Archive", "{InstallPath}/demo", "{AppName} archive"),
        ),
        ctx,
    )

    exe = str(tmp_path / "install") + "/demo"
    assert registry.values[("hkcr", "demo.archive", "")] == ("Demo archive", "string")
    assert registry.values[("hkcr", r"demo.archive\shell\open\command", "")] == (f'"{exe}" "%1"', "string")
    assert registry.values[("hkcr", ".arc", "")] == ("Demo.Archive", "string")


def test_unavailable_registry_fails_writes() -> None:
    registry = UnavailableRegistry()

    assert not registry.key_exists("hklm", r"SOFTWARE\Anything")
    with pytest.raises(CommandError, match="not available"):
        registry.set_value("hklm", r"SOFTWARE\Anything", "x", "y")


def test_convert_value() -> None:
    assert convert_value("0x10", "dword") == (16, "dword")
    assert convert_value("de ad", "binary") == (b"\xde\xad", "binary")
    assert convert_value("a\nb\n", "multi_string") == (["a", "b"], "multi_string")
    with pytest.raises(CommandError):
        convert_value("ten", "qword")


def test_process_environment_variable(tmp_path: Path, registry: FakeRegistry, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ARCAS_HOME", raising=False)
    ctx = _ctx(tmp_path, registry)

    _dispatch(
        make_command(
            "env",
            type=CommandType.SET_ENVIRONMENT_VARIABLE,
            params=SetEnvironmentVariableParams("ARCAS_HOME", "{InstallPath}", target="process"),
        ),
        ctx,
    )

    assert os.environ["ARCAS_HOME"] == str(tmp_path / "install")


@posix_only
def test_user_environment_variable_writes_environment_d(
    tmp_path: Path, registry: FakeRegistry, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("ARCAS_CHANNEL", raising=False)
    ctx = _ctx(tmp_path, registry)
    command = make_command(
        "env", type=CommandType.SET_ENVIRONMENT_VARIABLE, params=SetEnvironmentVariableParams("ARCAS_CHANNEL", "stable")
    )

    _dispatch(command, ctx)
    _dispatch(command, ctx)

    conf = envvars.USER_ENV_DIR / "Demo.conf"
    assert conf.read_text(encoding="utf-8") == "ARCAS_CHANNEL=stable\n"
    assert "ARCAS_CHANNEL" not in os.environ


def test_invalid_environment_variable_name(tmp_path: Path, registry: FakeRegistry) -> None:
    ctx = _ctx(tmp_path, registry)
    command = make_command(
        "env", type=CommandType.SET_ENVIRONMENT_VARIABLE, params=SetEnvironmentVariableParams("BAD NAME", "x", "process")
    )

    with pytest.raises(ValueError):
        _dispatch(command, ctx)


@posix_only
def test_shell_command_output_and_exit_code(tmp_path: Path) -> None:
    app = make_component(
        "app",
        [
            make_command(
                "echo",
                type=CommandType.RUN_SHELL_COMMAND,
                params=RunShellCommandParams("echo installing {AppName}"),
            ),
            make_command(
                "exit3",
                type=CommandType.RUN_SHELL_COMMAND,
                params=RunShellCommandParams("exit 3"),
                required=False,
            ),
        ],
    )
    context = make_context(make_definition([app]), tmp_path, selected=["app"])

    result = CommandExecutor(context, registry=FakeRegistry()).execute()

    assert result.status is Status.COMPLETED
    echo, exit3 = result.command_results
    assert echo.success and echo.exit_code == 0
    assert echo.output.strip() == "installing Demo"
    assert not exit3.success and exit3.exit_code == 3


def test_windows_executable_receives_arguments_verbatim(
    tmp_path: Path, registry: FakeRegistry, monkeypatch: pytest.MonkeyPatch
) -> None:
    seen = []

    def fake_run_cmd(argv, **kwargs):
        seen.append(argv)
        return CmdResult(argv=argv, returncode=0, stdout="", stderr="")

    monkeypatch.setattr(sys, "platform", "win32")
    monkeypatch.setattr("arcas_installer.actions.run_cmd", fake_run_cmd)
    ctx = _ctx(tmp_path, registry)
    command = make_command(
        "setup",
        type=CommandType.RUN_EXECUTABLE,
        params=RunExecutableParams(r"C:\Setup Files\tool.exe", '/D="{AppName} Home" --quiet'),
    )

    _dispatch(command, ctx)

    assert seen == [r'"C:\Setup Files\tool.exe" /D="Demo Home" --quiet']


@posix_only
def test_desktop_shortcut(tmp_path: Path, registry: FakeRegistry) -> None:
    ctx = _ctx(tmp_path, registry)

    _dispatch(
        make_command(
            "shortcut",
            type=CommandType.CREATE_SHORTCUT,
            params=CreateShortcutParams(
                target_path="{InstallPath}/demo",
                shortcut_path=str(tmp_path / "menu" / "{AppName}.desktop"),
                description="{AppDescription}",
                arguments="--fresh",
            ),
        ),
        ctx,
    )

    entry = (tmp_path / "menu" / "Demo.desktop").read_text(encoding="utf-8")
    assert f"Exec={tmp_path / 'install'}/demo --fresh" in entry
    assert "Comment=Demo app" in entry
    assert "Name=Demo" in entry


def test_custom_handler_receives_expanded_options(tmp_path: Path, registry: FakeRegistry) -> None:
    actions = ActionRegistry()
    received = {}

    def handler(command, options, ctx):
        received.update(options)
        return ActionOutcome(output="registered")

    actions.register_custom("register-plugin", handler)
    ctx = _ctx(tmp_path, registry, actions)
    command = make_command(
        "custom",
        type=CommandType.CUSTOM,
        params=CustomParams("register-plugin", {"name": "{AppName}", "retries": 2}),
    )

    outcome = _dispatch(command, ctx, actions)

    assert outcome.output == "registered"
    assert received == {"name": "Demo", "retries": 2}


def test_custom_handler_returning_false_fails(tmp_path: Path, registry: FakeRegistry) -> None:
    actions = ActionRegistry()
    actions.register_custom("nope", lambda command, options, ctx: False)
    ctx = _ctx(tmp_path, registry, actions)

    outcome = _dispatch(make_command("custom", type=CommandType.CUSTOM, params=CustomParams("nope")), ctx, actions)

    assert not outcome.success


def test_custom_without_handler_warns_and_succeeds(tmp_path: Path, registry: FakeRegistry) -> None:
    ctx = _ctx(tmp_path, registry)

    outcome = _dispatch(make_command("custom", type=CommandType.CUSTOM, params=CustomParams("missing")), ctx)

    assert outcome.success
    warnings = [e for e in ctx.context.state.log_entries if e.level is LogLevel.WARNING]
    assert warnings and "no handler 'missing'" in warnings[0].message


def test_registered_action_replaces_default(tmp_path: Path, registry: FakeRegistry) -> None:
    actions = ActionRegistry()
    actions.register(CommandType.CREATE_DIRECTORY, lambda command, ctx: ActionOutcome(output="stubbed"))
    ctx = _ctx(tmp_path, registry, actions)

    outcome = _dispatch(make_command("mkdir", timing=Timing.PRE_INSTALL), ctx, actions)

    assert outcome.output == "stubbed"
    assert not (tmp_path / "install").exists()


def test_dispatch_without_action_raises(tmp_path: Path, registry: FakeRegistry) -> None:
    ctx = _ctx(tmp_path, registry)

    with pytest.raises(UnsupportedCommandError):
        _dispatch(make_command("mkdir"), ctx, ActionRegistry({}))
