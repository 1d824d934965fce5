"""Type-specific command actions.

Each action receives the command and an :class:`ActionContext`, expands its
own string parameters right before use and returns an
:class:`ActionOutcome`. Failures are raised as exceptions or returned as
``success=False``; the executor treats both the same way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from .errors import UnsupportedCommandError
from .lib import assets, envvars, services, shortcuts
from .lib.command import CmdResult, executable_command, run_cmd, shell_command, spawn_cmd
from .lib.registry import Registry
from .model import Command, CommandType, LogLevel
from .params import (
    CopyDirectoryParams,
    CopyFileParams,
    CreateDirectoryParams,
    CreateFileAssociationParams,
    CreateShortcutParams,
    CustomParams,
    DeleteRegistryParams,
    ExtractArchiveParams,
    InstallServiceParams,
    RunExecutableParams,
    RunShellCommandParams,
    SetEnvironmentVariableParams,
    UninstallServiceParams,
    WriteRegistryParams,
)
from .state import SetupContext
from .variables import VariableExpander

logger = logging.getLogger(__name__)


@dataclass
class ActionOutcome:
    success: bool = True
    exit_code: Optional[int] = None
    output: str = ""
    error_output: str = ""
    is_process: bool = False


@dataclass
class ActionContext:
    context: SetupContext
    expander: VariableExpander
    registry: Registry
    custom_handlers: Mapping[str, "CustomHandler"] = field(default_factory=dict)
    component_id: Optional[str] = None

    def expand(self, text: str) -> str:
        return self.expander.expand(text) or ""

    def debug(self, command: Command, message: str) -> None:
        self.context.state.log(LogLevel.DEBUG, message, command_id=command.id, component_id=self.component_id)


Action = Callable[[Command, ActionContext], ActionOutcome]
CustomHandler = Callable[[Command, Mapping[str, Any], ActionContext], Any]


def _process_outcome(r: CmdResult) -> ActionOutcome:
    return ActionOutcome(
        success=True,
        exit_code=r.returncode,
        output=r.stdout,
        error_output=r.stderr,
        is_process=r.waited,
    )


def copy_file(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: CopyFileParams = command.params
    src, dst = ctx.expand(p.source), ctx.expand(p.destination)
    ctx.debug(command, f"Copying file from '{src}' to '{dst}'")
    assets.copy_file(src, dst, overwrite=p.overwrite)
    return ActionOutcome()


def copy_directory(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: CopyDirectoryParams = command.params
    src, dst = ctx.expand(p.source), ctx.expand(p.destination)
    ctx.debug(command, f"Copying directory from '{src}' to '{dst}'")
    count = assets.copy_tree(src, dst, recursive=p.recursive)
    return ActionOutcome(output=f"{count} file(s) copied")


def create_shortcut(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: CreateShortcutParams = command.params
    target, link = ctx.expand(p.target_path), ctx.expand(p.shortcut_path)
    ctx.debug(command, f"Creating shortcut '{link}' -> '{target}'")
    shortcuts.create_shortcut(
        target,
        link,
        description=ctx.expand(p.description),
        working_directory=ctx.expand(p.working_directory),
        arguments=ctx.expand(p.arguments),
        icon_path=ctx.expand(p.icon_path),
    )
    return ActionOutcome()


def create_directory(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: CreateDirectoryParams = command.params
    path = ctx.expand(p.path)
    ctx.debug(command, f"Creating directory '{path}'")
    assets.create_directory(path)
    return ActionOutcome()


def write_registry(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: WriteRegistryParams = command.params
    key, name, value = ctx.expand(p.key_path), ctx.expand(p.value_name), ctx.expand(p.value)
    ctx.debug(command, f"Writing registry value '{key}\\{name}' = '{value}'")
    ctx.registry.set_value(p.root, key, name, value, p.value_type)
    return ActionOutcome()


def delete_registry(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: DeleteRegistryParams = command.params
    key, name = ctx.expand(p.key_path), ctx.expand(p.value_name)
    ctx.debug(command, f"Deleting registry '{key}\\{name}'")
    if name:
        ctx.registry.delete_value(p.root, key, name)
    else:
        ctx.registry.delete_key(p.root, key)
    return ActionOutcome()


def run_executable(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: RunExecutableParams = command.params
    executable, arguments = ctx.expand(p.executable), ctx.expand(p.arguments)
    cwd = ctx.expand(p.working_directory) or None
    ctx.debug(command, f"Running executable '{executable}' with arguments '{arguments}'")
    argv = executable_command(executable, arguments)
    if not p.wait_for_exit:
        return _process_outcome(spawn_cmd(argv, cwd=cwd))
    return _process_outcome(run_cmd(argv, check=False, cwd=cwd, timeout_s=p.timeout_s))


def run_shell_command(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: RunShellCommandParams = command.params
    text = ctx.expand(p.command)
    cwd = ctx.expand(p.working_directory) or None
    ctx.debug(command, f"Running shell command '{text}'")
    if not p.wait_for_exit:
        return _process_outcome(spawn_cmd(shell_command(text), cwd=cwd))
    return _process_outcome(run_cmd(shell_command(text), check=False, cwd=cwd, timeout_s=p.timeout_s))


def extract_archive(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: ExtractArchiveParams = command.params
    archive, dst = ctx.expand(p.archive_path), ctx.expand(p.destination)
    ctx.debug(command, f"Extracting archive '{archive}' to '{dst}'")
    assets.extract_archive(archive, dst, fmt=p.format)
    return ActionOutcome()


def set_environment_variable(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: SetEnvironmentVariableParams = command.params
    name, value = ctx.expand(p.name), ctx.expand(p.value)
    ctx.debug(command, f"Setting environment variable '{name}' = '{value}' ({p.target})")
    envvars.set_environment_variable(name, value, target=p.target, file_stem=ctx.context.definition.application.name)
    return ActionOutcome()


def create_file_association(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: CreateFileAssociationParams = command.params
    executable = ctx.expand(p.executable)
    description = ctx.expand(p.description)
    ctx.debug(command, f"Creating file association '{p.extension}' -> '{p.prog_id}'")
    ctx.registry.set_value("hkcr", p.prog_id, "", description)
    ctx.registry.set_value("hkcr", f"{p.prog_id}\\shell\\open\\command", "", f'"{executable}" "%1"')
    ctx.registry.set_value("hkcr", p.extension, "", p.prog_id)
    return ActionOutcome()


def install_service(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: InstallServiceParams = command.params
    name, executable = ctx.expand(p.service_name), ctx.expand(p.executable)
    ctx.debug(command, f"Installing service '{name}' -> '{executable}'")
    services.install_service(
        name,
        executable,
        display_name=ctx.expand(p.display_name),
        description=ctx.expand(p.description),
        arguments=ctx.expand(p.arguments),
        start_type=p.start_type,
    )
    return ActionOutcome()


def uninstall_service(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: UninstallServiceParams = command.params
    name = ctx.expand(p.service_name)
    ctx.debug(command, f"Uninstalling service '{name}'")
    services.uninstall_service(name)
    return ActionOutcome()


def custom(command: Command, ctx: ActionContext) -> ActionOutcome:
    p: CustomParams = command.params
    handler = ctx.custom_handlers.get(p.handler)
    if handler is None:
        ctx.context.state.log(
            LogLevel.WARNING,
            f"Custom command '{command.label}' has no handler '{p.handler}'; nothing to do",
            command_id=command.id,
            component_id=ctx.component_id,
        )
        return ActionOutcome()

    options = {k: ctx.expand(v) if isinstance(v, str) else v for k, v in p.options.items()}
    result = handler(command, options, ctx)
    if isinstance(result, ActionOutcome):
        return result
    return ActionOutcome(success=result is not False)


DEFAULT_ACTIONS: Dict[CommandType, Action] = {
    CommandType.COPY_FILE: copy_file,
    CommandType.COPY_DIRECTORY: copy_directory,
    CommandType.CREATE_SHORTCUT: create_shortcut,
    CommandType.CREATE_DIRECTORY: create_directory,
    CommandType.WRITE_REGISTRY: write_registry,
    CommandType.DELETE_REGISTRY: delete_registry,
    CommandType.RUN_EXECUTABLE: run_executable,
    CommandType.RUN_SHELL_COMMAND: run_shell_command,
    CommandType.EXTRACT_ARCHIVE: extract_archive,
    CommandType.SET_ENVIRONMENT_VARIABLE: set_environment_variable,
    CommandType.CREATE_FILE_ASSOCIATION: create_file_association,
    CommandType.INSTALL_SERVICE: install_service,
    CommandType.UNINSTALL_SERVICE: uninstall_service,
    CommandType.CUSTOM: custom,
}


class ActionRegistry:
    """Maps command types to actions and custom handler names to callables."""

    def __init__(self, actions: Optional[Mapping[CommandType, Action]] = None) -> None:
        self.actions: Dict[CommandType, Action] = dict(DEFAULT_ACTIONS if actions is None else actions)
        self.custom_handlers: Dict[str, CustomHandler] = {}

    def register(self, command_type: CommandType, action: Action) -> None:
        self.actions[command_type] = action

    def register_custom(self, name: str, handler: CustomHandler) -> None:
        self.custom_handlers[name] = handler

    def dispatch(self, command: Command, ctx: ActionContext) -> ActionOutcome:
        action = self.actions.get(command.type)
        if action is None:
            raise UnsupportedCommandError(f"Command type {command.type.value} is not supported")
        return action(command, ctx)
