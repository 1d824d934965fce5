from __future__ import annotations

from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from arcas_installer.actions import ActionContext, ActionOutcome, ActionRegistry
from arcas_installer.model import (
    AppInfo,
    Architecture,
    ArchitectureSettings,
    Command,
    CommandType,
    Component,
    ComponentOverride,
    Condition,
    GlobalSettings,
    LicenseInfo,
    PageDefinition,
    SetupDefinition,
    SuccessCriteria,
    Timing,
)
from arcas_installer.params import CreateDirectoryParams
from arcas_installer.resolution import create_context
from arcas_installer.state import SetupContext


class FakeRegistry:
    """In-memory registry; key paths compare case-insensitively like the real one."""

    def __init__(self) -> None:
        self.keys: Set[Tuple[str, str]] = set()
        self.values: Dict[Tuple[str, str, str], Tuple[str, str]] = {}

    def add_key(self, root: str, key_path: str) -> None:
        self.keys.add((root, key_path.lower()))

    def key_exists(self, root: str, key_path: str) -> bool:
        return (root, key_path.lower()) in self.keys

    def set_value(self, root: str, key_path: str, value_name: str, value: str, value_type: str = "string") -> None:
        self.add_key(root, key_path)
        self.values[(root, key_path.lower(), value_name)] = (value, value_type)

    def delete_value(self, root: str, key_path: str, value_name: str) -> None:
        self.values.pop((root, key_path.lower(), value_name), None)

    def delete_key(self, root: str, key_path: str) -> None:
        self.keys.discard((root, key_path.lower()))
        for k in [k for k in self.values if k[:2] == (root, key_path.lower())]:
            del self.values[k]


class Recorder:
    """Stand-in action that records which commands ran.

    Commands listed in ``fail`` return an unsuccessful outcome; those in
    ``explode`` raise. ``outcomes`` supplies a canned outcome per command id.
    """

    def __init__(
        self,
        *,
        fail: Iterable[str] = (),
        explode: Iterable[str] = (),
        outcomes: Optional[Mapping[str, ActionOutcome]] = None,
        on_call: Any = None,
    ) -> None:
        self.fail = set(fail)
        self.explode = set(explode)
        self.outcomes = dict(outcomes or {})
        self.on_call = on_call
        self.calls: List[str] = []

    def __call__(self, command: Command, ctx: ActionContext) -> ActionOutcome:
        self.calls.append(command.id)
        if self.on_call is not None:
            self.on_call(command, ctx)
        if command.id in self.explode:
            raise RuntimeError(f"boom in {command.id}")
        if command.id in self.fail:
            return ActionOutcome(success=False)
        return self.outcomes.get(command.id, ActionOutcome())


def recording_actions(recorder: Recorder) -> ActionRegistry:
    return ActionRegistry({t: recorder for t in CommandType})


def make_command(
    cmd_id: str,
    *,
    type: CommandType = CommandType.CREATE_DIRECTORY,
    params: Any = None,
    timing: Timing = Timing.INSTALL,
    order: int = 0,
    required: bool = True,
    target_architecture: Architecture = Architecture.ANY,
    conditions: Iterable[Condition] = (),
    success_criteria: Optional[SuccessCriteria] = None,
) -> Command:
    if params is None:
        params = CreateDirectoryParams(path="{InstallPath}/" + cmd_id)
    return Command(
        type=type,
        params=params,
        id=cmd_id,
        name=cmd_id,
        timing=timing,
        required=required,
        order=order,
        target_architecture=target_architecture,
        conditions=tuple(conditions),
        success_criteria=success_criteria,
    )


def make_component(
    component_id: str,
    commands: Iterable[Command] = (),
    *,
    required: bool = False,
    default_selected: bool = False,
    size_bytes: int = 0,
    target_architecture: Architecture = Architecture.ANY,
    conditions: Iterable[Condition] = (),
    overrides: Optional[Mapping[Architecture, ComponentOverride]] = None,
) -> Component:
    return Component(
        id=component_id,
        name=component_id.title(),
        required=required,
        default_selected=default_selected,
        size_bytes=size_bytes,
        target_architecture=target_architecture,
        conditions=tuple(conditions),
        commands=tuple(commands),
        architecture_overrides=MappingProxyType(dict(overrides or {})),
    )


def make_definition(
    components: Iterable[Component] = (),
    *,
    global_commands: Iterable[Command] = (),
    variables: Optional[Mapping[str, str]] = None,
    settings: Optional[GlobalSettings] = None,
    arch_settings: Optional[Mapping[Architecture, ArchitectureSettings]] = None,
    license: Optional[LicenseInfo] = None,
    pages: Iterable[PageDefinition] = (),
) -> SetupDefinition:
    return SetupDefinition(
        application=AppInfo(name="Demo", version="1.2.3", publisher="Acme", description="Demo app"),
        global_settings=settings or GlobalSettings(default_install_path="{ProgramFiles}/Demo", minimum_disk_space=0),
        architecture_settings=MappingProxyType(dict(arch_settings or {})),
        license=license,
        components=tuple(components),
        pages=tuple(pages),
        global_commands=tuple(global_commands),
        variables=MappingProxyType(dict(variables or {})),
    )


def make_context(
    definition: SetupDefinition,
    install_path: Path,
    *,
    selected: Iterable[str] = (),
    architecture: Architecture = Architecture.X64,
    dry_run: bool = False,
) -> SetupContext:
    context = create_context(definition, architecture=architecture, dry_run=dry_run, install_path=str(install_path))
    context.state.selected_component_ids = set(selected)
    return context
