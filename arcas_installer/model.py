"""Configuration model and runtime records.

Everything loaded from the setup document is a frozen dataclass; runtime
records (log entries, command results, errors) are plain dataclasses
appended to :class:`arcas_installer.state.SetupState` during a run.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

MIB = 1024 * 1024


def _frozen_map(data: Optional[Mapping[Any, Any]] = None) -> Mapping[Any, Any]:
    return MappingProxyType(dict(data or {}))


def _tag(value: str) -> str:
    return value.replace("_", "").replace("-", "").replace(" ", "").lower()


class _TaggedEnum(enum.Enum):
    """Enum parsed from a document tag, case/underscore-insensitive."""

    @classmethod
    def parse(cls, raw: Any):
        if isinstance(raw, cls):
            return raw
        wanted = _tag(str(raw))
        for member in cls:
            if _tag(member.value) == wanted or _tag(member.name) == wanted:
                return member
        raise ValueError(f"unknown {cls.__name__} {raw!r}")


class Architecture(_TaggedEnum):
    ANY = "any"
    X86 = "x86"
    X64 = "x64"
    ARM64 = "arm64"


class CommandType(_TaggedEnum):
    COPY_FILE = "copy_file"
    COPY_DIRECTORY = "copy_directory"
    CREATE_SHORTCUT = "create_shortcut"
    CREATE_DIRECTORY = "create_directory"
    WRITE_REGISTRY = "write_registry"
    DELETE_REGISTRY = "delete_registry"
    RUN_EXECUTABLE = "run_executable"
    RUN_SHELL_COMMAND = "run_shell_command"
    EXTRACT_ARCHIVE = "extract_archive"
    SET_ENVIRONMENT_VARIABLE = "set_environment_variable"
    CREATE_FILE_ASSOCIATION = "create_file_association"
    INSTALL_SERVICE = "install_service"
    UNINSTALL_SERVICE = "uninstall_service"
    CUSTOM = "custom"


class Timing(_TaggedEnum):
    PRE_INSTALL = "pre_install"
    INSTALL = "install"
    POST_INSTALL = "post_install"
    UNINSTALL = "uninstall"

    @property
    def rank(self) -> int:
        return _TIMING_RANK[self]


_TIMING_RANK = {
    Timing.PRE_INSTALL: 0,
    Timing.INSTALL: 1,
    Timing.POST_INSTALL: 2,
    Timing.UNINSTALL: 3,
}


class Status(enum.Enum):
    NOT_STARTED = "NotStarted"
    INITIALIZING = "Initializing"
    PRE_INSTALLATION = "PreInstallation"
    INSTALLING = "Installing"
    POST_INSTALLATION = "PostInstallation"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (Status.COMPLETED, Status.FAILED, Status.CANCELLED)


class LogLevel(enum.IntEnum):
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


class ErrorType(enum.Enum):
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    PERMISSION = "permission"
    DISK_SPACE = "disk_space"
    FILE_SYSTEM = "file_system"
    REGISTRY = "registry"
    NETWORK = "network"
    DEPENDENCY = "dependency"
    COMMAND = "command"
    UNKNOWN = "unknown"


# --- configuration model -------------------------------------------------


@dataclass(frozen=True)
class AppInfo:
    name: str = ""
    version: str = ""
    publisher: str = ""
    description: str = ""
    website: str = ""
    support_url: str = ""
    icon_path: str = ""


@dataclass(frozen=True)
class GlobalSettings:
    default_install_path: str = ""
    allow_custom_install_path: bool = True
    create_uninstaller: bool = True
    require_administrator: bool = False
    minimum_disk_space: int = 50 * MIB
    supported_architectures: Tuple[str, ...] = ("any",)
    uninstaller_name: str = "uninstall.exe"
    add_to_control_panel: bool = True
    create_start_menu_entries: bool = True
    create_desktop_shortcut: bool = False


@dataclass(frozen=True)
class ArchitectureSettings:
    """Partial settings for one architecture; ``None`` means "use global"."""

    default_install_path: Optional[str] = None
    allow_custom_install_path: Optional[bool] = None
    create_uninstaller: Optional[bool] = None
    require_administrator: Optional[bool] = None
    minimum_disk_space: Optional[int] = None
    supported_architectures: Optional[Tuple[str, ...]] = None
    uninstaller_name: Optional[str] = None
    add_to_control_panel: Optional[bool] = None
    create_start_menu_entries: Optional[bool] = None
    create_desktop_shortcut: Optional[bool] = None


@dataclass(frozen=True)
class LicenseInfo:
    title: str = "License Agreement"
    text: str = ""
    text_file_path: str = ""
    required: bool = True
    accept_text: str = "I accept the terms in the License Agreement"
    decline_text: str = "I do not accept the terms in the License Agreement"


@dataclass(frozen=True)
class Condition:
    type: str
    target: str = ""
    expected_value: str = ""
    negate: bool = False


@dataclass(frozen=True)
class SuccessCriteria:
    expected_exit_code: Optional[int] = None
    expected_output_contains: Optional[str] = None
    expected_file_exists: Optional[str] = None
    expected_registry_value: Optional[str] = None


@dataclass(frozen=True)
class Command:
    type: CommandType
    params: Any
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    description: str = ""
    timing: Timing = Timing.INSTALL
    required: bool = True
    order: int = 0
    run_as_admin: bool = False
    target_architecture: Architecture = Architecture.ANY
    conditions: Tuple[Condition, ...] = ()
    success_criteria: Optional[SuccessCriteria] = None

    @property
    def label(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class ComponentOverride:
    name: Optional[str] = None
    description: Optional[str] = None
    default_selected: Optional[bool] = None
    size_bytes: Optional[int] = None
    additional_commands: Optional[Tuple[Command, ...]] = None
    replacement_commands: Optional[Tuple[Command, ...]] = None


@dataclass(frozen=True)
class Component:
    id: str
    name: str = ""
    description: str = ""
    required: bool = False
    default_selected: bool = False
    size_bytes: int = 0
    target_architecture: Architecture = Architecture.ANY
    dependencies: Tuple[str, ...] = ()
    conflicts: Tuple[str, ...] = ()
    conditions: Tuple[Condition, ...] = ()
    commands: Tuple[Command, ...] = ()
    architecture_overrides: Mapping[Architecture, ComponentOverride] = field(default_factory=_frozen_map)


@dataclass(frozen=True)
class PageDefinition:
    id: str
    title: str = ""
    subtitle: str = ""
    enabled: bool = True
    order: int = 0
    page_type: str = ""
    properties: Mapping[str, Any] = field(default_factory=_frozen_map)
    show_conditions: Tuple[Condition, ...] = ()


@dataclass(frozen=True)
class SetupDefinition:
    application: AppInfo = field(default_factory=AppInfo)
    global_settings: GlobalSettings = field(default_factory=GlobalSettings)
    architecture_settings: Mapping[Architecture, ArchitectureSettings] = field(default_factory=_frozen_map)
    license: Optional[LicenseInfo] = None
    components: Tuple[Component, ...] = ()
    pages: Tuple[PageDefinition, ...] = ()
    global_commands: Tuple[Command, ...] = ()
    variables: Mapping[str, str] = field(default_factory=_frozen_map)
    source_path: Optional[str] = None

    def component(self, component_id: str) -> Optional[Component]:
        for c in self.components:
            if c.id == component_id:
                return c
        return None


# --- runtime records -----------------------------------------------------


@dataclass
class LogEntry:
    level: LogLevel
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    command_id: Optional[str] = None
    component_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CommandResult:
    command_id: str
    component_id: str
    command_type: CommandType
    start_time: datetime
    end_time: Optional[datetime] = None
    success: bool = False
    exit_code: Optional[int] = None
    output: str = ""
    error_output: str = ""
    exception: Optional[str] = None
    was_skipped: bool = False
    skip_reason: str = ""


@dataclass
class SetupError:
    type: ErrorType
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    component_id: Optional[str] = None
    command_id: Optional[str] = None
    exception: Optional[str] = None
    is_fatal: bool = False


@dataclass(frozen=True)
class ProgressInfo:
    operation: str
    percentage: int
    detail: Optional[str] = None
