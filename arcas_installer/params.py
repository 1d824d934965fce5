"""Typed parameter records, one per command type.

Parameters are validated once when the setup document is loaded. String
fields hold unexpanded text; actions expand them right before use.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from .model import CommandType


class ParamError(ValueError):
    pass


_MISSING = object()


class _Reader:
    def __init__(self, raw: Mapping[str, Any]) -> None:
        if not isinstance(raw, Mapping):
            raise ParamError(f"parameters must be a mapping, got {type(raw).__name__}")
        self.raw = dict(raw)
        self.used: set[str] = set()

    def _get(self, key: str, default: Any) -> Any:
        self.used.add(key)
        value = self.raw.get(key, _MISSING)
        if value is _MISSING or value is None:
            if default is _MISSING:
                raise ParamError(f"missing required parameter '{key}'")
            return default
        return value

    def text(self, key: str, default: Any = _MISSING) -> Any:
        value = self._get(key, default)
        if value is default:
            return value
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise ParamError(f"parameter '{key}' must be a string")
        return str(value)

    def flag(self, key: str, default: Any = _MISSING) -> Any:
        value = self._get(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false", "yes", "no", "1", "0"}:
            return value.strip().lower() in {"true", "yes", "1"}
        raise ParamError(f"parameter '{key}' must be a boolean")

    def number(self, key: str, default: Any = _MISSING) -> Any:
        value = self._get(key, default)
        if value is default:
            return value
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ParamError(f"parameter '{key}' must be a number")
        return value

    def choice(self, key: str, choices: tuple[str, ...], default: Any = _MISSING) -> Any:
        value = self.text(key, default)
        if value is None:
            return value
        v = value.lower()
        if v not in choices:
            raise ParamError(f"parameter '{key}' must be one of {', '.join(choices)} (got {value!r})")
        return v

    def mapping(self, key: str) -> Mapping[str, Any]:
        value = self._get(key, {})
        if not isinstance(value, Mapping):
            raise ParamError(f"parameter '{key}' must be a mapping")
        return MappingProxyType(dict(value))

    def finish(self) -> None:
        unknown = sorted(set(self.raw) - self.used)
        if unknown:
            raise ParamError(f"unknown parameter(s): {', '.join(unknown)}")


@dataclass(frozen=True)
class CopyFileParams:
    source: str
    destination: str
    overwrite: bool = True


@dataclass(frozen=True)
class CopyDirectoryParams:
    source: str
    destination: str
    recursive: bool = True


@dataclass(frozen=True)
class CreateShortcutParams:
    target_path: str
    shortcut_path: str
    description: str = ""
    working_directory: str = ""
    arguments: str = ""
    icon_path: str = ""


@dataclass(frozen=True)
class CreateDirectoryParams:
    path: str


REGISTRY_ROOTS = ("hklm", "hkcu", "hkcr")
REGISTRY_VALUE_TYPES = ("string", "expand_string", "dword", "qword", "binary", "multi_string")


@dataclass(frozen=True)
class WriteRegistryParams:
    key_path: str
    value_name: str
    value: str
    value_type: str = "string"
    root: str = "hklm"


@dataclass(frozen=True)
class DeleteRegistryParams:
    key_path: str
    value_name: str = ""
    root: str = "hklm"


@dataclass(frozen=True)
class RunExecutableParams:
    executable: str
    arguments: str = ""
    working_directory: str = ""
    wait_for_exit: bool = True
    timeout_s: Optional[float] = None


@dataclass(frozen=True)
class RunShellCommandParams:
    command: str
    working_directory: str = ""
    wait_for_exit: bool = True
    timeout_s: Optional[float] = None


ARCHIVE_FORMATS = ("zip", "tar", "gztar", "bztar", "xztar")


@dataclass(frozen=True)
class ExtractArchiveParams:
    archive_path: str
    destination: str
    format: Optional[str] = None


ENV_TARGETS = ("process", "user", "machine")


@dataclass(frozen=True)
class SetEnvironmentVariableParams:
    name: str
    value: str
    target: str = "user"


@dataclass(frozen=True)
class CreateFileAssociationParams:
    extension: str
    prog_id: str
    executable: str
    description: str = ""


SERVICE_START_TYPES = ("auto", "manual", "disabled")


@dataclass(frozen=True)
class InstallServiceParams:
    service_name: str
    executable: str
    display_name: str = ""
    description: str = ""
    arguments: str = ""
    start_type: str = "auto"


@dataclass(frozen=True)
class UninstallServiceParams:
    service_name: str


@dataclass(frozen=True)
class CustomParams:
    handler: str
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


def _copy_file(r: _Reader) -> CopyFileParams:
    return CopyFileParams(r.text("source"), r.text("destination"), r.flag("overwrite", True))


def _copy_directory(r: _Reader) -> CopyDirectoryParams:
    return CopyDirectoryParams(r.text("source"), r.text("destination"), r.flag("recursive", True))


def _create_shortcut(r: _Reader) -> CreateShortcutParams:
    return CreateShortcutParams(
        target_path=r.text("target_path"),
        shortcut_path=r.text("shortcut_path"),
        description=r.text("description", ""),
        working_directory=r.text("working_directory", ""),
        arguments=r.text("arguments", ""),
        icon_path=r.text("icon_path", ""),
    )


def _create_directory(r: _Reader) -> CreateDirectoryParams:
    return CreateDirectoryParams(r.text("path"))


def _write_registry(r: _Reader) -> WriteRegistryParams:
    return WriteRegistryParams(
        key_path=r.text("key_path"),
        value_name=r.text("value_name"),
        value=r.text("value"),
        value_type=r.choice("value_type", REGISTRY_VALUE_TYPES, "string"),
        root=r.choice("root", REGISTRY_ROOTS, "hklm"),
    )


def _delete_registry(r: _Reader) -> DeleteRegistryParams:
    return DeleteRegistryParams(
        key_path=r.text("key_path"),
        value_name=r.text("value_name", ""),
        root=r.choice("root", REGISTRY_ROOTS, "hklm"),
    )


def _run_executable(r: _Reader) -> RunExecutableParams:
    return RunExecutableParams(
        executable=r.text("executable"),
        arguments=r.text("arguments", ""),
        working_directory=r.text("working_directory", ""),
        wait_for_exit=r.flag("wait_for_exit", True),
        timeout_s=r.number("timeout_s", None),
    )


def _run_shell_command(r: _Reader) -> RunShellCommandParams:
    return RunShellCommandParams(
        command=r.text("command"),
        working_directory=r.text("working_directory", ""),
        wait_for_exit=r.flag("wait_for_exit", True),
        timeout_s=r.number("timeout_s", None),
    )


def _extract_archive(r: _Reader) -> ExtractArchiveParams:
    return ExtractArchiveParams(
        archive_path=r.text("archive_path"),
        destination=r.text("destination"),
        format=r.choice("format", ARCHIVE_FORMATS, None),
    )


def _set_environment_variable(r: _Reader) -> SetEnvironmentVariableParams:
    return SetEnvironmentVariableParams(
        name=r.text("name"),
        value=r.text("value"),
        target=r.choice("target", ENV_TARGETS, "user"),
    )


def _create_file_association(r: _Reader) -> CreateFileAssociationParams:
    extension = r.text("extension")
    if not extension.startswith("."):
        extension = "." + extension
    return CreateFileAssociationParams(
        extension=extension,
        prog_id=r.text("prog_id"),
        executable=r.text("executable"),
        description=r.text("description", ""),
    )


def _install_service(r: _Reader) -> InstallServiceParams:
    return InstallServiceParams(
        service_name=r.text("service_name"),
        executable=r.text("executable"),
        display_name=r.text("display_name", ""),
        description=r.text("description", ""),
        arguments=r.text("arguments", ""),
        start_type=r.choice("start_type", SERVICE_START_TYPES, "auto"),
    )


def _uninstall_service(r: _Reader) -> UninstallServiceParams:
    return UninstallServiceParams(r.text("service_name"))


def _custom(r: _Reader) -> CustomParams:
    return CustomParams(handler=r.text("handler"), options=r.mapping("options"))


_PARSERS: Dict[CommandType, Callable[[_Reader], Any]] = {
    CommandType.COPY_FILE: _copy_file,
    CommandType.COPY_DIRECTORY: _copy_directory,
    CommandType.CREATE_SHORTCUT: _create_shortcut,
    CommandType.CREATE_DIRECTORY: _create_directory,
    CommandType.WRITE_REGISTRY: _write_registry,
    CommandType.DELETE_REGISTRY: _delete_registry,
    CommandType.RUN_EXECUTABLE: _run_executable,
    CommandType.RUN_SHELL_COMMAND: _run_shell_command,
    CommandType.EXTRACT_ARCHIVE: _extract_archive,
    CommandType.SET_ENVIRONMENT_VARIABLE: _set_environment_variable,
    CommandType.CREATE_FILE_ASSOCIATION: _create_file_association,
    CommandType.INSTALL_SERVICE: _install_service,
    CommandType.UNINSTALL_SERVICE: _uninstall_service,
    CommandType.CUSTOM: _custom,
}


def parse_params(command_type: CommandType, raw: Optional[Mapping[str, Any]]) -> Any:
    """Build the typed parameter record for ``command_type`` from a raw mapping.

    Raises :class:`ParamError` on missing/unknown keys or wrongly typed values.
    """

    parser = _PARSERS.get(command_type)
    if parser is None:
        raise ParamError(f"no parameter schema for command type {command_type.value}")
    reader = _Reader(raw or {})
    params = parser(reader)
    reader.finish()
    return params
