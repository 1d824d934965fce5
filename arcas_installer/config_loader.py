from __future__ import annotations

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import yaml

from .errors import ConfigurationError
from .model import (
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
from .params import ParamError, parse_params

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_CANDIDATES = (
    "setup.yaml",
    "setup.yml",
    "setup.json",
    "config/setup.yaml",
    "config/setup.yml",
    "config/setup.json",
)

_SETTINGS_FIELDS = (
    "default_install_path",
    "allow_custom_install_path",
    "create_uninstaller",
    "require_administrator",
    "minimum_disk_space",
    "supported_architectures",
    "uninstaller_name",
    "add_to_control_panel",
    "create_start_menu_entries",
    "create_desktop_shortcut",
)


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"yaml", "yml"}:
        return "yaml"
    # JSON is the default for .json and unknown extensions.
    return "json"


def find_config(search_dir: Optional[str] = None) -> Path:
    base = Path(search_dir) if search_dir else Path.cwd()
    for rel in DEFAULT_CONFIG_CANDIDATES:
        p = base / rel
        if p.is_file():
            return p
    raise ConfigurationError(
        f"No setup configuration found in {base} (looked for {', '.join(DEFAULT_CONFIG_CANDIDATES)})"
    )


def load_definition(path: Optional[str] = None) -> SetupDefinition:
    """Load the setup document once; absence or parse failure is fatal."""

    p = Path(path) if path else find_config()
    if not p.exists():
        raise ConfigurationError(f"Setup configuration not found: {p}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read setup configuration {p}: {e}") from e

    try:
        if _detect_format(p) == "yaml":
            raw = yaml.safe_load(text) or {}
        else:
            raw = json.loads(text)
    except (yaml.YAMLError, ValueError) as e:
        raise ConfigurationError(f"Cannot parse setup configuration {p}: {e}") from e

    definition = parse_definition(raw, source_path=str(p))
    logger.info(
        "Loaded setup configuration %s (%s %s, %d components, %d global commands)",
        p,
        definition.application.name,
        definition.application.version,
        len(definition.components),
        len(definition.global_commands),
    )
    return definition


# --- parsing helpers -----------------------------------------------------


def _mapping(raw: Any, where: str) -> Mapping[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{where}: expected a mapping, got {type(raw).__name__}")
    return raw


def _list(raw: Any, where: str) -> List[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigurationError(f"{where}: expected a list, got {type(raw).__name__}")
    return raw


def _str(raw: Mapping[str, Any], key: str, default: str = "") -> str:
    value = raw.get(key)
    return default if value is None else str(value)


def _bool(raw: Mapping[str, Any], key: str, default: bool, where: str) -> bool:
    value = raw.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigurationError(f"{where}.{key}: expected true/false, got {value!r}")
    return value


def _int(raw: Mapping[str, Any], key: str, default: int, where: str) -> int:
    value = raw.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{where}.{key}: expected an integer, got {value!r}")
    return value


def _enum(enum_cls: Any, value: Any, where: str) -> Any:
    try:
        return enum_cls.parse(value)
    except ValueError as e:
        raise ConfigurationError(f"{where}: {e}") from e


def _str_tuple(raw: Any, where: str) -> Tuple[str, ...]:
    return tuple(str(v) for v in _list(raw, where))


def _parse_condition(raw: Any, where: str) -> Condition:
    m = _mapping(raw, where)
    if not m.get("type"):
        raise ConfigurationError(f"{where}: condition type is required")
    return Condition(
        type=str(m["type"]),
        target=_str(m, "target"),
        expected_value=_str(m, "expected_value"),
        negate=_bool(m, "negate", False, where),
    )


def _parse_conditions(raw: Any, where: str) -> Tuple[Condition, ...]:
    return tuple(_parse_condition(c, f"{where}[{i}]") for i, c in enumerate(_list(raw, where)))


def _parse_success_criteria(raw: Any, where: str) -> Optional[SuccessCriteria]:
    if raw is None:
        return None
    m = _mapping(raw, where)
    exit_code = m.get("expected_exit_code")
    if exit_code is not None and (isinstance(exit_code, bool) or not isinstance(exit_code, int)):
        raise ConfigurationError(f"{where}.expected_exit_code: expected an integer, got {exit_code!r}")
    return SuccessCriteria(
        expected_exit_code=exit_code,
        expected_output_contains=m.get("expected_output_contains"),
        expected_file_exists=m.get("expected_file_exists"),
        expected_registry_value=m.get("expected_registry_value"),
    )


def _parse_command(raw: Any, where: str) -> Command:
    m = _mapping(raw, where)
    if not m.get("type"):
        raise ConfigurationError(f"{where}: command type is required")
    ctype = _enum(CommandType, m["type"], f"{where}.type")

    try:
        params = parse_params(ctype, _mapping(m.get("parameters"), f"{where}.parameters"))
    except ParamError as e:
        raise ConfigurationError(f"{where}.parameters: {e}") from e

    kwargs: Dict[str, Any] = {}
    if m.get("id"):
        kwargs["id"] = str(m["id"])

    return Command(
        type=ctype,
        params=params,
        name=_str(m, "name"),
        description=_str(m, "description"),
        timing=_enum(Timing, m.get("timing") or "install", f"{where}.timing"),
        required=_bool(m, "required", True, where),
        order=_int(m, "order", 0, where),
        run_as_admin=_bool(m, "run_as_admin", False, where),
        target_architecture=_enum(Architecture, m.get("target_architecture") or "any", f"{where}.target_architecture"),
        conditions=_parse_conditions(m.get("conditions"), f"{where}.conditions"),
        success_criteria=_parse_success_criteria(m.get("success_criteria"), f"{where}.success_criteria"),
        **kwargs,
    )


def _parse_commands(raw: Any, where: str) -> Tuple[Command, ...]:
    return tuple(_parse_command(c, f"{where}[{i}]") for i, c in enumerate(_list(raw, where)))


def _parse_override(raw: Any, where: str) -> ComponentOverride:
    m = _mapping(raw, where)
    size = m.get("size_bytes")
    if size is not None and (isinstance(size, bool) or not isinstance(size, int)):
        raise ConfigurationError(f"{where}.size_bytes: expected an integer, got {size!r}")
    default_selected = m.get("default_selected")
    if default_selected is not None and not isinstance(default_selected, bool):
        raise ConfigurationError(f"{where}.default_selected: expected true/false")
    return ComponentOverride(
        name=m.get("name"),
        description=m.get("description"),
        default_selected=default_selected,
        size_bytes=size,
        additional_commands=(
            _parse_commands(m["additional_commands"], f"{where}.additional_commands")
            if m.get("additional_commands") is not None
            else None
        ),
        replacement_commands=(
            _parse_commands(m["replacement_commands"], f"{where}.replacement_commands")
            if m.get("replacement_commands") is not None
            else None
        ),
    )


def _parse_component(raw: Any, where: str) -> Component:
    m = _mapping(raw, where)
    if not m.get("id"):
        raise ConfigurationError(f"{where}: component id is required")

    overrides = {
        _enum(Architecture, arch, f"{where}.architecture_overrides"): _parse_override(
            o, f"{where}.architecture_overrides.{arch}"
        )
        for arch, o in _mapping(m.get("architecture_overrides"), f"{where}.architecture_overrides").items()
    }

    return Component(
        id=str(m["id"]),
        name=_str(m, "name", str(m["id"])),
        description=_str(m, "description"),
        required=_bool(m, "required", False, where),
        default_selected=_bool(m, "default_selected", False, where),
        size_bytes=_int(m, "size_bytes", 0, where),
        target_architecture=_enum(Architecture, m.get("target_architecture") or "any", f"{where}.target_architecture"),
        dependencies=_str_tuple(m.get("dependencies"), f"{where}.dependencies"),
        conflicts=_str_tuple(m.get("conflicts"), f"{where}.conflicts"),
        conditions=_parse_conditions(m.get("conditions"), f"{where}.conditions"),
        commands=_parse_commands(m.get("commands"), f"{where}.commands"),
        architecture_overrides=MappingProxyType(overrides),
    )


def _settings_values(m: Mapping[str, Any], where: str) -> Dict[str, Any]:
    unknown = sorted(set(m) - set(_SETTINGS_FIELDS))
    if unknown:
        raise ConfigurationError(f"{where}: unknown setting(s): {', '.join(unknown)}")
    values: Dict[str, Any] = {}
    for key in _SETTINGS_FIELDS:
        if m.get(key) is None:
            continue
        if key == "supported_architectures":
            values[key] = _str_tuple(m[key], f"{where}.{key}")
        elif key == "minimum_disk_space":
            values[key] = _int(m, key, 0, where)
        elif key in ("default_install_path", "uninstaller_name"):
            values[key] = str(m[key])
        else:
            values[key] = _bool(m, key, False, where)
    return values


def _parse_license(raw: Any, base_dir: Path) -> Optional[LicenseInfo]:
    if raw is None:
        return None
    m = _mapping(raw, "license")
    text = _str(m, "text")
    text_file = _str(m, "text_file_path")
    if not text and text_file:
        p = Path(text_file)
        if not p.is_absolute():
            p = base_dir / p
        try:
            text = p.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"license.text_file_path: cannot read {p}: {e}") from e
    defaults = LicenseInfo()
    return LicenseInfo(
        title=_str(m, "title", defaults.title),
        text=text,
        text_file_path=text_file,
        required=_bool(m, "required", True, "license"),
        accept_text=_str(m, "accept_text", defaults.accept_text),
        decline_text=_str(m, "decline_text", defaults.decline_text),
    )


def _parse_page(raw: Any, where: str) -> PageDefinition:
    m = _mapping(raw, where)
    if not m.get("id"):
        raise ConfigurationError(f"{where}: page id is required")
    return PageDefinition(
        id=str(m["id"]),
        title=_str(m, "title"),
        subtitle=_str(m, "subtitle"),
        enabled=_bool(m, "enabled", True, where),
        order=_int(m, "order", 0, where),
        page_type=_str(m, "page_type"),
        properties=MappingProxyType(dict(_mapping(m.get("properties"), f"{where}.properties"))),
        show_conditions=_parse_conditions(m.get("show_conditions"), f"{where}.show_conditions"),
    )


def _check_unique(ids: Iterable[str], what: str) -> None:
    seen: set[str] = set()
    for i in ids:
        if i in seen:
            raise ConfigurationError(f"Duplicate {what} id: {i}")
        seen.add(i)


def parse_definition(raw: Any, *, source_path: Optional[str] = None) -> SetupDefinition:
    """Convert a decoded document into a validated :class:`SetupDefinition`."""

    if not isinstance(raw, Mapping):
        raise ConfigurationError("Setup configuration must contain a mapping/object")

    base_dir = Path(source_path).parent if source_path else Path.cwd()

    app = _mapping(raw.get("application"), "application")
    application = AppInfo(
        name=_str(app, "name"),
        version=_str(app, "version"),
        publisher=_str(app, "publisher"),
        description=_str(app, "description"),
        website=_str(app, "website"),
        support_url=_str(app, "support_url"),
        icon_path=_str(app, "icon_path"),
    )

    global_settings = GlobalSettings(
        **_settings_values(_mapping(raw.get("global_settings"), "global_settings"), "global_settings")
    )
    arch_settings = {
        _enum(Architecture, arch, "architecture_settings"): ArchitectureSettings(
            **_settings_values(_mapping(s, f"architecture_settings.{arch}"), f"architecture_settings.{arch}")
        )
        for arch, s in _mapping(raw.get("architecture_settings"), "architecture_settings").items()
    }

    components = tuple(
        _parse_component(c, f"components[{i}]") for i, c in enumerate(_list(raw.get("components"), "components"))
    )
    _check_unique((c.id for c in components), "component")

    pages = tuple(_parse_page(p, f"pages[{i}]") for i, p in enumerate(_list(raw.get("pages"), "pages")))
    _check_unique((p.id for p in pages), "page")

    variables = {
        str(k): "" if v is None else str(v)
        for k, v in _mapping(raw.get("variables"), "variables").items()
    }

    return SetupDefinition(
        application=application,
        global_settings=global_settings,
        architecture_settings=MappingProxyType(arch_settings),
        license=_parse_license(raw.get("license"), base_dir),
        components=components,
        pages=pages,
        global_commands=_parse_commands(raw.get("global_commands"), "global_commands"),
        variables=MappingProxyType(variables),
        source_path=source_path,
    )
