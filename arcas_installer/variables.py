from __future__ import annotations

import os
import re
import sys
import tempfile
from pathlib import Path
from typing import Callable, Dict, Optional

from .state import SetupContext

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


def _is_windows() -> bool:
    return sys.platform.startswith("win")


def desktop_dir() -> str:
    if _is_windows():
        return str(Path(os.environ.get("USERPROFILE") or Path.home()) / "Desktop")
    return str(Path.home() / "Desktop")


def start_menu_dir() -> str:
    if _is_windows():
        appdata = os.environ.get("APPDATA") or str(Path.home() / "AppData" / "Roaming")
        return str(Path(appdata) / "Microsoft" / "Windows" / "Start Menu")
    return str(Path.home() / ".local" / "share" / "applications")


def program_files_dir() -> str:
    if _is_windows():
        return os.environ.get("ProgramFiles") or r"C:\Program Files"
    return "/opt"


def system_root_dir() -> str:
    if _is_windows():
        root = os.environ.get("SystemRoot") or r"C:\Windows"
        return str(Path(root) / "System32")
    return "/"


class VariableExpander:
    """Resolve ``{Name}`` placeholders against built-ins, document and runtime variables.

    Built-ins are read on every call; the install path in particular can
    change between calls. A name resolves to a built-in first, then a document
    variable, then a runtime variable. The input is scanned once, so
    substituted values are never expanded again. Unknown placeholders are
    left untouched.
    """

    def __init__(self, context: SetupContext) -> None:
        self.context = context

    def builtins(self) -> Dict[str, Callable[[], str]]:
        app = self.context.definition.application
        state = self.context.state
        return {
            "InstallPath": lambda: state.installation_path,
            "AppName": lambda: app.name,
            "AppVersion": lambda: app.version,
            "AppDescription": lambda: app.description,
            "AppPublisher": lambda: app.publisher,
            "Desktop": desktop_dir,
            "StartMenu": start_menu_dir,
            "ProgramFiles": program_files_dir,
            "SystemRoot": system_root_dir,
            "TempPath": tempfile.gettempdir,
        }

    def expand(self, text: Optional[str]) -> Optional[str]:
        if not text:
            return text

        builtins = self.builtins()
        variables = self.context.definition.variables
        runtime = self.context.state.resolved_variables

        def resolve(match: "re.Match[str]") -> str:
            name = match.group(1)
            if name in builtins:
                return builtins[name]()
            if name in variables:
                return variables[name]
            if name in runtime:
                return runtime[name]
            return match.group(0)

        return _PLACEHOLDER.sub(resolve, text)
