from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from .command import run_cmd

logger = logging.getLogger(__name__)


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _create_windows_shortcut(
    target_path: str, shortcut_path: str, description: str, working_directory: str, arguments: str, icon_path: str
) -> None:
    lines = [
        "$WshShell = New-Object -ComObject WScript.Shell",
        f"$Shortcut = $WshShell.CreateShortcut({_ps_quote(shortcut_path)})",
        f"$Shortcut.TargetPath = {_ps_quote(target_path)}",
        f"$Shortcut.Description = {_ps_quote(description)}",
        f"$Shortcut.WorkingDirectory = {_ps_quote(working_directory)}",
        f"$Shortcut.Arguments = {_ps_quote(arguments)}",
    ]
    if icon_path:
        lines.append(f"$Shortcut.IconLocation = {_ps_quote(icon_path)}")
    lines.append("$Shortcut.Save()")
    run_cmd(["powershell", "-NoProfile", "-NonInteractive", "-Command", "; ".join(lines)], timeout_s=60)


def _desktop_entry(name: str, target_path: str, description: str, working_directory: str, arguments: str, icon_path: str) -> str:
    exec_line = target_path if not arguments else f"{target_path} {arguments}"
    lines = [
        "[Desktop Entry]",
        "Type=Application",
        f"Name={name}",
        f"Exec={exec_line}",
    ]
    if description:
        lines.append(f"Comment={description}")
    if working_directory:
        lines.append(f"Path={working_directory}")
    if icon_path:
        lines.append(f"Icon={icon_path}")
    return "\n".join(lines) + "\n"


def create_shortcut(
    target_path: str,
    shortcut_path: str,
    *,
    description: str = "",
    working_directory: str = "",
    arguments: str = "",
    icon_path: str = "",
) -> None:
    """Create a launcher pointing at ``target_path``.

    Windows gets a ``.lnk`` via WScript.Shell. Elsewhere a ``.desktop``
    shortcut path produces a desktop entry; any other path becomes a symlink.
    """

    dst = Path(shortcut_path)
    dst.parent.mkdir(parents=True, exist_ok=True)

    if sys.platform.startswith("win"):
        _create_windows_shortcut(target_path, shortcut_path, description, working_directory, arguments, icon_path)
        return

    if dst.suffix.lower() == ".desktop":
        dst.write_text(
            _desktop_entry(dst.stem, target_path, description, working_directory, arguments, icon_path),
            encoding="utf-8",
        )
        os.chmod(dst, 0o755)
        return

    if dst.is_symlink() or dst.exists():
        dst.unlink()
    dst.symlink_to(target_path)
    logger.debug("Linked %s -> %s", dst, target_path)
