from __future__ import annotations

import logging
import sys
from typing import Any, Protocol, Tuple

from ..errors import CommandError

logger = logging.getLogger(__name__)


class Registry(Protocol):
    """Minimal registry surface used by actions and conditions.

    ``root`` is one of ``hklm``, ``hkcu``, ``hkcr``.
    """

    def key_exists(self, root: str, key_path: str) -> bool:
        ...

    def set_value(self, root: str, key_path: str, value_name: str, value: str, value_type: str = "string") -> None:
        ...

    def delete_value(self, root: str, key_path: str, value_name: str) -> None:
        ...

    def delete_key(self, root: str, key_path: str) -> None:
        ...


def convert_value(value: str, value_type: str) -> Tuple[Any, str]:
    """Convert document text to the Python value winreg expects for ``value_type``."""

    if value_type in ("dword", "qword"):
        try:
            return int(value, 0), value_type
        except ValueError as e:
            raise CommandError(f"Registry {value_type} value must be an integer: {value!r}") from e
    if value_type == "binary":
        try:
            return bytes.fromhex(value.replace(" ", "")), value_type
        except ValueError as e:
            raise CommandError(f"Registry binary value must be hex: {value!r}") from e
    if value_type == "multi_string":
        return [v for v in value.split("\n") if v], value_type
    return value, value_type


class WindowsRegistry:
    """Registry access through ``winreg``. Every key handle is closed before returning."""

    def _winreg(self):
        import winreg

        return winreg

    def _root(self, root: str):
        w = self._winreg()
        return {
            "hklm": w.HKEY_LOCAL_MACHINE,
            "hkcu": w.HKEY_CURRENT_USER,
            "hkcr": w.HKEY_CLASSES_ROOT,
        }[root]

    def key_exists(self, root: str, key_path: str) -> bool:
        w = self._winreg()
        try:
            with w.OpenKey(self._root(root), key_path, 0, w.KEY_READ):
                return True
        except OSError:
            # Missing and access-denied keys are both reported as absent.
            return False

    def set_value(self, root: str, key_path: str, value_name: str, value: str, value_type: str = "string") -> None:
        w = self._winreg()
        data, kind = convert_value(value, value_type)
        reg_kind = {
            "string": w.REG_SZ,
            "expand_string": w.REG_EXPAND_SZ,
            "dword": w.REG_DWORD,
            "qword": w.REG_QWORD,
            "binary": w.REG_BINARY,
            "multi_string": w.REG_MULTI_SZ,
        }[kind]
        try:
            with w.CreateKeyEx(self._root(root), key_path, 0, w.KEY_WRITE) as key:
                w.SetValueEx(key, value_name, 0, reg_kind, data)
        except OSError as e:
            raise CommandError(f"Cannot write registry value {root}\\{key_path}\\{value_name}: {e}") from e

    def delete_value(self, root: str, key_path: str, value_name: str) -> None:
        w = self._winreg()
        try:
            with w.OpenKey(self._root(root), key_path, 0, w.KEY_SET_VALUE) as key:
                w.DeleteValue(key, value_name)
        except FileNotFoundError:
            logger.debug("Registry value %s\\%s\\%s already absent", root, key_path, value_name)
        except OSError as e:
            raise CommandError(f"Cannot delete registry value {root}\\{key_path}\\{value_name}: {e}") from e

    def delete_key(self, root: str, key_path: str) -> None:
        w = self._winreg()
        try:
            w.DeleteKey(self._root(root), key_path)
        except FileNotFoundError:
            logger.debug("Registry key %s\\%s already absent", root, key_path)
        except OSError as e:
            raise CommandError(f"Cannot delete registry key {root}\\{key_path}: {e}") from e


class UnavailableRegistry:
    """Used on hosts without a Windows registry: keys never exist, writes fail."""

    def key_exists(self, root: str, key_path: str) -> bool:
        return False

    def _fail(self, root: str, key_path: str) -> None:
        raise CommandError(f"Windows registry is not available on this host ({root}\\{key_path})")

    def set_value(self, root: str, key_path: str, value_name: str, value: str, value_type: str = "string") -> None:
        self._fail(root, key_path)

    def delete_value(self, root: str, key_path: str, value_name: str) -> None:
        self._fail(root, key_path)

    def delete_key(self, root: str, key_path: str) -> None:
        self._fail(root, key_path)


def default_registry() -> Registry:
    if sys.platform.startswith("win"):
        return WindowsRegistry()
    return UnavailableRegistry()
