from __future__ import annotations

import logging
import sys
from pathlib import Path

from .command import run_cmd

logger = logging.getLogger(__name__)

SYSTEMD_UNIT_DIR = Path("/etc/systemd/system")

_SC_START = {"auto": "auto", "manual": "demand", "disabled": "disabled"}


def _unit_text(executable: str, arguments: str, description: str) -> str:
    exec_start = executable if not arguments else f"{executable} {arguments}"
    return (
        "[Unit]\n"
        f"Description={description}\n"
        "\n"
        "[Service]\n"
        f"ExecStart={exec_start}\n"
        "Restart=on-failure\n"
        "\n"
        "[Install]\n"
        "WantedBy=multi-user.target\n"
    )


def install_service(
    service_name: str,
    executable: str,
    *,
    display_name: str = "",
    description: str = "",
    arguments: str = "",
    start_type: str = "auto",
) -> None:
    if sys.platform.startswith("win"):
        bin_path = f'"{executable}"' + (f" {arguments}" if arguments else "")
        run_cmd(
            [
                "sc.exe",
                "create",
                service_name,
                f"binPath= {bin_path}",
                f"start= {_SC_START[start_type]}",
                f"DisplayName= {display_name or service_name}",
            ]
        )
        if description:
            run_cmd(["sc.exe", "description", service_name, description], check=False)
        return

    unit = SYSTEMD_UNIT_DIR / f"{service_name}.service"
    unit.write_text(_unit_text(executable, arguments, description or display_name or service_name), encoding="utf-8")
    run_cmd(["systemctl", "daemon-reload"])
    if start_type == "auto":
        run_cmd(["systemctl", "enable", f"{service_name}.service"])
    elif start_type == "disabled":
        run_cmd(["systemctl", "disable", f"{service_name}.service"], check=False)
    logger.info("Installed service %s (%s)", service_name, unit)


def uninstall_service(service_name: str) -> None:
    if sys.platform.startswith("win"):
        run_cmd(["sc.exe", "stop", service_name], check=False)
        run_cmd(["sc.exe", "delete", service_name])
        return

    run_cmd(["systemctl", "disable", "--now", f"{service_name}.service"], check=False)
    unit = SYSTEMD_UNIT_DIR / f"{service_name}.service"
    if unit.exists():
        unit.unlink()
    run_cmd(["systemctl", "daemon-reload"])
    logger.info("Removed service %s", service_name)
