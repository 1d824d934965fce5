from __future__ import annotations

import enum
import json
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .executor import InstallationResult
from .state import SetupState

logger = logging.getLogger(__name__)


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def _plain(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.name.lower() if isinstance(value, enum.IntEnum) else value.value
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def build_report(state: SetupState, result: Optional[InstallationResult] = None) -> Dict[str, Any]:
    """Summary of a run: decisions, outcome, every command result, log and errors."""

    return {
        "status": state.status.value,
        "success": result.success if result is not None else state.status.value == "Completed",
        "installation_path": state.installation_path,
        "architecture": state.current_architecture.value,
        "dry_run": state.is_dry_run,
        "selected_components": state.sorted_selection(),
        "started": _plain(state.installation_start_time),
        "progress": state.progress,
        "command_results": [_plain(asdict(r)) for r in state.command_results],
        "errors": [_plain(asdict(e)) for e in state.errors],
        "log": [_plain(asdict(e)) for e in state.log_entries],
    }


def export_report(path: str, state: SetupState, result: Optional[InstallationResult] = None) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    report = build_report(state, result)

    if _detect_format(p) in {"yaml", "yml"}:
        p.write_text(yaml.safe_dump(report, sort_keys=False) + "\n", encoding="utf-8")
    else:
        p.write_text(json.dumps(report, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    logger.info("Installation report written to %s", p)
