from __future__ import annotations

import logging
import platform
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set

from .model import (
    Architecture,
    CommandResult,
    LogEntry,
    LogLevel,
    SetupDefinition,
    SetupError,
    Status,
)

logger = logging.getLogger(__name__)

LogListener = Callable[[LogEntry], None]


def normalize_arch(machine: str) -> Architecture:
    m = machine.lower()
    return {
        "x86_64": Architecture.X64,
        "amd64": Architecture.X64,
        "x64": Architecture.X64,
        "i386": Architecture.X86,
        "i686": Architecture.X86,
        "x86": Architecture.X86,
        "aarch64": Architecture.ARM64,
        "arm64": Architecture.ARM64,
    }.get(m, Architecture.ANY)


def detect_architecture() -> Architecture:
    arch = normalize_arch(platform.machine())
    logger.debug("Detected architecture %s (machine=%s)", arch.value, platform.machine())
    return arch


@dataclass
class SetupState:
    """Decisions and outcomes of one installer run. Never persisted."""

    installation_path: str = ""
    license_accepted: bool = False
    selected_component_ids: Set[str] = field(default_factory=set)
    current_architecture: Architecture = Architecture.ANY
    installation_start_time: datetime = field(default_factory=datetime.now)
    status: Status = Status.NOT_STARTED
    is_dry_run: bool = False
    progress: int = 0
    current_operation: str = ""
    log_entries: List[LogEntry] = field(default_factory=list)
    resolved_variables: Dict[str, str] = field(default_factory=dict)
    command_results: List[CommandResult] = field(default_factory=list)
    errors: List[SetupError] = field(default_factory=list)
    installation_completed: bool = False
    launch_after_install: bool = True

    _cancel: threading.Event = field(default_factory=threading.Event, init=False, repr=False, compare=False)
    _log_listeners: List[LogListener] = field(default_factory=list, init=False, repr=False, compare=False)

    @property
    def is_running(self) -> bool:
        return self.status is not Status.NOT_STARTED and not self.status.is_terminal

    def _ensure_not_running(self, what: str) -> None:
        if self.is_running:
            raise RuntimeError(f"Cannot change {what} while the installation is running")

    def set_installation_path(self, path: str) -> None:
        self._ensure_not_running("installation path")
        self.installation_path = path
        self.log(LogLevel.INFO, f"Installation path set to: {path}")

    def set_selection(self, component_ids: Iterable[str]) -> None:
        self._ensure_not_running("component selection")
        self.selected_component_ids = set(component_ids)
        self.log(LogLevel.INFO, f"Selected components: {', '.join(self.sorted_selection())}")

    def set_dry_run(self, dry_run: bool) -> None:
        self._ensure_not_running("dry-run mode")
        self.is_dry_run = bool(dry_run)

    def accept_license(self) -> None:
        self.license_accepted = True
        self.log(LogLevel.INFO, "License accepted by user")

    def sorted_selection(self) -> List[str]:
        return sorted(self.selected_component_ids)

    def request_cancel(self) -> None:
        """Ask the pipeline to stop at the next phase or command boundary."""
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def add_log_listener(self, listener: LogListener) -> None:
        self._log_listeners.append(listener)

    def remove_log_listener(self, listener: LogListener) -> None:
        if listener in self._log_listeners:
            self._log_listeners.remove(listener)

    def log(
        self,
        level: LogLevel,
        message: str,
        *,
        command_id: Optional[str] = None,
        component_id: Optional[str] = None,
        error: Optional[BaseException] = None,
    ) -> LogEntry:
        entry = LogEntry(
            level=level,
            message=message,
            command_id=command_id,
            component_id=component_id,
            error=f"{type(error).__name__}: {error}" if error is not None else None,
        )
        self.log_entries.append(entry)

        if command_id:
            logger.log(int(level), "%s [command=%s component=%s]", message, command_id, component_id or "-")
        else:
            logger.log(int(level), "%s", message)

        for listener in list(self._log_listeners):
            listener(entry)
        return entry


@dataclass
class SetupContext:
    """Explicit pairing of the loaded definition and this run's state."""

    definition: SetupDefinition
    state: SetupState
