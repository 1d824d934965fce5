from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .actions import ActionContext, ActionOutcome, ActionRegistry
from .conditions import ConditionEvaluator
from .errors import CommandError, UnsupportedCommandError
from .events import EventSink, NullSink
from .lib.registry import Registry, default_registry
from .model import (
    Command,
    CommandResult,
    ErrorType,
    LogLevel,
    ProgressInfo,
    SetupError,
    Status,
    Timing,
)
from .resolution import available_components, targets_arch
from .state import SetupContext
from .variables import VariableExpander

logger = logging.getLogger(__name__)

PHASES = (
    (Timing.PRE_INSTALL, Status.PRE_INSTALLATION, "Pre-installation"),
    (Timing.INSTALL, Status.INSTALLING, "Installing"),
    (Timing.POST_INSTALL, Status.POST_INSTALLATION, "Post-installation"),
)


@dataclass(frozen=True)
class PlannedCommand:
    command: Command
    component_id: Optional[str]
    index: int


@dataclass(frozen=True)
class InstallationResult:
    success: bool
    status: Status
    command_results: List[CommandResult]


def _describe(e: BaseException) -> str:
    return f"{type(e).__name__}: {e}"


class CommandExecutor:
    """Runs the selected commands in three ordered phases.

    One command at a time; a failing required command stops the run, a
    failing optional command is recorded and skipped over. Cancellation is
    honoured before each phase and between commands.
    """

    def __init__(
        self,
        context: SetupContext,
        *,
        actions: Optional[ActionRegistry] = None,
        registry: Optional[Registry] = None,
    ) -> None:
        self.context = context
        self.actions = actions or ActionRegistry()
        self.registry = registry or default_registry()
        self.expander = VariableExpander(context)
        self.evaluator = ConditionEvaluator(context, expander=self.expander, registry=self.registry)

    @property
    def state(self):
        return self.context.state

    # --- planning --------------------------------------------------------

    def collect(self) -> List[PlannedCommand]:
        """Global commands, then commands of selected components, in declaration order."""

        planned: List[PlannedCommand] = []

        def consider(command: Command, component_id: Optional[str]) -> None:
            if command.timing is Timing.UNINSTALL:
                return
            if not targets_arch(command.target_architecture, self.state.current_architecture):
                logger.debug("Skipping command %s (architecture %s)", command.id, command.target_architecture.value)
                return
            if not self.evaluator.evaluate(command.conditions):
                self.state.log(
                    LogLevel.DEBUG,
                    f"Skipping command {command.label}: conditions not met",
                    command_id=command.id,
                    component_id=component_id,
                )
                return
            planned.append(PlannedCommand(command=command, component_id=component_id, index=len(planned)))

        for command in self.context.definition.global_commands:
            consider(command, None)

        selected = self.state.selected_component_ids
        for component in available_components(self.context, self.evaluator):
            if component.id not in selected:
                continue
            for command in component.commands:
                consider(command, component.id)

        return planned

    def plan(self) -> List[PlannedCommand]:
        return sorted(
            self.collect(),
            key=lambda p: (p.command.timing.rank, p.command.order, p.index),
        )

    # --- execution -------------------------------------------------------

    def execute(self, sink: Optional[EventSink] = None) -> InstallationResult:
        sink = sink or NullSink()
        listener = sink.on_log
        self.state.add_log_listener(listener)
        try:
            return self._run(sink)
        finally:
            self.state.remove_log_listener(listener)

    def _run(self, sink: EventSink) -> InstallationResult:
        state = self.state
        try:
            if state.cancel_requested:
                return self._cancelled()

            state.status = Status.INITIALIZING
            state.log(LogLevel.INFO, "Starting installation process")

            planned = self.plan()
            total = len(planned)
            completed = 0
            self._report(sink, "Initializing installation...", 0)

            for timing, status, label in PHASES:
                if state.cancel_requested:
                    return self._cancelled()
                state.status = status
                batch = [p for p in planned if p.command.timing is timing]
                logger.info("%s: %d command(s)", label, len(batch))

                for item in batch:
                    if state.cancel_requested:
                        return self._cancelled()
                    if not self._execute_one(item):
                        state.status = Status.FAILED
                        state.log(LogLevel.ERROR, "Installation aborted after required command failure")
                        return self._result(False)
                    completed += 1
                    self._report(sink, f"{label}: {item.command.label}", (completed * 100) // total)

            state.status = Status.COMPLETED
            state.installation_completed = True
            self._report(sink, "Installation completed successfully!", 100)
            state.log(LogLevel.INFO, "Installation completed successfully")
            return self._result(True)

        except UnsupportedCommandError as e:
            self._fatal(ErrorType.CONFIGURATION, e)
            return self._result(False)
        except Exception as e:
            self._fatal(ErrorType.UNKNOWN, e)
            return self._result(False)

    def _execute_one(self, item: PlannedCommand) -> bool:
        """Run one command and record its result; False means abort the run."""

        state = self.state
        command = item.command
        component_id = item.component_id
        result = CommandResult(
            command_id=command.id,
            component_id=component_id or "",
            command_type=command.type,
            start_time=datetime.now(),
        )
        state.current_operation = command.label
        state.log(LogLevel.INFO, f"Executing command: {command.label}", command_id=command.id, component_id=component_id)

        try:
            if state.is_dry_run:
                state.log(
                    LogLevel.INFO,
                    f"DRY RUN: Would execute {command.type.value} command",
                    command_id=command.id,
                    component_id=component_id,
                )
                result.success = True
                result.was_skipped = True
                result.skip_reason = "Dry run mode"
            else:
                ctx = ActionContext(
                    context=self.context,
                    expander=self.expander,
                    registry=self.registry,
                    custom_handlers=self.actions.custom_handlers,
                    component_id=component_id,
                )
                outcome = self.actions.dispatch(command, ctx)
                result.exit_code = outcome.exit_code
                result.output = outcome.output
                result.error_output = outcome.error_output
                result.success = self._succeeded(command, outcome)
                if not result.success:
                    state.log(
                        LogLevel.ERROR,
                        f"Command did not succeed: {command.label} (exit code {outcome.exit_code})",
                        command_id=command.id,
                        component_id=component_id,
                    )
        except UnsupportedCommandError as e:
            result.success = False
            result.exception = _describe(e)
            result.end_time = datetime.now()
            state.command_results.append(result)
            raise
        except Exception as e:
            result.success = False
            result.exception = _describe(e)
            if isinstance(e, CommandError):
                result.exit_code = e.exit_code
                result.output = e.output
                result.error_output = e.error_output
            state.log(
                LogLevel.ERROR,
                f"Command execution failed: {command.label} - {e}",
                command_id=command.id,
                component_id=component_id,
                error=e,
            )

        result.end_time = datetime.now()
        state.command_results.append(result)

        if result.success:
            return True

        state.errors.append(
            SetupError(
                type=ErrorType.COMMAND,
                message=f"Command failed: {command.label}",
                component_id=component_id,
                command_id=command.id,
                exception=result.exception,
                is_fatal=command.required,
            )
        )
        if command.required:
            state.log(LogLevel.ERROR, f"Required command failed: {command.label}", command_id=command.id, component_id=component_id)
            return False

        state.log(
            LogLevel.WARNING,
            f"Optional command failed, continuing: {command.label}",
            command_id=command.id,
            component_id=component_id,
        )
        return True

    def _succeeded(self, command: Command, outcome: ActionOutcome) -> bool:
        if not outcome.success:
            return False
        criteria = command.success_criteria

        if outcome.is_process:
            expected = 0
            if criteria is not None and criteria.expected_exit_code is not None:
                expected = criteria.expected_exit_code
            if outcome.exit_code != expected:
                return False
            if criteria is not None and criteria.expected_output_contains:
                if criteria.expected_output_contains not in (outcome.output or ""):
                    return False

        if criteria is not None and criteria.expected_file_exists:
            path = self.expander.expand(criteria.expected_file_exists) or ""
            if not Path(path).exists():
                return False
        return True

    # --- bookkeeping -----------------------------------------------------

    def _report(self, sink: EventSink, operation: str, percentage: int, detail: Optional[str] = None) -> None:
        self.state.current_operation = operation
        self.state.progress = percentage
        sink.on_progress(ProgressInfo(operation=operation, percentage=percentage, detail=detail))

    def _cancelled(self) -> InstallationResult:
        self.state.status = Status.CANCELLED
        self.state.log(LogLevel.WARNING, "Installation cancelled")
        return self._result(False)

    def _fatal(self, error_type: ErrorType, e: Exception) -> None:
        logger.exception("Installation failed")
        self.state.status = Status.FAILED
        self.state.log(LogLevel.CRITICAL, f"Installation failed: {e}", error=e)
        self.state.errors.append(
            SetupError(type=error_type, message=str(e), exception=_describe(e), is_fatal=True)
        )

    def _result(self, success: bool) -> InstallationResult:
        return InstallationResult(
            success=success,
            status=self.state.status,
            command_results=list(self.state.command_results),
        )
