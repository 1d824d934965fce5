from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

from .lib.registry import Registry, default_registry
from .model import Condition
from .state import SetupContext
from .variables import VariableExpander

logger = logging.getLogger(__name__)


def _normalize_type(raw: str) -> str:
    return raw.replace("_", "").replace("-", "").lower()


class ConditionEvaluator:
    """Evaluate gating conditions against the live machine and current state.

    Nothing is cached: commands executed earlier in a run can change what a
    later condition observes.
    """

    def __init__(
        self,
        context: SetupContext,
        *,
        expander: Optional[VariableExpander] = None,
        registry: Optional[Registry] = None,
    ) -> None:
        self.context = context
        self.expander = expander or VariableExpander(context)
        self.registry = registry or default_registry()
        self._checks: Dict[str, Callable[[Condition], bool]] = {
            "fileexists": self._file_exists,
            "directoryexists": self._directory_exists,
            "registrykey": self._registry_key,
            "registrykeyexists": self._registry_key,
            "environmentvariable": self._environment_variable,
            "architecture": self._architecture,
            "dryrun": self._dry_run,
        }

    def evaluate(self, conditions: Optional[Iterable[Condition]]) -> bool:
        """All conditions must pass; an empty or absent list passes."""
        if not conditions:
            return True
        for condition in conditions:
            if not self.evaluate_one(condition):
                return False
        return True

    def evaluate_one(self, condition: Condition) -> bool:
        check = self._checks.get(_normalize_type(condition.type))
        if check is None:
            # Unknown types pass so newer documents still load on older engines.
            logger.debug("Unknown condition type %r treated as satisfied", condition.type)
            result = True
        else:
            result = check(condition)
        return (not result) if condition.negate else result

    def _file_exists(self, condition: Condition) -> bool:
        target = self.expander.expand(condition.target)
        return bool(target) and Path(target).is_file()

    def _directory_exists(self, condition: Condition) -> bool:
        target = self.expander.expand(condition.target)
        return bool(target) and Path(target).is_dir()

    def _registry_key(self, condition: Condition) -> bool:
        return self.registry.key_exists("hklm", condition.target)

    def _environment_variable(self, condition: Condition) -> bool:
        value = os.environ.get(condition.target)
        if not condition.expected_value:
            return bool(value)
        return (value or "").lower() == condition.expected_value.lower()

    def _architecture(self, condition: Condition) -> bool:
        return self.context.state.current_architecture.value.lower() == condition.expected_value.lower()

    def _dry_run(self, condition: Condition) -> bool:
        return str(self.context.state.is_dry_run).lower() == condition.expected_value.lower()
