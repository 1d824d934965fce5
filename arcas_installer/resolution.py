"""Architecture resolution and context construction.

The loaded definition is never modified; effective settings and components
are new frozen records built for the detected architecture.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import List, Optional

from .conditions import ConditionEvaluator
from .model import (
    Architecture,
    Component,
    GlobalSettings,
    PageDefinition,
    SetupDefinition,
)
from .state import SetupContext, SetupState, detect_architecture
from .variables import VariableExpander, program_files_dir

logger = logging.getLogger(__name__)


def effective_settings(definition: SetupDefinition, arch: Architecture) -> GlobalSettings:
    """Global settings with the architecture record's non-null fields applied on top."""

    settings = definition.global_settings
    overrides = definition.architecture_settings.get(arch)
    if overrides is None:
        return settings

    changes = {
        f.name: getattr(overrides, f.name)
        for f in dataclasses.fields(overrides)
        if getattr(overrides, f.name) is not None
    }
    return dataclasses.replace(settings, **changes)


def effective_component(component: Component, arch: Architecture) -> Component:
    override = component.architecture_overrides.get(arch)
    if override is None:
        return component

    if override.replacement_commands is not None:
        commands = override.replacement_commands
    else:
        commands = component.commands + (override.additional_commands or ())

    return dataclasses.replace(
        component,
        name=override.name if override.name is not None else component.name,
        description=override.description if override.description is not None else component.description,
        default_selected=(
            override.default_selected if override.default_selected is not None else component.default_selected
        ),
        size_bytes=override.size_bytes if override.size_bytes is not None else component.size_bytes,
        commands=commands,
    )


def targets_arch(target: Architecture, arch: Architecture) -> bool:
    return target is Architecture.ANY or target is arch


def effective_components(definition: SetupDefinition, arch: Architecture) -> List[Component]:
    """Components built for ``arch`` with their overrides applied, in declaration order."""

    return [effective_component(c, arch) for c in definition.components if targets_arch(c.target_architecture, arch)]


def available_components(
    context: SetupContext, evaluator: Optional[ConditionEvaluator] = None
) -> List[Component]:
    """Effective components whose own conditions currently pass."""

    evaluator = evaluator or ConditionEvaluator(context)
    arch = context.state.current_architecture
    return [c for c in effective_components(context.definition, arch) if evaluator.evaluate(c.conditions)]


def enabled_pages(context: SetupContext, evaluator: Optional[ConditionEvaluator] = None) -> List[PageDefinition]:
    evaluator = evaluator or ConditionEvaluator(context)
    pages = [p for p in context.definition.pages if p.enabled and evaluator.evaluate(p.show_conditions)]
    return sorted(pages, key=lambda p: p.order)


def default_install_path(context: SetupContext) -> str:
    settings = effective_settings(context.definition, context.state.current_architecture)
    expander = VariableExpander(context)
    if settings.default_install_path:
        return expander.expand(settings.default_install_path) or ""
    return str(Path(program_files_dir()) / (context.definition.application.name or "Application"))


def create_context(
    definition: SetupDefinition,
    *,
    architecture: Optional[Architecture] = None,
    dry_run: bool = False,
    install_path: Optional[str] = None,
) -> SetupContext:
    """Fresh state for one run: architecture detected, install path defaulted."""

    state = SetupState(
        current_architecture=architecture or detect_architecture(),
        is_dry_run=dry_run,
    )
    context = SetupContext(definition=definition, state=state)
    state.installation_path = install_path or default_install_path(context)
    logger.info(
        "Setup context ready (arch=%s, install_path=%s, dry_run=%s)",
        state.current_architecture.value,
        state.installation_path,
        dry_run,
    )
    return context
