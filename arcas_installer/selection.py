"""Component selection and pre-install validation.

The pipeline trusts the state it receives; these helpers are what a UI (or
the CLI) calls to put a valid selection and path into that state.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from .errors import ValidationError
from .model import Component
from .resolution import available_components, default_install_path, effective_settings
from .state import SetupContext

logger = logging.getLogger(__name__)


def default_selection(context: SetupContext) -> List[str]:
    return [c.id for c in available_components(context) if c.required or c.default_selected]


def apply_selection(context: SetupContext, component_ids: Iterable[str]) -> List[str]:
    """Store the selection, adding every required available component."""

    available = available_components(context)
    known = {c.id for c in available}
    wanted = list(dict.fromkeys(component_ids))

    unknown = [cid for cid in wanted if cid not in known]
    if unknown:
        raise ValidationError(f"Unknown or unavailable component(s): {', '.join(unknown)}")

    for c in available:
        if c.required and c.id not in wanted:
            logger.info("Adding required component %s to selection", c.id)
            wanted.append(c.id)

    context.state.set_selection(wanted)
    return wanted


def selected_components(context: SetupContext) -> List[Component]:
    selected = context.state.selected_component_ids
    return [c for c in available_components(context) if c.id in selected]


def required_space(context: SetupContext) -> int:
    return sum(c.size_bytes for c in selected_components(context))


def _existing_ancestor(path: Path) -> Optional[Path]:
    for p in (path, *path.parents):
        if p.exists():
            return p
    return None


def free_space(path: str) -> Optional[int]:
    anchor = _existing_ancestor(Path(path).absolute())
    if anchor is None:
        return None
    return shutil.disk_usage(anchor).free


def validate_for_install(context: SetupContext) -> None:
    """Raise :class:`ValidationError` if the run must not start."""

    state = context.state
    definition = context.definition
    settings = effective_settings(definition, state.current_architecture)

    if definition.license is not None and definition.license.required and not state.license_accepted:
        raise ValidationError("The license agreement must be accepted before installing")

    if not selected_components(context):
        raise ValidationError("You must select at least one component to install")

    path = (state.installation_path or "").strip()
    if not path:
        raise ValidationError("Please specify an installation directory")

    if not settings.allow_custom_install_path:
        default = default_install_path(context)
        if Path(path) != Path(default):
            raise ValidationError(f"Custom installation paths are not permitted (expected {default})")

    needed = max(settings.minimum_disk_space, required_space(context))
    available = free_space(path)
    if available is None:
        raise ValidationError(f"Installation directory has no existing parent: {path}")
    if available < needed:
        raise ValidationError(
            f"Insufficient disk space: {needed // (1024 * 1024)} MB required, "
            f"{available // (1024 * 1024)} MB available"
        )

    logger.info("Validation passed (path=%s, needed=%d bytes, free=%d bytes)", path, needed, available)
