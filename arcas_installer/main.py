from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, Sequence

from .config_loader import load_definition
from .errors import ConfigurationError, ValidationError
from .events import run_in_background
from .executor import CommandExecutor, InstallationResult
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .model import Architecture, LogEntry, ProgressInfo
from .report import export_report
from .resolution import available_components, create_context, effective_settings, enabled_pages
from .selection import apply_selection, default_selection, required_space, validate_for_install
from .state import SetupContext

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


def _print_catalog(context: SetupContext) -> None:
    settings = effective_settings(context.definition, context.state.current_architecture)
    app = context.definition.application
    print(f"{app.name} {app.version} ({context.state.current_architecture.value})")
    print(f"Default install path: {context.state.installation_path}")
    print(f"Minimum disk space: {settings.minimum_disk_space // (1024 * 1024)} MB")
    print("Components:")
    for c in available_components(context):
        flags = []
        if c.required:
            flags.append("required")
        if c.default_selected:
            flags.append("default")
        print(f"  {c.id:<24} {c.name} [{', '.join(flags) or 'optional'}] {c.size_bytes // 1024} KiB")
    print("Pages:")
    for p in enabled_pages(context):
        print(f"  {p.order:>3} {p.id} ({p.page_type or 'custom'})")


def run(
    *,
    config_path: Optional[str],
    install_path: Optional[str] = None,
    components: Optional[Sequence[str]] = None,
    arch: Optional[str] = None,
    dry_run: bool = False,
    accept_license: bool = False,
    report_path: Optional[str] = None,
) -> InstallationResult:
    """Load, select, validate and execute; the same flow a wizard UI drives."""

    definition = load_definition(config_path)
    context = create_context(
        definition,
        architecture=Architecture.parse(arch) if arch else None,
        dry_run=dry_run,
        install_path=install_path,
    )

    if accept_license:
        context.state.accept_license()
    apply_selection(context, components if components else default_selection(context))
    logger.info("Required space: %d bytes", required_space(context))
    validate_for_install(context)

    executor = CommandExecutor(context)
    background = run_in_background(executor)
    for event in background.events():
        if isinstance(event, ProgressInfo):
            print(f"[{event.percentage:3d}%] {event.operation}", flush=True)
        elif isinstance(event, LogEntry) and event.level >= logging.WARNING:
            print(f"  {event.level.name}: {event.message}", file=sys.stderr, flush=True)
    result = background.join()
    if result is None:
        raise RuntimeError("Installer worker exited without a result")

    if report_path:
        export_report(report_path, context.state, result)
    return result


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="arcas-install")
    p.add_argument("--config", default=None, help="Setup document (yaml|json); searched in the working directory if omitted")
    p.add_argument("--install-path", default=None, help="Installation directory (defaults to the configured path)")
    p.add_argument("--component", action="append", default=[], help="Component id to install (repeatable)")
    p.add_argument("--arch", default=None, help="Override detected architecture (x86|x64|arm64)")
    p.add_argument("--dry-run", action="store_true", help="Walk the full pipeline without side effects")
    p.add_argument("--accept-license", action="store_true", help="Accept the license agreement")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to installer log")
    p.add_argument("--report", default=None, help="Write a run report (json|yaml)")
    p.add_argument("--list", action="store_true", help="List available components and pages, then exit")

    args = p.parse_args(argv)
    configure_logging(log_path=args.log)

    try:
        if args.list:
            definition = load_definition(args.config)
            context = create_context(
                definition,
                architecture=Architecture.parse(args.arch) if args.arch else None,
                install_path=args.install_path,
            )
            _print_catalog(context)
            return EXIT_OK

        result = run(
            config_path=args.config,
            install_path=args.install_path,
            components=args.component,
            arch=args.arch,
            dry_run=bool(args.dry_run),
            accept_license=bool(args.accept_license),
            report_path=args.report,
        )
    except (ConfigurationError, ValidationError, ValueError) as e:
        logger.error("%s", e)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INVALID

    print(f"Status: {result.status.value} ({len(result.command_results)} command(s))")
    return EXIT_OK if result.success else EXIT_FAILED
