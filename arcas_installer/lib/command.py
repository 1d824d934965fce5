from __future__ import annotations

import logging
import shlex
import subprocess
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from ..errors import CommandError

logger = logging.getLogger(__name__)

# A list is an argv; a string is a ready-made Windows command line.
CmdLine = Union[Sequence[str], str]

# Detached children, kept until they have exited so they are reaped.
_DETACHED: List["subprocess.Popen[bytes]"] = []


@dataclass(frozen=True)
class CmdResult:
    argv: CmdLine
    returncode: Optional[int]
    stdout: str
    stderr: str
    waited: bool = True


def _is_windows() -> bool:
    return sys.platform.startswith("win")


def _fmt_argv(argv: CmdLine) -> str:
    if isinstance(argv, str):
        return argv
    return " ".join(shlex.quote(a) for a in argv)


def _program(argv: CmdLine) -> str:
    return argv if isinstance(argv, str) else argv[0]


def executable_command(executable: str, arguments: str) -> CmdLine:
    """Command for ``executable`` with an author-written argument string.

    Windows programs parse their own command line, so the arguments are
    appended verbatim with only the executable quoted. POSIX gets an argv
    split with shell rules.
    """

    if _is_windows():
        line = subprocess.list2cmdline([executable])
        return f"{line} {arguments}" if arguments else line
    return [executable, *shlex.split(arguments)] if arguments else [executable]


def shell_command(command: str) -> CmdLine:
    if _is_windows():
        return f"cmd.exe /c {command}"
    return ["/bin/sh", "-c", command]


def run_cmd(
    argv: CmdLine,
    *,
    check: bool = True,
    cwd: str | None = None,
    timeout_s: float | None = None,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - Captures stdout/stderr so callers can record them.
    """

    args: CmdLine = argv if isinstance(argv, str) else list(argv)
    logger.info("CMD %s", _fmt_argv(args))

    try:
        p = subprocess.run(
            args,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd or None,
            timeout=timeout_s,
        )
    except FileNotFoundError as e:
        raise CommandError(f"Executable not found: {_program(args)}") from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(f"Command timed out after {timeout_s}s: {_fmt_argv(args)}") from e

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    if check and p.returncode != 0:
        raise CommandError(
            f"Command failed ({p.returncode}): {_fmt_argv(args)}\n{p.stderr}",
            exit_code=p.returncode,
            output=p.stdout,
            error_output=p.stderr,
        )

    return CmdResult(argv=args, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)


def _reap_detached() -> None:
    _DETACHED[:] = [p for p in _DETACHED if p.poll() is None]


def spawn_cmd(argv: CmdLine, *, cwd: str | None = None) -> CmdResult:
    """Start a process without waiting for it; its output is discarded.

    The child is polled on later spawns so it does not linger as a zombie.
    """

    args: CmdLine = argv if isinstance(argv, str) else list(argv)
    logger.info("SPAWN %s", _fmt_argv(args))
    _reap_detached()
    try:
        p = subprocess.Popen(
            args,
            cwd=cwd or None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=not _is_windows(),
        )
    except FileNotFoundError as e:
        raise CommandError(f"Executable not found: {_program(args)}") from e
    _DETACHED.append(p)
    logger.debug("Spawned pid %s", p.pid)
    return CmdResult(argv=args, returncode=None, stdout="", stderr="", waited=False)
