from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional

from ..errors import CommandError

logger = logging.getLogger(__name__)

_ARCHIVE_SUFFIXES = (
    (".tar.gz", "gztar"),
    (".tgz", "gztar"),
    (".tar.bz2", "bztar"),
    (".tbz2", "bztar"),
    (".tar.xz", "xztar"),
    (".txz", "xztar"),
    (".tar", "tar"),
    (".zip", "zip"),
)


def copy_file(src: str, dst: str, *, overwrite: bool = True) -> None:
    s = Path(src)
    d = Path(dst)
    if not s.is_file():
        raise FileNotFoundError(src)
    if d.is_dir():
        d = d / s.name
    if d.exists() and not overwrite:
        raise CommandError(f"Destination exists and overwrite is disabled: {d}")

    d.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(s, d)


def copy_tree(src: str, dst: str, *, recursive: bool = True) -> int:
    """Copy ``src`` into ``dst`` (merging), returning the number of files copied."""

    s = Path(src)
    d = Path(dst)
    if not s.is_dir():
        raise FileNotFoundError(src)

    d.mkdir(parents=True, exist_ok=True)
    copied = 0
    items = s.rglob("*") if recursive else s.glob("*")
    for item in items:
        rel = item.relative_to(s)
        out = d / rel
        if item.is_dir():
            if recursive:
                out.mkdir(parents=True, exist_ok=True)
        else:
            out.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(item, out)
            copied += 1
    return copied


def create_directory(path: str) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def guess_archive_format(path: str) -> Optional[str]:
    name = Path(path).name.lower()
    for suffix, fmt in _ARCHIVE_SUFFIXES:
        if name.endswith(suffix):
            return fmt
    return None


def extract_archive(archive: str, dst: str, *, fmt: Optional[str] = None) -> None:
    a = Path(archive)
    if not a.is_file():
        raise FileNotFoundError(archive)

    archive_format = fmt or guess_archive_format(archive)
    if archive_format is None:
        raise CommandError(f"Cannot determine archive format of {archive}")

    Path(dst).mkdir(parents=True, exist_ok=True)
    kwargs = {}
    if archive_format != "zip":
        # Reject absolute paths and links escaping the destination.
        kwargs["filter"] = "data"
    try:
        shutil.unpack_archive(str(a), dst, format=archive_format, **kwargs)
    except (shutil.ReadError, ValueError) as e:
        raise CommandError(f"Cannot extract {archive}: {e}") from e
    logger.debug("Extracted %s (%s) into %s", archive, archive_format, dst)
