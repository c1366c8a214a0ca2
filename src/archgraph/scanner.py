# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""File enumeration for reconciliation.

Collects the files matching a glob under a base directory together with their
modification times. Output is sorted by relative path so that downstream
merging is deterministic regardless of filesystem ordering.
"""

import fnmatch
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileInfo:
    """A discovered file and its modification time."""

    path: str  # Full path (base_dir joined with relative_path)
    relative_path: str  # POSIX path relative to base_dir
    mtime: datetime  # Aware UTC modification time, whole seconds

    @classmethod
    def from_path(cls, path: Path, base_dir: Path) -> "FileInfo":
        """Stat ``path`` and build a FileInfo relative to ``base_dir``.

        Raises:
            OSError: If the file cannot be stat'ed.
        """
        stat = path.stat()
        try:
            relative = path.relative_to(base_dir).as_posix()
        except ValueError:
            relative = path.as_posix()
        return cls(
            path=str(path),
            relative_path=relative,
            mtime=datetime.fromtimestamp(int(stat.st_mtime), tz=timezone.utc),
        )


def _is_ignored(relative_path: str, ignore_patterns: Iterable[str]) -> bool:
    name = relative_path.rsplit("/", 1)[-1]
    for pattern in ignore_patterns:
        if fnmatch.fnmatch(relative_path, pattern) or fnmatch.fnmatch(name, pattern):
            return True
    return False


def matches_glob(relative_path: str, pattern: str) -> bool:
    """Return True if a POSIX relative path is selected by a scan glob.

    Mirrors ``Path.glob`` semantics closely enough for classification:
    ``**/`` may match zero directories.
    """
    if fnmatch.fnmatch(relative_path, pattern):
        return True
    return "**/" in pattern and fnmatch.fnmatch(relative_path, pattern.replace("**/", ""))


def collect_files(
    base_dir: str,
    pattern: str,
    ignore_patterns: Optional[Iterable[str]] = None,
) -> List[FileInfo]:
    """Collect regular files under ``base_dir`` matching ``pattern``.

    Args:
        base_dir: Directory to scan.
        pattern: Glob relative to base_dir (``**`` matches nested directories).
        ignore_patterns: fnmatch patterns checked against the relative path
            and the file name.

    Returns:
        FileInfo list sorted by relative path. Empty if base_dir is missing.

    Raises:
        OSError: If a matched file disappears or cannot be stat'ed.
    """
    root = Path(base_dir)
    if not root.is_dir():
        logger.debug(f"Scan root {root} does not exist, no files collected for {pattern}")
        return []

    patterns = list(ignore_patterns or [])
    infos: List[FileInfo] = []
    for path in root.glob(pattern):
        if not path.is_file():
            continue
        info = FileInfo.from_path(path, root)
        if patterns and _is_ignored(info.relative_path, patterns):
            continue
        infos.append(info)

    infos.sort(key=lambda info: info.relative_path)
    logger.debug(f"Collected {len(infos)} files for {pattern} under {root}")
    return infos


def list_project_files(base_dir: str, patterns: Iterable[str]) -> List[str]:
    """Relative paths of all files matching any of ``patterns``.

    This is the flat file list the status engine checks expected paths
    against.
    """
    seen = set()
    for pattern in patterns:
        for info in collect_files(base_dir, pattern):
            seen.add(info.relative_path)
    return sorted(seen)
