# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Spec and implementation file parsing.

Each file is parsed on its own into a ParsedModule record. Module names come
from, in order of precedence:
1. An implementation file's declared module statement
2. A spec file's level-1 heading (``# My.App.Module``)
3. A name derived from the file's path (``my_app/widgets.ex`` -> ``MyApp.Widgets``)

Parsing raises on failure; the reconciler collects the failure per file and
carries on with the rest.
"""

import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import PurePosixPath
from typing import Optional

from archgraph.config import Config
from archgraph.models import MODULE_NAME_PATTERN, ComponentType
from archgraph.scanner import FileInfo

logger = logging.getLogger(__name__)

H1_TITLE_PATTERN = re.compile(r"^# ([A-Z][a-zA-Z0-9_.]+)[ \t]*$", re.MULTILINE)
H1_LINE_PATTERN = re.compile(r"^# [A-Z]")
H2_LINE_PATTERN = re.compile(r"^##")


class ParseError(Exception):
    """Raised when a file yields no usable module record."""

    pass


@dataclass
class ParsedModule:
    """A module record derived from one spec file, one impl file, or both."""

    module_name: str
    type: Optional[str]  # ComponentType value
    description: Optional[str]
    spec_path: Optional[str]
    impl_path: Optional[str]
    mtime: Optional[datetime]

    def merged_with_impl(self, impl: "ParsedModule") -> "ParsedModule":
        """Combine this spec-derived record with an impl-derived one.

        The implementation's module name and path win, the spec's description
        survives, type falls back spec -> impl and the later mtime is kept.
        """
        return replace(
            self,
            module_name=impl.module_name,
            type=self.type or impl.type,
            description=self.description,
            impl_path=impl.impl_path,
            mtime=latest_mtime(self.mtime, impl.mtime),
        )


def latest_mtime(first: Optional[datetime], second: Optional[datetime]) -> Optional[datetime]:
    """Return the later of two optional timestamps."""
    if first is None:
        return second
    if second is None:
        return first
    return first if first > second else second


def type_from_namespace(module_name: str) -> str:
    """Classify a module by namespace depth.

    - 2 or fewer parts (e.g. ``App.Accounts``) -> context
    - 3+ parts (e.g. ``App.Accounts.User``) -> module
    """
    if len(module_name.split(".")) <= 2:
        return ComponentType.CONTEXT
    return ComponentType.MODULE


def extract_h1_title(content: str) -> Optional[str]:
    """Module name from the first level-1 heading, if it looks like one."""
    match = H1_TITLE_PATTERN.search(content)
    return match.group(1).strip() if match else None


def extract_intro_text(content: str) -> Optional[str]:
    """Text between the level-1 heading and the first sub-heading."""
    lines = content.split("\n")
    start = None
    for i, line in enumerate(lines):
        if H1_LINE_PATTERN.match(line):
            start = i + 1
            break
    if start is None:
        return None

    intro = []
    for line in lines[start:]:
        if H2_LINE_PATTERN.match(line):
            break
        intro.append(line)

    text = "\n".join(intro).strip()
    return text or None


def camelize(segment: str) -> str:
    """``my_app`` -> ``MyApp``."""
    return "".join(part.capitalize() for part in segment.split("_"))


def path_to_module(relative_path: str) -> str:
    """``my_app/widgets`` -> ``MyApp.Widgets``."""
    return ".".join(camelize(part) for part in relative_path.split("/") if part)


def derive_module_from_path(relative_path: str, root: str, suffix: str) -> str:
    """Module name for a file path with its root prefix and suffix removed.

    Args:
        relative_path: POSIX path relative to the scan base directory.
        root: Directory prefix to strip (e.g. ``lib``).
        suffix: File suffix to strip (e.g. ``.ex`` or ``.spec.md``).
    """
    path = relative_path
    prefix = root.rstrip("/") + "/"
    if root and path.startswith(prefix):
        path = path[len(prefix) :]
    if suffix and path.endswith(suffix):
        path = path[: -len(suffix)]
    return path_to_module(path)


class ModuleParser:
    """Parses spec and implementation files into ParsedModule records."""

    def __init__(self, config: Config):
        self.config = config
        self._declaration = re.compile(config.module_declaration_pattern, re.MULTILINE)

    def parse_spec_file(self, info: FileInfo) -> ParsedModule:
        """Parse a spec document.

        Raises:
            OSError: If the file cannot be read.
            UnicodeDecodeError: If the file is not valid UTF-8.
            ParseError: If no valid module name can be derived.
        """
        content = _read_text(info.path)
        module_name = extract_h1_title(content) or derive_module_from_path(
            info.relative_path, self.config.spec_root, self.config.spec_suffix
        )
        _check_module_name(module_name, info.path)

        return ParsedModule(
            module_name=module_name,
            type=type_from_namespace(module_name),
            description=extract_intro_text(content),
            spec_path=info.path,
            impl_path=None,
            mtime=info.mtime,
        )

    def parse_impl_file(self, info: FileInfo) -> ParsedModule:
        """Parse an implementation source file.

        Raises:
            OSError: If the file cannot be read.
            UnicodeDecodeError: If the file is not valid UTF-8.
            ParseError: If no valid module name can be derived.
        """
        content = _read_text(info.path)
        match = self._declaration.search(content)
        if match:
            module_name = match.group(1)
        else:
            module_name = derive_module_from_path(
                info.relative_path,
                self.config.impl_root,
                PurePosixPath(info.relative_path).suffix,
            )
        _check_module_name(module_name, info.path)

        return ParsedModule(
            module_name=module_name,
            type=type_from_namespace(module_name),
            description=None,
            spec_path=None,
            impl_path=info.path,
            mtime=info.mtime,
        )


def _read_text(path: str) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()


def _check_module_name(module_name: str, path: str) -> None:
    if not module_name or not MODULE_NAME_PATTERN.match(module_name):
        raise ParseError(f"Cannot derive a valid module name from {path}: {module_name!r}")
