# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Synchronizes persisted components with spec and implementation files.

A sync run:
1. Parses every spec file and every implementation file independently
2. Merges the two record sets by module name (implementation name wins)
3. Upserts records whose files changed since the component was last synced
4. Derives parent relationships from the dotted module names
5. Deletes persisted components whose files are gone

Per-file parse failures never abort a run; they are collected and returned
next to the synced components. Anything unexpected is logged and returned as
a single error result.

Design:
- Coordinates the scanner, the parsers and a ComponentStore
- Writes are skipped when nothing changed, so repeated syncs of an unchanged
  tree perform no upserts and no deletes
- Single-threaded store access; only parsing may fan out across threads
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from archgraph.config import DEFAULT_CONFIG_FILENAME, Config
from archgraph.models import Component, ComponentType
from archgraph.parsers import ModuleParser, ParsedModule, ParseError
from archgraph.scanner import FileInfo, collect_files, matches_glob
from archgraph.storage import ComponentStore

logger = logging.getLogger(__name__)

# Exceptions that mark a single file as unparseable
FILE_ERRORS = (OSError, UnicodeError, ParseError)


@dataclass(frozen=True)
class FileParseError:
    """A file that could not be parsed, with the reason."""

    path: str
    reason: str


@dataclass
class SyncResult:
    """Outcome of a sync run.

    On success ``ok`` is True and ``components`` holds the full synced set
    (upserted plus unchanged). On failure ``ok`` is False and ``error`` holds
    the exception that ended the run.
    """

    ok: bool
    components: List[Component] = field(default_factory=list)
    parse_errors: List[FileParseError] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def reason(self) -> Optional[str]:
        """Human-readable failure reason, if the run failed."""
        return str(self.error) if self.error is not None else None


def merge_by_module_name(
    spec_records: Iterable[ParsedModule], impl_records: Iterable[ParsedModule]
) -> List[ParsedModule]:
    """Combine spec and impl records into one record per module name.

    A name found on one side only is taken as-is. A name found on both sides
    is merged with ParsedModule.merged_with_impl. Output is sorted by module
    name.
    """
    spec_map = {record.module_name: record for record in spec_records}
    impl_map = {record.module_name: record for record in impl_records}

    merged: List[ParsedModule] = []
    for name in sorted(set(spec_map) | set(impl_map)):
        spec = spec_map.get(name)
        impl = impl_map.get(name)
        if impl is None:
            merged.append(spec_map[name])
        elif spec is None:
            merged.append(impl)
        else:
            merged.append(spec.merged_with_impl(impl))
    return merged


def needs_sync(
    record: ParsedModule, synced_at_map: Mapping[str, Optional[datetime]], force: bool
) -> bool:
    """Decide whether a merged record must be written.

    True when forced, when the module was never synced, or when its files
    are strictly newer than the last sync.
    """
    if force:
        return True
    if record.module_name not in synced_at_map:
        return True
    synced_at = synced_at_map[record.module_name]
    if synced_at is None or record.mtime is None:
        return True
    return record.mtime > synced_at


def parent_module_name(module_name: str) -> Optional[str]:
    """``A.B.C`` -> ``A.B``; None for a single segment."""
    parts = module_name.split(".")
    if len(parts) <= 1:
        return None
    return ".".join(parts[:-1])


def find_nearest_ancestor(
    module_name: str, components_by_name: Mapping[str, Component]
) -> Optional[Component]:
    """Walk up the namespace to the nearest module present in the map.

    For ``A.B.C.D`` with no ``A.B.C`` component, ``A.B`` is checked, then
    ``A``. The module itself is never returned.
    """
    current = parent_module_name(module_name)
    while current is not None:
        found = components_by_name.get(current)
        if found is not None:
            return found
        current = parent_module_name(current)
    return None


class Reconciler:
    """Keeps a project's persisted components in step with its source tree.

    Thread Safety:
    - NOT thread-safe: one sync at a time per store
    """

    def __init__(
        self,
        store: ComponentStore,
        project_id: str,
        base_dir: str = ".",
        config: Optional[Config] = None,
    ):
        """Initialize reconciler.

        Args:
            store: Persistence collaborator.
            project_id: Project whose components are synchronized.
            base_dir: Directory the scan globs are relative to.
            config: Configuration. If None, loads ``.archgraph.yml`` from base_dir.
        """
        self.store = store
        self.project_id = project_id
        self.base_dir = base_dir
        self.config = config or Config(Path(base_dir) / DEFAULT_CONFIG_FILENAME)
        self.parser = ModuleParser(self.config)

    def sync(self, force: Optional[bool] = None) -> SyncResult:
        """Synchronize all components from spec and implementation files.

        Args:
            force: Ignore modification times and rewrite every record.
                Defaults to the ``force_sync`` configuration value.

        Returns:
            SyncResult; never raises.
        """
        if force is None:
            force = self.config.force_sync

        start_time = time.time()
        try:
            existing = self.store.list_components(self.project_id)
            synced_at_map = {c.module_name: c.synced_at for c in existing}

            spec_records, spec_errors = self._parse_all(
                self.config.spec_glob, self.parser.parse_spec_file
            )
            impl_records, impl_errors = self._parse_all(
                self.config.impl_glob, self.parser.parse_impl_file
            )
            parse_errors = spec_errors + impl_errors
            for error in parse_errors:
                logger.warning(f"Failed to parse {error.path}: {error.reason}")

            merged = merge_by_module_name(spec_records, impl_records)
            to_sync = [r for r in merged if needs_sync(r, synced_at_map, force)]
            sync_names = {r.module_name for r in to_sync}
            merged_names = {r.module_name for r in merged}

            now = datetime.now(timezone.utc).replace(microsecond=0)
            synced = [self._upsert(record, now) for record in to_sync]
            unchanged = [
                c
                for c in existing
                if c.module_name in merged_names and c.module_name not in sync_names
            ]

            components = self._derive_parents(synced + unchanged)
            removed = self._cleanup_removed(existing, merged_names)

            elapsed = time.time() - start_time
            logger.info(
                f"Synced project {self.project_id}: {len(merged)} components "
                f"({len(synced)} written, {removed} removed, "
                f"{len(parse_errors)} parse errors) in {elapsed * 1000:.1f}ms",
                extra={
                    "extra_fields": {
                        "project_id": self.project_id,
                        "components": len(merged),
                        "written": len(synced),
                        "removed": removed,
                        "parse_errors": len(parse_errors),
                        "elapsed_ms": round(elapsed * 1000, 1),
                    }
                },
            )
            return SyncResult(ok=True, components=components, parse_errors=parse_errors)

        except Exception as e:
            logger.error(f"Error during sync of project {self.project_id}: {e}", exc_info=True)
            return SyncResult(ok=False, error=e)

    def sync_file(self, path: str) -> Optional[SyncResult]:
        """Handle a change to a single file.

        Spec and implementation files trigger a (non-forced) full sync so
        that merging and parent derivation see the whole tree. Other paths
        are ignored.

        Returns:
            SyncResult, or None if the path is neither a spec nor an impl file.
        """
        return self.sync_paths([path])

    def sync_paths(self, paths: Iterable[str]) -> Optional[SyncResult]:
        """Handle a batch of changed files with at most one sync.

        Returns:
            SyncResult, or None if no path is a spec or impl file.
        """
        relevant = []
        for path in paths:
            kind = self.classify_path(path)
            if kind is None:
                logger.debug(f"Ignoring change to non-component file: {path}")
            else:
                logger.debug(f"{kind} file changed: {path}")
                relevant.append(path)

        if not relevant:
            return None
        return self.sync(force=False)

    def classify_path(self, path: str) -> Optional[str]:
        """Return ``"spec"``, ``"impl"`` or None for a path."""
        relative = self._relative(path)
        if relative is None:
            return None
        if matches_glob(relative, self.config.spec_glob):
            return "spec"
        if matches_glob(relative, self.config.impl_glob):
            return "impl"
        return None

    def _relative(self, path: str) -> Optional[str]:
        candidate = Path(path)
        if not candidate.is_absolute():
            return candidate.as_posix()
        try:
            return candidate.resolve().relative_to(Path(self.base_dir).resolve()).as_posix()
        except ValueError:
            return None

    def _parse_all(
        self, pattern: str, parse: Callable[[FileInfo], ParsedModule]
    ) -> Tuple[List[ParsedModule], List[FileParseError]]:
        infos = collect_files(self.base_dir, pattern, self.config.ignore_patterns)

        def attempt(info: FileInfo) -> Tuple[Optional[ParsedModule], Optional[FileParseError]]:
            try:
                return parse(info), None
            except FILE_ERRORS as e:
                return None, FileParseError(info.path, f"{type(e).__name__}: {e}")

        workers = self.config.parse_workers
        if workers > 1 and len(infos) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                outcomes = list(executor.map(attempt, infos))
        else:
            outcomes = [attempt(info) for info in infos]

        # infos are sorted by path and map() keeps input order
        records = [record for record, _ in outcomes if record is not None]
        errors = [error for _, error in outcomes if error is not None]
        return records, errors

    def _upsert(self, record: ParsedModule, synced_at: datetime) -> Component:
        attrs = {
            "module_name": record.module_name,
            "name": record.module_name.split(".")[-1],
            "type": record.type or ComponentType.MODULE,
            "description": record.description,
            "synced_at": synced_at,
        }
        return self.store.upsert_component(self.project_id, attrs)

    def _derive_parents(self, components: List[Component]) -> List[Component]:
        """Point every component at its nearest existing namespace ancestor.

        Only components whose parent actually changes are written.
        """
        by_name: Dict[str, Component] = {c.module_name: c for c in components}
        result: List[Component] = []
        for component in components:
            parent = find_nearest_ancestor(component.module_name, by_name)
            parent_id = parent.id if parent is not None else None
            if parent_id == component.id or parent_id == component.parent_component_id:
                result.append(component)
                continue
            result.append(
                self.store.update_component(
                    self.project_id, component, {"parent_component_id": parent_id}
                )
            )
        return result

    def _cleanup_removed(self, existing: List[Component], current_names: Set[str]) -> int:
        removed = 0
        for component in existing:
            if component.module_name not in current_names:
                logger.debug(f"Removing component {component.module_name}, files are gone")
                self.store.delete_component(self.project_id, component)
                removed += 1
        return removed
