# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Debounced file system watcher that re-runs component syncs.

Watches a project directory with watchdog and reports changed spec and
implementation files to a callback (normally ``Reconciler.sync_paths``):
- .gitignore, hardcoded and user-configured ignore patterns
- Only paths matching the watched globs are reported
- Bursts of events are collapsed: each event restarts a debounce timer, and
  when it fires the pending paths are reported in one callback call

Deletion events are ignored. A removed file drops out of the next scan and
the sync's cleanup step deletes its component.

Known Limitations:
- Symlinks: Symbolic links are followed by watchdog; no validation that resolved
  paths stay within project_root
- Error handling: No automatic restart on watcher failure
"""

import fnmatch
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Set

from watchdog.events import FileMovedEvent, FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from archgraph.scanner import matches_glob

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

    from archgraph.reconciler import Reconciler

logger = logging.getLogger(__name__)

# Callback signature: (filepaths: List[str]) -> Any
ChangeCallback = Callable[[List[str]], object]


class FileWatcher:
    """Watches spec and implementation trees and reports changed files.

    Thread Safety:
    - Events arrive on watchdog's observer thread, flushes run on a
      threading.Timer thread; a lock guards the pending set and the timer
    - One callback call per flush, with the batch sorted; flushes never overlap

    Usage:
        watcher = FileWatcher.for_reconciler(reconciler)
        watcher.start()
        # ... edits under docs/spec or lib trigger syncs ...
        watcher.stop()
    """

    # Hardcoded ignore patterns
    ALWAYS_IGNORED = {
        ".git",
        "_build",
        "deps",
        ".elixir_ls",
        "node_modules",
        "cover",
        "__pycache__",
        ".venv",
        "*.swp",
        "*~",
        ".#*",
    }

    def __init__(
        self,
        project_root: str,
        patterns: Iterable[str],
        callback: ChangeCallback,
        debounce_ms: int = 100,
        gitignore_path: Optional[str] = None,
        user_ignore_patterns: Optional[Iterable[str]] = None,
    ):
        """Initialize FileWatcher.

        Args:
            project_root: Root directory to watch; patterns are relative to it.
            patterns: Globs selecting the files worth reporting.
            callback: Called with the sorted absolute paths changed since the
                previous flush.
            debounce_ms: Quiet period before pending paths are reported.
            gitignore_path: Path to .gitignore (defaults to {project_root}/.gitignore).
            user_ignore_patterns: Additional user-configured ignore patterns.
        """
        self.project_root = Path(project_root).resolve()
        self.patterns = list(patterns)
        self.callback = callback
        self.debounce_seconds = debounce_ms / 1000.0
        self.gitignore_path = (
            Path(gitignore_path) if gitignore_path else self.project_root / ".gitignore"
        )
        self.user_ignore_patterns = set(user_ignore_patterns or [])
        self._gitignore_patterns: Set[str] = self._load_gitignore()

        self._pending: Set[str] = set()
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()

        self._observer: Optional["BaseObserver"] = None
        self._event_handler = _FileEventHandler(self)

        logger.info(f"FileWatcher initialized for {self.project_root}")

    @classmethod
    def for_reconciler(cls, reconciler: "Reconciler") -> "FileWatcher":
        """Watcher that feeds changes in a reconciler's spec and impl trees to sync_paths."""
        config = reconciler.config
        return cls(
            project_root=reconciler.base_dir,
            patterns=[config.spec_glob, config.impl_glob],
            callback=reconciler.sync_paths,
            debounce_ms=config.watch_debounce_ms,
            user_ignore_patterns=config.ignore_patterns,
        )

    def _load_gitignore(self) -> Set[str]:
        """Load .gitignore patterns, skipping blanks and comments."""
        patterns: Set[str] = set()

        if not self.gitignore_path.exists():
            logger.debug(f"No .gitignore found at {self.gitignore_path}")
            return patterns

        try:
            with open(self.gitignore_path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue
                    patterns.add(line.rstrip("/"))
            logger.debug(f"Loaded {len(patterns)} patterns from .gitignore")
        except UnicodeDecodeError as e:
            logger.error(f"Failed to decode .gitignore (encoding error): {e}")
        except OSError as e:
            logger.warning(f"Failed to read .gitignore: {e}")

        return patterns

    def _relative(self, file_path: str) -> Optional[str]:
        try:
            return Path(file_path).resolve().relative_to(self.project_root).as_posix()
        except ValueError:
            return None

    def should_ignore(self, file_path: str) -> bool:
        """Check if a file should be ignored.

        Hardcoded patterns are matched against every path component;
        .gitignore and user patterns against the relative path, the file
        name and each directory component.
        """
        relative = self._relative(file_path)
        if relative is None:
            return True

        parts = relative.split("/")
        for pattern in self.ALWAYS_IGNORED:
            if any(fnmatch.fnmatch(part, pattern) for part in parts):
                return True

        for pattern in self._gitignore_patterns | self.user_ignore_patterns:
            if fnmatch.fnmatch(relative, pattern):
                return True
            if any(fnmatch.fnmatch(part, pattern) for part in parts):
                return True

        return False

    def is_watched_file(self, file_path: str) -> bool:
        """Check if a file matches one of the watched globs."""
        relative = self._relative(file_path)
        if relative is None:
            return False
        return any(matches_glob(relative, pattern) for pattern in self.patterns)

    def file_changed(self, file_path: str) -> None:
        """Queue a changed path and restart the debounce timer."""
        if self.should_ignore(file_path) or not self.is_watched_file(file_path):
            return

        with self._lock:
            self._pending.add(file_path)
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_seconds, self.flush)
            self._timer.daemon = True
            self._timer.start()

        logger.debug(f"Queued change: {file_path}")

    def pending_paths(self) -> List[str]:
        """Paths waiting for the debounce timer, sorted."""
        with self._lock:
            return sorted(self._pending)

    def flush(self) -> None:
        """Report the pending paths to the callback now, as one batch.

        Callback failures are logged and never propagate.
        """
        with self._lock:
            pending = sorted(self._pending)
            self._pending.clear()
            self._timer = None

        if not pending:
            return

        with self._flush_lock:
            try:
                self.callback(pending)
            except Exception as e:
                logger.error(f"Change callback failed for {len(pending)} paths: {e}")

    def start(self) -> None:
        """Start watching file system.

        Raises:
            RuntimeError: If watcher is already running
        """
        if self._observer is not None and self._observer.is_alive():
            raise RuntimeError("FileWatcher is already running")

        self._observer = Observer()
        self._observer.schedule(  # type: ignore  # watchdog types vary by version
            self._event_handler, str(self.project_root), recursive=True
        )
        self._observer.start()  # type: ignore  # watchdog types vary by version

        logger.info(f"FileWatcher started, monitoring {self.project_root}")

    def stop(self) -> None:
        """Stop watching and drop any pending debounce timer.

        Blocks until observer thread terminates (with timeout).
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

        if self._observer is not None and self._observer.is_alive():
            self._observer.stop()  # type: ignore  # watchdog types vary by version
            self._observer.join(timeout=5.0)
            logger.info("FileWatcher stopped")

    def is_running(self) -> bool:
        """Check if watcher is currently running."""
        return self._observer is not None and self._observer.is_alive()


class _FileEventHandler(FileSystemEventHandler):
    """Internal event handler for watchdog.

    Delegates to FileWatcher for filtering and debouncing.
    """

    def __init__(self, watcher: FileWatcher):
        super().__init__()
        self.watcher = watcher

    def _handle_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self.watcher.file_changed(str(event.src_path))

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        # Cleanup happens on the next sync
        logger.debug(f"Ignoring deletion of {event.src_path}")

    def on_moved(self, event: FileSystemEvent) -> None:
        """Treat a move as a change at the destination path."""
        if event.is_directory or not isinstance(event, FileMovedEvent):
            return
        self.watcher.file_changed(str(event.dest_path))
