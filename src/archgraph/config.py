# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for archgraph."""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = ".archgraph.yml"


class ConfigurationError(Exception):
    """Raised when configuration validation fails critically."""

    pass


class Config:
    """Configuration for component reconciliation and status analysis.

    Loads configuration from .archgraph.yml with validation and defaults.
    """

    DEFAULTS = {
        # Reconciler scan
        "spec_glob": "docs/spec/**/*.spec.md",
        "impl_glob": "lib/**/*.ex",
        "spec_root": "docs/spec",
        "impl_root": "lib",
        "spec_suffix": ".spec.md",
        "module_declaration_pattern": r"defmodule\s+([A-Z][a-zA-Z0-9_.]*)\s+do",
        "parse_workers": 1,
        "force_sync": False,
        "ignore_patterns": [],
        # Status engine expected file layout
        "design_root": "docs/design",
        "test_root": "test",
        "code_extension": ".ex",
        "test_suffix": "_test.exs",
        "project_module_name": "",
        # File watcher
        "watch_debounce_ms": 100,
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses default location.
        """
        if config_path is None:
            config_path = Path.cwd() / DEFAULT_CONFIG_FILENAME

        self.config_path = config_path
        self._config: Dict[str, Any] = {}
        self._load_config()

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "Config":
        """Build a configuration from an in-memory dict (validated like a file)."""
        config = cls.__new__(cls)
        config.config_path = None
        config._config = dict(cls.DEFAULTS)
        config._validate_and_merge(values)
        return config

    def _load_config(self) -> None:
        """Start from defaults and merge whatever the file provides."""
        self._config = dict(self.DEFAULTS)
        loaded_config = self._read_file()
        if loaded_config is not None:
            self._validate_and_merge(loaded_config)

    def _read_file(self) -> Optional[Dict[str, Any]]:
        """Parse the YAML file; None (after a log line) when it cannot be used."""
        if not self.config_path.exists():
            logger.info(f"No {self.config_path.name} at {self.config_path}, using defaults")
            return None

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.warning(
                f"Error parsing configuration file {self.config_path}: {e}, using defaults"
            )
            return None
        except OSError as e:
            logger.warning(f"Cannot read {self.config_path}: {e}, using defaults")
            return None

        if loaded_config is None:
            logger.warning(f"{self.config_path} is empty, using defaults")
            return None
        if not isinstance(loaded_config, dict):
            logger.warning(
                f"{self.config_path} must hold a mapping of settings, "
                f"got {type(loaded_config).__name__}, using defaults"
            )
            return None
        return loaded_config

    def _validate_and_merge(self, loaded_config: Dict[str, Any]) -> None:
        """Validate loaded configuration and merge with defaults.

        Invalid parameters are logged as warnings and defaults are used.
        """
        for key, value in loaded_config.items():
            if key not in self.DEFAULTS:
                logger.warning(f"Unknown configuration parameter '{key}', ignoring")
                continue

            if not self._validate_parameter(key, value):
                logger.warning(
                    f"Invalid value for '{key}': {value}, using default {self.DEFAULTS[key]}"
                )
                continue

            self._config[key] = value

    def _validate_parameter(self, key: str, value: Any) -> bool:
        """Validate a configuration parameter.

        Returns:
            True if valid, False if invalid
        """
        expected_type = type(self.DEFAULTS[key])
        # bool is a subclass of int; keep them apart
        if expected_type is int and isinstance(value, bool):
            return False
        if not isinstance(value, expected_type):
            return False

        if key in ("parse_workers", "watch_debounce_ms"):
            return value > 0
        elif key in ("spec_glob", "impl_glob", "spec_root", "impl_root", "spec_suffix"):
            return bool(value.strip())
        elif key == "module_declaration_pattern":
            try:
                compiled = re.compile(value)
            except re.error:
                return False
            # The module name must be captured by the first group
            return compiled.groups >= 1
        elif key == "ignore_patterns":
            return all(isinstance(pattern, str) for pattern in value)

        return True

    def get(self, key: str) -> Any:
        """Raw access to a configuration value.

        Raises:
            ConfigurationError: If the key is not a known parameter.
        """
        if key not in self.DEFAULTS:
            raise ConfigurationError(f"Unknown configuration parameter '{key}'")
        return self._config[key]

    def to_dict(self) -> Dict[str, Any]:
        """Return a copy of the effective configuration."""
        return dict(self._config)

    def _typed(self, key: str, kind: type) -> Any:
        value = self._config[key]
        assert isinstance(value, kind), f"{key} holds {type(value).__name__}"
        return value

    # Reconciler scan

    @property
    def spec_glob(self) -> str:
        """Glob (relative to base dir) that selects spec documents."""
        return self._typed("spec_glob", str)

    @property
    def impl_glob(self) -> str:
        """Glob (relative to base dir) that selects implementation files."""
        return self._typed("impl_glob", str)

    @property
    def spec_root(self) -> str:
        """Directory prefix stripped when deriving a module name from a spec path."""
        return self._typed("spec_root", str)

    @property
    def impl_root(self) -> str:
        """Directory prefix stripped when deriving a module name from an impl path."""
        return self._typed("impl_root", str)

    @property
    def spec_suffix(self) -> str:
        return self._typed("spec_suffix", str)

    @property
    def module_declaration_pattern(self) -> str:
        """Regex whose first group captures a declared module name."""
        return self._typed("module_declaration_pattern", str)

    @property
    def parse_workers(self) -> int:
        """Number of threads used for per-file parsing (1 = sequential)."""
        return self._typed("parse_workers", int)

    @property
    def force_sync(self) -> bool:
        """Whether syncs ignore modification times by default."""
        return self._typed("force_sync", bool)

    @property
    def ignore_patterns(self) -> List[str]:
        """Patterns skipped by the scan and the watcher, on top of .gitignore."""
        return list(self._typed("ignore_patterns", list))

    # Status engine expected file layout

    @property
    def design_root(self) -> str:
        return self._typed("design_root", str)

    @property
    def test_root(self) -> str:
        return self._typed("test_root", str)

    @property
    def code_extension(self) -> str:
        return self._typed("code_extension", str)

    @property
    def test_suffix(self) -> str:
        """Suffix (including extension) of test files."""
        return self._typed("test_suffix", str)

    @property
    def project_module_name(self) -> str:
        """Root module name prefixed to component module names (may be empty)."""
        return self._typed("project_module_name", str)

    # File watcher

    @property
    def watch_debounce_ms(self) -> int:
        """Delay before pending file changes trigger a sync."""
        return self._typed("watch_debounce_ms", int)
