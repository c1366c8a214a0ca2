# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Component architecture graph: sync, trees and readiness status."""

from .config import Config, ConfigurationError
from .dependency_tree import DependencyTreeResult
from .file_watcher import FileWatcher
from .hierarchy_tree import HierarchyTreeResult
from .models import (
    NOT_LOADED,
    Component,
    ComponentStatus,
    ComponentType,
    ComponentValidationError,
    Dependency,
    DependencyType,
    NextAction,
    Requirement,
    TestStatus,
    component_id,
    is_loaded,
    loaded_or_empty,
)
from .reconciler import FileParseError, Reconciler, SyncResult
from .status_engine import TestFailure, analyze_components, compute_status
from .storage import ComponentStore, GraphExport, InMemoryComponentStore, StoreError

__version__ = "0.1.0"

__all__ = [
    "Config",
    "ConfigurationError",
    "Component",
    "ComponentStatus",
    "ComponentType",
    "ComponentValidationError",
    "Dependency",
    "DependencyType",
    "NextAction",
    "Requirement",
    "TestStatus",
    "NOT_LOADED",
    "component_id",
    "is_loaded",
    "loaded_or_empty",
    "DependencyTreeResult",
    "HierarchyTreeResult",
    "ComponentStore",
    "InMemoryComponentStore",
    "GraphExport",
    "StoreError",
    "Reconciler",
    "SyncResult",
    "FileParseError",
    "TestFailure",
    "analyze_components",
    "compute_status",
    "FileWatcher",
]
